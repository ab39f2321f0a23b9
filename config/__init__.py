from config.config import Config, get_config, load_job_options

__all__ = ["Config", "get_config", "load_job_options"]
