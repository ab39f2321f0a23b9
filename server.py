"""
FastAPI Server for the binlog reader.

Provides health check and task status endpoints.
"""

import logging
from dataclasses import asdict
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException

from core.task import BinlogReaderTask

logger = logging.getLogger(__name__)

app = FastAPI(title="Binlog Reader")

_task: Optional[BinlogReaderTask] = None


def register_task(task: Optional[BinlogReaderTask]) -> None:
    """Expose `task` through the status endpoint."""
    global _task
    _task = task


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/status")
async def task_status():
    """Current reader task status."""
    if _task is None:
        raise HTTPException(status_code=503, detail="No reader task running")
    return asdict(_task.status())


def run_server(host: str, port: int) -> None:
    """
    Run FastAPI server using Uvicorn.

    Args:
        host: Host to bind to
        port: Port to bind to
    """
    logger.info(f"Starting API server at http://{host}:{port}")
    try:
        uvicorn.run(app, host=host, port=port, log_level="info")
    except Exception as e:
        logger.error(f"Failed to start API server: {e}")
