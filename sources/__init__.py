# Sources module
from sources.base import BaseBinlogClient, BinlogClientSettings

__all__ = ["BaseBinlogClient", "BinlogClientSettings"]
