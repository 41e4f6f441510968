"""Upload configuration resolution."""

from chunked_uploader.config_manager.config import ConfigManager
from chunked_uploader.config_manager.helpers import parse_bytes
from chunked_uploader.config_manager.upload_config import UploadConfig

__all__ = ["ConfigManager", "UploadConfig", "parse_bytes"]
