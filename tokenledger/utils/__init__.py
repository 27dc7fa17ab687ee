"""
Utility modules for configuration, logging, HTTP and error handling.
"""

from .config import Config, get_config
from .logger import setup_logger, get_logger
from .http import HttpClient, HttpResponse

__all__ = ["Config", "get_config", "setup_logger", "get_logger", "HttpClient", "HttpResponse"]
