"""
Utility modules for the crawler.
"""

from .config import Config, ConfigManager, load_config, validate_config
from .urls import is_valid_url, normalize_url, validate_url, get_origin

__all__ = [
    'Config', 'ConfigManager', 'load_config', 'validate_config',
    'is_valid_url', 'normalize_url', 'validate_url', 'get_origin'
]
