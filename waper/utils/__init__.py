"""
Utility modules for the crawler.
"""

from .config import Config, ConfigError, ConfigManager, load_config, validate_config

__all__ = ['Config', 'ConfigError', 'ConfigManager', 'load_config', 'validate_config']
