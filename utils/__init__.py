"""
Utility modules for the supervisor
"""

from .logging import setup_logging
from .config import build_config, load_config, save_config

__all__ = ['setup_logging', 'build_config', 'load_config', 'save_config']
