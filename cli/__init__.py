"""
CLI Interface for Claude Supervisor
"""

from .main_cli import main_cli
from .interface import SupervisionInterface

__all__ = ['main_cli', 'SupervisionInterface']
