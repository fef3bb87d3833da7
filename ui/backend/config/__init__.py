"""
Configuration package for the image classifier backend.
"""

from .system_config import config, SystemConfig, APIConfig

__all__ = [
    'config',
    'SystemConfig',
    'APIConfig'
]
