"""
Configuration module for the visualization exporter.
"""

from .settings import (
    Config,
    ConfigurationError,
    ExportConfig,
    HttpConfig,
)

__all__ = [
    'Config',
    'ConfigurationError',
    'ExportConfig',
    'HttpConfig',
]
