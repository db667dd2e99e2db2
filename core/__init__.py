"""Shared configuration, logging and error types."""

from core.config import Config, get_config, init_config, reset_config
from core.logging_setup import setup_logging

__all__ = [
    "Config",
    "get_config",
    "init_config",
    "reset_config",
    "setup_logging",
]
