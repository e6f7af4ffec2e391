"""Hardened static file server package exports."""

from .config import Settings, get_settings
from .logging_config import configure_logging
from .server import create_app

__all__ = ["Settings", "get_settings", "configure_logging", "create_app"]
