"""Utilities package for the menu costing engine."""

from .config import Config, get_config, reset_config
from .datetime_utils import utc_now, utc_today

__all__ = [
    "Config",
    "get_config",
    "reset_config",
    "utc_now",
    "utc_today",
]
