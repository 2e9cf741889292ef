"""Utilities package."""

from .logger import get_app_logger, setup_logger, init_app_logger
from .stream_parser import EventFrameParser
from .field_paths import resolve_path, first_non_empty

__all__ = [
    "get_app_logger",
    "setup_logger",
    "init_app_logger",
    "EventFrameParser",
    "resolve_path",
    "first_non_empty"
]
