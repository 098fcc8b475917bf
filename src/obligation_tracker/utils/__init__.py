"""Утилиты приложения."""

from obligation_tracker.utils.logger import setup_logging, get_logger
from obligation_tracker.utils.exceptions import (
    ObligationTrackerError,
    ValidationError,
    BusinessLogicError,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "ObligationTrackerError",
    "ValidationError",
    "BusinessLogicError",
]
