"""
Shared utilities for serial instrument drivers.
"""

from .tiered_logger import TieredLogger, get_logger
from .error_messages import (
    ErrorTemplate,
    DEVICE_ERRORS,
    get_error,
    format_error_message,
    report_error,
)

__all__ = [
    'TieredLogger',
    'get_logger',
    'ErrorTemplate',
    'DEVICE_ERRORS',
    'get_error',
    'format_error_message',
    'report_error',
]
