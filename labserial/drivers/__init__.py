"""
Shared low-level drivers: the serial transport and vendor library handles.
"""

from .serial_port import (
    SerialPort,
    SerialPortError,
    NotAccessibleError,
    OpenError,
    QueryError,
)
from .vendor_library import VendorLibrary, VendorLibraryError

__all__ = [
    'SerialPort',
    'SerialPortError',
    'NotAccessibleError',
    'OpenError',
    'QueryError',
    'VendorLibrary',
    'VendorLibraryError',
]
