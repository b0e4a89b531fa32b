"""
Process-wide handle on a vendor shared library.

Some vendor libraries (D/A boards in particular) must be initialised once per
process and torn down once at the end, however many drivers use them.
VendorLibrary loads the library with ctypes on the first acquire(), calls its
init function, and calls the teardown function when the last user releases it.
"""

import ctypes
import ctypes.util
import threading
from typing import Any, Callable, Dict, Optional

from ..utils import get_logger

_logger = get_logger("vendor")


class VendorLibraryError(Exception):
    """Raised when a vendor library cannot be loaded or a call fails."""
    pass


def load_library(name: str) -> Any:
    """
    Load a shared library by name or path.

    Tries the name as given, then the platform search path (ctypes.util).
    """
    try:
        return ctypes.CDLL(name)
    except OSError:
        found = ctypes.util.find_library(name)
        if found is None:
            raise
        return ctypes.CDLL(found)


class VendorLibrary:
    """
    Reference-counted shared library.

    Use VendorLibrary.shared(name) to get the single instance for a library
    name, then pair every acquire() with a release().

    Args:
        name: Library name or path
        init_function: Symbol called with no arguments after loading, or None
        teardown_function: Symbol called before the last release, or None
        loader: Callable turning a name into a library object (ctypes.CDLL)
    """

    _registry: Dict[str, 'VendorLibrary'] = {}
    _registry_lock = threading.Lock()

    def __init__(
        self,
        name: str,
        init_function: Optional[str] = None,
        teardown_function: Optional[str] = None,
        loader: Callable[[str], Any] = load_library,
    ):
        self.name = name
        self.init_function = init_function
        self.teardown_function = teardown_function
        self._loader = loader
        self._lib = None
        self._refcount = 0
        self._lock = threading.Lock()

    @classmethod
    def shared(cls, name: str, **kwargs) -> 'VendorLibrary':
        """Get or create the process-wide instance for `name`."""
        with cls._registry_lock:
            if name not in cls._registry:
                cls._registry[name] = cls(name, **kwargs)
            return cls._registry[name]

    @property
    def refcount(self) -> int:
        return self._refcount

    @property
    def is_loaded(self) -> bool:
        return self._lib is not None

    def acquire(self) -> Any:
        """
        Take a reference, loading and initialising the library if needed.

        Returns:
            The loaded library object

        Raises:
            VendorLibraryError: If loading or initialisation fails
        """
        with self._lock:
            if self._lib is None:
                try:
                    lib = self._loader(self.name)
                except OSError as e:
                    raise VendorLibraryError(f"Cannot load {self.name}: {e}") from e
                if self.init_function:
                    self._call(lib, self.init_function)
                self._lib = lib
                _logger.info(f"Loaded vendor library {self.name}")
            self._refcount += 1
            return self._lib

    def release(self) -> None:
        """Drop a reference; the last release tears the library down."""
        with self._lock:
            if self._refcount == 0:
                _logger.warning(f"release() on {self.name} without matching acquire()")
                return
            self._refcount -= 1
            if self._refcount == 0:
                if self.teardown_function:
                    self._call(self._lib, self.teardown_function)
                self._lib = None
                _logger.info(f"Released vendor library {self.name}")

    def function(self, symbol: str) -> Callable:
        """Look up a function in the loaded library."""
        if self._lib is None:
            raise VendorLibraryError(f"{self.name} is not loaded")
        try:
            return getattr(self._lib, symbol)
        except AttributeError as e:
            raise VendorLibraryError(f"{self.name} has no function {symbol}") from e

    def _call(self, lib: Any, symbol: str) -> None:
        try:
            func = getattr(lib, symbol)
        except AttributeError as e:
            raise VendorLibraryError(f"{self.name} has no function {symbol}") from e
        status = func()
        if status:
            raise VendorLibraryError(f"{self.name}.{symbol}() returned {status}")
