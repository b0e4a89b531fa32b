"""
Viper Laser Controller

The Viper's output power is set by an analog voltage from a D/A board. The
board's vendor library (Measurement Computing Universal Library by default)
is process-wide: it is loaded and initialised once per process through
VendorLibrary and released when the last user closes.

Only one ViperLaser may be active at a time. The library has not been
verified reentrant, so a second instance raises ViperLaserError until the
first is closed.

The board has no read-back, so the power setpoint is kept on the client side.
"""

from ctypes import c_float, c_int
from typing import Any, Callable, Dict, Optional

from labserial.config import viper_config
from labserial.drivers import VendorLibrary, VendorLibraryError
from labserial.drivers.vendor_library import load_library
from labserial.utils import get_logger, report_error

from .base import Clamp, InstrumentError, InstrumentProperty, PropertySpec, PropertyTable

_logger = get_logger("viper")


class ViperLaserError(InstrumentError):
    """Exception raised for Viper laser specific errors."""
    pass


class ViperLaser(PropertyTable):
    """
    Controller for a Viper laser driven through a D/A channel.

    Args:
        board: D/A board number (configuration default when None)
        channel: Analog output channel (configuration default when None)
        loader: Library loader, ctypes.CDLL by default

    Raises:
        ViperLaserError: Another ViperLaser is active
        VendorLibraryError: The D/A library could not be loaded
    """

    NAME = "Viper laser"

    _active: Optional['ViperLaser'] = None

    power = InstrumentProperty("Output power setpoint, percent")
    voltage = InstrumentProperty("Analog output voltage, V")

    def __init__(self, board: Optional[int] = None, channel: Optional[int] = None,
                 loader: Callable[[str], Any] = load_library):
        self._library: Optional[VendorLibrary] = None
        if ViperLaser._active is not None:
            report_error(_logger, "viper_already_active")
            raise ViperLaserError("Another ViperLaser is active; close it first")

        self.config = viper_config
        self._board = self.config["board"] if board is None else board
        self._channel = self.config["channel"] if channel is None else channel
        self._range = self.config["range_code"]
        self._full_scale = float(self.config["full_scale_v"])
        self._power = 0.0

        library = VendorLibrary.shared(
            self.config["library"],
            init_function=self.config.get("init_function"),
            teardown_function=self.config.get("teardown_function"),
            loader=loader,
        )
        try:
            library.acquire()
        except VendorLibraryError as e:
            report_error(_logger, "vendor_library_missing", str(e))
            raise
        self._library = library

        try:
            self._analog_out = library.function(self.config["analog_out_function"])
        except VendorLibraryError:
            self._library = None
            library.release()
            raise

        ViperLaser._active = self
        low, high = self.config.limits.get("power", (0, 100))
        self.properties: Dict[str, PropertySpec] = {
            "power": PropertySpec(lambda: self._power, self._set_power,
                                  Clamp("power", low, high, float, _logger),
                                  "Power setpoint, percent"),
            "voltage": PropertySpec(lambda: self._volts(self._power),
                                    doc="Analog output voltage"),
        }
        _logger.info(f"{self.NAME} on board {self._board} channel {self._channel}")

    def _volts(self, percent: float) -> float:
        return percent / 100.0 * self._full_scale

    def _set_power(self, percent: float) -> None:
        if self._library is None:
            raise ViperLaserError(f"{self.NAME} is closed")
        volts = self._volts(percent)
        status = self._analog_out(c_int(self._board), c_int(self._channel),
                                  c_int(self._range), c_float(volts), c_int(0))
        if status:
            _logger.warning(f"{self.NAME}: analog output returned error {status}")
            return
        self._power = percent

    @property
    def is_connected(self) -> bool:
        return self._library is not None

    def close(self) -> None:
        """Zero the output and release the D/A library. Safe to call twice."""
        if self._library is None:
            return
        try:
            self._set_power(0.0)
        finally:
            library, self._library = self._library, None
            library.release()
            if ViperLaser._active is self:
                ViperLaser._active = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __del__(self):
        try:
            self.close()
        except Exception:
            pass
