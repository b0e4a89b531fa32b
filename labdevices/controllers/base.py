"""
Common machinery for serial instrument controllers.

Every controller owns exactly one SerialPort, opened in its constructor with
the instrument's line settings and checked with an identification handshake.
Properties are published as a table mapping a name to a getter, an optional
setter and an optional validator; InstrumentProperty descriptors give the
same table attribute syntax (`stage.speed = 50`).

Error policy:
- failures to open or identify the instrument are raised; the handshake
  itself logs below warning level, so a `quiet` scan of ports is silent
- protocol problems during a call (timeouts, error replies, malformed replies)
  are logged as warnings and the call returns a sentinel ("" or None)
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from labserial.config import InstrumentConfig
from labserial.drivers import SerialPort
from labserial.utils import TieredLogger, get_logger, report_error


class InstrumentError(Exception):
    """Base class for instrument controller errors."""
    pass


class NotRecognizedError(InstrumentError):
    """The identification handshake did not match the expected instrument."""
    pass


class ProtocolError(InstrumentError):
    """A reply was missing, malformed, or reported an error."""
    pass


Bound = Union[float, Callable[[], float], None]


class Clamp:
    """
    Validator that clamps a value into [low, high].

    Bounds may be numbers, callables returning numbers (for limits read
    from the instrument), or None for an open side. Out-of-range values are
    replaced by the nearest bound and a warning is logged.
    """

    def __init__(self, name: str, low: Bound = None, high: Bound = None,
                 cast: Callable[[Any], Any] = int,
                 logger: Optional[TieredLogger] = None):
        self.name = name
        self.low = low
        self.high = high
        self.cast = cast
        self._logger = logger or get_logger("instrument")

    @staticmethod
    def _resolve(bound: Bound) -> Optional[float]:
        return bound() if callable(bound) else bound

    def __call__(self, value: Any) -> Any:
        value = self.cast(value)
        low = self._resolve(self.low)
        high = self._resolve(self.high)
        if value != value:
            # NaN compares false against both bounds
            if low is None:
                raise ValueError(f"{self.name}: NaN is not a valid value")
            self._logger.warning(f"{self.name} is NaN, using {low}")
            return self.cast(low)
        if low is not None and value < low:
            self._logger.warning(f"{self.name} {value} below {low}, using {low}")
            return self.cast(low)
        if high is not None and value > high:
            self._logger.warning(f"{self.name} {value} above {high}, using {high}")
            return self.cast(high)
        return value

    def __repr__(self) -> str:
        return f"Clamp({self.name!r}, {self.low!r}, {self.high!r})"


class Flag:
    """
    Validator for on/off properties.

    Accepts booleans, 0 and 1, and the words on/off, true/false, yes/no and
    1/0 in any case. Anything else raises ValueError.
    """

    TRUE_WORDS = ("on", "true", "yes", "1")
    FALSE_WORDS = ("off", "false", "no", "0")

    def __init__(self, name: str):
        self.name = name

    def __call__(self, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        if isinstance(value, str):
            word = value.strip().lower()
            if word in self.TRUE_WORDS:
                return True
            if word in self.FALSE_WORDS:
                return False
        raise ValueError(f"{self.name}: expected on/off, got {value!r}")

    def __repr__(self) -> str:
        return f"Flag({self.name!r})"


@dataclass
class PropertySpec:
    """One entry of a controller's property table."""
    getter: Callable[[], Any]
    setter: Optional[Callable[[Any], Any]] = None
    validator: Optional[Callable[[Any], Any]] = None
    doc: str = ""

    @property
    def settable(self) -> bool:
        return self.setter is not None


class InstrumentProperty:
    """Descriptor forwarding attribute access to the owner's property table."""

    def __init__(self, doc: str = ""):
        self.__doc__ = doc

    def __set_name__(self, owner, name):
        self.name = name

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        return obj.get(self.name)

    def __set__(self, obj, value):
        obj.set(self.name, value)


class PropertyTable:
    """Name-based get/set over a `properties` mapping of PropertySpec."""

    NAME = "instrument"

    properties: Dict[str, PropertySpec] = {}

    def _spec(self, name: str) -> PropertySpec:
        try:
            return self.properties[name]
        except KeyError:
            raise KeyError(f"{self.NAME} has no property '{name}'") from None

    def get(self, name: str) -> Any:
        """Read a property by name."""
        return self._spec(name).getter()

    def set(self, name: str, value: Any) -> None:
        """
        Write a property by name, after validation.

        Raises:
            KeyError: Unknown property
            AttributeError: Property is read-only
        """
        spec = self._spec(name)
        if spec.setter is None:
            raise AttributeError(f"{self.NAME} property '{name}' is read-only")
        if spec.validator is not None:
            value = spec.validator(value)
        spec.setter(value)

    def update(self, **values: Any) -> None:
        """Write several properties, in the order given."""
        for name, value in values.items():
            self.set(name, value)

    def snapshot(self) -> Dict[str, Any]:
        """Read every property."""
        return {name: spec.getter() for name, spec in self.properties.items()}

    def describe(self) -> Dict[str, str]:
        """Property name to a short description, marking read-only entries."""
        return {
            name: spec.doc + ("" if spec.settable else " (read-only)")
            for name, spec in self.properties.items()
        }


class SerialInstrument(PropertyTable):
    """
    Base class for serial instrument controllers.

    Subclasses set CONFIG_SECTION, implement _identify() and
    _build_properties(), and initialise their own state before calling
    super().__init__().

    Args:
        device: Device file of the instrument's serial port
        quiet: Suppress the operator error report when identification fails
        debug: Trace port traffic at debug level
        opener: Factory with SerialPort's signature (for simulation)

    Raises:
        NotAccessibleError, OpenError: The port could not be opened
        NotRecognizedError: The instrument did not identify itself
    """

    CONFIG_SECTION = ""

    def __init__(self, device: str, quiet: bool = False, debug: bool = False,
                 opener: Callable[..., SerialPort] = SerialPort):
        self._port = None
        self.config = InstrumentConfig(self.CONFIG_SECTION)
        self._logger = get_logger(self.CONFIG_SECTION)
        self.quiet = quiet

        self._port = opener(
            device,
            settings=self.config.line_settings,
            eol=self.config.eol,
            timeout=self.config.timeout,
            debug=debug,
        )

        try:
            recognized = self._identify()
        except ProtocolError as e:
            self._logger.debug(f"Identification on {device} failed: {e}")
            recognized = False
        except BaseException:
            self._release(restore=True)
            raise

        if not recognized:
            self._release(restore=True)
            if not quiet:
                report_error(self._logger, "not_recognized", f"expected {self.NAME} on {device}")
            raise NotRecognizedError(f"No {self.NAME} found on {device}")

        self.properties = self._build_properties()
        self._logger.info(f"{self.NAME} connected on {device}")

    def _identify(self) -> bool:
        raise NotImplementedError

    def _build_properties(self) -> Dict[str, PropertySpec]:
        raise NotImplementedError

    @property
    def port(self) -> SerialPort:
        """The owned serial port (for adjusting timeout or debug tracing)."""
        return self._port

    @property
    def device(self) -> str:
        return self._port.device if self._port is not None else ""

    @property
    def is_connected(self) -> bool:
        return self._port is not None and self._port.is_open

    def _check_connected(self) -> None:
        if self._port is None:
            raise InstrumentError(f"{self.NAME} is closed")

    def _read_line(self) -> str:
        line, timed_out = self._port.read()
        if timed_out:
            raise ProtocolError(f"no reply within {self._port.timeout}s")
        return line

    def _transact(self, cmd: str) -> str:
        """Write one command and read one reply line."""
        self._check_connected()
        self._port.write(cmd)
        return self._read_line()

    def _advise(self, cmd: str, error: ProtocolError) -> None:
        self._logger.warning(f"{self.NAME} {cmd!r}: {error}")

    def _number(self, reply: str, cast: Callable[[str], Any], what: str) -> Any:
        """Convert a reply to a number, or log and return None."""
        if reply == "":
            return None
        try:
            return cast(reply)
        except ValueError:
            self._logger.warning(f"{self.NAME}: cannot read {what} from {reply!r}")
            return None

    def _release(self, restore: bool = False) -> None:
        if self._port is None:
            return
        port, self._port = self._port, None
        if restore:
            port.restore_settings()
        port.close()

    def close(self) -> None:
        """Release the serial port. Safe to call more than once."""
        self._release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __del__(self):
        try:
            self.close()
        except Exception:
            pass
