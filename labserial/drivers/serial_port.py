"""
Serial port transport for line-oriented instruments.

SerialPort opens a character-special device file, applies line-discipline
settings through the platform `stty` utility, and offers framed writes and
byte-wise reads that stop at the end-of-line byte or at a timeout.

pyserial handles the open and the raw terminal mode. It reprograms baud rate,
parity and flow control whenever it reconfigures the port, so the `stty`
settings are applied after the port is open and the read timeout is enforced
with select() rather than by changing pyserial's own timeout.

Paths containing "://" are handed to pyserial's URL handlers (loop://,
socket://, ...) so drivers can run against simulated instruments. Those ports
skip the character-device checks and `stty`.

Instances are not safe for concurrent use from several threads.
"""

import os
import select
import stat
import subprocess
import sys
from typing import List, Optional, Tuple, Union

import serial

from ..utils import get_logger, report_error

_logger = get_logger("serial")

STTY = "stty"


class SerialPortError(Exception):
    """Base class for serial port failures."""
    pass


class NotAccessibleError(SerialPortError):
    """Device file missing, not a character device, or not read/writable."""
    pass


class OpenError(SerialPortError):
    """The operating system refused to open the device."""
    pass


class QueryError(SerialPortError):
    """The terminal-configuration utility could not report the settings."""
    pass


def is_url(device: str) -> bool:
    """True for pyserial URL handlers such as loop:// or socket://host:port."""
    return "://" in device


def stty_command(device: str, *args: str) -> List[str]:
    """Build an stty command line addressing `device`."""
    flag = "-F" if sys.platform.startswith("linux") else "-f"
    return [STTY, flag, device, *args]


def check_accessible(device: str) -> None:
    """
    Verify that `device` is a character-special file we may read and write.

    Raises:
        NotAccessibleError: If any check fails
    """
    try:
        mode = os.stat(device).st_mode
    except OSError as e:
        raise NotAccessibleError(f"{device}: {e.strerror}") from e
    if not stat.S_ISCHR(mode):
        raise NotAccessibleError(f"{device}: not a character special file")
    if not os.access(device, os.R_OK | os.W_OK):
        raise NotAccessibleError(f"{device}: permission denied")


def _eol_byte(eol: Union[str, bytes, int]) -> int:
    if isinstance(eol, int):
        value = eol
    elif len(eol) == 1:
        value = ord(eol) if isinstance(eol, str) else eol[0]
    else:
        raise ValueError(f"End-of-line must be a single byte, got {eol!r}")
    if not 0 <= value <= 255:
        raise ValueError(f"End-of-line byte out of range: {value}")
    return value


class SerialPort:
    """
    Framed, blocking I/O over one serial device.

    Args:
        device: Path of the character device (or a pyserial URL)
        settings: stty options to apply, e.g. ["9600", "cs8", "raw"]
        eol: End-of-line character terminating writes and reads
        timeout: Read timeout in seconds
        debug: Trace every write and every byte read at debug level

    Raises:
        NotAccessibleError: Device missing, wrong type or permission denied
        OpenError: Device could not be opened as an interactive terminal
    """

    def __init__(
        self,
        device: str,
        settings: Optional[List[str]] = None,
        eol: Union[str, bytes, int] = "\n",
        timeout: float = 1.0,
        debug: bool = False,
    ):
        self._serial: Optional[serial.SerialBase] = None
        self._device = device
        self._eol = _eol_byte(eol)
        self._timeout = float(timeout)
        self._url = is_url(device)
        self.debug = debug
        self.initial_settings: Optional[List[str]] = None

        if self._url:
            self._serial = self._open_url()
            if settings:
                _logger.debug(f"{device}: ignoring line settings for URL port")
            return

        try:
            check_accessible(device)
        except NotAccessibleError as e:
            report_error(_logger, "port_not_accessible", str(e))
            raise

        if settings:
            try:
                self.initial_settings = self.get_settings()
            except QueryError as e:
                _logger.warning(f"Cannot save line settings of {device}: {e}")

        self._serial = self._open_device()

        if settings:
            self.set_settings(settings)

    def _open_url(self) -> serial.SerialBase:
        try:
            return serial.serial_for_url(self._device, timeout=self._timeout)
        except (serial.SerialException, ValueError) as e:
            raise OpenError(f"{self._device}: {e}") from e

    def _open_device(self) -> serial.SerialBase:
        try:
            port = serial.Serial(self._device, timeout=0)
        except (serial.SerialException, OSError) as e:
            report_error(_logger, "port_open_failed", str(e))
            raise OpenError(f"{self._device}: {e}") from e

        if not (port.is_open and port.readable() and port.writable()
                and os.isatty(port.fileno())):
            port.close()
            raise OpenError(f"{self._device}: not an interactive read/write terminal")

        _logger.debug(f"Opened {self._device}")
        return port

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def device(self) -> str:
        """Device path this port was opened on."""
        return self._device

    @property
    def eol(self) -> int:
        """End-of-line byte value."""
        return self._eol

    @eol.setter
    def eol(self, value: Union[str, bytes, int]) -> None:
        self._eol = _eol_byte(value)

    @property
    def timeout(self) -> float:
        """Read timeout in seconds."""
        return self._timeout

    @timeout.setter
    def timeout(self, value: float) -> None:
        self._timeout = float(value)

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    # -------------------------------------------------------------------------
    # Line settings
    # -------------------------------------------------------------------------

    def get_settings(self) -> List[str]:
        """
        Query the current line-discipline settings of the device.

        Returns:
            List of stty tokens that restore the settings when passed back
            to set_settings()

        Raises:
            QueryError: If stty is missing or exits nonzero
        """
        if self._url:
            return []
        try:
            result = subprocess.run(
                stty_command(self._device, "-g"),
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise QueryError(f"{STTY}: {e}") from e
        if result.returncode != 0:
            raise QueryError(
                f"{STTY} -g {self._device} exited {result.returncode}: {result.stderr.strip()}"
            )
        return result.stdout.split()

    def set_settings(self, settings: List[str]) -> None:
        """
        Apply line-discipline settings with stty.

        Failures are logged, not raised: some platforms report permission
        errors to regular users even though the settings were applied.
        """
        if self._url or not settings:
            return
        try:
            result = subprocess.run(
                stty_command(self._device, *settings),
                capture_output=True,
                text=True,
            )
        except OSError as e:
            _logger.warning(f"Cannot run {STTY} for {self._device}: {e}")
            return
        if result.returncode != 0:
            _logger.warning(
                f"{STTY} {' '.join(settings)} on {self._device} exited "
                f"{result.returncode}: {result.stderr.strip()}"
            )
        else:
            _logger.debug(f"{self._device}: applied {' '.join(settings)}")

    def restore_settings(self) -> None:
        """Re-apply the settings captured before this port reconfigured the device."""
        if self.initial_settings:
            self.set_settings(self.initial_settings)

    # -------------------------------------------------------------------------
    # I/O
    # -------------------------------------------------------------------------

    def write(self, s: str) -> None:
        """Write `s` followed by the end-of-line byte, then flush."""
        if self.debug:
            _logger.debug(f"{self._device} -> {s!r}")
        self._serial.write(s.encode("latin-1") + bytes([self._eol]))
        self._serial.flush()

    def write_raw(self, data: bytes) -> None:
        """Write bytes without end-of-line framing."""
        if self.debug:
            _logger.debug(f"{self._device} -> {data!r} (raw)")
        self._serial.write(data)
        self._serial.flush()

    def _read_byte(self, timeout: float) -> bytes:
        if self._url:
            self._serial.timeout = timeout
            return self._serial.read(1)
        ready, _, _ = select.select([self._serial.fileno()], [], [], timeout)
        if not ready:
            return b""
        return self._serial.read(1)

    def read(self, timeout: Optional[float] = None) -> Tuple[str, bool]:
        """
        Read one line.

        Bytes are accumulated until the end-of-line byte arrives or until
        `timeout` seconds pass without a byte.

        Args:
            timeout: Override of the port timeout for this read

        Returns:
            (line, timed_out). The line excludes the delimiter. On timeout the
            line is "" and any partial data is dropped.
        """
        timeout = self._timeout if timeout is None else timeout
        line = bytearray()
        while True:
            byte = self._read_byte(timeout)
            if not byte:
                if self.debug:
                    _logger.debug(
                        f"{self._device} <- timeout after {timeout}s, dropped {bytes(line)!r}"
                    )
                return "", True
            if self.debug:
                _logger.debug(f"{self._device} <- {byte!r}")
            if byte[0] == self._eol:
                return line.decode("latin-1"), False
            line += byte

    def close(self) -> None:
        """Close the device. Safe to call more than once."""
        if self._serial is not None and self._serial.is_open:
            self._serial.close()
            _logger.debug(f"Closed {self._device}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __del__(self):
        try:
            self.close()
        except (serial.SerialException, OSError):
            pass

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<SerialPort {self._device} eol=0x{self._eol:02x} timeout={self._timeout} {state}>"
