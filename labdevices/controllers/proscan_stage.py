"""
Prior ProScan Stage Controller

This controller drives a Prior ProScan motorised XYZ stage over RS-232.
Commands are short comma-separated ASCII verbs terminated by CR:

    G,x,y,z     absolute move          -> R
    GR,x,y,z    relative move          -> R
    P           query position         -> x,y,z
    P,x,y,z     redefine position      -> 0
    SMS[,n]     max speed (1-100 %)    -> n / 0
    SAS[,n]     acceleration (1-100 %) -> n / 0
    SCS[,n]     S-curve (1-100 %)      -> n / 0
    $           motion status          -> bitmask, 0 when idle
    K           emergency stop         -> R
    I           stop and clear queue   -> R
    VERSION     firmware version       -> three digits

Any command may instead answer E,<code>.

The controller reflects what the stage does; it does no motion planning.
Step sizes (dx, dy, dz) and the last known position are kept on the
client side.
"""

import re
import time
from typing import Dict, Optional, Sequence

import numpy as np

from labserial.drivers import SerialPort

from .base import (
    Clamp,
    InstrumentProperty,
    PropertySpec,
    ProtocolError,
    SerialInstrument,
)


# ProScan error codes (E,<code>)
ERROR_CODES: Dict[int, str] = {
    1: "NO STAGE",
    2: "NOT IDLE",
    3: "NO DRIVE",
    4: "STRING PARSE",
    5: "COMMAND NOT FOUND",
    6: "INVALID SHUTTER",
    7: "NO FOCUS",
    8: "VALUE OUT OF RANGE",
    9: "INVALID WHEEL",
    10: "ARG1 OUT OF RANGE",
    11: "ARG2 OUT OF RANGE",
    12: "ARG3 OUT OF RANGE",
    13: "ARG4 OUT OF RANGE",
    14: "ARG5 OUT OF RANGE",
    15: "ARG6 OUT OF RANGE",
    16: "INCORRECT STATE",
    17: "WHEEL NOT FITTED",
    18: "QUEUE FULL",
    19: "COMPATIBILITY MODE SET",
    20: "SHUTTER NOT FITTED",
    21: "INVALID CHECKSUM",
    60: "ENCODER ERROR",
    61: "ENCODER RUN OFF",
}

ERROR_PATTERN = re.compile(r"^E,\s*(\d+)$")
POSITION_PATTERN = re.compile(r"^\s*(-?\d+)\s*,\s*(-?\d+)\s*(?:,\s*(-?\d+)\s*)?$")

ACK = "R"
SETTING_ACK = "0"


class StageErrorReply(ProtocolError):
    """The controller answered E,<code> with a nonzero code."""

    def __init__(self, code: int):
        self.code = code
        super().__init__(f"error {code} ({ERROR_CODES.get(code, 'UNKNOWN')})")


class ProScanStage(SerialInstrument):
    """
    Controller for the Prior ProScan stage.

    Usage:
        with ProScanStage("/dev/ttyUSB0") as stage:
            stage.speed = 50
            stage.move_to([1000, 2000, 0])
            stage.move_to([-50], relative=True)   # focus down 50 steps
            print(stage.position)
    """

    NAME = "ProScan stage"
    CONFIG_SECTION = "proscan"

    position = InstrumentProperty("XYZ position in steps; assigning redefines the origin")
    speed = InstrumentProperty("Maximum speed, percent")
    acceleration = InstrumentProperty("Acceleration, percent")
    scurve = InstrumentProperty("S-curve, percent")
    dx = InstrumentProperty("X step size used by step()")
    dy = InstrumentProperty("Y step size used by step()")
    dz = InstrumentProperty("Z step size used by step()")
    busy = InstrumentProperty("True while any axis is moving")
    version = InstrumentProperty("Firmware version")
    serial_number = InstrumentProperty("Controller serial number")
    info = InstrumentProperty("Controller description (multi-line)")

    def __init__(self, device: str, quiet: bool = False, debug: bool = False,
                 opener=SerialPort):
        # Last position reported by the stage or reached by a move
        self._position = np.zeros(3, dtype=int)
        self._step = np.ones(3, dtype=int)
        self._version = ""
        super().__init__(device, quiet=quiet, debug=debug, opener=opener)
        self._step = np.array(self.config.get("default_step", [1, 1, 1]), dtype=int)

    # -------------------------------------------------------------------------
    # Protocol
    # -------------------------------------------------------------------------

    def command(self, cmd: str, expect: Optional[str] = None, text: bool = False) -> str:
        """
        Send a command and return its reply.

        Args:
            cmd: Command string without terminator
            expect: Literal the reply must equal
            text: Collect lines until the END terminator line

        Returns:
            The reply (lines joined by newlines in text mode), or "" when
            the stage reported an error, did not answer, or did not answer
            `expect`. The problem is logged.
        """
        try:
            return self._command(cmd, expect, text)
        except StageErrorReply as e:
            self._logger.error(f"{self.NAME} {cmd!r}: {e}")
            return ""
        except ProtocolError as e:
            self._advise(cmd, e)
            return ""

    def _command(self, cmd: str, expect: Optional[str], text: bool) -> str:
        reply = self._transact(cmd).strip()
        self._check_error(reply)

        if text:
            terminator = self.config.get("text_terminator", "END")
            lines = []
            while reply != terminator:
                lines.append(reply)
                reply = self._read_line().strip()
            return "\n".join(lines)

        if expect is not None and reply != expect:
            raise ProtocolError(f"expected {expect!r}, got {reply!r}")
        return reply

    @staticmethod
    def _check_error(reply: str) -> None:
        match = ERROR_PATTERN.match(reply)
        if match and int(match.group(1)) != 0:
            raise StageErrorReply(int(match.group(1)))

    def _identify(self) -> bool:
        ident = self.config.identification
        reply = self._command(ident["command"], None, False)
        if len(reply) != ident["reply_length"]:
            self._logger.debug(f"Unexpected VERSION reply {reply!r}")
            return False
        self._version = reply
        return True

    # -------------------------------------------------------------------------
    # Property table
    # -------------------------------------------------------------------------

    def _build_properties(self) -> Dict[str, PropertySpec]:
        limits = self.config.limits
        step_size = lambda name: Clamp(name, 1, None, int, self._logger)

        def percent(name):
            low, high = limits.get(name, (1, 100))
            return Clamp(name, low, high, int, self._logger)

        return {
            "position": PropertySpec(self._get_position, self._set_origin,
                                     self._as_xyz, "XYZ position in steps"),
            "speed": PropertySpec(lambda: self._get_percent("SMS"),
                                  lambda v: self._set_percent("SMS", v),
                                  percent("speed"), "Maximum speed, percent"),
            "acceleration": PropertySpec(lambda: self._get_percent("SAS"),
                                         lambda v: self._set_percent("SAS", v),
                                         percent("acceleration"), "Acceleration, percent"),
            "scurve": PropertySpec(lambda: self._get_percent("SCS"),
                                   lambda v: self._set_percent("SCS", v),
                                   percent("scurve"), "S-curve, percent"),
            "dx": PropertySpec(lambda: int(self._step[0]),
                               lambda v: self._set_step(0, v),
                               step_size("dx"), "X step size"),
            "dy": PropertySpec(lambda: int(self._step[1]),
                               lambda v: self._set_step(1, v),
                               step_size("dy"), "Y step size"),
            "dz": PropertySpec(lambda: int(self._step[2]),
                               lambda v: self._set_step(2, v),
                               step_size("dz"), "Z step size"),
            "busy": PropertySpec(self._get_busy, doc="Axes moving"),
            "version": PropertySpec(lambda: self._version, doc="Firmware version"),
            "serial_number": PropertySpec(lambda: self.command("SERIAL"),
                                          doc="Controller serial number"),
            "info": PropertySpec(lambda: self.command("?", text=True),
                                 doc="Controller description"),
        }

    @staticmethod
    def _as_xyz(value: Sequence[float]) -> np.ndarray:
        vector = np.asarray(value, dtype=float).astype(int)
        if vector.shape != (3,):
            raise ValueError(f"Expected three coordinates, got {value!r}")
        return vector

    def _get_position(self) -> Optional[np.ndarray]:
        reply = self.command("P")
        match = POSITION_PATTERN.match(reply)
        if match is None:
            if reply:
                self._logger.warning(f"{self.NAME}: cannot read position from {reply!r}")
            return None
        self._position = np.array([int(g) if g is not None else 0 for g in match.groups()])
        return self._position.copy()

    def _set_origin(self, xyz: np.ndarray) -> None:
        x, y, z = (int(v) for v in xyz)
        if self.command(f"P,{x},{y},{z}", expect=SETTING_ACK):
            self._position = np.array([x, y, z])

    def _get_percent(self, verb: str) -> Optional[int]:
        return self._number(self.command(verb), int, verb)

    def _set_percent(self, verb: str, value: int) -> None:
        self.command(f"{verb},{value}", expect=SETTING_ACK)

    def _set_step(self, axis: int, value: int) -> None:
        self._step[axis] = value

    def _get_busy(self) -> Optional[bool]:
        status = self._number(self.command("$"), int, "motion status")
        return None if status is None else status != 0

    # -------------------------------------------------------------------------
    # Motion
    # -------------------------------------------------------------------------

    def move_to(self, target: Sequence[float], relative: bool = False) -> bool:
        """
        Move the stage.

        A single value addresses Z only. Two values address X and Y, three
        address X, Y and Z. Values are truncated to whole steps.

        For a single-value absolute move, X and Y are taken from the last
        known position (the last position query or move), not re-read from
        the stage.

        Args:
            target: 1, 2 or 3 coordinates (absolute) or offsets (relative)
            relative: Treat `target` as offsets and use GR instead of G

        Returns:
            True if the stage acknowledged the move
        """
        values = np.atleast_1d(np.asarray(target, dtype=float)).astype(int)
        if values.ndim != 1 or values.size not in (1, 2, 3):
            raise ValueError(f"move_to takes 1, 2 or 3 coordinates, got {target!r}")

        verb = "GR" if relative else "G"
        index = [2] if values.size == 1 else list(range(values.size))
        if values.size == 1:
            if relative:
                axes = [0, 0, values[0]]
            else:
                axes = [self._position[0], self._position[1], values[0]]
        else:
            axes = list(values)

        cmd = verb + "," + ",".join(str(int(v)) for v in axes)
        if not self.command(cmd, expect=ACK):
            return False

        position = self._position.copy()
        if relative:
            position[index] += values
        else:
            position[index] = values
        self._position = position
        return True

    def step(self, x: int = 0, y: int = 0, z: int = 0) -> bool:
        """Relative move by whole multiples of the dx, dy, dz step sizes."""
        offsets = np.array([x, y, z], dtype=int) * self._step
        return self.move_to(offsets, relative=True)

    def stop(self) -> bool:
        """Emergency stop: halt all axes immediately."""
        return bool(self.command("K", expect=ACK))

    def clear(self) -> bool:
        """Stop after the current move and empty the command queue."""
        return bool(self.command("I", expect=ACK))

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Poll the motion status until the stage is idle.

        Args:
            timeout: Give up after this many seconds (None waits forever)

        Returns:
            True once idle, False on timeout or if the status cannot be read
        """
        poll = self.config.get("wait_poll_s", 0.1)
        start = time.monotonic()
        while True:
            busy = self._get_busy()
            if busy is None:
                return False
            if not busy:
                return True
            if timeout is not None and time.monotonic() - start > timeout:
                self._logger.warning(f"{self.NAME} still moving after {timeout}s")
                return False
            time.sleep(poll)
