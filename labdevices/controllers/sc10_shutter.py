"""
Thorlabs SC10 Shutter Controller

The SC10 echoes every command back, then prints the value for queries, then
a "> " prompt without a line terminator:

    -> ens?\\r
    <- ens?\\r 1\\r >

The prompt therefore shows up at the start of the next line read. The
controller drops the echo and any prompt to isolate the payload.

"ens" toggles the shutter enable state; there is no command that sets it
directly. The controller only sends "ens" when the requested state differs
from the last state read back.
"""

import re
from typing import Dict, Optional

from labserial.drivers import SerialPort

from .base import (
    Clamp,
    Flag,
    InstrumentProperty,
    PropertySpec,
    ProtocolError,
    SerialInstrument,
)


ERROR_REPLIES = ("CMD_NOT_DEFINED", "CMD_ARG_INVALID")

# Lines to skip while looking for the echo (stale prompts, late errors)
MAX_ECHO_LINES = 3

MODES = {
    1: "manual",
    2: "auto",
    3: "single",
    4: "repeat",
    5: "external gate",
}


class SC10Shutter(SerialInstrument):
    """
    Controller for the Thorlabs SC10 shutter controller.

    Usage:
        shutter = SC10Shutter("/dev/ttyUSB2")
        shutter.mode = 3             # single
        shutter.open_duration = 250  # ms
        shutter.enabled = True
    """

    NAME = "SC10 shutter"
    CONFIG_SECTION = "sc10"

    enabled = InstrumentProperty("Shutter enabled (open in manual mode)")
    open_duration = InstrumentProperty("Open time, ms")
    shut_duration = InstrumentProperty("Shut time, ms")
    mode = InstrumentProperty("Operating mode 1-5")
    repeat = InstrumentProperty("Repeat count")
    trigger = InstrumentProperty("Trigger source, 0 internal / 1 external")
    closed = InstrumentProperty("Shutter physically closed")
    interlock = InstrumentProperty("Interlock tripped")
    identity = InstrumentProperty("Identification string")

    def __init__(self, device: str, quiet: bool = False, debug: bool = False,
                 opener=SerialPort):
        # Last enable state read back; None until first read
        self._enabled: Optional[bool] = None
        self._identity = ""
        super().__init__(device, quiet=quiet, debug=debug, opener=opener)

    # -------------------------------------------------------------------------
    # Protocol
    # -------------------------------------------------------------------------

    def command(self, cmd: str, query: Optional[bool] = None) -> str:
        """
        Send a command, discarding its echo and the prompt.

        Args:
            cmd: Command string
            query: Read a payload line after the echo. Defaults to True for
                   commands ending in "?".

        Returns:
            The payload for queries, the echoed command otherwise, or ""
            when the exchange failed (logged).
        """
        if query is None:
            query = cmd.endswith("?")
        try:
            return self._command(cmd, query)
        except ProtocolError as e:
            self._advise(cmd, e)
            return ""

    def _strip_prompt(self, line: str) -> str:
        prompt = self.config.get("prompt", "> ")
        while line.startswith(prompt):
            line = line[len(prompt):]
        return line.strip()

    def _command(self, cmd: str, query: bool) -> str:
        self._check_connected()
        self._port.write(cmd)

        for _ in range(MAX_ECHO_LINES):
            line = self._strip_prompt(self._read_line())
            if line == cmd:
                break
            if line in ERROR_REPLIES:
                self._logger.debug(f"{self.NAME}: discarding late reply {line}")
            elif line:
                self._logger.debug(f"{self.NAME}: discarding {line!r}")
        else:
            raise ProtocolError("command was not echoed")

        if not query:
            return cmd

        payload = self._strip_prompt(self._read_line())
        if payload in ERROR_REPLIES:
            raise ProtocolError(payload)
        return payload

    def _identify(self) -> bool:
        ident = self.config.identification
        reply = self._command(ident["command"], query=True)
        if not re.search(ident["pattern"], reply):
            return False
        self._identity = reply
        return True

    # -------------------------------------------------------------------------
    # Property table
    # -------------------------------------------------------------------------

    def _build_properties(self) -> Dict[str, PropertySpec]:
        limits = self.config.limits

        def clamp(name):
            low, high = limits[name]
            return Clamp(name, low, high, int, self._logger)

        def setting(name, verb, doc):
            return PropertySpec(lambda: self._get_int(f"{verb}?", name),
                                lambda v: self.command(f"{verb}={v}"),
                                clamp(name), doc)

        return {
            "enabled": PropertySpec(self._get_enabled, self._set_enabled, Flag("enabled"),
                                    "Shutter enabled"),
            "open_duration": setting("open_duration", "open", "Open time, ms"),
            "shut_duration": setting("shut_duration", "shut", "Shut time, ms"),
            "mode": setting("mode", "mode", "Mode 1-5"),
            "repeat": setting("repeat", "rep", "Repeat count"),
            "trigger": setting("trigger", "trig", "Trigger source"),
            "closed": PropertySpec(lambda: self._get_flag("closed?"), doc="Shutter closed"),
            "interlock": PropertySpec(lambda: self._get_flag("interlock?"),
                                      doc="Interlock tripped"),
            "identity": PropertySpec(lambda: self._identity, doc="Identification"),
        }

    def _get_int(self, cmd: str, what: str) -> Optional[int]:
        return self._number(self.command(cmd), int, what)

    def _get_flag(self, cmd: str) -> Optional[bool]:
        value = self._get_int(cmd, cmd.rstrip("?"))
        return None if value is None else value != 0

    def _get_enabled(self) -> Optional[bool]:
        state = self._get_flag("ens?")
        if state is not None:
            self._enabled = state
        return state

    def _set_enabled(self, state: bool) -> None:
        if self._enabled is None and self._get_enabled() is None:
            self._logger.warning(f"{self.NAME}: enable state unknown, not toggling")
            return
        if state == self._enabled:
            return
        if self.command("ens"):
            self._enabled = state

    @property
    def mode_name(self) -> Optional[str]:
        """Readable name of the current mode."""
        mode = self.get("mode")
        return MODES.get(mode) if mode is not None else None
