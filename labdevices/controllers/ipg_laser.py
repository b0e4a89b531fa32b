"""
IPG YLR Fiber Laser Controller

This controller drives an IPG YLR-series fiber laser over its RS-232 port.
Commands are upper-case mnemonics terminated by CR; replies echo the
mnemonic followed by the value:

    RFV         -> RFV: 2.3.1
    ROP         -> ROP: 12.5  (or ROP: Off / ROP: Low)
    SDC 45.0    -> SDC: 45.0
    EMON        -> EMON

Errors come back as "ERR: <message>" and unknown commands as "BCMD".

Emission requires the hardware keyswitch. The controller warns when
emission is requested with the key off but still sends the command: the
laser decides.
"""

import re
from typing import Dict, Optional

from labserial.drivers import SerialPort
from labserial.utils import report_error

from .base import (
    Clamp,
    Flag,
    InstrumentProperty,
    PropertySpec,
    ProtocolError,
    SerialInstrument,
)


REPLY_PATTERN = re.compile(r"^(?P<cmd>[A-Z]+)(?::\s*(?P<value>.*))?$")
INVALID_COMMAND = "BCMD"
ERROR_PREFIX = "ERR"

# ROP reports these words below the calibrated range
NO_OUTPUT_WORDS = ("OFF", "LOW")


class IPGLaser(SerialInstrument):
    """
    Controller for an IPG YLR fiber laser.

    Usage:
        laser = IPGLaser("/dev/ttyUSB1")
        laser.current = 40        # percent of maximum diode current
        laser.emission = True
        print(laser.power)        # watts
        laser.close()
    """

    NAME = "IPG laser"
    CONFIG_SECTION = "ipg"

    emission = InstrumentProperty("Laser emission on/off")
    keyswitch = InstrumentProperty("Keyswitch reads ON")
    power = InstrumentProperty("Output power, W")
    current = InstrumentProperty("Diode current setpoint, percent")
    minimum_current = InstrumentProperty("Lowest settable diode current, percent")
    temperature = InstrumentProperty("Case temperature, deg C")
    status = InstrumentProperty("Raw status word")
    firmware = InstrumentProperty("Firmware version")
    aiming_beam = InstrumentProperty("Guide laser on/off")

    def __init__(self, device: str, quiet: bool = False, debug: bool = False,
                 opener=SerialPort):
        self._minimum_current: Optional[float] = None
        self._firmware = ""
        super().__init__(device, quiet=quiet, debug=debug, opener=opener)
        self._minimum_current = self._read_minimum_current()

    # -------------------------------------------------------------------------
    # Protocol
    # -------------------------------------------------------------------------

    def command(self, cmd: str) -> str:
        """
        Send a command and return the value part of its reply.

        Returns:
            The text after "CMD:" (or the bare mnemonic for acknowledgements),
            or "" when the reply is BCMD, ERR, missing, or does not echo the
            command. The problem is logged.
        """
        try:
            return self._command(cmd)
        except ProtocolError as e:
            self._advise(cmd, e)
            return ""

    def _command(self, cmd: str) -> str:
        reply = self._transact(cmd).strip()
        if reply == INVALID_COMMAND:
            raise ProtocolError("laser rejected the command (BCMD)")
        if reply.startswith(ERROR_PREFIX):
            raise ProtocolError(f"laser reported {reply.partition(':')[2].strip() or reply}")

        match = REPLY_PATTERN.match(reply)
        verb = cmd.split()[0] if cmd.strip() else cmd
        if match is None or match.group("cmd") != verb:
            raise ProtocolError(f"unexpected reply {reply!r}")

        value = match.group("value")
        return match.group("cmd") if value is None else value.strip()

    def _identify(self) -> bool:
        firmware = self._command(self.config.identification["command"])
        if not firmware:
            return False
        self._firmware = firmware
        return True

    def _read_minimum_current(self) -> float:
        value = self._number(self.command("RNC"), float, "minimum current")
        if value is None:
            low, _ = self.config.limits.get("current", (0, 100))
            self._logger.warning(f"{self.NAME}: minimum current unknown, using {low}")
            return float(low)
        return value

    # -------------------------------------------------------------------------
    # Property table
    # -------------------------------------------------------------------------

    def _build_properties(self) -> Dict[str, PropertySpec]:
        _, high = self.config.limits.get("current", (0, 100))
        current_limit = Clamp("current", lambda: self._minimum_current, high,
                              float, self._logger)
        return {
            "emission": PropertySpec(lambda: self._status_bit("emission"),
                                     self._set_emission, Flag("emission"), "Emission on/off"),
            "keyswitch": PropertySpec(lambda: self._status_bit("keyswitch"),
                                      doc="Keyswitch ON"),
            "power": PropertySpec(self._get_power, doc="Output power, W"),
            "current": PropertySpec(lambda: self._get_float("RCS", "current"),
                                    self._set_current, current_limit,
                                    "Diode current, percent"),
            "minimum_current": PropertySpec(lambda: self._minimum_current,
                                            doc="Minimum diode current, percent"),
            "temperature": PropertySpec(lambda: self._get_float("RCT", "temperature"),
                                        doc="Case temperature, deg C"),
            "status": PropertySpec(self._get_status, doc="Status word"),
            "firmware": PropertySpec(lambda: self._firmware, doc="Firmware version"),
            "aiming_beam": PropertySpec(lambda: self._status_bit("aiming_beam"),
                                        self._set_aiming_beam, Flag("aiming_beam"),
                                        "Guide laser on/off"),
        }

    def _get_float(self, verb: str, what: str) -> Optional[float]:
        return self._number(self.command(verb), float, what)

    def _get_status(self) -> Optional[int]:
        return self._number(self.command("STA"), int, "status")

    def _status_bit(self, name: str) -> Optional[bool]:
        status = self._get_status()
        if status is None:
            return None
        bit = self.config["status_bits"][name]
        return bool(status & (1 << bit))

    def _get_power(self) -> Optional[float]:
        reply = self.command("ROP")
        if reply.upper() in NO_OUTPUT_WORDS:
            return 0.0
        return self._number(reply, float, "output power")

    def _set_current(self, value: float) -> None:
        self.command(f"SDC {value:g}")

    def _set_emission(self, on: bool) -> None:
        if on and self._status_bit("keyswitch") is False:
            report_error(self._logger, "laser_keyswitch_off")
            self._logger.warning(f"{self.NAME}: keyswitch is off, sending EMON anyway")
        self.command("EMON" if on else "EMOFF")

    def _set_aiming_beam(self, on: bool) -> None:
        self.command("ABN" if on else "ABF")
