"""
Serial Thermometer Controller

The thermometer takes single control bytes, written without a terminator:

    0x59  identification probe  -> "Y"
    0x64  status query          -> fixed-width status line
    0x58  advance to next channel

The status line carries the selected channel as one digit and the
temperature as a fixed-width field; the offsets live in the configuration
("status_format").

The controller can re-poll the temperature on a timer. Polling runs on a
sched.scheduler owned by the caller: each firing queries the status, updates
the cached temperature and schedules the next firing. Nothing happens unless
the caller runs the scheduler (run_pending() or scheduler.run()).
"""

import sched
import time
from typing import Callable, Dict, Optional, Tuple

from labserial.drivers import SerialPort

from .base import (
    Clamp,
    InstrumentProperty,
    PropertySpec,
    ProtocolError,
    SerialInstrument,
)


class Thermometer(SerialInstrument):
    """
    Controller for a control-byte serial thermometer.

    Args:
        device: Device file of the serial port
        quiet: Suppress the operator error report when identification fails
        debug: Trace port traffic
        opener: SerialPort factory
        scheduler: Timer queue used for polling (a new sched.scheduler by default)
        on_update: Called with each polled temperature

    Usage:
        thermometer = Thermometer("/dev/ttyUSB3", on_update=print)
        thermometer.update_interval = 5.0
        while running:
            thermometer.run_pending()
            time.sleep(0.1)
        thermometer.update_interval = 0     # stop polling
    """

    NAME = "thermometer"
    CONFIG_SECTION = "thermometer"

    temperature = InstrumentProperty("Temperature of the selected channel, deg C")
    channel = InstrumentProperty("Selected input channel")
    last_temperature = InstrumentProperty("Most recent temperature without a query")
    update_interval = InstrumentProperty("Polling interval in seconds, 0 disables")

    def __init__(self, device: str, quiet: bool = False, debug: bool = False,
                 opener=SerialPort,
                 scheduler: Optional[sched.scheduler] = None,
                 on_update: Optional[Callable[[float], None]] = None):
        self._scheduler = scheduler or sched.scheduler(time.monotonic, time.sleep)
        self.on_update = on_update
        self._temperature: Optional[float] = None
        self._channel: Optional[int] = None
        self._interval = 0.0
        self._event = None
        super().__init__(device, quiet=quiet, debug=debug, opener=opener)

    # -------------------------------------------------------------------------
    # Protocol
    # -------------------------------------------------------------------------

    def _send(self, name: str) -> None:
        self._check_connected()
        self._port.write_raw(bytes([self.config["commands"][name]]))

    def _identify(self) -> bool:
        ident = self.config.identification
        self._check_connected()
        self._port.write_raw(bytes([ident["command"]]))
        return self._read_line().strip() == ident["reply"]

    def _parse_status(self, line: str) -> Tuple[int, float]:
        fmt = self.config["status_format"]
        offset = fmt["channel_offset"]
        start, end = fmt["temperature_slice"]
        if len(line) < max(offset + 1, end):
            raise ProtocolError(f"status line too short: {line!r}")
        try:
            channel = int(line[offset])
            temperature = float(line[start:end])
        except ValueError:
            raise ProtocolError(f"malformed status line: {line!r}") from None
        return channel, temperature

    def read_status(self) -> Optional[Tuple[int, float]]:
        """
        Query the status line.

        Returns:
            (channel, temperature), or None if the query failed (logged)
        """
        try:
            self._send("status")
            channel, temperature = self._parse_status(self._read_line())
        except ProtocolError as e:
            self._advise("status", e)
            return None
        self._channel = channel
        self._temperature = temperature
        return channel, temperature

    # -------------------------------------------------------------------------
    # Property table
    # -------------------------------------------------------------------------

    def _build_properties(self) -> Dict[str, PropertySpec]:
        channels = self.config.get("channels", 1)
        return {
            "temperature": PropertySpec(self._get_temperature, doc="Temperature, deg C"),
            "channel": PropertySpec(self._get_channel, self._set_channel,
                                    Clamp("channel", 1, channels, int, self._logger),
                                    "Input channel"),
            "last_temperature": PropertySpec(lambda: self._temperature,
                                             doc="Cached temperature"),
            "update_interval": PropertySpec(lambda: self._interval,
                                            self._set_update_interval,
                                            Clamp("update_interval", 0, None, float,
                                                  self._logger),
                                            "Polling interval, s"),
        }

    def _get_temperature(self) -> Optional[float]:
        status = self.read_status()
        return None if status is None else status[1]

    def _get_channel(self) -> Optional[int]:
        status = self.read_status()
        return None if status is None else status[0]

    def _set_channel(self, channel: int) -> None:
        # The instrument only steps forward, one channel per command
        for _ in range(self.config.get("channels", 1)):
            current = self._get_channel()
            if current is None:
                return
            if current == channel:
                return
            self._send("next_channel")
        if self._get_channel() != channel:
            self._logger.warning(f"{self.NAME}: channel {channel} not reached")

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    @property
    def scheduler(self) -> sched.scheduler:
        return self._scheduler

    def _set_update_interval(self, seconds: float) -> None:
        self._cancel_poll()
        self._interval = seconds
        if seconds > 0:
            self._event = self._scheduler.enter(seconds, 1, self._poll)

    def _poll(self) -> None:
        self._event = None
        temperature = self._get_temperature()
        if temperature is not None and self.on_update is not None:
            self.on_update(temperature)
        if self._interval > 0 and self._port is not None:
            self._event = self._scheduler.enter(self._interval, 1, self._poll)

    def _cancel_poll(self) -> None:
        if self._event is None:
            return
        try:
            self._scheduler.cancel(self._event)
        except ValueError:
            pass  # already fired
        self._event = None

    def run_pending(self) -> None:
        """Run polling events that are due, without blocking."""
        self._scheduler.run(blocking=False)

    def close(self) -> None:
        self._interval = 0.0
        self._cancel_poll()
        super().close()
