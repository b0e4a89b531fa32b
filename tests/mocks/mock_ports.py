"""
Mock Serial Ports and Instrument Simulators

MockSerialPort has SerialPort's interface but hands every write to a
responder and queues the reply lines the responder returns. The simulators
are responders that track instrument state and answer in each instrument's
wire format, so controllers can be tested without hardware.
"""

from collections import deque
from typing import Callable, Dict, List, Optional, Union


Responder = Callable[[Union[str, bytes]], List[str]]


class MockSerialPort:
    """In-memory stand-in for labserial.drivers.SerialPort."""

    def __init__(self, device: str, settings: Optional[List[str]] = None,
                 eol: str = "\n", timeout: float = 1.0, debug: bool = False,
                 responder: Optional[Responder] = None):
        self.device = device
        self.settings = settings
        self.eol = eol
        self.timeout = timeout
        self.debug = debug
        self.responder = responder or (lambda data: [])
        self.initial_settings = ["500:5:bf:8a3b:3:1c:7f:15:4:0:1:0:11:13:1a:0:12:f:17:16:0:0:0"]
        self.written: List[Union[str, bytes]] = []
        self.pending = deque()
        self.restored = False
        self.closed = False

    @property
    def is_open(self) -> bool:
        return not self.closed

    def write(self, s: str) -> None:
        self.written.append(s)
        self.pending.extend(self.responder(s))

    def write_raw(self, data: bytes) -> None:
        self.written.append(data)
        self.pending.extend(self.responder(data))

    def read(self, timeout: Optional[float] = None):
        if self.pending:
            return self.pending.popleft(), False
        return "", True

    def get_settings(self) -> List[str]:
        return list(self.initial_settings)

    def set_settings(self, settings: List[str]) -> None:
        self.settings = settings

    def restore_settings(self) -> None:
        self.restored = True

    def close(self) -> None:
        self.closed = True


class Simulator:
    """
    Base responder. Subclasses implement respond().

    `overrides` maps a command to the exact reply lines to return instead
    of the simulated ones, for injecting errors.
    """

    def __init__(self):
        self.commands: List[Union[str, bytes]] = []
        self.overrides: Dict[Union[str, bytes], List[str]] = {}
        self.port: Optional[MockSerialPort] = None

    def __call__(self, data):
        self.commands.append(data)
        if data in self.overrides:
            return list(self.overrides[data])
        return self.respond(data)

    def respond(self, data) -> List[str]:
        raise NotImplementedError

    def opener(self):
        """SerialPort-compatible factory wired to this simulator."""
        def open_port(device, **kwargs):
            self.port = MockSerialPort(device, responder=self, **kwargs)
            return self.port
        return open_port

    def count(self, command) -> int:
        return sum(1 for c in self.commands if c == command)


class ProScanSimulator(Simulator):
    """Prior ProScan: comma-separated commands, R / 0 / E,n replies."""

    def __init__(self):
        super().__init__()
        self.version = "210"
        self.position = [0, 0, 0]
        self.settings = {"SMS": 100, "SAS": 100, "SCS": 100}
        self.busy_replies: List[int] = []
        self.serial = "10412"

    def respond(self, cmd: str) -> List[str]:
        verb, *fields = cmd.split(",")
        try:
            args = [int(f) for f in fields]
        except ValueError:
            return ["E,4"]

        if verb == "VERSION":
            return [self.version]
        if verb == "P":
            if args:
                self.position = args
                return ["0"]
            return [",".join(str(v) for v in self.position)]
        if verb == "G":
            self.position[:len(args)] = args
            return ["R"]
        if verb == "GR":
            for i, delta in enumerate(args):
                self.position[i] += delta
            return ["R"]
        if verb in self.settings:
            if args:
                self.settings[verb] = args[0]
                return ["0"]
            return [str(self.settings[verb])]
        if verb == "$":
            return [str(self.busy_replies.pop(0) if self.busy_replies else 0)]
        if verb in ("K", "I"):
            return ["R"]
        if verb == "SERIAL":
            return [self.serial]
        if verb == "?":
            return ["DRIVE CHIPS 0111", "JOYSTICK ACTIVE", "STAGE = H101/2", "FOCUS = NORMAL", "END"]
        return ["E,5"]


class IPGSimulator(Simulator):
    """IPG YLR: "CMD: value" replies, BCMD for unknown commands."""

    EMISSION_BIT = 2
    AIMING_BIT = 8
    KEYSWITCH_BIT = 21

    def __init__(self):
        super().__init__()
        self.firmware = "2.3.1"
        self.current = 50.0
        self.minimum_current = 10.0
        self.emission = False
        self.aiming = False
        self.keyswitch = True
        self.temperature = 25.3

    @property
    def status(self) -> int:
        return ((self.emission << self.EMISSION_BIT)
                | (self.aiming << self.AIMING_BIT)
                | (self.keyswitch << self.KEYSWITCH_BIT))

    def respond(self, cmd: str) -> List[str]:
        verb, _, arg = cmd.partition(" ")
        if verb == "RFV":
            return [f"RFV: {self.firmware}"]
        if verb == "RNC":
            return [f"RNC: {self.minimum_current}"]
        if verb == "RCS":
            return [f"RCS: {self.current}"]
        if verb == "SDC":
            try:
                value = float(arg)
            except ValueError:
                return ["ERR: Invalid argument"]
            if not self.minimum_current <= value <= 100:
                return ["ERR: Out of Range"]
            self.current = value
            return [f"SDC: {arg}"]
        if verb == "RCT":
            return [f"RCT: {self.temperature}"]
        if verb == "STA":
            return [f"STA: {self.status}"]
        if verb == "ROP":
            if not self.emission:
                return ["ROP: Off"]
            return [f"ROP: {self.current * 0.2:.1f}"]
        if verb == "EMON":
            self.emission = True
            return ["EMON"]
        if verb == "EMOFF":
            self.emission = False
            return ["EMOFF"]
        if verb == "ABN":
            self.aiming = True
            return ["ABN"]
        if verb == "ABF":
            self.aiming = False
            return ["ABF"]
        return ["BCMD"]


class SC10Simulator(Simulator):
    """Thorlabs SC10: echo, payload for queries, then a '> ' prompt."""

    PROMPT = "> "

    def __init__(self):
        super().__init__()
        self.identity = "THORLABS SC10 VERSION 1.07"
        self.values = {"ens": 0, "open": 100, "shut": 100, "mode": 1,
                       "rep": 1, "trig": 0, "closed": 1, "interlock": 0}
        self._prompt_pending = False

    def respond(self, cmd: str) -> List[str]:
        echo = (self.PROMPT if self._prompt_pending else "") + cmd
        self._prompt_pending = True

        if cmd == "*idn?":
            return [echo, self.identity]
        if cmd == "ens":
            self.values["ens"] = 1 - self.values["ens"]
            return [echo]
        if cmd.endswith("?") and cmd[:-1] in self.values:
            return [echo, str(self.values[cmd[:-1]])]
        name, sep, value = cmd.partition("=")
        if sep and name in self.values and name not in ("closed", "interlock"):
            self.values[name] = int(value)
            return [echo]
        return [echo, "CMD_NOT_DEFINED"]


class ThermometerSimulator(Simulator):
    """Control-byte thermometer with a fixed-width status line."""

    IDENTIFY = b"\x59"
    STATUS = b"\x64"
    NEXT_CHANNEL = b"\x58"

    def __init__(self):
        super().__init__()
        self.channel = 1
        self.temperatures = {1: 23.45, 2: -5.5, 3: 100.0, 4: 0.0}
        self.identify_reply = "Y"

    def status_line(self) -> str:
        return f"C{self.channel} T{self.temperatures[self.channel]:+07.2f} OK"

    def respond(self, data: bytes) -> List[str]:
        if data == self.IDENTIFY:
            return [self.identify_reply]
        if data == self.STATUS:
            return [self.status_line()]
        if data == self.NEXT_CHANNEL:
            self.channel = self.channel % len(self.temperatures) + 1
            return []
        return []
