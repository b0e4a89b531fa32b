"""
Tests for the shared controller machinery: Clamp, the property table and
the SerialInstrument connection lifecycle.
"""

import pytest

from labdevices.controllers import (
    Clamp,
    Flag,
    InstrumentProperty,
    NotRecognizedError,
    PropertySpec,
    PropertyTable,
    ProtocolError,
    SerialInstrument,
)
from tests.mocks import MockSerialPort


class Counter(PropertyTable):
    """Minimal in-memory table."""

    NAME = "counter"

    count = InstrumentProperty("Current count")
    label = InstrumentProperty("Fixed label")

    def __init__(self):
        self._count = 0
        self.properties = {
            "count": PropertySpec(lambda: self._count, self._set_count,
                                  Clamp("count", 0, 10), "Current count"),
            "label": PropertySpec(lambda: "ctr", doc="Fixed label"),
        }

    def _set_count(self, value):
        self._count = value


class TestClamp:

    def test_inside_range_unchanged(self):
        assert Clamp("x", 0, 10)(5) == 5

    def test_clamps_both_sides(self):
        clamp = Clamp("x", 0, 10)
        assert clamp(-1) == 0
        assert clamp(11) == 10

    def test_open_upper_bound(self):
        assert Clamp("x", 1, None)(10 ** 9) == 10 ** 9

    def test_cast_applied_before_comparison(self):
        assert Clamp("x", 0, 10, int)(9.99) == 9
        assert Clamp("x", 0, 10, float)("2.5") == 2.5

    def test_callable_bound_read_each_time(self):
        floor = [3]
        clamp = Clamp("x", lambda: floor[0], 10, float)
        assert clamp(1) == 3.0
        floor[0] = 0
        assert clamp(1) == 1.0

    def test_clamping_warns(self, warnings_logged):
        Clamp("speed", 1, 100)(500)
        assert "speed 500 above 100" in warnings_logged()[0].getMessage()

    def test_non_numeric_raises(self):
        with pytest.raises(ValueError):
            Clamp("x", 0, 10)("fast")

    def test_nan_goes_to_lower_bound(self, warnings_logged):
        assert Clamp("current", 10, 100, float)(float("nan")) == 10.0
        assert "current is NaN" in warnings_logged()[0].getMessage()

    def test_nan_string_goes_to_lower_bound(self):
        assert Clamp("x", lambda: 2.5, None, float)("nan") == 2.5

    def test_nan_without_lower_bound_raises(self):
        with pytest.raises(ValueError):
            Clamp("x", None, 10, float)(float("nan"))


class TestFlag:

    @pytest.mark.parametrize("value", [True, 1, "on", "ON", "true", "True", "yes", "1", " on "])
    def test_true_values(self, value):
        assert Flag("emission")(value) is True

    @pytest.mark.parametrize("value", [False, 0, "off", "Off", "false", "FALSE", "no", "0"])
    def test_false_values(self, value):
        assert Flag("emission")(value) is False

    @pytest.mark.parametrize("value", ["maybe", "", 2, -1, 0.5, None, [1]])
    def test_other_values_raise(self, value):
        with pytest.raises(ValueError, match="emission"):
            Flag("emission")(value)


class TestPropertyTable:

    def test_descriptor_reads_and_writes_table(self):
        counter = Counter()
        counter.count = 4
        assert counter.count == 4
        assert counter.get("count") == 4

    def test_validator_applied_on_set(self):
        counter = Counter()
        counter.set("count", 99)
        assert counter.count == 10

    def test_read_only(self):
        with pytest.raises(AttributeError, match="read-only"):
            Counter().set("label", "x")

    def test_unknown_name(self):
        with pytest.raises(KeyError, match="counter has no property 'colour'"):
            Counter().get("colour")

    def test_update_and_snapshot(self):
        counter = Counter()
        counter.update(count=7)
        assert counter.snapshot() == {"count": 7, "label": "ctr"}

    def test_describe_marks_read_only(self):
        described = Counter().describe()
        assert described["count"] == "Current count"
        assert described["label"] == "Fixed label (read-only)"

    def test_descriptor_on_class_returns_itself(self):
        assert isinstance(Counter.count, InstrumentProperty)


class Echo(SerialInstrument):
    """Instrument that identifies when the port answers 'HELLO'."""

    NAME = "echo"
    CONFIG_SECTION = "sc10"

    def _identify(self):
        return self._transact("hello?") == "HELLO"

    def _build_properties(self):
        return {"reply": PropertySpec(lambda: self._transact("ping"))}


def echo_opener(replies):
    def open_port(device, **kwargs):
        port = MockSerialPort(device, responder=lambda cmd: list(replies.get(cmd, [])), **kwargs)
        open_port.port = port
        return port
    return open_port


class TestSerialInstrument:

    def test_identified_instrument_builds_properties(self):
        opener = echo_opener({"hello?": ["HELLO"], "ping": ["pong"]})
        echo = Echo("/dev/ttyS0", opener=opener)
        assert echo.get("reply") == "pong"
        assert echo.device == "/dev/ttyS0"
        assert echo.port is opener.port

    def test_failed_identification_restores_and_closes(self):
        opener = echo_opener({"hello?": ["NOPE"]})
        with pytest.raises(NotRecognizedError, match="No echo found on /dev/ttyS0"):
            Echo("/dev/ttyS0", opener=opener)
        assert opener.port.restored
        assert opener.port.closed

    def test_timeout_during_identification_is_not_recognized(self):
        with pytest.raises(NotRecognizedError):
            Echo("/dev/ttyS0", quiet=True, opener=echo_opener({}))

    def test_unexpected_exception_still_releases_port(self):
        opener = echo_opener({})

        class Broken(Echo):
            def _identify(self):
                raise RuntimeError("firmware bug")

        with pytest.raises(RuntimeError):
            Broken("/dev/ttyS0", opener=opener)
        assert opener.port.closed

    def test_read_line_timeout_is_protocol_error(self):
        echo = Echo("/dev/ttyS0", opener=echo_opener({"hello?": ["HELLO"]}))
        with pytest.raises(ProtocolError):
            echo.get("reply")

    def test_number_sentinels(self, warnings_logged):
        echo = Echo("/dev/ttyS0", opener=echo_opener({"hello?": ["HELLO"]}))
        assert echo._number("", int, "x") is None
        assert echo._number("12", int, "x") == 12
        assert echo._number("1 2", int, "x") is None
        assert len(warnings_logged()) == 1

    def test_context_manager_closes(self):
        opener = echo_opener({"hello?": ["HELLO"]})
        with Echo("/dev/ttyS0", opener=opener) as echo:
            assert echo.is_connected
        assert opener.port.closed
        assert echo.device == ""
