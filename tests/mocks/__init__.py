"""Mock serial ports and instrument simulators for testing."""

from .mock_ports import (
    MockSerialPort,
    Simulator,
    ProScanSimulator,
    IPGSimulator,
    SC10Simulator,
    ThermometerSimulator,
)
