"""
Pytest configuration and shared fixtures for the instrument driver test suite.

This file provides:
- Configuration isolation (bundled defaults.json only)
- Instrument simulators wired to mock serial ports
- Reset of process-wide state (vendor libraries, active Viper laser)
"""

import logging

import pytest

from labserial.config import loader
from labserial.drivers import VendorLibrary
from labdevices.controllers import ViperLaser

from tests.mocks import (
    IPGSimulator,
    ProScanSimulator,
    SC10Simulator,
    ThermometerSimulator,
)


# ==================== Process-wide state ====================

@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Load only the bundled defaults.json, whatever the developer's home holds."""
    monkeypatch.delenv(loader.CONFIG_ENV, raising=False)
    monkeypatch.setattr(loader, "get_user_path", lambda: tmp_path / "no-user-config.json")
    loader.reload_config()
    yield
    loader._config_cache = None


@pytest.fixture(autouse=True)
def reset_vendor_libraries():
    """Forget shared libraries and the active Viper between tests."""
    VendorLibrary._registry.clear()
    ViperLaser._active = None
    yield
    VendorLibrary._registry.clear()
    ViperLaser._active = None


# ==================== Instrument simulators ====================

@pytest.fixture
def proscan():
    """Simulated ProScan stage at the origin, firmware 210."""
    return ProScanSimulator()


@pytest.fixture
def ipg():
    """Simulated IPG laser, keyswitch on, emission off, RNC 10 %."""
    return IPGSimulator()


@pytest.fixture
def sc10():
    """Simulated SC10 shutter, disabled, manual mode."""
    return SC10Simulator()


@pytest.fixture
def thermometer_sim():
    """Simulated four-channel thermometer on channel 1."""
    return ThermometerSimulator()


# ==================== Log inspection ====================

def records_at(caplog, level):
    """Log records captured at exactly `level`."""
    return [r for r in caplog.records if r.levelno == level]


@pytest.fixture
def warnings_logged(caplog):
    """Callable returning the warning records captured so far."""
    return lambda: records_at(caplog, logging.WARNING)
