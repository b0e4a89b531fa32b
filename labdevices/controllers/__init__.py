"""
Controllers Package

Contains drivers that directly interface with laboratory instruments.
Each controller reflects exactly what a device does: no experiment logic.
"""

from .base import (
    Clamp,
    Flag,
    InstrumentError,
    InstrumentProperty,
    NotRecognizedError,
    PropertySpec,
    PropertyTable,
    ProtocolError,
    SerialInstrument,
)
from .proscan_stage import ProScanStage
from .ipg_laser import IPGLaser
from .sc10_shutter import SC10Shutter
from .thermometer import Thermometer
from .viper_laser import ViperLaser, ViperLaserError

__all__ = [
    'Clamp',
    'Flag',
    'InstrumentError',
    'InstrumentProperty',
    'NotRecognizedError',
    'PropertySpec',
    'PropertyTable',
    'ProtocolError',
    'SerialInstrument',
    'ProScanStage',
    'IPGLaser',
    'SC10Shutter',
    'Thermometer',
    'ViperLaser',
    'ViperLaserError',
]
