"""
Serial laboratory instrument controllers.

    from labdevices import ProScanStage
    stage = ProScanStage("/dev/ttyUSB0")
"""

from .controllers import (
    IPGLaser,
    InstrumentError,
    NotRecognizedError,
    ProScanStage,
    ProtocolError,
    SC10Shutter,
    Thermometer,
    ViperLaser,
    ViperLaserError,
)

__version__ = "1.0.0"

__all__ = [
    'IPGLaser',
    'InstrumentError',
    'NotRecognizedError',
    'ProScanStage',
    'ProtocolError',
    'SC10Shutter',
    'Thermometer',
    'ViperLaser',
    'ViperLaserError',
]
