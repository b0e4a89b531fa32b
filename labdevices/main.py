"""
Ad-hoc instrument query tool.

Opens one instrument, prints properties, applies assignments:

    python -m labdevices stage /dev/ttyUSB0
    python -m labdevices stage /dev/ttyUSB0 speed=40 speed position
    python -m labdevices shutter /dev/ttyUSB2 enabled=true --debug
"""

import json
import sys
from typing import Any, List, Optional, Tuple

from labserial.config import ConfigurationError
from labserial.drivers import SerialPortError
from labserial.utils import TieredLogger

from .controllers import (
    InstrumentError,
    IPGLaser,
    ProScanStage,
    SC10Shutter,
    Thermometer,
)

DRIVERS = {
    "stage": ProScanStage,
    "laser": IPGLaser,
    "shutter": SC10Shutter,
    "thermometer": Thermometer,
}


def parse_assignment(text: str) -> Tuple[str, Any]:
    """
    Split "name=value", decoding the value as JSON when possible.

    "speed=40" -> ("speed", 40), "position=[0,0,10]" -> ("position", [0, 0, 10]),
    anything that is not JSON stays a string.
    """
    name, _, raw = text.partition("=")
    try:
        value = json.loads(raw)
    except ValueError:
        value = raw
    return name.strip(), value


def format_value(value: Any) -> str:
    if value is None:
        return "<no reply>"
    if hasattr(value, "tolist"):
        value = value.tolist()
    return str(value)


def run(driver, items: List[str]) -> int:
    status = 0
    if not items:
        for name, value in driver.snapshot().items():
            print(f"{name} = {format_value(value)}")
        return status

    for item in items:
        try:
            if "=" in item:
                name, value = parse_assignment(item)
                driver.set(name, value)
            else:
                print(f"{item} = {format_value(driver.get(item))}")
        except (KeyError, AttributeError, ValueError) as e:
            print(f"error: {e}", file=sys.stderr)
            status = 2
    return status


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the query tool."""
    import argparse

    parser = argparse.ArgumentParser(description='Query and set serial instrument properties')
    parser.add_argument('kind', choices=sorted(DRIVERS),
                        help='Instrument family')
    parser.add_argument('device',
                        help='Serial device file, e.g. /dev/ttyUSB0')
    parser.add_argument('items', nargs='*',
                        help='Property names to print, or name=value to set')
    parser.add_argument('--debug', action='store_true',
                        help='Trace serial traffic on the console')
    parser.add_argument('--quiet', action='store_true',
                        help='Do not report identification failures')
    args = parser.parse_args(argv)

    if args.debug:
        TieredLogger.set_debug_mode(True)

    try:
        driver = DRIVERS[args.kind](args.device, quiet=args.quiet, debug=args.debug)
    except (SerialPortError, InstrumentError, ConfigurationError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    with driver:
        return run(driver, args.items)


if __name__ == "__main__":
    sys.exit(main())
