"""
Operator-facing error message templates for serial instrument drivers.

Maps technical errors to actionable guidance that answers:
1. What happened?
2. Why might it have happened?
3. What should I do?
"""

from dataclasses import dataclass
from typing import List, Optional, Dict


@dataclass
class ErrorTemplate:
    """Template for an operator-facing error message."""
    title: str
    message: str
    causes: List[str]
    actions: List[str]


DEVICE_ERRORS: Dict[str, ErrorTemplate] = {
    "port_not_accessible": ErrorTemplate(
        title="Serial Port Not Accessible",
        message="The device file is missing, is not a serial port, or cannot be opened for reading and writing.",
        causes=[
            "The USB-serial adapter is unplugged",
            "The device file name changed after a reconnect",
            "Your user is not in the group that owns the serial ports",
        ],
        actions=[
            "Check the cable and that the instrument is powered on",
            "List /dev/tty* again to find the current device name",
            "Add your user to the 'dialout' (or 'uucp') group and log in again",
        ]
    ),

    "port_open_failed": ErrorTemplate(
        title="Serial Port Could Not Be Opened",
        message="The operating system refused to open the serial port.",
        causes=[
            "Another program holds the port open",
            "The adapter was removed while opening",
        ],
        actions=[
            "Close terminal programs or other scripts using the port",
            "Reconnect the adapter and try again",
        ]
    ),

    "not_recognized": ErrorTemplate(
        title="Instrument Not Recognized",
        message="The device on this port did not answer the identification request as expected.",
        causes=[
            "The device file belongs to a different instrument",
            "The instrument is switched off or still booting",
            "The baud rate on the instrument front panel was changed",
        ],
        actions=[
            "Check which port the instrument is connected to",
            "Power-cycle the instrument and wait for it to finish starting",
            "Restore the instrument's factory serial settings",
        ]
    ),

    "laser_keyswitch_off": ErrorTemplate(
        title="Laser Keyswitch Off",
        message="Emission was requested while the laser keyswitch reads OFF.",
        causes=[
            "The front panel key is in the OFF position",
            "The interlock loop is open",
        ],
        actions=[
            "Turn the key to ON (or REM) and request emission again",
            "Check the interlock connector",
        ]
    ),

    "viper_already_active": ErrorTemplate(
        title="Viper Laser Already In Use",
        message="Only one Viper laser driver can use the D/A library at a time.",
        causes=[
            "An earlier driver instance was not closed",
        ],
        actions=[
            "Call close() on the existing driver before creating a new one",
        ]
    ),

    "vendor_library_missing": ErrorTemplate(
        title="D/A Library Not Found",
        message="The vendor D/A conversion library could not be loaded.",
        causes=[
            "The vendor driver package is not installed",
            "The library name in the configuration is wrong for this platform",
        ],
        actions=[
            "Install the vendor's Universal Library / driver package",
            "Set the 'viper.library' entry in your configuration file",
        ]
    ),
}


def get_error(error_key: str) -> Optional[ErrorTemplate]:
    """
    Get an error template by key.

    Args:
        error_key: The error identifier (e.g., "not_recognized")

    Returns:
        ErrorTemplate if found, None otherwise
    """
    return DEVICE_ERRORS.get(error_key)


def format_error_message(template: ErrorTemplate) -> str:
    """
    Format an error template as a plain text message.

    Args:
        template: The error template to format

    Returns:
        Formatted error message string
    """
    lines = [
        template.title,
        "",
        template.message,
        "",
    ]

    if template.causes:
        lines.append("Possible causes:")
        for cause in template.causes:
            lines.append(f"  - {cause}")
        lines.append("")

    if template.actions:
        lines.append("What to do:")
        for action in template.actions:
            lines.append(f"  - {action}")

    return "\n".join(lines)


def report_error(logger, error_key: str, detail: Optional[str] = None) -> None:
    """
    Send a template through a TieredLogger's operator_error tier.

    Args:
        logger: TieredLogger to report through
        error_key: The error identifier
        detail: Optional technical detail appended to the message
    """
    template = get_error(error_key)
    if template is None:
        logger.error(detail or error_key)
        return
    message = template.message
    if detail:
        message = f"{message} ({detail})"
    logger.operator_error(template.title, message, template.causes, template.actions)
