"""
Tiered logging system for serial instrument drivers.

Provides three output tiers:
- Tier 1 (operator): plain-language messages for whoever is running the rig,
  forwarded to an optional callback (status line, notebook widget)
- Tier 2 (info): console output, device IDs and advisory warnings
- Tier 3 (debug): log file only, full protocol traces for debugging

Debug mode promotes debug messages (including byte-level port traces) to
the console.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Callable, List, Dict
from logging.handlers import RotatingFileHandler


LOG_DIR_ENV = "LABSERIAL_LOG_DIR"


class TieredLogger:
    """
    Tiered logging for instrument drivers.

    Routes messages to appropriate outputs based on audience:
    - operator(): callback plus log, plain language
    - info() / warning() / error(): console, brief technical info
    - debug(): file only (or console in debug mode)

    Usage:
        logger = TieredLogger("proscan")
        logger.operator("Stage moved to origin")
        logger.info("ProScan firmware 210 on /dev/ttyUSB0")
        logger.debug("/dev/ttyUSB0 -> 'G,0,0,0'")
    """

    _instances: Dict[str, 'TieredLogger'] = {}
    _debug_mode: bool = False

    def __init__(
        self,
        name: str,
        log_dir: Optional[Path] = None,
        operator_callback: Optional[Callable[[str], None]] = None,
        error_callback: Optional[Callable[[str, str, List[str], List[str]], None]] = None
    ):
        """
        Initialize the tiered logger.

        Args:
            name: Logger name (e.g., "proscan", "serial")
            log_dir: Directory for log files. Defaults to $LABSERIAL_LOG_DIR;
                     no file is written when neither is set.
            operator_callback: Callback for operator-tier messages
            error_callback: Callback for error reports (title, message, causes, actions)
        """
        self.name = name
        env_dir = os.environ.get(LOG_DIR_ENV)
        self.log_dir = log_dir or (Path(env_dir) if env_dir else None)
        self.operator_callback = operator_callback
        self.error_callback = error_callback

        self._setup_logging()

        TieredLogger._instances[name] = self

    def _setup_logging(self) -> None:
        """Configure Python logging handlers."""
        self._logger = logging.getLogger(f"labserial.{self.name}")
        self._logger.setLevel(logging.DEBUG)
        self._logger.handlers.clear()

        # Console handler (INFO level by default)
        self._console_handler = logging.StreamHandler()
        self._console_handler.setLevel(
            logging.DEBUG if TieredLogger._debug_mode else logging.INFO
        )
        console_format = logging.Formatter(
            '%(asctime)s [%(name)s] %(message)s',
            datefmt='%H:%M:%S'
        )
        self._console_handler.setFormatter(console_format)
        self._logger.addHandler(self._console_handler)

        if self.log_dir is None:
            return

        # File handler (DEBUG level, with rotation)
        log_file = Path(self.log_dir) / f"{self.name}_debug.log"
        try:
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=5*1024*1024,  # 5 MB
                backupCount=3
            )
        except OSError as e:
            self._logger.warning(f"Cannot write log file {log_file}: {e}")
            return
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(file_format)
        self._logger.addHandler(file_handler)

    @classmethod
    def get_logger(cls, name: str) -> 'TieredLogger':
        """Get or create a logger instance by name."""
        if name not in cls._instances:
            cls._instances[name] = TieredLogger(name)
        return cls._instances[name]

    @classmethod
    def set_debug_mode(cls, enabled: bool) -> None:
        """
        Enable or disable debug mode.

        When enabled, DEBUG-level messages (port traces) appear in console.
        """
        cls._debug_mode = enabled
        for logger in cls._instances.values():
            if enabled:
                logger._console_handler.setLevel(logging.DEBUG)
            else:
                logger._console_handler.setLevel(logging.INFO)

    @classmethod
    def is_debug_mode(cls) -> bool:
        """Check if debug mode is enabled."""
        return cls._debug_mode

    def set_operator_callback(self, callback: Optional[Callable[[str], None]]) -> None:
        """Set callback for operator-tier messages."""
        self.operator_callback = callback

    def set_error_callback(
        self,
        callback: Optional[Callable[[str, str, List[str], List[str]], None]]
    ) -> None:
        """Set callback for error reports."""
        self.error_callback = callback

    # -------------------------------------------------------------------------
    # Tier 1: Operator-facing messages
    # -------------------------------------------------------------------------

    def operator(self, message: str) -> None:
        """
        Log an operator-facing message.

        Args:
            message: Plain-language status message
        """
        self._logger.info(f"[OPERATOR] {message}")

        if self.operator_callback:
            try:
                self.operator_callback(message)
            except Exception as e:
                self._logger.debug(f"Operator callback failed: {e}")

    def operator_error(
        self,
        title: str,
        message: str,
        causes: Optional[List[str]] = None,
        actions: Optional[List[str]] = None
    ) -> None:
        """
        Report an error with actionable guidance.

        Every error the operator sees should answer:
        1. What happened?
        2. Why might it have happened?
        3. What should I do?

        Args:
            title: Short error title
            message: Explanation of what went wrong
            causes: List of possible causes
            actions: List of suggested actions
        """
        causes = causes or []
        actions = actions or []

        self._logger.error(f"{title}: {message}")
        for cause in causes:
            self._logger.error(f"  Possible cause: {cause}")
        for action in actions:
            self._logger.error(f"  Suggested action: {action}")

        if self.error_callback:
            try:
                self.error_callback(title, message, causes, actions)
            except Exception as e:
                self._logger.debug(f"Error callback failed: {e}")

    # -------------------------------------------------------------------------
    # Tier 2: Console messages
    # -------------------------------------------------------------------------

    def info(self, message: str) -> None:
        """Log an informational message (device identification, timing)."""
        self._logger.info(message)

    def warning(self, message: str) -> None:
        """
        Log a warning message.

        Used for advisory protocol problems: error codes in replies,
        unparseable replies, clamped values.
        """
        self._logger.warning(message)

    def error(self, message: str) -> None:
        """Log a technical error message."""
        self._logger.error(message)

    # -------------------------------------------------------------------------
    # Tier 3: Debug messages (file only, unless debug mode)
    # -------------------------------------------------------------------------

    def debug(self, message: str) -> None:
        """Log a debug message (port traces, raw replies)."""
        self._logger.debug(message)

    def log(self, message: str, level: str = "INFO") -> None:
        """
        Log at a level given by name.

        Args:
            message: Message to log
            level: Log level (INFO, WARNING, ERROR, DEBUG)
        """
        level = level.upper()
        if level == "ERROR":
            self.error(message)
        elif level == "WARNING":
            self.warning(message)
        elif level == "DEBUG":
            self.debug(message)
        else:
            self.info(message)


def get_logger(name: str) -> TieredLogger:
    """Get or create a TieredLogger instance."""
    return TieredLogger.get_logger(name)
