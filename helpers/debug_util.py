"""Debug utilities for controlling sqlcache debug output.

Routes debug messages either to the logging module (quiet mode) or to
stdout (loud mode).
"""

import logging
import os

DEBUG_MODE_ENV = "SQLCACHE_DEBUG_MODE"
_MODES = ("quiet", "loud")


class DebugUtil:
    """Manage debug output based on debug mode setting.

    Supports two modes:
    - "quiet": Debug messages are logged only
    - "loud": Debug messages are printed to stdout
    """

    def __init__(self, mode: str | None = None, logger_name: str = "sqlcache") -> None:
        """Initialize from ``mode`` or, when omitted, the SQLCACHE_DEBUG_MODE variable.

        Defaults to "quiet" if not set or invalid.
        """
        env_mode = (mode or os.environ.get(DEBUG_MODE_ENV, "quiet")).lower()
        self._mode = env_mode if env_mode in _MODES else "quiet"

        self._logger = logging.getLogger(logger_name)
        if not self._logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
            handler.setFormatter(formatter)
            self._logger.addHandler(handler)
            self._logger.setLevel(logging.DEBUG)

    def debug_mode(self) -> str:
        """Get the current debug mode ("quiet" or "loud")."""
        return self._mode

    def debugMessage(self, *args: object) -> None:
        """Output a debug message based on the current debug mode.

        In "quiet" mode the arguments are joined and logged at DEBUG level.
        In "loud" mode they are printed to stdout with a ``[DEBUG]`` prefix.
        """
        if self._mode == "loud":
            print("[DEBUG]", *args)
            return
        message = " ".join(str(arg) for arg in args)
        if message:
            self._logger.debug(message)

    def set_mode(self, mode: str) -> None:
        """Change the debug mode. Invalid values fall back to "quiet"."""
        self._mode = mode.lower() if mode.lower() in _MODES else "quiet"

    def is_loud(self) -> bool:
        return self._mode == "loud"

    def is_quiet(self) -> bool:
        return self._mode == "quiet"
