"""Logging configuration for bsim4jax.

Default: WARNING level only (quiet). Parameter clamps and selector resets
are reported at WARNING; cache activity and node allocation at DEBUG.

Usage:
    from bsim4jax.logging import logger, enable_debug_logging

    logger.warning("This will show")
    enable_debug_logging()
    logger.debug("Now this shows too")
"""

import logging
import sys

from bsim4jax.errors import ClampedWarning

# Create the bsim4jax logger
logger = logging.getLogger("bsim4jax")

# Default: WARNING level only (quiet operation)
logger.setLevel(logging.WARNING)

# Add a default handler if none exists
if not logger.handlers:
    _default_handler = logging.StreamHandler(sys.stdout)
    _default_handler.setLevel(logging.WARNING)
    _default_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(_default_handler)


class FlushingHandler(logging.StreamHandler):
    """StreamHandler that flushes after every emit."""

    def emit(self, record):
        super().emit(record)
        self.flush()


def enable_debug_logging():
    """Enable DEBUG level logging with immediate flush."""
    logger.setLevel(logging.DEBUG)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = FlushingHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)


def set_log_level(level: int):
    """Set the logging level.

    Args:
        level: logging.DEBUG, logging.INFO, logging.WARNING, etc.
    """
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)


class DiagnosticsSink:
    """Collects ClampedWarning records and reports each one once.

    Every model owns a sink. Repeated temperature passes hit the same
    clamps, so identical messages are logged and recorded only the first
    time they occur until clear() is called.
    """

    def __init__(self, source: str = "bsim4"):
        self.source = source
        self.records = []
        self._seen = set()

    def warn(self, message: str, parameter: str | None = None):
        key = (parameter, message)
        if key in self._seen:
            return
        self._seen.add(key)
        self.records.append(ClampedWarning(message, parameter))
        logger.warning(f"{self.source}: {message}")

    @property
    def messages(self) -> list:
        return [record.message for record in self.records]

    def clear(self):
        self.records.clear()
        self._seen.clear()

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)
