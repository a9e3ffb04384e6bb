"""Logging setup for the Homico backend."""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(debug: bool = False) -> None:
    """Send backend and library logs to stdout once per process."""
    global _configured
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    level = logging.DEBUG if debug else logging.INFO
    for name in ("homico", "app"):
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.addHandler(handler)
        logger.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the backend namespace."""
    if not name.startswith(("homico", "app")):
        name = f"app.{name}"
    return logging.getLogger(name)
