"""Logging setup shared by the CLI and the HTTP server.

Library modules only call ``logging.getLogger(__name__)``; handlers and format
are installed once here by the entry points.
"""
import logging

LOG_FORMAT = "%(asctime)s|%(levelname)s|%(name)s:%(lineno)d|%(message)s"

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Install a single stderr handler on the ``smartmeal`` logger.

    Calling it again only changes the level.
    """
    global _configured
    logger = logging.getLogger("smartmeal")
    logger.setLevel(level.upper())
    if _configured:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    _configured = True
