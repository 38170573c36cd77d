"""Logging setup for the sampler.

Log records go to stderr so they never interleave with the report on stdout.
"""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def configure_logging(level: str = "WARNING") -> logging.Logger:
    global _configured

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.handlers = [handler]  # deterministic single handler
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))
    _configured = True
    return root


def get_logger(name: str, auto_configure: bool = True) -> logging.Logger:
    """Get a logger, configuring minimal logging on first use.

    Args:
        name: Logger name (usually module name)
        auto_configure: Whether to auto-configure logging on first use

    Returns:
        Logger instance
    """
    global _configured

    if auto_configure and not _configured:
        logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT)
        _configured = True

    return logging.getLogger(name)
