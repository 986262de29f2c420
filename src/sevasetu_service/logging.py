"""Service-level logging helpers."""

from __future__ import annotations

import logging

from service_commons.logging import get_named_logger
from service_commons.logging import setup_logging as _setup_logging

SERVICE_NAME = "sevasetu"


def setup_logging(level: str, service_name: str, log_directory: str | None) -> logging.Logger:
    """Configure JSON logging for the service."""
    return _setup_logging(level, service_name, log_directory)


def get_logger(name: str) -> logging.Logger:
    """Get a module logger under the service namespace."""
    return get_named_logger(SERVICE_NAME, name)
