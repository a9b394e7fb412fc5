"""
QrBites Maintenance - Logging helpers

Adds a SUCCESS level between INFO and WARNING so that the maintenance scripts
can report progress with info/success/warning/error.
"""

import logging

SUCCESS = 25
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logging.addLevelName(SUCCESS, "SUCCESS")


class MaintenanceLogger(logging.LoggerAdapter):
    """Logger adapter exposing a success() method."""

    def success(self, msg, *args, **kwargs):
        self.log(SUCCESS, msg, *args, **kwargs)


def get_logger(name: str) -> MaintenanceLogger:
    return MaintenanceLogger(logging.getLogger(name), {})


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging once for the CLI entry points."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
