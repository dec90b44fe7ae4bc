"""Logging setup for CLI commands and the API server."""

import logging
import sys

from wpdock.redact import SecretRedactingFilter


class _ServerFormatter(logging.Formatter):
    """Shorten ``wpdock.deploy.orchestrate`` to ``orchestrate``; leave other loggers alone."""

    def format(self, record):
        if record.name.startswith("wpdock."):
            record.name = record.name.rsplit(".", 1)[-1]
        return super().format(record)


def _install_handler(formatter, level):
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    # Filter on the handler: logger-level filters skip propagated records
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)
    return handler


def setup_cli_logging(verbose=False):
    """Configure root logger with plain message format for CLI commands."""
    _install_handler(logging.Formatter("%(message)s"), logging.DEBUG if verbose else logging.INFO)
    logging.getLogger("paramiko").setLevel(logging.WARNING)


def setup_server_logging(verbose=False):
    """Configure root logger for the long-running API server."""
    formatter = _ServerFormatter(
        "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    _install_handler(formatter, logging.DEBUG if verbose else logging.INFO)
    logging.getLogger("paramiko").setLevel(logging.WARNING)
