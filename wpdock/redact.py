"""Mask secrets (host password, JWT secret, generated site passwords) in logs and activities."""

import logging
import os
import re

MASK = "***"

# Env vars holding secrets that must never reach a log line
_SECRET_ENV_VARS = [
    "SSH_PASSWORD",
    "WPDOCK_JWT_SECRET",
    "WPDOCK_ADMIN_PASSWORD",
]

_MIN_SECRET_LENGTH = 8  # shorter values produce too many false matches

# Generated DB passwords and site admin passwords, added while running
_registered: set[str] = set()

# One alternation over every known secret; None until first use or after a change
_patterns: re.Pattern | None = None


def _known_secrets():
    from_env = (os.environ.get(var, "") for var in _SECRET_ENV_VARS)
    return {v for v in from_env if len(v) >= _MIN_SECRET_LENGTH} | _registered


def _pattern():
    global _patterns
    if _patterns is None:
        secrets = sorted(_known_secrets(), key=len, reverse=True)
        # Longest first so a secret containing another is masked whole
        _patterns = re.compile("|".join(map(re.escape, secrets))) if secrets else re.compile(r"(?!)")
    return _patterns


def register_secret(value: str) -> None:
    """Mask value in everything logged from now on. Short or empty values are ignored."""
    global _patterns
    if not value or len(value) < _MIN_SECRET_LENGTH or value in _registered:
        return
    _registered.add(value)
    _patterns = None


def redact_secrets(text: str) -> str:
    """Return text with every known secret replaced by '***'."""
    return _pattern().sub(MASK, text)


class SecretRedactingFilter(logging.Filter):
    """Masks secrets in a record's message and its %-style args.

    Installed on the output handler, so records from every logger pass
    through it.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        pattern = _pattern()
        record.msg = pattern.sub(MASK, str(record.msg))
        if isinstance(record.args, tuple):
            record.args = tuple(pattern.sub(MASK, a) if isinstance(a, str) else a for a in record.args)
        elif isinstance(record.args, dict):
            record.args = {k: pattern.sub(MASK, v) if isinstance(v, str) else v for k, v in record.args.items()}
        return True
