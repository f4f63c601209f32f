# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Logging setup for applications that embed s3get.

The package itself only ever calls ``logging.getLogger(__name__)`` and
keeps no logging state of its own.  Redaction is opt-in: an application
entry point calls ``configure_logging`` once, passing the secret access
keys it loaded, and those keys are replaced with ``[REDACTED]`` in every
record that reaches the root handler.

Usage:
    # In entry points (scripts, services embedding the client)
    from s3get.logging import configure_logging
    configure_logging(level=logging.INFO, secrets=[creds.secret_key])

    # Secrets loaded later (e.g. after a credential rotation)
    SecretFilter.register_secret(new_secret_key)
"""

import logging
import re
import threading
from collections.abc import Iterable
from typing import ClassVar


#: Upper bound on distinct registered secrets.
MAX_SECRETS = 64

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class SecretFilter(logging.Filter):
    """Logging filter that redacts registered secrets from log output.

    The registry is shared by every instance.  Registration and
    clearing are serialized by a lock; ``filter`` reads one compiled
    pattern and never iterates the registry.

    Example:
        SecretFilter.register_secret("wJalrXUtnFEMI/K7MDENG")
        handler.addFilter(SecretFilter())
        logger.info("Using key: wJalrXUtnFEMI/K7MDENG")
        # Output: "Using key: [REDACTED]"
    """

    _secrets: ClassVar[set[str]] = set()
    _pattern: ClassVar[re.Pattern[str] | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact registered secrets from the record's message and args.

        Returns:
            Always True (records are modified, never dropped).
        """
        pattern = self._pattern
        if pattern is None:
            return True
        record.msg = pattern.sub("[REDACTED]", str(record.msg))
        if isinstance(record.args, tuple):
            record.args = tuple(
                pattern.sub("[REDACTED]", arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True

    @classmethod
    def register_secret(cls, secret: str) -> None:
        """Register a secret to be redacted from all log output.

        Empty strings and already registered secrets are ignored.

        Raises:
            ValueError: If ``MAX_SECRETS`` secrets are already registered.
        """
        if not secret:
            return
        with cls._lock:
            if secret in cls._secrets:
                return
            if len(cls._secrets) >= MAX_SECRETS:
                raise ValueError(
                    f"Too many registered secrets (limit {MAX_SECRETS})"
                )
            cls._secrets.add(secret)
            cls._rebuild_pattern()

    @classmethod
    def clear_secrets(cls) -> None:
        """Clear all registered secrets. Primarily for testing."""
        with cls._lock:
            cls._secrets.clear()
            cls._pattern = None

    @classmethod
    def _rebuild_pattern(cls) -> None:
        # Caller holds _lock
        if cls._secrets:
            # Longest first so overlapping secrets are fully masked
            ordered = sorted(cls._secrets, key=len, reverse=True)
            cls._pattern = re.compile("|".join(map(re.escape, ordered)))
        else:
            cls._pattern = None


def configure_logging(
    level: int = logging.INFO,
    format_string: str | None = None,
    *,
    secrets: Iterable[str] = (),
    add_secret_filter: bool = True,
) -> None:
    """Configure the root logger for an application using s3get.

    Replaces any existing root handlers with one stream handler.

    Args:
        level: The logging level (e.g., logging.INFO, logging.DEBUG).
        format_string: Custom format string. If None, uses DEFAULT_FORMAT.
        secrets: Secret access keys to redact from log output.
        add_secret_filter: Whether to add the SecretFilter to the handler.
    """
    for secret in secrets:
        SecretFilter.register_secret(secret)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
    if add_secret_filter:
        handler.addFilter(SecretFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)
    root_logger.addHandler(handler)
