# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Client settings.

Settings come from keyword arguments or from ``S3GET_*`` environment
variables (optionally seeded from ``.env`` files, see
``s3get.dotenv_loader``).  There is no settings file format of its own.

=============================  ===========================  =========
Variable                       Field                        Default
=============================  ===========================  =========
``S3GET_MAX_ATTEMPTS``         ``max_attempts``             3
``S3GET_BACKOFF_SECONDS``      ``backoff_seconds``          1.0
``S3GET_TIMEOUT_SECONDS``      ``timeout_seconds``          120.0
``S3GET_PRESIGN_TTL_SECONDS``  ``presign_ttl_seconds``      3600
``S3GET_ENDPOINT``             ``endpoint``                 AWS
``S3GET_VALIDATE_PDF``         ``validate_pdf``             true
=============================  ===========================  =========
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from s3get.fetch import DEFAULT_BACKOFF_SECONDS, DEFAULT_MAX_ATTEMPTS
from s3get.signers import DEFAULT_PRESIGN_TTL, MAX_PRESIGN_TTL


logger = logging.getLogger(__name__)

#: Per-request timeout enforced by the HTTP transport.
DEFAULT_TIMEOUT_SECONDS = 120.0

_ENV_PREFIX = "S3GET_"

_BOOL_TRUTHY = frozenset({"true", "1", "yes", "on"})
_BOOL_FALSY = frozenset({"false", "0", "no", "off"})


class ConfigError(Exception):
    """Raised when a setting has an invalid value."""


@dataclass(frozen=True)
class Settings:
    """Tunables for the download client.

    Attributes:
        max_attempts: Total transport attempts per request.
        backoff_seconds: Linear retry backoff unit.
        timeout_seconds: Per-request timeout.
        presign_ttl_seconds: Lifetime of presigned download URLs.
        endpoint: Endpoint template with ``{bucket}`` and optional
            ``{region}`` placeholders, or None for AWS S3.
        validate_pdf: Run the ``%PDF`` signature check on downloads.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    presign_ttl_seconds: int = DEFAULT_PRESIGN_TTL
    endpoint: str | None = None
    validate_pdf: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigError(
                f"max_attempts must be >= 1, got {self.max_attempts}"
            )
        if self.backoff_seconds < 0:
            raise ConfigError(
                f"backoff_seconds must be >= 0, got {self.backoff_seconds}"
            )
        if self.timeout_seconds <= 0:
            raise ConfigError(
                f"timeout_seconds must be > 0, got {self.timeout_seconds}"
            )
        if not 1 <= self.presign_ttl_seconds <= MAX_PRESIGN_TTL:
            raise ConfigError(
                f"presign_ttl_seconds must be between 1 and "
                f"{MAX_PRESIGN_TTL}, got {self.presign_ttl_seconds}"
            )
        if self.endpoint is not None:
            _validate_endpoint(self.endpoint)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``S3GET_*`` environment variables.

        Unset variables keep their defaults.

        Args:
            environ: Mapping to read from.  Defaults to ``os.environ``.

        Raises:
            ConfigError: If a variable cannot be parsed or is out of range.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}

        raw = _get(env, "MAX_ATTEMPTS")
        if raw is not None:
            values["max_attempts"] = _parse_int("MAX_ATTEMPTS", raw)
        raw = _get(env, "BACKOFF_SECONDS")
        if raw is not None:
            values["backoff_seconds"] = _parse_float("BACKOFF_SECONDS", raw)
        raw = _get(env, "TIMEOUT_SECONDS")
        if raw is not None:
            values["timeout_seconds"] = _parse_float("TIMEOUT_SECONDS", raw)
        raw = _get(env, "PRESIGN_TTL_SECONDS")
        if raw is not None:
            values["presign_ttl_seconds"] = _parse_int(
                "PRESIGN_TTL_SECONDS", raw
            )
        raw = _get(env, "ENDPOINT")
        if raw is not None:
            values["endpoint"] = raw
        raw = _get(env, "VALIDATE_PDF")
        if raw is not None:
            values["validate_pdf"] = _parse_bool("VALIDATE_PDF", raw)

        settings = cls(**values)  # type: ignore[arg-type]
        logger.debug("Loaded settings from environment: %s", settings)
        return settings


def _get(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(_ENV_PREFIX + name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(
            f"{_ENV_PREFIX}{name} must be an integer, got {raw!r}"
        ) from None


def _parse_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(
            f"{_ENV_PREFIX}{name} must be a number, got {raw!r}"
        ) from None


def _parse_bool(name: str, raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _BOOL_TRUTHY:
        return True
    if lowered in _BOOL_FALSY:
        return False
    raise ConfigError(
        f"{_ENV_PREFIX}{name} must be a boolean "
        f"(true/false, yes/no, on/off, 1/0), got {raw!r}"
    )


def _validate_endpoint(endpoint: str) -> None:
    if not endpoint.startswith(("https://", "http://")):
        raise ConfigError(
            f"endpoint must start with https:// or http://, got {endpoint!r}"
        )
    if "{bucket}" not in endpoint:
        raise ConfigError(
            f"endpoint must contain a {{bucket}} placeholder, got {endpoint!r}"
        )
    try:
        endpoint.format(bucket="bucket", region="region")
    except (KeyError, IndexError, ValueError) as e:
        raise ConfigError(
            f"endpoint may only use {{bucket}} and {{region}}: {e}"
        ) from e
