# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Value types shared by the signing and download layers.

All types are immutable and hold no shared state.  ``Credentials``
keeps its secret key out of ``repr``; redacting it from log output is
left to the application (see ``s3get.logging``).
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum


#: Service name used in every credential scope.
S3_SERVICE = "s3"

#: Terminator of a SigV4 credential scope.
SCOPE_TERMINATOR = "aws4_request"

#: ``(percent, message, url_or_none)`` progress callback.
ProgressCallback = Callable[[int, str, str | None], None]


class CredentialsError(ValueError):
    """Raised when credentials are missing or incomplete."""


@dataclass(frozen=True)
class Credentials:
    """Access key pair plus the region the bucket lives in.

    Attributes:
        access_key: Access key ID.  Appears in signed URLs and headers.
        secret_key: Secret access key.  Never serialized or logged.
        region: Bucket region (e.g. ``us-east-1``).
    """

    access_key: str
    secret_key: str = field(repr=False)
    region: str

    def __post_init__(self) -> None:
        missing = [
            name
            for name in ("access_key", "secret_key", "region")
            if not getattr(self, name)
        ]
        if missing:
            raise CredentialsError(
                f"Missing credential fields: {', '.join(missing)}"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Credentials:
        """Build credentials from the standard AWS environment variables.

        Reads ``AWS_ACCESS_KEY_ID``, ``AWS_SECRET_ACCESS_KEY`` and
        ``AWS_REGION`` (falling back to ``AWS_DEFAULT_REGION``).

        Args:
            environ: Mapping to read from.  Defaults to ``os.environ``.

        Raises:
            CredentialsError: If any of the values is missing.
        """
        env = os.environ if environ is None else environ
        return cls(
            access_key=env.get("AWS_ACCESS_KEY_ID", ""),
            secret_key=env.get("AWS_SECRET_ACCESS_KEY", ""),
            region=env.get("AWS_REGION") or env.get("AWS_DEFAULT_REGION", ""),
        )


@dataclass(frozen=True)
class ObjectLocator:
    """Bucket plus logical object key (unescaped path)."""

    bucket: str
    key: str

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


@dataclass(frozen=True)
class SigningContext:
    """Timestamps and scope for exactly one signed request.

    Attributes:
        timestamp: Compact ISO8601 UTC time (``YYYYMMDDThhmmssZ``).
        date_stamp: First eight characters of ``timestamp``.
        region: Region part of the credential scope.
        service: Service part of the credential scope.
    """

    timestamp: str
    date_stamp: str
    region: str
    service: str = S3_SERVICE

    @property
    def credential_scope(self) -> str:
        """``date/region/service/aws4_request``."""
        return "/".join(
            [self.date_stamp, self.region, self.service, SCOPE_TERMINATOR]
        )


class DownloadStrategy(Enum):
    """Authentication transport used for one download attempt."""

    PRESIGNED = "presigned"
    HEADER_SIGNED = "header-signed"


#: Strategy order used by default.  Presigned URLs are tried first.
DEFAULT_STRATEGIES: tuple[DownloadStrategy, ...] = (
    DownloadStrategy.PRESIGNED,
    DownloadStrategy.HEADER_SIGNED,
)


@dataclass(frozen=True)
class DownloadResult:
    """Downloaded object body plus metadata.

    Attributes:
        data: Raw object bytes.
        content_type: ``Content-Type`` from the response, or
            ``application/pdf`` when the server sent none.
        size_bytes: ``len(data)``.
        resolved_url: URL the body was fetched from.  For presigned
            downloads this is the full presigned URL.
        strategy: Strategy that produced the body.
        warnings: Soft content validation warnings.
    """

    data: bytes
    content_type: str
    size_bytes: int
    resolved_url: str
    strategy: DownloadStrategy
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProgressEvent:
    """A single progress checkpoint."""

    percent: int
    message: str
    url: str | None = None


@dataclass(frozen=True)
class Diagnostic:
    """Outcome of a connection test."""

    ok: bool
    message: str
