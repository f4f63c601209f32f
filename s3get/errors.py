# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Typed failures for signing and retrieval.

Every HTTP-level failure is classified exactly once, where the response
is received (``s3get.fetch.classify_response``).  Callers branch on the
exception type or on ``FetchError.kind``; nothing downstream inspects
message text.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from s3get.types import DownloadStrategy


class FailureKind(Enum):
    """Discriminator for ``FetchError`` subclasses."""

    TRANSPORT = "transport"
    RESPONSE = "response"
    AUTHORIZATION = "authorization"
    SIGNATURE_EXPIRED = "signature-expired"
    NOT_FOUND = "not-found"
    HTTP_STATUS = "http-status"


class S3GetError(Exception):
    """Base class for all errors raised by this package."""


class FetchError(S3GetError):
    """A request failed at the transport or HTTP layer.

    Attributes:
        kind: Failure classification.
        status_code: HTTP status, or None for transport failures.
        strategy: Strategy the request belonged to, if any.
        code: S3 error code from the response body (e.g.
            ``AccessDenied``), if the server sent one.
    """

    kind: FailureKind = FailureKind.HTTP_STATUS

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        strategy: DownloadStrategy | None = None,
        code: str | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.strategy = strategy
        self.code = code
        super().__init__(message)

    @property
    def is_fatal(self) -> bool:
        """True if switching transport cannot change the outcome."""
        return False

    def __str__(self) -> str:
        parts = []
        if self.strategy is not None:
            parts.append(f"[{self.strategy.value}]")
        if self.status_code is not None:
            parts.append(f"HTTP {self.status_code}")
        if self.code:
            parts.append(self.code)
        prefix = " ".join(parts)
        return f"{prefix}: {self.message}" if prefix else self.message


class TransportFailure(FetchError):
    """Connection refused, DNS failure, timeout or broken connection."""

    kind = FailureKind.TRANSPORT


class ResponseFailure(FetchError):
    """The server answered but the response could not be read.

    Covers ``httpx`` request errors outside the transport family, such as
    a body that fails ``Content-Encoding`` decoding.  Not retried.
    """

    kind = FailureKind.RESPONSE


class AuthorizationFailure(FetchError):
    """HTTP 403 or an ``AccessDenied``-style error code.

    Both strategies present the same credentials for the same object, so
    this failure stops strategy fallback.
    """

    kind = FailureKind.AUTHORIZATION

    @property
    def is_fatal(self) -> bool:
        return True


class SignatureExpired(AuthorizationFailure):
    """The server rejected the request timestamp or an expired URL.

    Recovered by signing again with a fresh timestamp, never by replaying
    the rejected request.
    """

    kind = FailureKind.SIGNATURE_EXPIRED


class NotFoundFailure(FetchError):
    """HTTP 404: the bucket or key does not exist."""

    kind = FailureKind.NOT_FOUND


class HttpStatusFailure(FetchError):
    """Any other non-2xx response."""

    kind = FailureKind.HTTP_STATUS


class ExhaustedFailure(S3GetError):
    """Every strategy was tried and none succeeded.

    Attributes:
        last_error: The last strategy failure, or None if no strategy ran.
        attempted: Number of strategies attempted.
        total: Number of strategies configured.
    """

    def __init__(
        self,
        last_error: FetchError | None,
        *,
        attempted: int,
        total: int,
    ) -> None:
        self.last_error = last_error
        self.attempted = attempted
        self.total = total
        message = (
            f"All download methods failed (tried {attempted} of {total})"
        )
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message)


class DownloadCancelled(S3GetError):
    """The caller's cancel event was set."""
