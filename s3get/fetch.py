# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""HTTP layer: bounded transport retry and response classification.

``RetryingFetcher`` retries only transport failures (connection errors,
DNS failures, timeouts).  Other request errors, such as an undecodable
body, fail at once as ``ResponseFailure``.  HTTP error statuses are
returned unchanged and classified by ``classify_response`` into the
typed errors of ``s3get.errors``.
"""

from __future__ import annotations

import logging
import threading
import time
import xml.etree.ElementTree as ET
from collections.abc import Callable, Mapping
from dataclasses import dataclass

import httpx

from s3get.errors import (
    AuthorizationFailure,
    DownloadCancelled,
    FetchError,
    HttpStatusFailure,
    NotFoundFailure,
    ResponseFailure,
    SignatureExpired,
    TransportFailure,
)
from s3get.types import DownloadStrategy


logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 1.0

#: S3 error codes that mean the credentials were rejected.
_AUTH_ERROR_CODES = frozenset(
    {
        "AccessDenied",
        "AccountProblem",
        "AllAccessDisabled",
        "InvalidAccessKeyId",
        "SignatureDoesNotMatch",
    }
)

#: S3 error codes that mean the request timestamp is no longer valid.
_EXPIRED_ERROR_CODES = frozenset(
    {"ExpiredToken", "RequestExpired", "RequestTimeTooSkewed"}
)

#: ``AccessDenied`` message S3 returns for an expired presigned URL.
_EXPIRED_PRESIGN_MESSAGE = "request has expired"

_NOT_FOUND_ERROR_CODES = frozenset({"NoSuchBucket", "NoSuchKey"})


@dataclass(frozen=True)
class S3ErrorBody:
    """``<Code>`` and ``<Message>`` of an S3 XML error document."""

    code: str | None
    message: str | None


def raise_if_cancelled(cancel: threading.Event | None) -> None:
    """Raise ``DownloadCancelled`` if the cancel event is set."""
    if cancel is not None and cancel.is_set():
        raise DownloadCancelled("Download cancelled by caller")


def parse_s3_error(body: bytes) -> S3ErrorBody:
    """Extract the error code and message from an S3 error response.

    Args:
        body: Response body.  HEAD responses and non-XML bodies yield an
            empty result.
    """
    if not body or not body.lstrip().startswith(b"<"):
        return S3ErrorBody(None, None)
    try:
        root = ET.fromstring(body)
    except ET.ParseError:
        return S3ErrorBody(None, None)
    return S3ErrorBody(
        code=(root.findtext("Code") or None),
        message=(root.findtext("Message") or None),
    )


def classify_response(
    response: httpx.Response,
    strategy: DownloadStrategy | None = None,
) -> FetchError:
    """Map a non-2xx response to a typed failure.

    Args:
        response: Response with an error status (body already read).
        strategy: Strategy the request was made for.

    Returns:
        The matching ``FetchError`` subclass instance.
    """
    status = response.status_code
    error = parse_s3_error(response.content)
    detail = error.message or response.reason_phrase or "request failed"
    message = f"Request failed: {status} {detail}"
    kwargs = {"status_code": status, "strategy": strategy, "code": error.code}

    expired = error.code in _EXPIRED_ERROR_CODES or (
        error.code == "AccessDenied"
        and (error.message or "").lower().startswith(_EXPIRED_PRESIGN_MESSAGE)
    )
    if expired:
        return SignatureExpired(message, **kwargs)
    if status == 403 or error.code in _AUTH_ERROR_CODES:
        return AuthorizationFailure(message, **kwargs)
    if status == 404 or error.code in _NOT_FOUND_ERROR_CODES:
        return NotFoundFailure(message, **kwargs)
    return HttpStatusFailure(message, **kwargs)


class RetryingFetcher:
    """Send requests with bounded retry on transport failure.

    Attributes:
        max_attempts: Total attempts per request (not retries).
        backoff_seconds: Linear backoff unit; the delay after attempt
            ``n`` is ``n * backoff_seconds``.
    """

    def __init__(
        self,
        client: httpx.Client,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._client = client
        self._sleep = sleep
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds

    def fetch(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        strategy: DownloadStrategy | None = None,
        cancel: threading.Event | None = None,
    ) -> httpx.Response:
        """Send a request, retrying transport failures.

        Args:
            method: HTTP method.
            url: Absolute URL (may be presigned).
            headers: Request headers.
            strategy: Strategy tag attached to a raised failure.
            cancel: Checked before every attempt.

        Returns:
            The response, whatever its status code.

        Raises:
            TransportFailure: If every attempt failed at the transport
                level.  Chained to the last ``httpx`` error.
            ResponseFailure: If any other ``httpx.RequestError`` was raised
                (e.g. a body that fails decoding).  Not retried.
            DownloadCancelled: If ``cancel`` was set.
        """
        last_error: httpx.TransportError | None = None

        for attempt in range(1, self.max_attempts + 1):
            raise_if_cancelled(cancel)
            try:
                return self._client.request(
                    method, url, headers=dict(headers or {})
                )
            except httpx.TransportError as e:
                last_error = e
                logger.warning(
                    "%s attempt %d/%d failed: %s",
                    method,
                    attempt,
                    self.max_attempts,
                    type(e).__name__,
                )
                if attempt < self.max_attempts:
                    self._sleep(attempt * self.backoff_seconds)
            except httpx.RequestError as e:
                logger.warning(
                    "%s response unreadable: %s", method, type(e).__name__
                )
                raise ResponseFailure(
                    f"{method} response could not be read: "
                    f"{type(e).__name__}: {e}",
                    strategy=strategy,
                ) from e

        assert last_error is not None
        raise TransportFailure(
            f"{method} failed after {self.max_attempts} attempts: "
            f"{type(last_error).__name__}: {last_error}",
            strategy=strategy,
        ) from last_error
