# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Ordered multi-strategy object download.

``StrategyDownloader`` tries each ``DownloadStrategy`` in turn over a
``RetryingFetcher``::

    Init ──> Trying(0) ──success──> Success
                │
                ├─ authorization failure ──> raise (no fallback)
                │
                └─ other failure ──> Trying(1) ──> ... ──> Exhausted

Strategies run strictly one at a time.  An authorization failure aborts
the whole download because every strategy presents the same credentials
for the same object.  A rejected timestamp (``SignatureExpired``) is
retried once on the same strategy with a freshly signed request.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import httpx

from s3get.aws_signing import Clock, clock_skew_minutes, utc_now
from s3get.errors import ExhaustedFailure, FetchError, SignatureExpired
from s3get.fetch import RetryingFetcher, classify_response, raise_if_cancelled
from s3get.signers import (
    DEFAULT_PRESIGN_TTL,
    create_presigned_url,
    create_signed_headers,
    object_url,
)
from s3get.types import (
    DEFAULT_STRATEGIES,
    Credentials,
    DownloadResult,
    DownloadStrategy,
    ObjectLocator,
    ProgressCallback,
    ProgressEvent,
)


logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/pdf"

_ACCEPT = "application/pdf,*/*"

#: ``(data, content_type) -> warning or None``.
ContentValidator = Callable[[bytes, str], str | None]

_PDF_MAGIC = b"%PDF"
_GENERIC_BINARY_TYPES = frozenset(
    {"application/octet-stream", "binary/octet-stream"}
)

# Progress layout: 5% for init, strategies share 5..95, 100 on success.
_INIT_PERCENT = 5
_STRATEGY_SPAN = 90

# Checkpoints inside one strategy's share
_STEP_TRYING = 0.0
_STEP_SIGNING = 0.1
_STEP_REQUEST_SENT = 0.3
_STEP_BODY_RECEIVED = 0.8

_STRATEGY_LABELS = {
    DownloadStrategy.PRESIGNED: "pre-signed URL",
    DownloadStrategy.HEADER_SIGNED: "signed headers",
}


def check_pdf_signature(data: bytes, content_type: str) -> str | None:
    """Warn when a PDF-typed body lacks the ``%PDF`` file signature.

    Bodies declared with any non-PDF, non-generic content type are not
    checked.
    """
    media_type = content_type.split(";")[0].strip().lower()
    if "pdf" not in media_type and media_type not in _GENERIC_BINARY_TYPES:
        return None
    if data.startswith(_PDF_MAGIC):
        return None
    header = data[: len(_PDF_MAGIC)]
    return f"Content does not start with the PDF signature (got {header!r})"


DEFAULT_VALIDATORS: tuple[ContentValidator, ...] = (check_pdf_signature,)


@dataclass(frozen=True)
class _SignedRequest:
    url: str
    headers: dict[str, str]


class _ProgressReporter:
    """Forwards checkpoints to the caller, never letting percent go down."""

    def __init__(self, callback: ProgressCallback | None) -> None:
        self._callback = callback
        self._last = 0

    def report(
        self, percent: float, message: str, url: str | None = None
    ) -> ProgressEvent:
        value = max(self._last, min(100, int(percent)))
        self._last = value
        event = ProgressEvent(value, message, url)
        if self._callback is not None:
            self._callback(event.percent, event.message, event.url)
        return event


class StrategyDownloader:
    """Download one object per call, falling back across strategies.

    Args:
        fetcher: HTTP layer with transport retry.
        strategies: Strategies in the order they are attempted.
        clock: Time source for signing.
        endpoint: Optional endpoint template (see ``s3get.signers``).
        presign_ttl: Lifetime of presigned download URLs.
        validators: Soft content checks run on a successful body.
    """

    def __init__(
        self,
        fetcher: RetryingFetcher,
        *,
        strategies: Sequence[DownloadStrategy] = DEFAULT_STRATEGIES,
        clock: Clock | None = None,
        endpoint: str | None = None,
        presign_ttl: int = DEFAULT_PRESIGN_TTL,
        validators: Sequence[ContentValidator] = DEFAULT_VALIDATORS,
    ) -> None:
        if not strategies:
            raise ValueError("At least one download strategy is required")
        self._fetcher = fetcher
        self._strategies = tuple(strategies)
        self._clock = clock
        self._endpoint = endpoint
        self._presign_ttl = presign_ttl
        self._validators = tuple(validators)
        self._builders: dict[
            DownloadStrategy,
            Callable[[Credentials, ObjectLocator], _SignedRequest],
        ] = {
            DownloadStrategy.PRESIGNED: self._presigned_request,
            DownloadStrategy.HEADER_SIGNED: self._header_signed_request,
        }

    @property
    def strategies(self) -> tuple[DownloadStrategy, ...]:
        return self._strategies

    def download(
        self,
        credentials: Credentials,
        locator: ObjectLocator,
        on_progress: ProgressCallback | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> DownloadResult:
        """Download an object, trying each strategy in order.

        Args:
            credentials: Access key pair and region.
            locator: Bucket and key to fetch.
            on_progress: Receives ``(percent, message, url_or_none)`` at
                fixed checkpoints.  Percent never decreases.
            cancel: Checked between strategies and between retries.

        Returns:
            The downloaded object.

        Raises:
            AuthorizationFailure: Credentials rejected (no fallback).
            ExhaustedFailure: Every strategy failed otherwise.
            DownloadCancelled: ``cancel`` was set.
        """
        progress = _ProgressReporter(on_progress)
        progress.report(_INIT_PERCENT, "Initializing download...")
        logger.info("Downloading %s", locator)

        total = len(self._strategies)
        span = _STRATEGY_SPAN / total
        last_error: FetchError | None = None
        attempted = 0

        for index, strategy in enumerate(self._strategies):
            raise_if_cancelled(cancel)
            attempted += 1
            base = _INIT_PERCENT + index * span

            def checkpoint(
                step: float,
                message: str,
                url: str | None = None,
                *,
                _base: float = base,
            ) -> None:
                progress.report(_base + step * span, message, url)

            checkpoint(_STEP_TRYING, f"Trying {strategy.value} method...")
            try:
                result = self._attempt(
                    strategy, credentials, locator, checkpoint, cancel
                )
            except FetchError as e:
                if e.is_fatal:
                    logger.error(
                        "%s method failed, not trying other methods: %s",
                        strategy.value,
                        e,
                    )
                    raise
                logger.warning("%s method failed: %s", strategy.value, e)
                last_error = e
                continue

            progress.report(100, "Download completed", result.resolved_url)
            logger.info(
                "Downloaded %s using %s method (%d bytes, %s)",
                locator,
                strategy.value,
                result.size_bytes,
                result.content_type,
            )
            return result

        raise ExhaustedFailure(last_error, attempted=attempted, total=total)

    def _attempt(
        self,
        strategy: DownloadStrategy,
        credentials: Credentials,
        locator: ObjectLocator,
        checkpoint: Callable[..., None],
        cancel: threading.Event | None,
    ) -> DownloadResult:
        """Run one strategy, re-signing once if the timestamp is rejected."""
        label = _STRATEGY_LABELS[strategy]
        resigned = False

        while True:
            checkpoint(_STEP_SIGNING, f"Creating {label} request...")
            request = self._builders[strategy](credentials, locator)
            checkpoint(
                _STEP_REQUEST_SENT, f"Downloading via {label}...", request.url
            )
            response = self._fetcher.fetch(
                "GET",
                request.url,
                headers=request.headers,
                strategy=strategy,
                cancel=cancel,
            )
            if response.is_success:
                break

            error = classify_response(response, strategy)
            if isinstance(error, SignatureExpired) and not resigned:
                self._log_expired(strategy, response)
                resigned = True
                raise_if_cancelled(cancel)
                continue
            raise error

        checkpoint(
            _STEP_BODY_RECEIVED, "Processing downloaded data...", request.url
        )
        data = response.content
        content_type = (
            response.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE
        )
        return DownloadResult(
            data=data,
            content_type=content_type,
            size_bytes=len(data),
            resolved_url=request.url,
            strategy=strategy,
            warnings=self._validate(data, content_type),
        )

    def _validate(self, data: bytes, content_type: str) -> tuple[str, ...]:
        warnings: list[str] = []
        for validator in self._validators:
            warning = validator(data, content_type)
            if warning:
                logger.warning("Content validation: %s", warning)
                warnings.append(warning)
        return tuple(warnings)

    def _log_expired(
        self, strategy: DownloadStrategy, response: httpx.Response
    ) -> None:
        skew = clock_skew_minutes(
            response.headers.get("Date", ""), (self._clock or utc_now)()
        )
        if skew:
            logger.warning(
                "%s request rejected as expired; local clock is off by "
                "about %d minutes. Re-signing once.",
                strategy.value,
                skew,
            )
        else:
            logger.warning(
                "%s request rejected as expired; re-signing once",
                strategy.value,
            )

    def _presigned_request(
        self, credentials: Credentials, locator: ObjectLocator
    ) -> _SignedRequest:
        url = create_presigned_url(
            credentials,
            locator.bucket,
            locator.key,
            self._presign_ttl,
            clock=self._clock,
            endpoint=self._endpoint,
        )
        return _SignedRequest(url=url, headers={"Accept": _ACCEPT})

    def _header_signed_request(
        self, credentials: Credentials, locator: ObjectLocator
    ) -> _SignedRequest:
        headers = create_signed_headers(
            credentials,
            locator.bucket,
            locator.key,
            clock=self._clock,
            endpoint=self._endpoint,
        )
        headers["Accept"] = _ACCEPT
        url = object_url(
            locator.bucket, credentials.region, locator.key, self._endpoint
        )
        return _SignedRequest(url=url, headers=headers)
