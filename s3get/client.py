# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Credential-bound client for private S3 objects.

``SecureS3Downloader`` wires the signers, ``RetryingFetcher``,
``StrategyDownloader`` and ``ConnectionTester`` to one ``httpx.Client``.
The client is safe to share between threads; each call is independent.
"""

from __future__ import annotations

import logging
import threading
from types import TracebackType

import httpx

from s3get.aws_signing import Clock
from s3get.config import Settings
from s3get.diagnostics import ConnectionTester
from s3get.dotenv_loader import load_dotenv_once
from s3get.download import DEFAULT_VALIDATORS, StrategyDownloader
from s3get.fetch import RetryingFetcher
from s3get.signers import create_presigned_url
from s3get.types import (
    Credentials,
    Diagnostic,
    DownloadResult,
    ObjectLocator,
    ProgressCallback,
)


logger = logging.getLogger(__name__)


class SecureS3Downloader:
    """Download, presign and test access for one set of credentials.

    Args:
        access_key: Access key ID.
        secret_key: Secret access key.
        region: Bucket region.
        settings: Tunables; defaults to ``Settings()``.
        http_client: Client to borrow.  When omitted, one is created
            with the configured timeout and closed by ``close()``.
        clock: Time source for signing (tests).
    """

    def __init__(
        self,
        access_key: str,
        secret_key: str,
        region: str,
        *,
        settings: Settings | None = None,
        http_client: httpx.Client | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.credentials = Credentials(access_key, secret_key, region)
        self.settings = settings or Settings()
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            timeout=self.settings.timeout_seconds
        )
        self._clock = clock

        fetcher = RetryingFetcher(
            self._client,
            max_attempts=self.settings.max_attempts,
            backoff_seconds=self.settings.backoff_seconds,
        )
        self._downloader = StrategyDownloader(
            fetcher,
            clock=clock,
            endpoint=self.settings.endpoint,
            presign_ttl=self.settings.presign_ttl_seconds,
            validators=DEFAULT_VALIDATORS if self.settings.validate_pdf else (),
        )
        self._tester = ConnectionTester(
            self._client, clock=clock, endpoint=self.settings.endpoint
        )

    @classmethod
    def from_env(
        cls, *, http_client: httpx.Client | None = None
    ) -> SecureS3Downloader:
        """Build a client from ``AWS_*`` and ``S3GET_*`` variables.

        ``.env`` files are loaded first (see ``s3get.dotenv_loader``).

        Raises:
            CredentialsError: If credentials are missing.
            ConfigError: If a setting is invalid.
        """
        load_dotenv_once()
        credentials = Credentials.from_env()
        return cls(
            credentials.access_key,
            credentials.secret_key,
            credentials.region,
            settings=Settings.from_env(),
            http_client=http_client,
        )

    def __repr__(self) -> str:
        return (
            f"SecureS3Downloader(access_key={self.credentials.access_key!r}, "
            f"region={self.credentials.region!r})"
        )

    def download_file(
        self,
        bucket: str,
        key: str,
        on_progress: ProgressCallback | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> DownloadResult:
        """Download ``s3://bucket/key``.

        See ``StrategyDownloader.download`` for the fallback rules and
        raised errors.
        """
        return self._downloader.download(
            self.credentials,
            ObjectLocator(bucket, key),
            on_progress,
            cancel=cancel,
        )

    def test_connection(self, bucket: str) -> Diagnostic:
        """Check credentials and network access for a bucket."""
        return self._tester.test(self.credentials, bucket)

    def generate_presigned_url(
        self, bucket: str, key: str, ttl_seconds: int | None = None
    ) -> str:
        """Create a presigned GET URL.

        ``ttl_seconds`` defaults to ``settings.presign_ttl_seconds``.
        """
        if ttl_seconds is None:
            ttl_seconds = self.settings.presign_ttl_seconds
        return create_presigned_url(
            self.credentials,
            bucket,
            key,
            ttl_seconds,
            clock=self._clock,
            endpoint=self.settings.endpoint,
        )

    def close(self) -> None:
        """Close the HTTP client if this object created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> SecureS3Downloader:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
