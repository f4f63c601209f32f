# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Read-only connectivity check for a bucket.

Two HEAD checks, first success wins:

1. Presigned HEAD on a sentinel key.  200 (exists) or 404 (absent, but
   the signature was accepted) proves the credentials.
2. Unsigned HEAD on the bucket root.  200 or 403 proves that DNS, region
   and the network path work; the anonymous request being refused is
   expected.

No content is downloaded and no check is retried.
"""

from __future__ import annotations

import logging

import httpx

from s3get.aws_signing import Clock
from s3get.signers import bucket_url, create_presigned_url
from s3get.types import Credentials, Diagnostic


logger = logging.getLogger(__name__)

#: Key checked by the presigned HEAD request.  It need not exist.
SENTINEL_KEY = "__connection_test__"

#: Lifetime of the check URL.
CHECK_TTL_SECONDS = 60

_PRESIGNED_OK = frozenset({200, 404})
_DIRECT_OK = frozenset({200, 403})


class ConnectionTester:
    """Classify whether credentials, network and bucket access work.

    Args:
        client: HTTP client used for the checks.
        clock: Time source for signing.
        endpoint: Optional endpoint template.
    """

    def __init__(
        self,
        client: httpx.Client,
        *,
        clock: Clock | None = None,
        endpoint: str | None = None,
    ) -> None:
        self._client = client
        self._clock = clock
        self._endpoint = endpoint

    def test(self, credentials: Credentials, bucket: str) -> Diagnostic:
        """Run both checks.  Never raises."""
        logger.info("Testing connection to bucket %s", bucket)

        status = self._check_presigned(credentials, bucket)
        if status in _PRESIGNED_OK:
            logger.info(
                "Pre-signed URL check returned %d; credentials valid", status
            )
            return Diagnostic(True, "AWS credentials valid (pre-signed URL)")

        status = self._check_direct(credentials, bucket)
        if status in _DIRECT_OK:
            logger.info(
                "Direct bucket check returned %d; setup valid", status
            )
            return Diagnostic(True, "AWS setup valid (direct access)")

        logger.warning("All connection test methods failed for %s", bucket)
        return Diagnostic(
            False,
            "Connection test failed: all connection test methods failed",
        )

    def _check_presigned(
        self, credentials: Credentials, bucket: str
    ) -> int | None:
        try:
            url = create_presigned_url(
                credentials,
                bucket,
                SENTINEL_KEY,
                CHECK_TTL_SECONDS,
                method="HEAD",
                clock=self._clock,
                endpoint=self._endpoint,
            )
            response = self._client.head(url)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.warning(
                "Pre-signed URL check failed: %s: %s", type(e).__name__, e
            )
            return None
        if response.status_code not in _PRESIGNED_OK:
            logger.warning(
                "Pre-signed URL check returned %d", response.status_code
            )
        return response.status_code

    def _check_direct(
        self, credentials: Credentials, bucket: str
    ) -> int | None:
        try:
            url = bucket_url(bucket, credentials.region, self._endpoint)
            response = self._client.head(url + "/")
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.warning(
                "Direct bucket check failed: %s: %s", type(e).__name__, e
            )
            return None
        if response.status_code not in _DIRECT_OK:
            logger.warning(
                "Direct bucket check returned %d", response.status_code
            )
        return response.status_code
