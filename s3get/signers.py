# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Presigned-URL and Authorization-header signers for S3 objects.

Both signers authenticate the same credentials for the same object.
The presigned URL carries its proof in the query string; the header
form is the fallback for paths where proxies strip or rewrite query
strings.  Each call mints its own ``SigningContext``.
"""

from __future__ import annotations

import logging
import urllib.parse

from s3get.aws_signing import (
    ALGORITHM,
    UNSIGNED_PAYLOAD,
    Clock,
    build_canonical_request,
    canonical_query_string,
    compute_signature,
    encode_key,
    new_signing_context,
    signed_header_names,
)
from s3get.types import Credentials


logger = logging.getLogger(__name__)

#: Virtual-hosted style endpoint.  ``{bucket}`` and ``{region}`` are
#: substituted; S3-compatible services can pass their own template.
DEFAULT_ENDPOINT = "https://{bucket}.s3.{region}.amazonaws.com"

#: Default presigned URL lifetime.
DEFAULT_PRESIGN_TTL = 3600

#: Longest lifetime S3 accepts for a SigV4 presigned URL (7 days).
MAX_PRESIGN_TTL = 604800

_PRESIGN_SIGNED_HEADERS = ("host",)
_HEADER_SIGNED_HEADERS = ("host", "x-amz-date")


def bucket_url(bucket: str, region: str, endpoint: str | None = None) -> str:
    """Return the bucket root URL without a trailing slash."""
    template = endpoint or DEFAULT_ENDPOINT
    return template.format(bucket=bucket, region=region).rstrip("/")


def object_url(
    bucket: str, region: str, key: str, endpoint: str | None = None
) -> str:
    """Return the absolute, unsigned URL of an object.

    Args:
        bucket: Bucket name.
        region: Bucket region.
        key: Logical (unencoded or encoded) object key.
        endpoint: Optional endpoint template.
    """
    return f"{bucket_url(bucket, region, endpoint)}/{encode_key(key)}"


def create_presigned_url(
    credentials: Credentials,
    bucket: str,
    key: str,
    ttl_seconds: int = DEFAULT_PRESIGN_TTL,
    *,
    method: str = "GET",
    clock: Clock | None = None,
    endpoint: str | None = None,
) -> str:
    """Create a self-authenticating URL for an object.

    Only the ``host`` header is signed and the payload is unsigned.
    Expiry is not checked locally: an expired URL is rejected by the
    server.

    Args:
        credentials: Access key pair and region.
        bucket: Bucket name.
        key: Object key.
        ttl_seconds: URL lifetime (``X-Amz-Expires``).
        method: HTTP method the URL will be used with.
        clock: Time source (for deterministic signing in tests).
        endpoint: Optional endpoint template.

    Returns:
        Absolute presigned URL.

    Raises:
        ValueError: If ``ttl_seconds`` is outside 1..604800.
    """
    if not 1 <= ttl_seconds <= MAX_PRESIGN_TTL:
        raise ValueError(
            f"ttl_seconds must be between 1 and {MAX_PRESIGN_TTL}, "
            f"got {ttl_seconds}"
        )

    url = object_url(bucket, credentials.region, key, endpoint)
    parts = urllib.parse.urlsplit(url)
    context = new_signing_context(credentials.region, clock)

    query = {
        "X-Amz-Algorithm": ALGORITHM,
        "X-Amz-Credential": (
            f"{credentials.access_key}/{context.credential_scope}"
        ),
        "X-Amz-Date": context.timestamp,
        "X-Amz-Expires": str(ttl_seconds),
        "X-Amz-SignedHeaders": signed_header_names(_PRESIGN_SIGNED_HEADERS),
    }
    creq = build_canonical_request(
        method,
        parts.path,
        query,
        {"host": parts.netloc},
        _PRESIGN_SIGNED_HEADERS,
        UNSIGNED_PAYLOAD,
    )
    signature = compute_signature(credentials.secret_key, context, creq)

    presigned = (
        f"{url}?{canonical_query_string(query)}&X-Amz-Signature={signature}"
    )
    logger.debug(
        "Created presigned %s URL for s3://%s/%s (length %d)",
        method,
        bucket,
        key,
        len(presigned),
    )
    return presigned


def create_signed_headers(
    credentials: Credentials,
    bucket: str,
    key: str,
    *,
    method: str = "GET",
    clock: Clock | None = None,
    endpoint: str | None = None,
) -> dict[str, str]:
    """Create SigV4 Authorization headers for a request to an object.

    Signs ``host`` and ``x-amz-date``.  The request must be sent to
    ``object_url(...)`` with the same endpoint.

    Returns:
        ``Authorization``, ``X-Amz-Date`` and ``X-Amz-Content-Sha256``
        headers.
    """
    url = object_url(bucket, credentials.region, key, endpoint)
    parts = urllib.parse.urlsplit(url)
    context = new_signing_context(credentials.region, clock)

    signed = signed_header_names(_HEADER_SIGNED_HEADERS)
    creq = build_canonical_request(
        method,
        parts.path,
        {},
        {"host": parts.netloc, "x-amz-date": context.timestamp},
        _HEADER_SIGNED_HEADERS,
        UNSIGNED_PAYLOAD,
    )
    signature = compute_signature(credentials.secret_key, context, creq)

    return {
        "Authorization": (
            f"{ALGORITHM} "
            f"Credential={credentials.access_key}/{context.credential_scope}, "
            f"SignedHeaders={signed}, "
            f"Signature={signature}"
        ),
        "X-Amz-Date": context.timestamp,
        "X-Amz-Content-Sha256": UNSIGNED_PAYLOAD,
    }
