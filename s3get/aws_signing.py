# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""AWS Signature Version 4 primitives for S3 GET/HEAD requests.

Provides the building blocks used by the presigned-URL and header
signers:

- Object key canonicalization (``encode_key``)
- Request timestamps and credential scope (``new_signing_context``)
- Signing key derivation (four-stage HMAC-SHA256 chain)
- Canonical request, string-to-sign and final signature

Only unsigned payloads are supported (``UNSIGNED-PAYLOAD``); requests
never carry a body.
"""

from __future__ import annotations

import hashlib
import hmac
import urllib.parse
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

from s3get.types import S3_SERVICE, SCOPE_TERMINATOR, SigningContext


ALGORITHM = "AWS4-HMAC-SHA256"

#: Payload hash marker: body not covered by the signature.
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"

_AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"

_AWS_UNRESERVED = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_.~"
)

#: Zero-argument callable returning the current time.
Clock = Callable[[], datetime]


# ---------------------------------------------------------------------------
# URI encoding (AWS-specific RFC 3986 subset)
# ---------------------------------------------------------------------------


def _uri_encode(value: str, *, encode_slash: bool = True) -> str:
    """URI-encode a value using AWS's specific rules.

    - Unreserved characters are not encoded: A-Z, a-z, 0-9, -, _, ., ~
    - Every other UTF-8 byte is percent-encoded as %XX (uppercase hex)
    - Forward slashes (/) are optionally preserved

    Args:
        value: String to encode.
        encode_slash: If True, encode '/'; if False, preserve '/'.

    Returns:
        URI-encoded string.
    """
    result: list[str] = []
    for byte in value.encode("utf-8", "surrogatepass"):
        ch = chr(byte)
        if ch in _AWS_UNRESERVED:
            result.append(ch)
        elif ch == "/" and not encode_slash:
            result.append("/")
        else:
            result.append(f"%{byte:02X}")
    return "".join(result)


def encode_key(key: str) -> str:
    """Canonicalize an object key into the path S3 signs against.

    The key may arrive raw (``My File.pdf``) or already percent-encoded
    (``My%20File.pdf``); it is decoded first so both forms produce the
    same output.  A key whose escapes do not decode to valid UTF-8 is
    used as-is.  Each ``/``-separated segment is then encoded on its own,
    which escapes ``! ' ( ) * [ ] { } # ? & = +`` and turns spaces into
    ``%20``.

    Args:
        key: Logical object key.

    Returns:
        Encoded key without a leading slash.  Never raises.
    """
    try:
        decoded = urllib.parse.unquote(key, errors="strict")
    except UnicodeDecodeError:
        decoded = key
    return "/".join(_uri_encode(part) for part in decoded.split("/"))


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def utc_now() -> datetime:
    """Default clock: wall-clock time in UTC."""
    return datetime.now(UTC)


def amz_timestamps(now: datetime | None = None) -> tuple[str, str]:
    """Format the two SigV4 timestamps.

    Args:
        now: Time to format.  Naive datetimes are taken as UTC.  Defaults
            to the current time.

    Returns:
        Tuple of (``YYYYMMDDThhmmssZ``, ``YYYYMMDD``).
    """
    if now is None:
        now = utc_now()
    elif now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    else:
        now = now.astimezone(UTC)
    timestamp = now.strftime(_AMZ_DATE_FORMAT)
    return timestamp, timestamp[:8]


def new_signing_context(
    region: str,
    clock: Clock | None = None,
    *,
    service: str = S3_SERVICE,
) -> SigningContext:
    """Mint a fresh signing context for one request.

    Args:
        region: Bucket region.
        clock: Time source.  Defaults to ``utc_now``.
        service: Service name for the credential scope.
    """
    timestamp, date_stamp = amz_timestamps((clock or utc_now)())
    return SigningContext(
        timestamp=timestamp,
        date_stamp=date_stamp,
        region=region,
        service=service,
    )


def clock_skew_minutes(
    server_date: str, now: datetime | None = None
) -> int | None:
    """Minutes between an HTTP ``Date`` header and the local clock.

    Args:
        server_date: Value of the response ``Date`` header.
        now: Local time.  Defaults to the current time.

    Returns:
        Absolute drift in whole minutes, or None if the header cannot be
        parsed.
    """
    try:
        server_time = parsedate_to_datetime(server_date)
    except (TypeError, ValueError):
        return None
    if server_time.tzinfo is None:
        server_time = server_time.replace(tzinfo=UTC)
    local = now or utc_now()
    if local.tzinfo is None:
        local = local.replace(tzinfo=UTC)
    return int(abs((local - server_time).total_seconds()) / 60)


# ---------------------------------------------------------------------------
# Canonical request construction
# ---------------------------------------------------------------------------


def canonical_query_string(params: Mapping[str, str]) -> str:
    """Build canonical query string.

    Names and values are URI-encoded (slashes included), then sorted by
    encoded name and value.  The same string is used on the wire, so the
    server recomputes exactly what was signed.

    Args:
        params: Query parameters.

    Returns:
        Canonical query string (without leading ?).
    """
    encoded = sorted(
        (_uri_encode(name), _uri_encode(value))
        for name, value in params.items()
    )
    return "&".join(f"{name}={value}" for name, value in encoded)


def signed_header_names(names: Iterable[str]) -> str:
    """Lowercase, sort and join header names with ``;``."""
    return ";".join(sorted({name.lower() for name in names}))


def canonical_headers_string(
    headers: Mapping[str, str], signed_headers_list: Iterable[str]
) -> str:
    """Build canonical headers string.

    Args:
        headers: Request headers (name -> value).
        signed_headers_list: Signed header names.

    Returns:
        Canonical headers string (each line: "name:value" + newline).
    """
    lower_headers = {name.lower(): value for name, value in headers.items()}

    lines: list[str] = []
    for name in sorted({n.lower() for n in signed_headers_list}):
        value = lower_headers.get(name, "")
        # Trim leading/trailing whitespace, collapse sequential spaces
        trimmed = " ".join(value.split())
        lines.append(f"{name}:{trimmed}\n")

    return "".join(lines)


def build_canonical_request(
    method: str,
    canonical_uri: str,
    query: Mapping[str, str],
    headers: Mapping[str, str],
    signed_headers: Iterable[str],
    payload_hash: str = UNSIGNED_PAYLOAD,
) -> str:
    """Build the canonical request string.

    Args:
        method: HTTP method.
        canonical_uri: Encoded request path, starting with ``/``.
        query: Query parameters to sign (``X-Amz-Signature`` excluded).
        headers: Request headers.
        signed_headers: Names of the headers covered by the signature.
        payload_hash: Payload hash marker.

    Returns:
        Canonical request string.
    """
    names = list(signed_headers)
    return "\n".join(
        [
            method.upper(),
            canonical_uri or "/",
            canonical_query_string(query),
            canonical_headers_string(headers, names),
            signed_header_names(names),
            payload_hash,
        ]
    )


# ---------------------------------------------------------------------------
# SigV4 signing
# ---------------------------------------------------------------------------


def _hmac_sha256(key: bytes, msg: str | bytes) -> bytes:
    """HMAC-SHA256 helper."""
    if isinstance(msg, str):
        msg = msg.encode("utf-8")
    return hmac.new(key, msg, hashlib.sha256).digest()


def derive_signing_key(
    secret_key: str, date_stamp: str, region: str, service: str = S3_SERVICE
) -> bytes:
    """Derive the SigV4 signing key.

    Each stage feeds its raw digest (not hex) into the next as the key.

    Args:
        secret_key: Secret access key.
        date_stamp: Date string (YYYYMMDD).
        region: Region name.
        service: Service name.

    Returns:
        Derived 32-byte signing key.
    """
    k_date = _hmac_sha256(("AWS4" + secret_key).encode("utf-8"), date_stamp)
    k_region = _hmac_sha256(k_date, region)
    k_service = _hmac_sha256(k_region, service)
    return _hmac_sha256(k_service, SCOPE_TERMINATOR)


def build_string_to_sign(
    timestamp: str, scope: str, canonical_request: str
) -> str:
    """Build the SigV4 string to sign.

    Args:
        timestamp: Compact ISO8601 timestamp.
        scope: Credential scope (date/region/service/aws4_request).
        canonical_request: The canonical request string.
    """
    return "\n".join(
        [
            ALGORITHM,
            timestamp,
            scope,
            hashlib.sha256(canonical_request.encode("utf-8")).hexdigest(),
        ]
    )


def sign(signing_key: bytes, string_to_sign: str) -> str:
    """Hex-encoded HMAC-SHA256 of the string to sign."""
    return hmac.new(
        signing_key, string_to_sign.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def compute_signature(
    secret_key: str, context: SigningContext, canonical_request: str
) -> str:
    """Sign a canonical request within the given context.

    Args:
        secret_key: Secret access key.
        context: Signing context minted for this request.
        canonical_request: Output of ``build_canonical_request``.

    Returns:
        64-character hex signature.
    """
    signing_key = derive_signing_key(
        secret_key, context.date_stamp, context.region, context.service
    )
    string_to_sign = build_string_to_sign(
        context.timestamp, context.credential_scope, canonical_request
    )
    return sign(signing_key, string_to_sign)
