# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""SigV4 signing and resilient retrieval of private S3 objects.

The library keeps no global state.  Applications that want log output
with secret keys redacted call ``s3get.logging.configure_logging`` from
their entry point::

    configure_logging(secrets=[downloader.credentials.secret_key])
"""

from s3get.client import SecureS3Downloader
from s3get.config import ConfigError, Settings
from s3get.diagnostics import ConnectionTester
from s3get.download import StrategyDownloader, check_pdf_signature
from s3get.error_explainer import Explanation, explain_failure
from s3get.errors import (
    AuthorizationFailure,
    DownloadCancelled,
    ExhaustedFailure,
    FailureKind,
    FetchError,
    HttpStatusFailure,
    NotFoundFailure,
    ResponseFailure,
    S3GetError,
    SignatureExpired,
    TransportFailure,
)
from s3get.fetch import RetryingFetcher, classify_response
from s3get.signers import create_presigned_url, create_signed_headers
from s3get.types import (
    DEFAULT_STRATEGIES,
    Credentials,
    CredentialsError,
    Diagnostic,
    DownloadResult,
    DownloadStrategy,
    ObjectLocator,
    ProgressEvent,
)


__all__ = [
    "DEFAULT_STRATEGIES",
    "AuthorizationFailure",
    "ConfigError",
    "ConnectionTester",
    "Credentials",
    "CredentialsError",
    "Diagnostic",
    "DownloadCancelled",
    "DownloadResult",
    "DownloadStrategy",
    "ExhaustedFailure",
    "Explanation",
    "FailureKind",
    "FetchError",
    "HttpStatusFailure",
    "NotFoundFailure",
    "ObjectLocator",
    "ProgressEvent",
    "ResponseFailure",
    "RetryingFetcher",
    "S3GetError",
    "SecureS3Downloader",
    "Settings",
    "SignatureExpired",
    "StrategyDownloader",
    "TransportFailure",
    "check_pdf_signature",
    "classify_response",
    "create_presigned_url",
    "create_signed_headers",
    "explain_failure",
]
