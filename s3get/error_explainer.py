# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Human-readable explanations for download failures.

Turns the typed errors of ``s3get.errors`` into a one-line summary plus
troubleshooting steps that a UI can show next to a failed download.
Output never contains credentials or tracebacks.
"""

from __future__ import annotations

from dataclasses import dataclass

from s3get.errors import (
    AuthorizationFailure,
    DownloadCancelled,
    ExhaustedFailure,
    NotFoundFailure,
    SignatureExpired,
    TransportFailure,
)


@dataclass(frozen=True)
class Explanation:
    """User-facing failure description."""

    summary: str
    steps: tuple[str, ...] = ()

    def render(self) -> str:
        """Summary followed by a bulleted list of steps."""
        lines = [self.summary]
        lines.extend(f"- {step}" for step in self.steps)
        return "\n".join(lines)


def explain_failure(error: BaseException, bucket: str = "") -> Explanation:
    """Explain a download failure.

    Args:
        error: Exception raised by a download or signing call.
        bucket: Bucket name, used to make the summary specific.

    Returns:
        Summary and troubleshooting steps.
    """
    target = f"S3 bucket '{bucket}'" if bucket else "the S3 bucket"

    if isinstance(error, ExhaustedFailure):
        if error.last_error is not None:
            inner = explain_failure(error.last_error, bucket)
            return Explanation(
                f"{inner.summary} "
                f"(tried {error.attempted} of {error.total} methods)",
                inner.steps,
            )
        return Explanation(
            f"Failed to load document: {error}",
            ("Retry the download",),
        )

    # SignatureExpired is an AuthorizationFailure; check it first
    if isinstance(error, SignatureExpired):
        return Explanation(
            f"Request to {target} was rejected as expired",
            (
                "Synchronize the system clock (NTP)",
                "Retry the download to sign a fresh request",
            ),
        )
    if isinstance(error, AuthorizationFailure):
        return Explanation(
            f"Access denied to {target}",
            (
                "Verify IAM permissions for s3:GetObject",
                "Check bucket policy allows access",
                "Ensure bucket and file exist",
                "Verify CORS configuration on S3 bucket",
            ),
        )
    if isinstance(error, NotFoundFailure):
        return Explanation(
            f"File not found in {target}",
            (
                "Check the file name and folder path",
                "Verify the bucket name",
                "Verify the bucket region",
            ),
        )
    if isinstance(error, TransportFailure):
        return Explanation(
            f"Could not reach {target}",
            (
                "Check network connectivity",
                "Verify the bucket region (DNS name)",
                "Check firewall or proxy settings",
            ),
        )
    if isinstance(error, DownloadCancelled):
        return Explanation("Download cancelled")

    return Explanation(
        f"Failed to load document: {type(error).__name__}: {error}",
        ("Retry the download",),
    )
