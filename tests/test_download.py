# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for multi-strategy download with fallback."""

import threading
from collections.abc import Callable
from unittest.mock import MagicMock

import httpx
import pytest

from s3get.download import (
    DEFAULT_CONTENT_TYPE,
    StrategyDownloader,
    check_pdf_signature,
)
from s3get.errors import (
    AuthorizationFailure,
    DownloadCancelled,
    ExhaustedFailure,
    HttpStatusFailure,
    NotFoundFailure,
    ResponseFailure,
    SignatureExpired,
    TransportFailure,
)
from s3get.fetch import RetryingFetcher
from s3get.types import (
    Credentials,
    DownloadStrategy,
    ObjectLocator,
    ProgressEvent,
)


PDF = b"%PDF-1.7\n%\xe2\xe3\xcf\xd3\n1 0 obj\n"
LOCATOR = ObjectLocator("docs", "folder/My File (final).pdf")

EXPIRED_BODY = (
    b"<Error><Code>RequestTimeTooSkewed</Code>"
    b"<Message>The difference between the request time and the current "
    b"time is too large.</Message></Error>"
)


def _is_presigned(request: httpx.Request) -> bool:
    return "X-Amz-Signature" in request.url.params


def _is_header_signed(request: httpx.Request) -> bool:
    return "authorization" in request.headers


#: A response, an exception to raise, or a factory for streamed responses.
Answer = httpx.Response | Exception | Callable[[], httpx.Response]


class Recorder:
    """Handler that answers per strategy and records every request."""

    def __init__(
        self,
        presigned: list[Answer],
        header_signed: list[Answer] | None = None,
    ) -> None:
        self._responses = {
            DownloadStrategy.PRESIGNED: list(presigned),
            DownloadStrategy.HEADER_SIGNED: list(header_signed or []),
        }
        self.requests: list[tuple[DownloadStrategy, httpx.Request]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if _is_presigned(request):
            strategy = DownloadStrategy.PRESIGNED
        else:
            assert _is_header_signed(request)
            strategy = DownloadStrategy.HEADER_SIGNED
        self.requests.append((strategy, request))
        queue = self._responses[strategy]
        # Last entry repeats
        answer = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer()
        return httpx.Response(
            answer.status_code, headers=answer.headers, content=answer.content
        )

    @property
    def strategies(self) -> list[DownloadStrategy]:
        return [strategy for strategy, _ in self.requests]


def _pdf_response(
    content_type: str | None = "application/pdf",
) -> httpx.Response:
    headers = {"Content-Type": content_type} if content_type else {}
    return httpx.Response(200, content=PDF, headers=headers)


def _corrupt_gzip_response() -> httpx.Response:
    # Streamed so decoding fails inside client.send, not here
    return httpx.Response(
        200,
        headers={"Content-Encoding": "gzip"},
        stream=httpx.ByteStream(b"not gzip"),
    )


@pytest.fixture
def make_downloader(mock_client, frozen_clock):
    """Build a StrategyDownloader over a request handler, sleep mocked."""

    def factory(handler, **kwargs) -> StrategyDownloader:
        fetcher = RetryingFetcher(
            mock_client(handler), max_attempts=3, sleep=MagicMock()
        )
        return StrategyDownloader(fetcher, clock=frozen_clock, **kwargs)

    return factory


class TestCheckPdfSignature:
    """Tests for check_pdf_signature."""

    def test_valid_pdf(self) -> None:
        """A body starting with %PDF passes."""
        assert check_pdf_signature(PDF, "application/pdf") is None

    def test_pdf_with_parameters(self) -> None:
        """Media type parameters are ignored when matching."""
        warning = check_pdf_signature(b"<html>", "application/pdf; q=1")
        assert warning is not None
        assert "PDF signature" in warning

    def test_generic_binary_checked(self) -> None:
        """octet-stream bodies are expected to be PDFs too."""
        assert check_pdf_signature(b"PK\x03\x04", "binary/octet-stream")
        assert check_pdf_signature(PDF, "application/octet-stream") is None

    def test_other_types_skipped(self) -> None:
        """Non-PDF content types are not checked."""
        assert check_pdf_signature(b"hello", "text/plain") is None


class TestStrategyOrder:
    """Tests for fallback ordering and short-circuiting."""

    def test_presigned_success(self, make_downloader, credentials) -> None:
        """The first strategy succeeds and nothing else is tried."""
        recorder = Recorder([_pdf_response()])
        result = make_downloader(recorder).download(credentials, LOCATOR)

        assert recorder.strategies == [DownloadStrategy.PRESIGNED]
        assert result.strategy is DownloadStrategy.PRESIGNED
        assert result.data == PDF
        assert result.size_bytes == len(PDF)
        assert result.content_type == "application/pdf"
        assert result.warnings == ()
        assert "folder/My%20File%20%28final%29.pdf?" in result.resolved_url
        assert "X-Amz-Signature=" in result.resolved_url

        request = recorder.requests[0][1]
        assert request.method == "GET"
        assert request.url.host == "docs.s3.us-east-1.amazonaws.com"
        assert request.headers["Accept"] == "application/pdf,*/*"

    def test_falls_back_on_http_error(
        self, make_downloader, credentials
    ) -> None:
        """A 500 on the presigned URL falls back to signed headers."""
        recorder = Recorder([httpx.Response(500)], [_pdf_response()])
        result = make_downloader(recorder).download(credentials, LOCATOR)

        assert recorder.strategies == [
            DownloadStrategy.PRESIGNED,
            DownloadStrategy.HEADER_SIGNED,
        ]
        assert result.strategy is DownloadStrategy.HEADER_SIGNED
        assert "?" not in result.resolved_url

        request = recorder.requests[1][1]
        assert request.headers["Authorization"].startswith(
            "AWS4-HMAC-SHA256 Credential="
        )
        assert request.headers["X-Amz-Content-Sha256"] == "UNSIGNED-PAYLOAD"

    def test_falls_back_on_transport_failure(
        self, make_downloader, credentials
    ) -> None:
        """Presigned transport retries run out, then signed headers win."""
        recorder = Recorder([httpx.ConnectError("refused")], [_pdf_response()])
        result = make_downloader(recorder).download(credentials, LOCATOR)

        assert recorder.strategies == (
            [DownloadStrategy.PRESIGNED] * 3
            + [DownloadStrategy.HEADER_SIGNED]
        )
        assert result.strategy is DownloadStrategy.HEADER_SIGNED
        assert result.data == PDF

    def test_falls_back_on_undecodable_body(
        self, make_downloader, credentials
    ) -> None:
        """A corrupt gzip body on the presigned URL is not retried."""
        recorder = Recorder([_corrupt_gzip_response], [_pdf_response()])
        result = make_downloader(recorder).download(credentials, LOCATOR)

        assert recorder.strategies == [
            DownloadStrategy.PRESIGNED,
            DownloadStrategy.HEADER_SIGNED,
        ]
        assert result.strategy is DownloadStrategy.HEADER_SIGNED
        assert result.data == PDF

    def test_undecodable_bodies_exhaust_both(
        self, make_downloader, credentials
    ) -> None:
        """Unreadable responses end in ExhaustedFailure, not httpx errors."""
        recorder = Recorder([_corrupt_gzip_response], [_corrupt_gzip_response])
        with pytest.raises(ExhaustedFailure) as exc_info:
            make_downloader(recorder).download(credentials, LOCATOR)

        last_error = exc_info.value.last_error
        assert isinstance(last_error, ResponseFailure)
        assert last_error.strategy is DownloadStrategy.HEADER_SIGNED

    def test_authorization_failure_short_circuits(
        self, make_downloader, credentials
    ) -> None:
        """A 403 aborts without trying signed headers."""
        recorder = Recorder([httpx.Response(403)], [_pdf_response()])

        with pytest.raises(AuthorizationFailure) as exc_info:
            make_downloader(recorder).download(credentials, LOCATOR)

        assert recorder.strategies == [DownloadStrategy.PRESIGNED]
        assert exc_info.value.status_code == 403
        assert exc_info.value.strategy is DownloadStrategy.PRESIGNED

    def test_not_found_falls_back(self, make_downloader, credentials) -> None:
        """A 404 is not an authorization failure; fallback still runs."""
        recorder = Recorder([httpx.Response(404)], [_pdf_response()])
        result = make_downloader(recorder).download(credentials, LOCATOR)

        assert len(recorder.requests) == 2
        assert result.strategy is DownloadStrategy.HEADER_SIGNED

    def test_exhausted_carries_last_error(
        self, make_downloader, credentials
    ) -> None:
        """When every strategy fails, the last error is reported."""
        recorder = Recorder([httpx.Response(500)], [httpx.Response(404)])

        with pytest.raises(ExhaustedFailure) as exc_info:
            make_downloader(recorder).download(credentials, LOCATOR)

        error = exc_info.value
        assert isinstance(error.last_error, NotFoundFailure)
        assert error.last_error.strategy is DownloadStrategy.HEADER_SIGNED
        assert error.attempted == 2
        assert error.total == 2
        assert "tried 2 of 2" in str(error)

    def test_transport_failures_exhaust_both(
        self, make_downloader, credentials
    ) -> None:
        """Transport retries run per strategy before falling back."""
        recorder = Recorder(
            [httpx.ConnectError("refused")], [httpx.ConnectError("refused")]
        )

        with pytest.raises(ExhaustedFailure) as exc_info:
            make_downloader(recorder).download(credentials, LOCATOR)

        assert recorder.strategies == (
            [DownloadStrategy.PRESIGNED] * 3
            + [DownloadStrategy.HEADER_SIGNED] * 3
        )
        assert isinstance(exc_info.value.last_error, TransportFailure)

    def test_single_strategy(self, make_downloader, credentials) -> None:
        """A custom strategy list is honored."""
        recorder = Recorder([_pdf_response()], [_pdf_response()])
        downloader = make_downloader(
            recorder, strategies=[DownloadStrategy.HEADER_SIGNED]
        )
        result = downloader.download(credentials, LOCATOR)

        assert recorder.strategies == [DownloadStrategy.HEADER_SIGNED]
        assert result.strategy is DownloadStrategy.HEADER_SIGNED
        assert downloader.strategies == (DownloadStrategy.HEADER_SIGNED,)

    def test_no_strategies_rejected(self, mock_client) -> None:
        """An empty strategy list is a configuration error."""
        fetcher = RetryingFetcher(mock_client(MagicMock()))
        with pytest.raises(ValueError, match="strategy"):
            StrategyDownloader(fetcher, strategies=[])

    def test_exhausted_with_http_status(
        self, make_downloader, credentials
    ) -> None:
        """Non-fatal statuses on both strategies exhaust the list."""
        recorder = Recorder([httpx.Response(503)], [httpx.Response(502)])
        with pytest.raises(ExhaustedFailure) as exc_info:
            make_downloader(recorder).download(credentials, LOCATOR)
        assert isinstance(exc_info.value.last_error, HttpStatusFailure)
        assert exc_info.value.last_error.status_code == 502


class TestExpiredSignature:
    """Tests for the one-time re-sign on timestamp rejection."""

    def test_resigns_once_then_succeeds(
        self, make_downloader, credentials
    ) -> None:
        """A rejected timestamp is re-signed on the same strategy."""
        recorder = Recorder(
            [
                httpx.Response(
                    403,
                    content=EXPIRED_BODY,
                    headers={"Date": "Thu, 15 Jan 2026 12:50:45 GMT"},
                ),
                _pdf_response(),
            ]
        )
        result = make_downloader(recorder).download(credentials, LOCATOR)

        assert recorder.strategies == [DownloadStrategy.PRESIGNED] * 2
        assert result.strategy is DownloadStrategy.PRESIGNED

    def test_second_expiry_is_fatal(
        self, make_downloader, credentials
    ) -> None:
        """A second rejection aborts without trying other strategies."""
        recorder = Recorder(
            [httpx.Response(403, content=EXPIRED_BODY)], [_pdf_response()]
        )

        with pytest.raises(SignatureExpired) as exc_info:
            make_downloader(recorder).download(credentials, LOCATOR)

        assert recorder.strategies == [DownloadStrategy.PRESIGNED] * 2
        assert exc_info.value.code == "RequestTimeTooSkewed"

    def test_clock_skew_logged(
        self, make_downloader, credentials, caplog
    ) -> None:
        """The drift from the server Date header is logged."""
        recorder = Recorder(
            [
                httpx.Response(
                    403,
                    content=EXPIRED_BODY,
                    headers={"Date": "Thu, 15 Jan 2026 12:50:45 GMT"},
                ),
                _pdf_response(),
            ]
        )
        with caplog.at_level("WARNING", logger="s3get.download"):
            make_downloader(recorder).download(credentials, LOCATOR)
        assert "off by about 20 minutes" in caplog.text


class TestResultAndProgress:
    """Tests for result metadata and progress reporting."""

    def test_default_content_type(self, make_downloader, credentials) -> None:
        """Missing Content-Type defaults to application/pdf."""
        recorder = Recorder([_pdf_response(content_type=None)])
        result = make_downloader(recorder).download(credentials, LOCATOR)
        assert result.content_type == DEFAULT_CONTENT_TYPE

    def test_server_content_type_kept(
        self, make_downloader, credentials
    ) -> None:
        """A Content-Type from the server is reported as-is."""
        recorder = Recorder([_pdf_response("binary/octet-stream")])
        result = make_downloader(recorder).download(credentials, LOCATOR)
        assert result.content_type == "binary/octet-stream"

    def test_validation_warning_is_soft(
        self, make_downloader, credentials
    ) -> None:
        """Content that is not a PDF is returned with a warning."""
        recorder = Recorder(
            [
                httpx.Response(
                    200,
                    content=b"<html>login</html>",
                    headers={"Content-Type": "application/pdf"},
                )
            ]
        )
        result = make_downloader(recorder).download(credentials, LOCATOR)

        assert result.data == b"<html>login</html>"
        assert len(result.warnings) == 1

    def test_validation_disabled(self, make_downloader, credentials) -> None:
        """No validators means no warnings."""
        recorder = Recorder(
            [
                httpx.Response(
                    200,
                    content=b"not a pdf",
                    headers={"Content-Type": "application/pdf"},
                )
            ]
        )
        downloader = make_downloader(recorder, validators=())
        assert downloader.download(credentials, LOCATOR).warnings == ()

    def test_progress_monotonic_on_success(
        self, make_downloader, credentials
    ) -> None:
        """Progress starts at 5, never decreases and ends at 100."""
        events: list[ProgressEvent] = []
        recorder = Recorder([_pdf_response()])
        result = make_downloader(recorder).download(
            credentials,
            LOCATOR,
            lambda p, m, u: events.append(ProgressEvent(p, m, u)),
        )

        percents = [e.percent for e in events]
        assert percents[0] == 5
        assert percents[-1] == 100
        assert percents == sorted(percents)
        assert all(0 <= p <= 100 for p in percents)
        assert events[-1].url == result.resolved_url
        assert events[0].url is None

    def test_progress_monotonic_across_fallback(
        self, make_downloader, credentials
    ) -> None:
        """Falling back never moves progress backwards."""
        events: list[tuple[int, str, str | None]] = []
        recorder = Recorder([httpx.Response(500)], [_pdf_response()])
        make_downloader(recorder).download(
            credentials, LOCATOR, lambda *args: events.append(args)
        )

        percents = [p for p, _, _ in events]
        assert percents == sorted(percents)
        assert percents[-1] == 100
        messages = [m for _, m, _ in events]
        assert "Trying presigned method..." in messages
        assert "Trying header-signed method..." in messages

    def test_progress_without_completion_on_failure(
        self, make_downloader, credentials
    ) -> None:
        """A failed download never reports 100."""
        events: list[int] = []
        recorder = Recorder([httpx.Response(403)])
        with pytest.raises(AuthorizationFailure):
            make_downloader(recorder).download(
                credentials, LOCATOR, lambda p, m, u: events.append(p)
            )
        assert events
        assert max(events) < 100

    def test_secret_not_in_result(self, make_downloader, credentials) -> None:
        """The secret key never appears in the resolved URL."""
        recorder = Recorder([_pdf_response()])
        result = make_downloader(recorder).download(credentials, LOCATOR)
        assert credentials.secret_key not in result.resolved_url


class TestCancellation:
    """Tests for the cancel event."""

    def test_cancel_before_start(self, make_downloader, credentials) -> None:
        """A set event prevents any request."""
        recorder = Recorder([_pdf_response()])
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(DownloadCancelled):
            make_downloader(recorder).download(
                credentials, LOCATOR, cancel=cancel
            )
        assert recorder.requests == []

    def test_cancel_between_strategies(
        self, make_downloader, credentials
    ) -> None:
        """Cancelling during a failed strategy stops the fallback."""
        cancel = threading.Event()
        recorder = Recorder([httpx.Response(500)], [_pdf_response()])

        def handler(request: httpx.Request) -> httpx.Response:
            response = recorder(request)
            cancel.set()
            return response

        with pytest.raises(DownloadCancelled):
            make_downloader(handler).download(
                credentials, LOCATOR, cancel=cancel
            )
        assert recorder.strategies == [DownloadStrategy.PRESIGNED]

    def test_cancel_from_progress_callback(
        self, make_downloader, credentials
    ) -> None:
        """The progress callback can cancel before the request is sent."""
        cancel = threading.Event()
        recorder = Recorder([_pdf_response()])

        def on_progress(percent: int, message: str, url: str | None) -> None:
            if url is not None:
                cancel.set()

        with pytest.raises(DownloadCancelled):
            make_downloader(recorder).download(
                credentials, LOCATOR, on_progress, cancel=cancel
            )
        assert recorder.requests == []


def test_credentials_repr_hides_secret(credentials: Credentials) -> None:
    """Credentials never show the secret key in repr."""
    assert credentials.secret_key not in repr(credentials)
