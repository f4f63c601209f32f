# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures used across multiple test modules."""

from collections.abc import Callable, Iterator
from datetime import UTC, datetime

import httpx
import pytest

from s3get.logging import SecretFilter
from s3get.types import Credentials
from tests.vectors import S3_ACCESS_KEY_ID, S3_REGION, S3_SECRET_ACCESS_KEY


#: Fixed signing time for deterministic signatures.
FROZEN_TIME = datetime(2026, 1, 15, 12, 30, 45, tzinfo=UTC)

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture(autouse=True)
def _clear_registered_secrets() -> Iterator[None]:
    """Keep SecretFilter's class-level registry isolated per test."""
    SecretFilter.clear_secrets()
    yield
    SecretFilter.clear_secrets()


@pytest.fixture
def frozen_clock() -> Callable[[], datetime]:
    """Clock that always returns FROZEN_TIME."""
    return lambda: FROZEN_TIME


@pytest.fixture
def credentials() -> Credentials:
    """AWS documentation example credentials in us-east-1."""
    return Credentials(S3_ACCESS_KEY_ID, S3_SECRET_ACCESS_KEY, S3_REGION)


@pytest.fixture
def mock_client() -> Iterator[Callable[[Handler], httpx.Client]]:
    """Factory for httpx clients backed by a request handler.

    Clients created through the factory are closed after the test.
    """
    clients: list[httpx.Client] = []

    def factory(handler: Handler) -> httpx.Client:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.close()
