"""Shared pytest fixtures for retrying client tests.

This module provides reusable fixtures for:
- Executors with recorded (never real) sleeps
- Clients over stub transports that count attempts
- httpx-backed transports over ``httpx.MockTransport``
- Environment isolation for settings
"""

from __future__ import annotations

import os
from collections.abc import Callable

import httpx
import pytest

from retrying_client.client import AsyncRetryingHttpClient, RetryingHttpClient
from retrying_client.tenacity_retry import RetryExecutor
from retrying_client.transport import AsyncHttpxTransport, HttpxTransport
from tests.doubles import AsyncStubTransport, Step, StubTransport

type Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop ``RETRYING_CLIENT_*`` variables so settings start from defaults."""
    for key in list(os.environ):
        if key.startswith("RETRYING_CLIENT_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def sleeps() -> list[float]:
    """Waits requested by the executor, in order."""
    return []


@pytest.fixture
def executor(sleeps: list[float]) -> RetryExecutor:
    """Executor that records waits instead of sleeping."""

    async def _async_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return RetryExecutor(sleep=sleeps.append, async_sleep=_async_sleep)


@pytest.fixture
def stub_client(
    executor: RetryExecutor,
) -> Callable[..., tuple[RetryingHttpClient, StubTransport]]:
    """Factory building a client over a :class:`StubTransport` replaying ``steps``."""

    def _build(*steps: Step) -> tuple[RetryingHttpClient, StubTransport]:
        transport = StubTransport(*steps)
        return RetryingHttpClient(transport, executor=executor), transport

    return _build


@pytest.fixture
def async_stub_client(
    executor: RetryExecutor,
) -> Callable[..., tuple[AsyncRetryingHttpClient, AsyncStubTransport]]:
    """Factory building an async client over an :class:`AsyncStubTransport`."""

    def _build(*steps: Step) -> tuple[AsyncRetryingHttpClient, AsyncStubTransport]:
        transport = AsyncStubTransport(*steps)
        return AsyncRetryingHttpClient(transport, executor=executor), transport  # type: ignore[arg-type]

    return _build


@pytest.fixture
def mock_transport() -> Callable[[Handler], HttpxTransport]:
    """Factory wrapping a request handler in an :class:`HttpxTransport`."""

    def _build(handler: Handler) -> HttpxTransport:
        return HttpxTransport(httpx.Client(transport=httpx.MockTransport(handler)))

    return _build


@pytest.fixture
def async_mock_transport() -> Callable[[Handler], AsyncHttpxTransport]:
    """Factory wrapping a request handler in an :class:`AsyncHttpxTransport`."""

    def _build(handler: Handler) -> AsyncHttpxTransport:
        return AsyncHttpxTransport(httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    return _build
