"""Tests for retrying_client.client module.

Tests verify:
- get performs exactly one transport attempt
- get_with_retries resolves policies by name and retries transparently
- get_decoded raises UnacceptableResponseError on non-accepted terminal statuses
- Policies registered under a name override the default for that call only
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

import httpx
import msgspec
import pytest

from retrying_client import make_client
from retrying_client.client import AsyncRetryingHttpClient, RetryingHttpClient
from retrying_client.errors import (
    ConnectionFailedError,
    DecodeError,
    RetryAbortedError,
    TransportError,
    TransportTimeoutError,
    UnacceptableResponseError,
)
from retrying_client.policy import RetryPolicy, RetryPolicyRegistry, StatusNotIn
from retrying_client.request import RequestDescriptor, Success
from retrying_client.settings import load_settings
from tests.doubles import AsyncStubTransport, StubTransport

if TYPE_CHECKING:
    from pathlib import Path

    from retrying_client.tenacity_retry import RetryExecutor
    from retrying_client.transport import HttpxTransport

type StubClientFactory = Callable[..., tuple[RetryingHttpClient, StubTransport]]

DESCRIPTOR = RequestDescriptor("http://localhost:8080/my/resource")


class Dummy(msgspec.Struct):
    """Payload type used by decode tests."""

    id: int


class TestGet:
    """Tests for single-attempt get."""

    def test_single_attempt(self, stub_client: StubClientFactory) -> None:
        """get performs one attempt even for a retryable status."""
        client, transport = stub_client(503)
        assert client.get(DESCRIPTOR).status_code == 503
        assert transport.calls == 1

    def test_forwards_descriptor(self, stub_client: StubClientFactory) -> None:
        """The descriptor's fields reach the transport unchanged."""
        client, transport = stub_client(200)
        descriptor = RequestDescriptor(
            "http://localhost/items",
            accepted_type="text/csv",
            headers={"X-Trace": "1"},
            query_params={"page": "3"},
        )
        client.get(descriptor)
        assert transport.requests == [
            {
                "method": "GET",
                "uri": "http://localhost/items",
                "headers": {"X-Trace": "1"},
                "query_params": {"page": "3"},
                "accepted_type": "text/csv",
            }
        ]

    def test_transport_error_propagates(self, stub_client: StubClientFactory) -> None:
        """get does not retry or wrap transport errors."""
        client, _ = stub_client(ConnectionFailedError("refused"))
        with pytest.raises(ConnectionFailedError):
            client.get(DESCRIPTOR)


class TestGetWithRetries:
    """Tests for get_with_retries."""

    def test_retries_until_accepted(self, stub_client: StubClientFactory) -> None:
        """300, 500 then 200 returns the 200 outcome after three attempts."""
        client, transport = stub_client(300, 500, 200)
        outcome = client.get_with_retries(DESCRIPTOR)
        assert outcome.status_code == 200
        assert transport.calls == 3

    def test_redirects_returned_after_exhaustion(self, stub_client: StubClientFactory) -> None:
        """An always-301 upstream yields the 301 outcome, not an error."""
        client, transport = stub_client(301)
        outcome = client.get_with_retries(DESCRIPTOR)
        assert outcome.status_code == 301
        assert transport.calls == 3

    def test_connection_refused_propagates_same_type(self, stub_client: StubClientFactory) -> None:
        """An always-refusing upstream propagates the connection error after exhaustion."""
        client, transport = stub_client(ConnectionFailedError("refused"))
        with pytest.raises(ConnectionFailedError):
            client.get_with_retries(DESCRIPTOR)
        assert transport.calls == 3

    def test_timeout_aborts(self, stub_client: StubClientFactory) -> None:
        """Timeouts are not retried by the default policy."""
        client, transport = stub_client(TransportTimeoutError("slow"))
        with pytest.raises(RetryAbortedError) as excinfo:
            client.get_with_retries(DESCRIPTOR)
        assert isinstance(excinfo.value.cause, TransportTimeoutError)
        assert transport.calls == 1

    def test_default_waits(self, stub_client: StubClientFactory, sleeps: list[float]) -> None:
        """The default policy waits two seconds between attempts."""
        client, _ = stub_client(503)
        client.get_with_retries(DESCRIPTOR)
        assert sleeps == [2.0, 2.0]

    def test_named_policy_overrides_for_that_call_only(
        self, stub_client: StubClientFactory
    ) -> None:
        """A custom policy applies when named; default-name calls are unaffected."""
        client, transport = stub_client(400)
        client.register_policy(
            "strict",
            RetryPolicy.fixed(
                "strict", max_attempts=2, wait=0.0, retry_on_outcome=StatusNotIn(frozenset({200}))
            ),
        )

        assert client.get_with_retries(DESCRIPTOR, "strict").status_code == 400
        assert transport.calls == 2

        assert client.get_with_retries(DESCRIPTOR).status_code == 400
        assert transport.calls == 3

    @pytest.mark.parametrize("name", [None, "", "  ", "unregistered"])
    def test_unknown_names_use_default(self, stub_client: StubClientFactory, name: str | None) -> None:
        """Blank and unknown policy names fall back to the default policy."""
        client, transport = stub_client(503)
        client.get_with_retries(DESCRIPTOR, name)
        assert transport.calls == 3

    def test_default_from_settings(self, executor: RetryExecutor) -> None:
        """The default policy is derived from settings."""
        settings = load_settings(default_policy={"max_attempts": 5, "wait_s": 0.5})
        transport = StubTransport(503)
        client = RetryingHttpClient(transport, executor=executor, settings=settings)
        client.get_with_retries(DESCRIPTOR)
        assert transport.calls == 5

    def test_injected_registry(self, executor: RetryExecutor) -> None:
        """An injected registry is used as-is."""
        registry = RetryPolicyRegistry(RetryPolicy.fixed("default", max_attempts=1, wait=0))
        transport = StubTransport(503)
        client = RetryingHttpClient(transport, executor=executor, registry=registry)
        client.get_with_retries(DESCRIPTOR)
        assert transport.calls == 1
        assert client.registry is registry


class TestGetDecoded:
    """Tests for get_decoded."""

    def test_decodes_accepted_body(self, stub_client: StubClientFactory) -> None:
        """An accepted JSON body decodes into the requested type."""
        client, _ = stub_client(Success(200, body=b'{"id": 7}', content_type="application/json"))
        assert client.get_decoded(DESCRIPTOR, Dummy) == Dummy(id=7)

    def test_terminal_400_raises_without_retry(self, stub_client: StubClientFactory) -> None:
        """A 400 fails with UnacceptableResponseError carrying the outcome, with zero retries."""
        client, transport = stub_client(Success(400, body=b"bad request"))
        with pytest.raises(UnacceptableResponseError) as excinfo:
            client.get_decoded(DESCRIPTOR, Dummy)
        assert transport.calls == 1
        assert excinfo.value.status_code == 400
        assert excinfo.value.outcome.body == b"bad request"

    def test_exhausted_status_raises(self, stub_client: StubClientFactory) -> None:
        """A retryable status that never clears fails after exhaustion."""
        client, transport = stub_client(503)
        with pytest.raises(UnacceptableResponseError):
            client.get_decoded(DESCRIPTOR, Dummy)
        assert transport.calls == 3

    def test_decode_error_not_retried(self, stub_client: StubClientFactory) -> None:
        """A malformed accepted body raises DecodeError after one attempt."""
        client, transport = stub_client(Success(200, body=b"{", content_type="application/json"))
        with pytest.raises(DecodeError):
            client.get_decoded(DESCRIPTOR, Dummy)
        assert transport.calls == 1


class TestGetDecodedOnce:
    """Tests for single-attempt decoding."""

    def test_decodes_without_retry(self, stub_client: StubClientFactory) -> None:
        """An accepted body is decoded after one attempt."""
        client, transport = stub_client(
            Success(200, body=b'{"id": 3}', content_type="application/json")
        )
        assert client.get_decoded_once(DESCRIPTOR, Dummy) == Dummy(id=3)
        assert transport.calls == 1

    def test_retryable_status_not_retried(self, stub_client: StubClientFactory) -> None:
        """A 503 fails immediately with the outcome attached."""
        client, transport = stub_client(503, 200)
        with pytest.raises(UnacceptableResponseError) as excinfo:
            client.get_decoded_once(DESCRIPTOR, Dummy)
        assert excinfo.value.status_code == 503
        assert transport.calls == 1

    def test_transport_error_not_wrapped(self, stub_client: StubClientFactory) -> None:
        """Transport errors propagate unchanged."""
        client, _ = stub_client(ConnectionFailedError("refused"))
        with pytest.raises(ConnectionFailedError):
            client.get_decoded_once(DESCRIPTOR, Dummy)


class TestClientLifecycle:
    """Tests for transport ownership."""

    def test_injected_transport_not_closed(self, stub_client: StubClientFactory) -> None:
        """The client leaves an injected transport to its owner."""
        client, transport = stub_client(200)
        with client:
            client.get(DESCRIPTOR)
        assert transport.closed is False

    def test_owned_transport_closed(self, executor: RetryExecutor) -> None:
        """A client that built its transport closes it."""
        client = RetryingHttpClient(executor=executor)
        client.close()
        assert client.transport._client.is_closed  # type: ignore[attr-defined]  # noqa: SLF001 - ownership check


class TestOverHttpx:
    """End-to-end through the httpx transport."""

    def test_retry_over_mock_transport(
        self,
        executor: RetryExecutor,
        mock_transport: Callable[[Callable[[httpx.Request], httpx.Response]], HttpxTransport],
    ) -> None:
        """httpx responses flow through the retry loop and decoder."""
        statuses = iter([503, 200])

        def _handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Accept"] == "application/json"
            status = next(statuses)
            return httpx.Response(status, json={"id": status})

        client = RetryingHttpClient(mock_transport(_handler), executor=executor)
        assert client.get_decoded(DESCRIPTOR, Dummy) == Dummy(id=200)

    def test_connect_error_over_mock_transport(
        self,
        executor: RetryExecutor,
        mock_transport: Callable[[Callable[[httpx.Request], httpx.Response]], HttpxTransport],
    ) -> None:
        """httpx connect errors are retried and re-raised as ConnectionFailedError."""
        calls: list[int] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            raise httpx.ConnectError("refused", request=request)

        client = RetryingHttpClient(mock_transport(_handler), executor=executor)
        with pytest.raises(ConnectionFailedError) as excinfo:
            client.get_with_retries(DESCRIPTOR)
        assert len(calls) == 3
        assert isinstance(excinfo.value.__cause__, httpx.ConnectError)

    def test_connection_reset_during_read_not_retried(
        self,
        executor: RetryExecutor,
        mock_transport: Callable[[Callable[[httpx.Request], httpx.Response]], HttpxTransport],
    ) -> None:
        """A reset on an established connection aborts after one attempt."""
        calls: list[int] = []

        def _handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            raise httpx.ReadError("reset", request=request) from ConnectionResetError()

        client = RetryingHttpClient(mock_transport(_handler), executor=executor)
        with pytest.raises(RetryAbortedError) as excinfo:
            client.get_with_retries(DESCRIPTOR)
        assert len(calls) == 1
        assert isinstance(excinfo.value.cause, TransportError)
        assert isinstance(excinfo.value.cause.__cause__, httpx.ReadError)


class TestAsyncClient:
    """Tests for AsyncRetryingHttpClient."""

    @pytest.mark.asyncio
    async def test_retries_until_accepted(
        self, async_stub_client: Callable[..., tuple[AsyncRetryingHttpClient, AsyncStubTransport]]
    ) -> None:
        """The async client retries transparently."""
        client, transport = async_stub_client(300, 500, 200)
        async with client:
            outcome = await client.get_with_retries(DESCRIPTOR)
        assert outcome.status_code == 200
        assert transport.calls == 3
        assert transport.closed is False

    @pytest.mark.asyncio
    async def test_get_decoded_unacceptable(
        self, async_stub_client: Callable[..., tuple[AsyncRetryingHttpClient, AsyncStubTransport]]
    ) -> None:
        """The async client raises UnacceptableResponseError for terminal statuses."""
        client, transport = async_stub_client(400)
        with pytest.raises(UnacceptableResponseError):
            await client.get_decoded(DESCRIPTOR, Dummy)
        assert transport.calls == 1

    @pytest.mark.asyncio
    async def test_get_decoded(
        self, async_stub_client: Callable[..., tuple[AsyncRetryingHttpClient, AsyncStubTransport]]
    ) -> None:
        """Accepted bodies are decoded."""
        client, _ = async_stub_client(
            Success(200, body=b'{"id": 1}', content_type="application/json")
        )
        assert await client.get_decoded(DESCRIPTOR, Dummy) == Dummy(id=1)

    @pytest.mark.asyncio
    async def test_get_decoded_once(
        self, async_stub_client: Callable[..., tuple[AsyncRetryingHttpClient, AsyncStubTransport]]
    ) -> None:
        """A single async attempt is decoded when accepted."""
        client, transport = async_stub_client(
            Success(200, body=b'{"id": 9}', content_type="application/json")
        )
        assert await client.get_decoded_once(DESCRIPTOR, Dummy) == Dummy(id=9)
        assert transport.calls == 1


class TestMakeClient:
    """Tests for make_client."""

    def test_loads_policy_directory(self, tmp_path: Path) -> None:
        """Policies found in the directory are registered."""
        (tmp_path / "quick.yaml").write_text("name: quick\nmax_attempts: 2\n", encoding="utf-8")
        with make_client(tmp_path) as client:
            assert client.resolve_policy("quick").max_attempts == 2
            assert client.resolve_policy(None).name == "default"

    def test_settings_policies_dir(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """The policy directory can come from the environment."""
        (tmp_path / "env.yaml").write_text("name: from-env\n", encoding="utf-8")
        monkeypatch.setenv("RETRYING_CLIENT_POLICIES_DIR", str(tmp_path))
        with make_client() as client:
            assert "from-env" in client.registry
