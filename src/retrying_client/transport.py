"""Transport collaborators performing one HTTP attempt.

The retry machinery only needs ``perform(...) -> Success``; these adapters
implement it over :mod:`httpx`. Redirects are never followed, so a 3xx
response reaches the retry policy as-is. httpx errors are mapped onto the
:class:`~retrying_client.errors.TransportError` hierarchy with the original
exception kept as ``__cause__``.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Protocol, Self

import httpx

from retrying_client.errors import ConnectionFailedError, TransportError, TransportTimeoutError
from retrying_client.logging import get_logger
from retrying_client.request import Success

if TYPE_CHECKING:
    from types import TracebackType

    from retrying_client.settings import TransportConfig

__all__ = [
    "AsyncHttpxTransport",
    "AsyncTransport",
    "HttpxTransport",
    "Transport",
]

logger = get_logger(__name__)


class Transport(Protocol):
    """Protocol for a blocking transport performing exactly one request."""

    def perform(
        self,
        method: str,
        uri: str,
        headers: Mapping[str, str],
        query_params: Mapping[str, str],
        accepted_type: str,
    ) -> Success:
        """Send one request and return the response.

        Raises
        ------
        TransportError
            If no response was obtained.
        """
        ...

    def close(self) -> None:
        """Release pooled resources."""
        ...


class AsyncTransport(Protocol):
    """Protocol for a cooperative transport performing exactly one request."""

    async def perform(
        self,
        method: str,
        uri: str,
        headers: Mapping[str, str],
        query_params: Mapping[str, str],
        accepted_type: str,
    ) -> Success:
        """Send one request and return the response."""
        ...

    async def aclose(self) -> None:
        """Release pooled resources."""
        ...


def _timeout(config: TransportConfig | None) -> httpx.Timeout:
    if config is None:
        return httpx.Timeout(30.0)
    return httpx.Timeout(
        config.read_timeout_s,
        connect=config.connect_timeout_s,
    )


def _request_headers(headers: Mapping[str, str], accepted_type: str) -> dict[str, str]:
    # an explicit Accept header, in any spelling, wins over the accepted type
    if any(name.lower() == "accept" for name in headers):
        return dict(headers)
    return {"Accept": accepted_type, **headers}


def _to_success(response: httpx.Response) -> Success:
    return Success(
        status_code=response.status_code,
        body=response.content,
        content_type=response.headers.get("content-type"),
        headers=dict(response.headers),
    )


@contextmanager
def _translate_errors(method: str, uri: str) -> Iterator[None]:
    """Map httpx transport exceptions onto the TransportError hierarchy."""
    context = {"method": method, "uri": uri}
    try:
        yield
    except httpx.ConnectError as exc:
        raise ConnectionFailedError(f"Could not connect to {uri}", cause=exc, context=context) from exc
    except httpx.TimeoutException as exc:
        raise TransportTimeoutError(f"Timed out calling {uri}", cause=exc, context=context) from exc
    except httpx.TransportError as exc:
        raise TransportError(f"Transport failure calling {uri}: {exc}", cause=exc, context=context) from exc


class HttpxTransport:
    """Blocking transport backed by :class:`httpx.Client`.

    Parameters
    ----------
    client : httpx.Client | None, optional
        Client to use. When omitted one is created from ``config`` and closed
        by :meth:`close`. Defaults to None.
    config : TransportConfig | None, optional
        Timeouts for the owned client. Defaults to None.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        *,
        config: TransportConfig | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=_timeout(config), follow_redirects=False)

    def perform(
        self,
        method: str,
        uri: str,
        headers: Mapping[str, str],
        query_params: Mapping[str, str],
        accepted_type: str,
    ) -> Success:
        """Send one request with :mod:`httpx` and return the response.

        Raises
        ------
        ConnectionFailedError
            If name resolution or connection establishment failed.
        TransportTimeoutError
            If the request timed out.
        TransportError
            For any other transport-level failure.
        """
        with _translate_errors(method, uri):
            response = self._client.request(
                method,
                uri,
                headers=_request_headers(headers, accepted_type),
                params=dict(query_params),
                follow_redirects=False,
            )
        logger.debug(
            "Transport attempt completed",
            extra={"operation": "transport", "uri": uri, "status_code": response.status_code},
        )
        return _to_success(response)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        del exc_type, exc_val, exc_tb
        self.close()


class AsyncHttpxTransport:
    """Cooperative transport backed by :class:`httpx.AsyncClient`.

    Parameters
    ----------
    client : httpx.AsyncClient | None, optional
        Client to use. When omitted one is created from ``config`` and closed
        by :meth:`aclose`. Defaults to None.
    config : TransportConfig | None, optional
        Timeouts for the owned client. Defaults to None.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        config: TransportConfig | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=_timeout(config), follow_redirects=False
        )

    async def perform(
        self,
        method: str,
        uri: str,
        headers: Mapping[str, str],
        query_params: Mapping[str, str],
        accepted_type: str,
    ) -> Success:
        """Send one request with :mod:`httpx` and return the response."""
        with _translate_errors(method, uri):
            response = await self._client.request(
                method,
                uri,
                headers=_request_headers(headers, accepted_type),
                params=dict(query_params),
                follow_redirects=False,
            )
        logger.debug(
            "Transport attempt completed",
            extra={"operation": "transport", "uri": uri, "status_code": response.status_code},
        )
        return _to_success(response)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        del exc_type, exc_val, exc_tb
        await self.aclose()
