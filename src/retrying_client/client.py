"""HTTP GET client with transparent, policy-driven retries.

This module provides :class:`RetryingHttpClient` and its cooperative twin
:class:`AsyncRetryingHttpClient`. Each turns a
:class:`~retrying_client.request.RequestDescriptor` into one transport attempt
and hands that attempt to a :class:`~retrying_client.tenacity_retry.RetryExecutor`
under a policy resolved by name, so calling code never writes retry loops.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final, Self

from retrying_client.errors import UnacceptableResponseError
from retrying_client.logging import get_logger
from retrying_client.policy import RetryPolicy, RetryPolicyRegistry
from retrying_client.serialization import Decoder, MsgspecDecoder
from retrying_client.settings import ClientSettings, load_settings
from retrying_client.tenacity_retry import RetryExecutor
from retrying_client.transport import AsyncHttpxTransport, HttpxTransport

if TYPE_CHECKING:
    from types import TracebackType

    from retrying_client.cancellation import CancellationToken
    from retrying_client.request import RequestDescriptor, Success
    from retrying_client.transport import AsyncTransport, Transport

__all__ = ["AsyncRetryingHttpClient", "RetryingHttpClient"]

logger = get_logger(__name__)

_METHOD: Final[str] = "GET"


def _build_registry(
    registry: RetryPolicyRegistry | None, settings: ClientSettings
) -> RetryPolicyRegistry:
    if registry is not None:
        return registry
    built = RetryPolicyRegistry(settings.default_policy.build())
    if settings.policies_dir is not None:
        built.load_directory(settings.policies_dir)
    return built


def _log_terminal(descriptor: RequestDescriptor, policy: RetryPolicy, outcome: Success) -> None:
    logger.debug(
        "Response status for uri",
        extra={
            "operation": "get_with_retries",
            "uri": descriptor.target,
            "policy": policy.name,
            "status_code": outcome.status_code,
            "accepted": outcome.accepted,
        },
    )


class _ClientBase:
    """State and behavior shared by the blocking and cooperative clients."""

    def __init__(
        self,
        *,
        decoder: Decoder | None,
        registry: RetryPolicyRegistry | None,
        executor: RetryExecutor | None,
        settings: ClientSettings | None,
    ) -> None:
        self.settings = settings or load_settings()
        self.registry = _build_registry(registry, self.settings)
        self.executor = executor or RetryExecutor()
        self.decoder: Decoder = decoder or MsgspecDecoder()

    def register_policy(self, name: str, policy: RetryPolicy) -> RetryPolicy:
        """Add or replace the retry policy stored under ``name``.

        Registering under the default name changes the policy used when
        callers pass no name.
        """
        return self.registry.register(name, policy)

    def resolve_policy(self, policy_name: str | None) -> RetryPolicy:
        """Return the policy for ``policy_name``, falling back to the default."""
        return self.registry.resolve(policy_name)

    def _decode_accepted[T](self, outcome: Success, type_: type[T]) -> T:
        if not outcome.accepted:
            raise UnacceptableResponseError(outcome)
        return self.decoder.decode(outcome.body, outcome.content_type, type_)


class RetryingHttpClient(_ClientBase):
    """Blocking GET client that retries transparently.

    Parameters
    ----------
    transport : Transport | None, optional
        Performs single attempts. Defaults to an :class:`HttpxTransport`
        built from ``settings``, closed by :meth:`close`.
    decoder : Decoder | None, optional
        Decodes accepted bodies. Defaults to :class:`MsgspecDecoder`.
    registry : RetryPolicyRegistry | None, optional
        Policy registry owned by this client. Defaults to a registry seeded
        from ``settings`` (plus any policies found in ``settings.policies_dir``).
    executor : RetryExecutor | None, optional
        Retry executor. Defaults to a :class:`RetryExecutor`.
    settings : ClientSettings | None, optional
        Configuration. Defaults to :func:`load_settings`.

    Examples
    --------
    >>> from retrying_client import RequestDescriptor, RetryingHttpClient
    >>> with RetryingHttpClient() as client:  # doctest: +SKIP
    ...     outcome = client.get_with_retries(RequestDescriptor("http://localhost:8080/items"))
    """

    def __init__(
        self,
        transport: Transport | None = None,
        *,
        decoder: Decoder | None = None,
        registry: RetryPolicyRegistry | None = None,
        executor: RetryExecutor | None = None,
        settings: ClientSettings | None = None,
    ) -> None:
        super().__init__(decoder=decoder, registry=registry, executor=executor, settings=settings)
        self._owns_transport = transport is None
        self.transport: Transport = transport or HttpxTransport(config=self.settings.transport)

    def get(self, descriptor: RequestDescriptor) -> Success:
        """Perform exactly one GET attempt, without retries.

        Raises
        ------
        TransportError
            If the transport obtained no response.
        """
        return self.transport.perform(
            _METHOD,
            descriptor.target,
            descriptor.headers,
            descriptor.query_params,
            descriptor.accepted_type,
        )

    def get_decoded_once[T](self, descriptor: RequestDescriptor, type_: type[T]) -> T:
        """Perform one GET attempt and decode an accepted body into ``type_``.

        Raises
        ------
        UnacceptableResponseError
            If the status is not 200.
        TransportError
            If the transport obtained no response.
        """
        return self._decode_accepted(self.get(descriptor), type_)

    def get_with_retries(
        self,
        descriptor: RequestDescriptor,
        policy_name: str | None = None,
        *,
        cancel: CancellationToken | None = None,
    ) -> Success:
        """GET ``descriptor`` retrying per the policy named ``policy_name``.

        Parameters
        ----------
        descriptor : RequestDescriptor
            Request reused by every attempt.
        policy_name : str | None, optional
            Registered policy name; blank or unknown names use the default.
        cancel : CancellationToken | None, optional
            Cancellation/deadline signal. Defaults to None.

        Returns
        -------
        Success
            The accepted response, or the last response once attempts run
            out. The status is not checked here.

        Raises
        ------
        RetryAbortedError
            If an attempt raised an error the policy refuses to retry.
        OperationCancelledError
            If ``cancel`` fired.

        Notes
        -----
        When attempts run out on a retryable transport error, that error
        (a :class:`~retrying_client.errors.TransportError`) is re-raised.
        """
        policy = self.resolve_policy(policy_name)
        logger.debug(
            "Starting GET with retries",
            extra={"operation": "get_with_retries", "uri": descriptor.target, "policy": policy.name},
        )
        outcome = self.executor.run(lambda: self.get(descriptor), policy, cancel=cancel)
        _log_terminal(descriptor, policy, outcome)
        return outcome

    def get_decoded[T](
        self,
        descriptor: RequestDescriptor,
        type_: type[T],
        policy_name: str | None = None,
        *,
        cancel: CancellationToken | None = None,
    ) -> T:
        """GET with retries and decode an accepted body into ``type_``.

        Raises
        ------
        UnacceptableResponseError
            If the terminal status is not 200; carries the terminal outcome.
        DecodeError
            If the accepted body cannot be decoded. Never retried.
        """
        outcome = self.get_with_retries(descriptor, policy_name, cancel=cancel)
        return self._decode_accepted(outcome, type_)

    def close(self) -> None:
        """Close the transport when this client created it."""
        if self._owns_transport:
            self.transport.close()

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


class AsyncRetryingHttpClient(_ClientBase):
    """Cooperative GET client; waits between attempts yield to the event loop.

    Parameters mirror :class:`RetryingHttpClient`, with an
    :class:`AsyncTransport` defaulting to :class:`AsyncHttpxTransport`.
    """

    def __init__(
        self,
        transport: AsyncTransport | None = None,
        *,
        decoder: Decoder | None = None,
        registry: RetryPolicyRegistry | None = None,
        executor: RetryExecutor | None = None,
        settings: ClientSettings | None = None,
    ) -> None:
        super().__init__(decoder=decoder, registry=registry, executor=executor, settings=settings)
        self._owns_transport = transport is None
        self.transport: AsyncTransport = transport or AsyncHttpxTransport(
            config=self.settings.transport
        )

    async def get(self, descriptor: RequestDescriptor) -> Success:
        """Perform exactly one GET attempt, without retries."""
        return await self.transport.perform(
            _METHOD,
            descriptor.target,
            descriptor.headers,
            descriptor.query_params,
            descriptor.accepted_type,
        )

    async def get_decoded_once[T](self, descriptor: RequestDescriptor, type_: type[T]) -> T:
        """Cooperative counterpart of :meth:`RetryingHttpClient.get_decoded_once`."""
        return self._decode_accepted(await self.get(descriptor), type_)

    async def get_with_retries(
        self,
        descriptor: RequestDescriptor,
        policy_name: str | None = None,
        *,
        cancel: CancellationToken | None = None,
    ) -> Success:
        """Cooperative counterpart of :meth:`RetryingHttpClient.get_with_retries`."""
        policy = self.resolve_policy(policy_name)
        outcome = await self.executor.run_async(
            lambda: self.get(descriptor), policy, cancel=cancel
        )
        _log_terminal(descriptor, policy, outcome)
        return outcome

    async def get_decoded[T](
        self,
        descriptor: RequestDescriptor,
        type_: type[T],
        policy_name: str | None = None,
        *,
        cancel: CancellationToken | None = None,
    ) -> T:
        """Cooperative counterpart of :meth:`RetryingHttpClient.get_decoded`."""
        outcome = await self.get_with_retries(descriptor, policy_name, cancel=cancel)
        return self._decode_accepted(outcome, type_)

    async def aclose(self) -> None:
        """Close the transport when this client created it."""
        if self._owns_transport:
            await self.transport.aclose()

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
