"""HTTP GET client with named, reusable retry policies.

This package provides a client that executes idempotent GET requests and
retries them transparently according to a policy resolved by name from a
registry, so calling code never hand-rolls retry loops.

Examples
--------
>>> from retrying_client import RequestDescriptor, RetryPolicy, make_client
>>> client = make_client()  # doctest: +SKIP
>>> client.register_policy("quick", RetryPolicy.fixed("quick", max_attempts=2, wait=0.5))  # doctest: +SKIP
>>> client.get_with_retries(RequestDescriptor("http://localhost:8080/items"), "quick")  # doctest: +SKIP
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from retrying_client.cancellation import CancellationToken
from retrying_client.client import AsyncRetryingHttpClient, RetryingHttpClient
from retrying_client.errors import (
    ConnectionFailedError,
    DecodeError,
    InvalidPolicyError,
    OperationCancelledError,
    RetryAbortedError,
    RetryingClientError,
    TransportError,
    TransportTimeoutError,
    UnacceptableResponseError,
)
from retrying_client.policy import (
    DEFAULT_POLICY_NAME,
    ExponentialBackoff,
    FixedInterval,
    RetryPolicy,
    RetryPolicyRegistry,
    default_policy,
    load_policy,
)
from retrying_client.request import Failure, Outcome, RequestDescriptor, Success
from retrying_client.settings import load_settings
from retrying_client.status import is_retryable
from retrying_client.tenacity_retry import RetryExecutor

if TYPE_CHECKING:
    from pathlib import Path

    from retrying_client.settings import ClientSettings

__all__ = [
    "DEFAULT_POLICY_NAME",
    "AsyncRetryingHttpClient",
    "CancellationToken",
    "ConnectionFailedError",
    "DecodeError",
    "ExponentialBackoff",
    "Failure",
    "FixedInterval",
    "InvalidPolicyError",
    "OperationCancelledError",
    "Outcome",
    "RequestDescriptor",
    "RetryAbortedError",
    "RetryExecutor",
    "RetryPolicy",
    "RetryPolicyRegistry",
    "RetryingClientError",
    "RetryingHttpClient",
    "Success",
    "TransportError",
    "TransportTimeoutError",
    "UnacceptableResponseError",
    "default_policy",
    "is_retryable",
    "load_policy",
    "make_client",
]


def make_client(
    policies_root: Path | None = None,
    settings: ClientSettings | None = None,
) -> RetryingHttpClient:
    """Create a client with retry policies loaded from a directory.

    Parameters
    ----------
    policies_root : Path | None, optional
        Directory of YAML policy documents registered on top of the default.
        Overrides ``settings.policies_dir``. Defaults to None.
    settings : ClientSettings | None, optional
        Configuration. Defaults to :func:`load_settings`.

    Returns
    -------
    RetryingHttpClient
        Configured client owning its transport.
    """
    resolved = settings or load_settings()
    if policies_root is not None:
        resolved = resolved.model_copy(update={"policies_dir": policies_root})
    return RetryingHttpClient(settings=resolved)
