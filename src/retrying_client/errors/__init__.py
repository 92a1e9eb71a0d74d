"""Exception hierarchy and Problem Details support.

This package provides typed exceptions with RFC 9457 Problem Details mapping
and stable error codes.

Examples
--------
>>> from retrying_client.errors import ErrorCode, RetryingClientError
>>> try:
...     raise RetryingClientError("Operation failed", code=ErrorCode.RUNTIME_ERROR)
... except RetryingClientError as e:
...     details = e.to_problem_details(instance="urn:retrying-client:get")
...     assert details["type"] == "urn:retrying-client:problems:runtime-error"
"""

from __future__ import annotations

from retrying_client.errors.codes import BASE_TYPE_URI, ErrorCode, get_type_uri
from retrying_client.errors.exceptions import (
    ConnectionFailedError,
    DecodeError,
    InvalidPolicyError,
    OperationCancelledError,
    RetryAbortedError,
    RetryingClientError,
    SettingsError,
    TransportError,
    TransportTimeoutError,
    UnacceptableResponseError,
)

__all__ = [
    "BASE_TYPE_URI",
    "ConnectionFailedError",
    "DecodeError",
    "ErrorCode",
    "InvalidPolicyError",
    "OperationCancelledError",
    "RetryAbortedError",
    "RetryingClientError",
    "SettingsError",
    "TransportError",
    "TransportTimeoutError",
    "UnacceptableResponseError",
    "get_type_uri",
]
