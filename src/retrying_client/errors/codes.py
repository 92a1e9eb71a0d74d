"""Error code registry and type URIs for Problem Details.

This module defines stable error codes and type URIs used in RFC 9457
Problem Details payloads produced by :mod:`retrying_client.errors`. Codes and
URIs are frozen after initial release to maintain backward compatibility.

Examples
--------
>>> from retrying_client.errors.codes import ErrorCode, get_type_uri
>>> get_type_uri(ErrorCode.CONNECTION_FAILED)
'urn:retrying-client:problems:connection-failed'
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

__all__ = [
    "BASE_TYPE_URI",
    "ErrorCode",
    "get_type_uri",
]


BASE_TYPE_URI: Final[str] = "urn:retrying-client:problems"


class ErrorCode(StrEnum):
    """Stable error codes for retrying client exceptions.

    Codes follow kebab-case naming and remain stable across releases.

    Error codes are organized by category:
    - Policy configuration
    - Transport
    - Response handling
    - Runtime
    """

    # Policy configuration
    INVALID_POLICY = "invalid-policy"
    CONFIGURATION_ERROR = "configuration-error"

    # Transport
    TRANSPORT_ERROR = "transport-error"
    CONNECTION_FAILED = "connection-failed"
    TRANSPORT_TIMEOUT = "transport-timeout"

    # Response handling
    UNACCEPTABLE_RESPONSE = "unacceptable-response"
    DECODE_ERROR = "decode-error"

    # Runtime
    RETRY_ABORTED = "retry-aborted"
    CANCELLED = "cancelled"
    RUNTIME_ERROR = "runtime-error"

    def __str__(self) -> str:
        """Return the code value as a string.

        Returns
        -------
        str
            The error code value (e.g., "connection-failed").
        """
        return self.value


def get_type_uri(code: ErrorCode) -> str:
    """Get the RFC 9457 type URI for an error code.

    Parameters
    ----------
    code : ErrorCode
        Error code enum value.

    Returns
    -------
    str
        Complete type URI (e.g., "urn:retrying-client:problems:cancelled").
    """
    return f"{BASE_TYPE_URI}:{code.value}"
