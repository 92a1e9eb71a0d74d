"""Classification of HTTP status codes as retryable or terminal.

A fixed table of status codes is terminal regardless of the attempts left:
200 itself, the client errors that no amount of retrying will fix, and the
not-implemented, version-not-supported and network-authentication 5xx codes.
Every other code, including 3xx redirects, 429 and the remaining 5xx codes,
is retryable.
"""

from __future__ import annotations

from http import HTTPStatus
from typing import Final

from retrying_client.logging import get_logger

__all__ = [
    "ACCEPTED_STATUS",
    "NON_RETRYABLE_STATUSES",
    "is_retryable",
]

logger = get_logger(__name__)

ACCEPTED_STATUS: Final[int] = HTTPStatus.OK.value

NON_RETRYABLE_STATUSES: Final[frozenset[int]] = frozenset(
    status.value
    for status in (
        HTTPStatus.OK,
        HTTPStatus.BAD_REQUEST,
        HTTPStatus.UNAUTHORIZED,
        HTTPStatus.PAYMENT_REQUIRED,
        HTTPStatus.FORBIDDEN,
        HTTPStatus.METHOD_NOT_ALLOWED,
        HTTPStatus.NOT_ACCEPTABLE,
        HTTPStatus.PROXY_AUTHENTICATION_REQUIRED,
        HTTPStatus.GONE,
        HTTPStatus.LENGTH_REQUIRED,
        HTTPStatus.PRECONDITION_FAILED,
        HTTPStatus.REQUEST_ENTITY_TOO_LARGE,
        HTTPStatus.REQUEST_URI_TOO_LONG,
        HTTPStatus.UNSUPPORTED_MEDIA_TYPE,
        HTTPStatus.REQUESTED_RANGE_NOT_SATISFIABLE,
        HTTPStatus.EXPECTATION_FAILED,
        HTTPStatus.REQUEST_HEADER_FIELDS_TOO_LARGE,
        HTTPStatus.NOT_IMPLEMENTED,
        HTTPStatus.HTTP_VERSION_NOT_SUPPORTED,
        HTTPStatus.NETWORK_AUTHENTICATION_REQUIRED,
    )
)


def is_retryable(status_code: int) -> bool:
    """Return whether a response with ``status_code`` may be retried.

    Parameters
    ----------
    status_code : int
        HTTP status code of an already-obtained response.

    Returns
    -------
    bool
        False for codes in :data:`NON_RETRYABLE_STATUSES`, True otherwise.

    Examples
    --------
    >>> is_retryable(503)
    True
    >>> is_retryable(404)
    True
    >>> is_retryable(400)
    False
    """
    result = status_code not in NON_RETRYABLE_STATUSES
    logger.debug(
        "Classified response status",
        extra={"operation": "classify_status", "status_code": status_code, "retryable": result},
    )
    return result
