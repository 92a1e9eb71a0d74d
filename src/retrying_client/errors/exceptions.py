"""Exceptions raised by the retrying client, each mappable to Problem Details.

All retrying client exceptions inherit from :class:`RetryingClientError`, which
provides structured fields and RFC 9457 Problem Details mapping.

Examples
--------
>>> from retrying_client.errors import ConnectionFailedError, ErrorCode
>>> try:
...     raise ConnectionFailedError("Connection refused", cause=ConnectionRefusedError())
... except ConnectionFailedError as e:
...     assert e.code == ErrorCode.CONNECTION_FAILED
...     assert e.http_status == 503
...     details = e.to_problem_details(instance="urn:retrying-client:request")
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, cast

from retrying_client.errors.codes import ErrorCode, get_type_uri
from retrying_client.problem_details import ProblemDetailsParams, build_problem_details

if TYPE_CHECKING:
    from retrying_client.problem_details import ProblemDetails
    from retrying_client.request import Success
    from retrying_client.types import JsonValue

__all__ = [
    "ConnectionFailedError",
    "DecodeError",
    "InvalidPolicyError",
    "OperationCancelledError",
    "RetryAbortedError",
    "RetryingClientError",
    "SettingsError",
    "TransportError",
    "TransportTimeoutError",
    "UnacceptableResponseError",
]


class RetryingClientError(Exception):
    """Base exception for all retrying client errors.

    Every subclass fixes an :class:`ErrorCode`, an HTTP status and a log level,
    which :meth:`to_problem_details` turns into an RFC 9457 payload.

    Parameters
    ----------
    message : str
        Description of what went wrong.
    code : ErrorCode, optional
        Stable error code. Defaults to ``ErrorCode.RUNTIME_ERROR``.
    http_status : int, optional
        Status used when the error is rendered as Problem Details. Defaults to 500.
    log_level : int, optional
        Logging level for the error. Defaults to ``logging.ERROR``.
    cause : Exception | None, optional
        Underlying exception, stored as ``__cause__``. Defaults to None.
    context : Mapping[str, object] | None, optional
        Additional structured context. Defaults to None.

    Examples
    --------
    >>> error = RetryingClientError("Operation failed")
    >>> error.to_problem_details()["status"]
    500
    """

    def __init__(  # noqa: PLR0913 - mirrors the structured error fields
        self,
        message: str,
        *,
        code: ErrorCode = ErrorCode.RUNTIME_ERROR,
        http_status: int = 500,
        log_level: int = logging.ERROR,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.log_level = log_level
        self.context = dict(context) if context else {}
        if cause is not None:
            self.__cause__ = cause

    def to_problem_details(
        self,
        instance: str | None = None,
        title: str | None = None,
    ) -> ProblemDetails:
        """Convert to RFC 9457 Problem Details.

        Parameters
        ----------
        instance : str | None, optional
            Occurrence URI, usually the request URI. Defaults to an error URN.
        title : str | None, optional
            Payload title. Defaults to the class name.

        Returns
        -------
        ProblemDetails
            Problem Details payload with type, title, status, detail, instance,
            code and optional context extensions.
        """
        return build_problem_details(
            ProblemDetailsParams(
                problem_type=get_type_uri(self.code),
                title=title or self.__class__.__name__,
                status=self.http_status,
                detail=self.message,
                instance=instance or "urn:retrying-client:error",
                code=self.code.value,
                extensions=cast(
                    "Mapping[str, JsonValue] | None", self.context if self.context else None
                ),
            )
        )

    def __str__(self) -> str:
        """Render as ``Class[code]: message`` plus the cause type, if any.

        Returns
        -------
        str
            Formatted error string (e.g., "TransportError[transport-error]: reset").
        """
        base = f"{self.__class__.__name__}[{self.code.value}]: {self.message}"
        if self.__cause__:
            base += f" (caused by: {type(self.__cause__).__name__})"
        return base


class InvalidPolicyError(RetryingClientError, ValueError):
    """Malformed retry configuration rejected at construction time."""

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.INVALID_POLICY,
            http_status=500,
            cause=cause,
            context=context,
        )


class SettingsError(RetryingClientError):
    """Configuration could not be loaded or validated."""

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.CONFIGURATION_ERROR,
            http_status=500,
            cause=cause,
            context=context,
        )


class TransportError(RetryingClientError):
    """Error raised by the transport while performing one attempt.

    Subclasses narrow the failure domain; the default retry predicate only
    matches :class:`ConnectionFailedError`.

    Parameters
    ----------
    message : str
        Description of what went wrong.
    cause : Exception | None, optional
        Exception raised by the underlying HTTP library. Defaults to None.
    context : Mapping[str, object] | None, optional
        Additional context such as the target URI. Defaults to None.
    """

    code_for_class: ErrorCode = ErrorCode.TRANSPORT_ERROR

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=self.code_for_class,
            http_status=503,
            log_level=logging.WARNING,
            cause=cause,
            context=context,
        )


class ConnectionFailedError(TransportError):
    """Name resolution or connection establishment failed."""

    code_for_class = ErrorCode.CONNECTION_FAILED


class TransportTimeoutError(TransportError):
    """The transport gave up waiting for the remote endpoint."""

    code_for_class = ErrorCode.TRANSPORT_TIMEOUT


class UnacceptableResponseError(RetryingClientError):
    """Terminal response whose status was never the accepted success status.

    Parameters
    ----------
    outcome : Success
        The terminal outcome, kept for caller inspection.
    """

    def __init__(self, outcome: Success) -> None:
        super().__init__(
            f"Response status {outcome.status_code} is not acceptable",
            code=ErrorCode.UNACCEPTABLE_RESPONSE,
            http_status=502,
            log_level=logging.WARNING,
            context={"status_code": outcome.status_code},
        )
        self.outcome = outcome

    @property
    def status_code(self) -> int:
        """Status code of the terminal outcome."""
        return self.outcome.status_code


class DecodeError(RetryingClientError):
    """An accepted response body could not be decoded."""

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.DECODE_ERROR,
            http_status=502,
            cause=cause,
            context=context,
        )


class OperationCancelledError(RetryingClientError):
    """The call was aborted by cancellation or an expired deadline."""

    def __init__(self, message: str = "Operation cancelled", *, attempts_made: int = 0) -> None:
        super().__init__(
            message,
            code=ErrorCode.CANCELLED,
            http_status=499,
            log_level=logging.INFO,
            context={"attempts_made": attempts_made},
        )
        self.attempts_made = attempts_made


class RetryAbortedError(RetryingClientError):
    """The operation raised an error that the policy refuses to retry.

    Parameters
    ----------
    cause : Exception
        The original error, also available as ``__cause__``.
    attempts_made : int, optional
        Attempts made when the error was raised. Defaults to 1.
    """

    def __init__(self, cause: Exception, *, attempts_made: int = 1) -> None:
        super().__init__(
            f"Non-retryable error: {type(cause).__name__}: {cause}",
            code=ErrorCode.RETRY_ABORTED,
            http_status=502,
            cause=cause,
            context={"attempts_made": attempts_made, "error_type": type(cause).__name__},
        )
        self.cause = cause
        self.attempts_made = attempts_made
