"""Tests for retrying_client.errors and retrying_client.problem_details."""

from __future__ import annotations

import json
import logging

import pytest

from retrying_client.errors import (
    BASE_TYPE_URI,
    ConnectionFailedError,
    DecodeError,
    ErrorCode,
    InvalidPolicyError,
    OperationCancelledError,
    RetryAbortedError,
    RetryingClientError,
    TransportError,
    TransportTimeoutError,
    UnacceptableResponseError,
    get_type_uri,
)
from retrying_client.problem_details import (
    ProblemDetailsParams,
    ProblemDetailsValidationError,
    build_problem_details,
    render_problem,
    validate_problem_details,
)
from retrying_client.request import Success


class TestErrorCodes:
    """Tests for ErrorCode."""

    def test_codes_are_kebab_case(self) -> None:
        """Every code value is lower-case kebab-case."""
        for code in ErrorCode:
            assert code.value == code.value.lower()
            assert "_" not in code.value

    def test_type_uri(self) -> None:
        """Type URIs append the code to the base URI."""
        assert get_type_uri(ErrorCode.CONNECTION_FAILED) == f"{BASE_TYPE_URI}:connection-failed"
        assert str(ErrorCode.CANCELLED) == "cancelled"


class TestHierarchy:
    """Tests for the exception taxonomy."""

    @pytest.mark.parametrize(
        ("error", "code", "status"),
        [
            (TransportError("x"), ErrorCode.TRANSPORT_ERROR, 503),
            (ConnectionFailedError("x"), ErrorCode.CONNECTION_FAILED, 503),
            (TransportTimeoutError("x"), ErrorCode.TRANSPORT_TIMEOUT, 503),
            (InvalidPolicyError("x"), ErrorCode.INVALID_POLICY, 500),
            (DecodeError("x"), ErrorCode.DECODE_ERROR, 502),
            (OperationCancelledError(), ErrorCode.CANCELLED, 499),
            (UnacceptableResponseError(Success(400)), ErrorCode.UNACCEPTABLE_RESPONSE, 502),
            (RetryAbortedError(ValueError("x")), ErrorCode.RETRY_ABORTED, 502),
        ],
    )
    def test_codes_and_statuses(self, error: RetryingClientError, code: ErrorCode, status: int) -> None:
        """Each error carries its stable code and HTTP status."""
        assert isinstance(error, RetryingClientError)
        assert error.code == code
        assert error.http_status == status

    def test_transport_subclasses(self) -> None:
        """Connection and timeout failures are transport errors."""
        assert issubclass(ConnectionFailedError, TransportError)
        assert issubclass(TransportTimeoutError, TransportError)
        assert TransportError("x").log_level == logging.WARNING

    def test_str_includes_code_and_cause(self) -> None:
        """str() shows the class, code, message and cause type."""
        error = ConnectionFailedError("refused", cause=ConnectionRefusedError())
        assert str(error) == (
            "ConnectionFailedError[connection-failed]: refused (caused by: ConnectionRefusedError)"
        )

    def test_retry_aborted_keeps_cause(self) -> None:
        """RetryAbortedError exposes the original error."""
        cause = TransportTimeoutError("slow")
        error = RetryAbortedError(cause, attempts_made=2)
        assert error.cause is cause
        assert error.__cause__ is cause
        assert error.context == {"attempts_made": 2, "error_type": "TransportTimeoutError"}

    def test_unacceptable_response_keeps_outcome(self) -> None:
        """UnacceptableResponseError carries the terminal outcome."""
        outcome = Success(404, body=b"missing")
        error = UnacceptableResponseError(outcome)
        assert error.outcome is outcome
        assert error.status_code == 404
        assert "404" in error.message


class TestProblemDetails:
    """Tests for Problem Details conversion."""

    def test_to_problem_details(self) -> None:
        """Errors convert to schema-valid Problem Details."""
        error = ConnectionFailedError("refused", context={"uri": "http://localhost/"})
        details = error.to_problem_details(instance="http://localhost/")
        assert details == {
            "type": "urn:retrying-client:problems:connection-failed",
            "title": "ConnectionFailedError",
            "status": 503,
            "detail": "refused",
            "instance": "http://localhost/",
            "code": "connection-failed",
            "extensions": {"uri": "http://localhost/"},
        }

    def test_default_instance_and_title(self) -> None:
        """Instance and title have defaults."""
        details = RetryingClientError("boom").to_problem_details(title="Failure")
        assert details["instance"] == "urn:retrying-client:error"
        assert details["title"] == "Failure"
        assert "extensions" not in details

    def test_render_problem(self) -> None:
        """render_problem produces minified JSON."""
        rendered = render_problem(OperationCancelledError().to_problem_details())
        assert json.loads(rendered)["code"] == "cancelled"
        assert "\n" not in rendered

    def test_invalid_status_rejected(self) -> None:
        """Statuses outside 100-599 fail validation."""
        params = ProblemDetailsParams(
            problem_type="urn:x", title="t", status=700, detail="d", instance="urn:i"
        )
        with pytest.raises(ProblemDetailsValidationError) as excinfo:
            build_problem_details(params)
        assert excinfo.value.validation_errors

    def test_unknown_fields_rejected(self) -> None:
        """Unknown top-level fields fail validation."""
        with pytest.raises(ProblemDetailsValidationError):
            validate_problem_details(
                {
                    "type": "urn:x",
                    "title": "t",
                    "status": 500,
                    "detail": "d",
                    "instance": "urn:i",
                    "surprise": True,
                }
            )
