"""Tenacity-based retry executor.

This module provides :class:`RetryExecutor`, which drives repeated invocation
of a caller-supplied operation under a :class:`~retrying_client.policy.RetryPolicy`
using the tenacity library. Outcomes and errors are judged by the policy's
two independent predicates; exhaustion returns the last response or
re-raises the last error unchanged.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    Retrying,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from retrying_client.errors import OperationCancelledError, RetryAbortedError
from retrying_client.logging import get_logger
from retrying_client.request import Failure, Success

if TYPE_CHECKING:
    from retrying_client.cancellation import CancellationToken
    from retrying_client.policy import Backoff, RetryPolicy
    from retrying_client.request import Outcome
    from retrying_client.types import AsyncOperation, Operation

__all__ = ["RetryExecutor", "RetrySession"]

logger = get_logger(__name__)


@dataclass(slots=True)
class RetrySession:
    """State of one executor call; created and discarded within the call.

    Attributes
    ----------
    policy : RetryPolicy
        Policy captured when the call started.
    cancel : CancellationToken | None
        Cancellation signal honored before attempts and during waits.
    attempts_made : int
        Attempts started so far.
    last_outcome : Outcome | None
        Most recent outcome.
    """

    policy: RetryPolicy
    cancel: CancellationToken | None = None
    attempts_made: int = 0
    last_outcome: Outcome | None = None

    def settle(self, outcome: Outcome) -> Success:
        """Record ``outcome`` and turn failures into exceptions for tenacity.

        Returns
        -------
        Success
            ``outcome`` when it is a response.

        Raises
        ------
        RetryAbortedError
            If the policy refuses to retry the failure's error.
        Exception
            The failure's own error when the policy allows a retry.

        Notes
        -----
        A value that is not an Outcome is judged as a failure carrying a
        :class:`TypeError`.
        """
        if isinstance(outcome, Success):
            self.last_outcome = outcome
            return outcome
        if not isinstance(outcome, Failure):
            msg = f"Operation must return Success or Failure, got {type(outcome).__name__}"
            outcome = Failure(TypeError(msg))
        self.last_outcome = outcome
        error = outcome.error
        if isinstance(error, OperationCancelledError):
            raise error
        if not self.policy.retry_on_error(error):
            raise RetryAbortedError(error, attempts_made=self.attempts_made) from error
        raise error

    def check_cancelled(self) -> None:
        if self.cancel is not None:
            self.cancel.raise_if_cancelled(attempts_made=self.attempts_made)


@dataclass(frozen=True)
class _BackoffWait(wait_base):
    """Tenacity wait strategy delegating to a policy backoff."""

    backoff: Backoff

    def __call__(self, retry_state: RetryCallState) -> float:
        # attempt_number is the attempt that just failed (1-based)
        return self.backoff.delay_after(retry_state.attempt_number)


def _is_retryable_failure(error: BaseException) -> bool:
    return isinstance(error, Exception) and not isinstance(
        error, (RetryAbortedError, OperationCancelledError)
    )


def _describe(retry_state: RetryCallState) -> dict[str, object]:
    outcome = retry_state.outcome
    if outcome is None:
        return {}
    if outcome.failed:
        error = outcome.exception()
        return {"error_type": type(error).__name__, "error_detail": str(error)}
    return {"status_code": outcome.result().status_code}


def _exhausted(retry_state: RetryCallState) -> Success:
    """Return the last response or re-raise the last error once attempts run out."""
    logger.warning(
        "Retry attempts exhausted",
        extra={
            "operation": "retry",
            "status": "exhausted",
            "attempts_made": retry_state.attempt_number,
            **_describe(retry_state),
        },
    )
    return retry_state.outcome.result()  # type: ignore[union-attr]  # outcome is set once stop fires


def _log_retry(policy: RetryPolicy) -> Callable[[RetryCallState], None]:
    def _before_sleep(retry_state: RetryCallState) -> None:
        wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.info(
            "Retrying request",
            extra={
                "operation": "retry",
                "status": "retrying",
                "policy": policy.name,
                "attempts_made": retry_state.attempt_number,
                "next_attempt": retry_state.attempt_number + 1,
                "wait_s": wait,
                **_describe(retry_state),
            },
        )

    return _before_sleep


class RetryExecutor:
    """Run an operation repeatedly under a retry policy.

    Algorithm per call: invoke the operation; return an accepted response
    immediately; wrap an error the policy refuses to retry in
    :class:`RetryAbortedError`; once ``max_attempts`` is reached return the
    last response or re-raise the last error as-is; otherwise wait the
    backoff delay and try again. Attempts never overlap.

    Parameters
    ----------
    sleep : Callable[[float], None] | None, optional
        Blocking sleep used between attempts. Defaults to waiting on the
        call's cancellation token, or :func:`time.sleep` without one.
    async_sleep : Callable[[float], Awaitable[None]] | None, optional
        Cooperative sleep used by :meth:`run_async`. Defaults to waiting on
        the call's cancellation token, or :func:`asyncio.sleep` without one.

    Examples
    --------
    >>> from retrying_client.policy import RetryPolicy, FixedInterval
    >>> from retrying_client.request import Success
    >>> executor = RetryExecutor(sleep=lambda seconds: None)
    >>> executor.run(lambda: Success(200), RetryPolicy(backoff=FixedInterval(0))).status_code
    200
    """

    def __init__(
        self,
        *,
        sleep: Callable[[float], None] | None = None,
        async_sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._sleep = sleep
        self._async_sleep = async_sleep

    def _sleeper(self, session: RetrySession) -> Callable[[float], None]:
        def _sleep(seconds: float) -> None:
            if self._sleep is not None:
                self._sleep(seconds)
            elif session.cancel is not None:
                session.cancel.wait(seconds)
            else:
                time.sleep(seconds)
            session.check_cancelled()

        return _sleep

    def _async_sleeper(self, session: RetrySession) -> Callable[[float], Awaitable[None]]:
        async def _sleep(seconds: float) -> None:
            if self._async_sleep is not None:
                await self._async_sleep(seconds)
            elif session.cancel is not None:
                await session.cancel.wait_async(seconds)
            else:
                await asyncio.sleep(seconds)
            session.check_cancelled()

        return _sleep

    @staticmethod
    def _retrying_kwargs(session: RetrySession) -> dict[str, object]:
        policy = session.policy

        def _before(retry_state: RetryCallState) -> None:
            del retry_state
            session.check_cancelled()

        return {
            "stop": stop_after_attempt(policy.max_attempts),
            "wait": _BackoffWait(policy.backoff),
            "retry": (
                retry_if_exception(_is_retryable_failure)
                | retry_if_result(policy.retry_on_outcome)
            ),
            "before": _before,
            "before_sleep": _log_retry(policy),
            "retry_error_callback": _exhausted,
        }

    def run(
        self,
        operation: Operation,
        policy: RetryPolicy,
        *,
        cancel: CancellationToken | None = None,
    ) -> Success:
        """Execute ``operation`` under ``policy``.

        Parameters
        ----------
        operation : Operation
            Zero-argument callable performing one attempt. It returns an
            Outcome or raises the transport error.
        policy : RetryPolicy
            Policy captured for the whole call.
        cancel : CancellationToken | None, optional
            Checked before each attempt and during each wait. Defaults to None.

        Returns
        -------
        Success
            The accepted response, or the last response once attempts run out.

        Raises
        ------
        RetryAbortedError
            If the operation raised an error the policy refuses to retry.
        OperationCancelledError
            If ``cancel`` fired before an attempt or during a wait.

        Notes
        -----
        Once attempts run out on a retryable error that error is re-raised
        unchanged, so its type depends on the operation.
        """
        session = RetrySession(policy=policy, cancel=cancel)

        def _attempt() -> Success:
            session.attempts_made += 1
            try:
                outcome = operation()
            except Exception as exc:  # noqa: BLE001 - classified by the policy below
                outcome = Failure(exc)
            return session.settle(outcome)

        retrying = Retrying(sleep=self._sleeper(session), **self._retrying_kwargs(session))  # type: ignore[arg-type]
        result = retrying(_attempt)
        self._log_terminal(session, result)
        return result

    async def run_async(
        self,
        operation: AsyncOperation,
        policy: RetryPolicy,
        *,
        cancel: CancellationToken | None = None,
    ) -> Success:
        """Cooperative counterpart of :meth:`run` for coroutine operations.

        Waits between attempts yield to the event loop. Semantics and raised
        errors match :meth:`run`.
        """
        session = RetrySession(policy=policy, cancel=cancel)

        async def _attempt() -> Success:
            session.attempts_made += 1
            try:
                outcome = await operation()
            except Exception as exc:  # noqa: BLE001 - classified by the policy below
                outcome = Failure(exc)
            return session.settle(outcome)

        retrying = AsyncRetrying(
            sleep=self._async_sleeper(session),  # type: ignore[arg-type]
            **self._retrying_kwargs(session),  # type: ignore[arg-type]
        )
        result = await retrying(_attempt)
        self._log_terminal(session, result)
        return result

    @staticmethod
    def _log_terminal(session: RetrySession, result: Success) -> None:
        logger.debug(
            "Retry loop finished",
            extra={
                "operation": "retry",
                "policy": session.policy.name,
                "attempts_made": session.attempts_made,
                "status_code": result.status_code,
            },
        )
