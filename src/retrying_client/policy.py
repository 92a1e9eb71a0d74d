"""Retry policy configuration, loading and registry.

This module provides the :class:`RetryPolicy` value (attempt budget, backoff
shape, outcome and error predicates), the backoff strategies and named
predicate variants it is built from, YAML loading for policy documents, and
:class:`RetryPolicyRegistry` which resolves policies by name with a fixed
default.
"""

from __future__ import annotations

import json
import socket
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Final, Protocol

import jsonschema
import yaml

from retrying_client.errors import ConnectionFailedError, InvalidPolicyError
from retrying_client.logging import get_logger
from retrying_client.status import ACCEPTED_STATUS, is_retryable

if TYPE_CHECKING:
    from retrying_client.request import Success

__all__ = [
    "DEFAULT_POLICY_NAME",
    "AlwaysRetry",
    "Backoff",
    "ConnectionFailure",
    "CustomErrorPredicate",
    "CustomOutcomePredicate",
    "ErrorPredicate",
    "ErrorTypeIn",
    "ExponentialBackoff",
    "FixedInterval",
    "NeverRetry",
    "OutcomePredicate",
    "RetryPolicy",
    "RetryPolicyRegistry",
    "RetryableStatus",
    "StatusIn",
    "StatusNotIn",
    "default_policy",
    "load_policy",
    "policy_from_mapping",
]

logger = get_logger(__name__)

DEFAULT_POLICY_NAME: Final[str] = "default"
DEFAULT_MAX_ATTEMPTS: Final[int] = 3
DEFAULT_WAIT_S: Final[float] = 2.0

_SCHEMA_PATH: Final[Path] = Path(__file__).with_name("policy.schema.json")


def _seconds(value: float | timedelta, what: str) -> float:
    """Return ``value`` as float seconds, rejecting negatives.

    Raises
    ------
    InvalidPolicyError
        If the duration is negative or not a number.
    """
    seconds = value.total_seconds() if isinstance(value, timedelta) else value
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        msg = f"{what} must be a number of seconds, got {value!r}"
        raise InvalidPolicyError(msg)
    if seconds < 0:
        msg = f"{what} must be >= 0, got {seconds}"
        raise InvalidPolicyError(msg, context={"field": what, "value": seconds})
    return float(seconds)


# Backoff strategies


class Backoff(Protocol):
    """Wait-time schedule applied between successive attempts."""

    def delay_after(self, attempt_number: int) -> float:
        """Return seconds to wait after failed attempt ``attempt_number`` (1-based)."""
        ...


@dataclass(frozen=True, slots=True)
class FixedInterval:
    """Constant wait between attempts.

    Attributes
    ----------
    wait : float
        Seconds between attempts. A :class:`~datetime.timedelta` is accepted.
    """

    wait: float = DEFAULT_WAIT_S

    def __post_init__(self) -> None:
        object.__setattr__(self, "wait", _seconds(self.wait, "wait"))

    def delay_after(self, attempt_number: int) -> float:
        del attempt_number
        return self.wait


@dataclass(frozen=True, slots=True)
class ExponentialBackoff:
    """Exponentially growing wait between attempts.

    The wait after attempt ``n`` is ``initial * multiplier ** (n - 1)``, so
    the first retry waits ``initial``. ``max_wait`` caps individual waits.

    Examples
    --------
    >>> backoff = ExponentialBackoff(initial=0.5, multiplier=2.0)
    >>> [backoff.delay_after(n) for n in (1, 2, 3)]
    [0.5, 1.0, 2.0]
    """

    initial: float
    multiplier: float = 2.0
    max_wait: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "initial", _seconds(self.initial, "initial"))
        if isinstance(self.multiplier, bool) or not isinstance(self.multiplier, (int, float)):
            msg = f"multiplier must be a number, got {self.multiplier!r}"
            raise InvalidPolicyError(msg)
        if self.multiplier < 0:
            msg = f"multiplier must be >= 0, got {self.multiplier}"
            raise InvalidPolicyError(msg, context={"field": "multiplier", "value": self.multiplier})
        object.__setattr__(self, "multiplier", float(self.multiplier))
        if self.max_wait is not None:
            object.__setattr__(self, "max_wait", _seconds(self.max_wait, "max_wait"))

    def delay_after(self, attempt_number: int) -> float:
        try:
            delay = self.initial * self.multiplier ** max(0, attempt_number - 1)
        except OverflowError:
            if self.max_wait is None:
                raise
            return self.max_wait
        if self.max_wait is not None:
            delay = min(delay, self.max_wait)
        return delay


# Outcome predicates: called with a Success, return True to retry


class OutcomePredicate(Protocol):
    def __call__(self, outcome: Success) -> bool: ...


class ErrorPredicate(Protocol):
    def __call__(self, error: BaseException) -> bool: ...


@dataclass(frozen=True, slots=True)
class RetryableStatus:
    """Retry any status other than 200 that the status table marks retryable."""

    def __call__(self, outcome: Success) -> bool:
        status = outcome.status_code
        return status != ACCEPTED_STATUS and is_retryable(status)


@dataclass(frozen=True, slots=True)
class StatusNotIn:
    """Retry unless the status is one of ``statuses``.

    ``StatusNotIn({200})`` reads as "retry unless status == 200".
    """

    statuses: frozenset[int]

    def __post_init__(self) -> None:
        object.__setattr__(self, "statuses", frozenset(int(s) for s in self.statuses))

    def __call__(self, outcome: Success) -> bool:
        return outcome.status_code not in self.statuses


@dataclass(frozen=True, slots=True)
class StatusIn:
    """Retry only when the status is one of ``statuses``."""

    statuses: frozenset[int]

    def __post_init__(self) -> None:
        object.__setattr__(self, "statuses", frozenset(int(s) for s in self.statuses))

    def __call__(self, outcome: Success) -> bool:
        return outcome.status_code in self.statuses


@dataclass(frozen=True, slots=True)
class CustomOutcomePredicate:
    """Caller-supplied outcome predicate."""

    fn: Callable[[Success], bool]

    def __call__(self, outcome: Success) -> bool:
        return bool(self.fn(outcome))


# Error predicates: called with the raised exception, return True to retry


def _cause_chain(error: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__


@dataclass(frozen=True, slots=True)
class ConnectionFailure:
    """Retry name-resolution and connect-level failures only.

    Matches when the error, or any error in its ``__cause__`` chain, is a
    :class:`ConnectionFailedError`, a :class:`ConnectionRefusedError` or a
    :class:`socket.gaierror`. Resets, broken pipes, timeouts and other I/O
    errors on an established connection are not matched.
    """

    def __call__(self, error: BaseException) -> bool:
        return any(
            isinstance(exc, (ConnectionFailedError, ConnectionRefusedError, socket.gaierror))
            for exc in _cause_chain(error)
        )


@dataclass(frozen=True, slots=True)
class ErrorTypeIn:
    """Retry errors whose class, or one of its bases, has a name in ``names``."""

    names: frozenset[str]

    def __post_init__(self) -> None:
        object.__setattr__(self, "names", frozenset(self.names))

    def __call__(self, error: BaseException) -> bool:
        return any(cls.__name__ in self.names for cls in type(error).__mro__)


@dataclass(frozen=True, slots=True)
class AlwaysRetry:
    """Retry every error."""

    def __call__(self, error: BaseException) -> bool:
        del error
        return True


@dataclass(frozen=True, slots=True)
class NeverRetry:
    """Never retry; usable as an outcome or an error predicate."""

    def __call__(self, value: object) -> bool:
        del value
        return False


@dataclass(frozen=True, slots=True)
class CustomErrorPredicate:
    """Caller-supplied error predicate."""

    fn: Callable[[BaseException], bool]

    def __call__(self, error: BaseException) -> bool:
        return bool(self.fn(error))


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Named bundle of attempt budget, backoff shape and retry predicates.

    Attributes
    ----------
    name : str
        Identifier, unique within a registry.
    max_attempts : int
        Total attempts including the initial call; retries = ``max_attempts - 1``.
    backoff : Backoff
        Wait schedule between attempts.
    retry_on_outcome : OutcomePredicate
        Decides whether a response that was not accepted should be retried.
    retry_on_error : ErrorPredicate
        Decides whether a transport error should be retried.

    Raises
    ------
    InvalidPolicyError
        If ``max_attempts < 1`` or a predicate is not callable.

    Examples
    --------
    >>> policy = RetryPolicy(name="quick", max_attempts=2, backoff=FixedInterval(0.1))
    >>> policy.retries
    1
    """

    name: str = DEFAULT_POLICY_NAME
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff: Backoff = field(default_factory=FixedInterval)
    retry_on_outcome: OutcomePredicate = field(default_factory=RetryableStatus)
    retry_on_error: ErrorPredicate = field(default_factory=ConnectionFailure)

    def __post_init__(self) -> None:
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            msg = f"max_attempts must be an int, got {self.max_attempts!r}"
            raise InvalidPolicyError(msg)
        if self.max_attempts < 1:
            msg = f"max_attempts must be >= 1, got {self.max_attempts}"
            raise InvalidPolicyError(
                msg, context={"field": "max_attempts", "value": self.max_attempts}
            )
        if not callable(self.retry_on_outcome) or not callable(self.retry_on_error):
            msg = "retry predicates must be callable"
            raise InvalidPolicyError(msg)
        if not callable(getattr(self.backoff, "delay_after", None)):
            msg = f"backoff must provide delay_after(), got {self.backoff!r}"
            raise InvalidPolicyError(msg)

    @property
    def retries(self) -> int:
        """Number of retries after the initial attempt."""
        return self.max_attempts - 1

    @classmethod
    def fixed(
        cls,
        name: str,
        *,
        max_attempts: int,
        wait: float | timedelta,
        retry_on_outcome: OutcomePredicate | None = None,
        retry_on_error: ErrorPredicate | None = None,
    ) -> RetryPolicy:
        """Build a policy with a constant wait; missing predicates use the defaults."""
        return cls(
            name=name,
            max_attempts=max_attempts,
            backoff=FixedInterval(wait),  # type: ignore[arg-type]  # timedelta converted in __post_init__
            retry_on_outcome=retry_on_outcome or RetryableStatus(),
            retry_on_error=retry_on_error or ConnectionFailure(),
        )

    @classmethod
    def exponential(  # noqa: PLR0913 - mirrors the policy document fields
        cls,
        name: str,
        *,
        max_attempts: int,
        initial: float | timedelta,
        multiplier: float,
        max_wait: float | timedelta | None = None,
        retry_on_outcome: OutcomePredicate | None = None,
        retry_on_error: ErrorPredicate | None = None,
    ) -> RetryPolicy:
        """Build a policy with exponential backoff; missing predicates use the defaults."""
        return cls(
            name=name,
            max_attempts=max_attempts,
            backoff=ExponentialBackoff(initial, multiplier, max_wait),  # type: ignore[arg-type]  # timedelta converted in __post_init__
            retry_on_outcome=retry_on_outcome or RetryableStatus(),
            retry_on_error=retry_on_error or ConnectionFailure(),
        )

    def renamed(self, name: str) -> RetryPolicy:
        """Return this policy under another name (self when unchanged)."""
        return self if name == self.name else replace(self, name=name)


def default_policy(
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    wait_s: float = DEFAULT_WAIT_S,
) -> RetryPolicy:
    """Return the built-in default policy.

    Three attempts two seconds apart, retrying non-200 statuses the status
    table marks retryable and connection failures.
    """
    return RetryPolicy.fixed(DEFAULT_POLICY_NAME, max_attempts=max_attempts, wait=wait_s)


# Policy documents


@lru_cache(maxsize=1)
def _policy_schema() -> dict[str, object]:
    return json.loads(_SCHEMA_PATH.read_text(encoding="utf-8"))


def _outcome_predicate(doc: Mapping[str, object] | None) -> OutcomePredicate:
    kind = (doc or {}).get("kind", "retryable_status")
    statuses = frozenset(int(s) for s in (doc or {}).get("statuses", ()))  # type: ignore[attr-defined]
    match kind:
        case "retryable_status":
            return RetryableStatus()
        case "status_not_in":
            return StatusNotIn(statuses)
        case "status_in":
            return StatusIn(statuses)
        case "never":
            return NeverRetry()
    msg = f"Unknown outcome predicate kind: {kind!r}"
    raise InvalidPolicyError(msg)


def _error_predicate(doc: Mapping[str, object] | None) -> ErrorPredicate:
    kind = (doc or {}).get("kind", "connection_failure")
    match kind:
        case "connection_failure":
            return ConnectionFailure()
        case "error_types":
            return ErrorTypeIn(frozenset((doc or {}).get("names", ())))  # type: ignore[arg-type]
        case "always":
            return AlwaysRetry()
        case "never":
            return NeverRetry()
    msg = f"Unknown error predicate kind: {kind!r}"
    raise InvalidPolicyError(msg)


def _backoff(doc: Mapping[str, object]) -> Backoff:
    if doc["kind"] == "fixed":
        return FixedInterval(doc["wait_s"])  # type: ignore[arg-type]
    return ExponentialBackoff(
        initial=doc["initial_s"],  # type: ignore[arg-type]
        multiplier=doc.get("multiplier", 2.0),  # type: ignore[arg-type]
        max_wait=doc.get("max_s"),  # type: ignore[arg-type]
    )


def policy_from_mapping(obj: Mapping[str, object]) -> RetryPolicy:
    """Build a :class:`RetryPolicy` from a parsed policy document.

    Parameters
    ----------
    obj : Mapping[str, object]
        Document matching ``policy.schema.json``.

    Returns
    -------
    RetryPolicy
        Policy described by the document.

    Raises
    ------
    InvalidPolicyError
        If the document violates the schema or holds invalid values.
    """
    try:
        jsonschema.validate(obj, _policy_schema())
    except jsonschema.ValidationError as exc:
        msg = f"Invalid retry policy document: {exc.message}"
        raise InvalidPolicyError(msg, cause=exc, context={"path": list(exc.path)}) from exc
    retry_on = obj.get("retry_on") or {}
    return RetryPolicy(
        name=str(obj["name"]),
        max_attempts=int(obj.get("max_attempts", DEFAULT_MAX_ATTEMPTS)),  # type: ignore[call-overload]
        backoff=_backoff(obj.get("backoff") or {"kind": "fixed", "wait_s": DEFAULT_WAIT_S}),  # type: ignore[arg-type]
        retry_on_outcome=_outcome_predicate(retry_on.get("outcome")),  # type: ignore[union-attr]
        retry_on_error=_error_predicate(retry_on.get("error")),  # type: ignore[union-attr]
    )


def load_policy(path: Path) -> RetryPolicy:
    """Load a retry policy from a YAML file.

    Parameters
    ----------
    path : Path
        Path to the policy YAML file.

    Returns
    -------
    RetryPolicy
        Loaded policy.

    Raises
    ------
    InvalidPolicyError
        If the file is not valid YAML or does not describe a valid policy.

    Notes
    -----
    ``FileNotFoundError`` from ``path.read_text()`` propagates unchanged.
    """
    try:
        obj = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        msg = f"Policy file {path} is not valid YAML"
        raise InvalidPolicyError(msg, cause=exc, context={"path": str(path)}) from exc
    if not isinstance(obj, Mapping):
        msg = f"Policy file {path} must contain a mapping"
        raise InvalidPolicyError(msg, context={"path": str(path)})
    return policy_from_mapping(obj)


class RetryPolicyRegistry:
    """Thread-safe registry resolving retry policies by name.

    The registry always holds an entry under :data:`DEFAULT_POLICY_NAME`;
    blank, missing and unregistered names resolve to it. Registering under
    the default name is the way to change the default.

    Parameters
    ----------
    default : RetryPolicy | None, optional
        Policy seeded under the default name. Defaults to :func:`default_policy`.

    Examples
    --------
    >>> registry = RetryPolicyRegistry()
    >>> registry.resolve("") is registry.resolve(DEFAULT_POLICY_NAME)
    True
    >>> registry.resolve("missing").name
    'default'
    """

    def __init__(self, default: RetryPolicy | None = None) -> None:
        self._lock = threading.Lock()
        seed = (default or default_policy()).renamed(DEFAULT_POLICY_NAME)
        self._entries: dict[str, RetryPolicy] = {DEFAULT_POLICY_NAME: seed}

    @property
    def default(self) -> RetryPolicy:
        """Policy currently registered under the default name."""
        with self._lock:
            return self._entries[DEFAULT_POLICY_NAME]

    def resolve(self, name: str | None = None) -> RetryPolicy:
        """Return the policy registered under ``name``, or the default.

        Never raises: blank, None and unregistered names fall back to the
        default entry.
        """
        key = name.strip() if name else ""
        with self._lock:
            policy = self._entries.get(key) if key else None
            return policy if policy is not None else self._entries[DEFAULT_POLICY_NAME]

    def register(self, name: str, policy: RetryPolicy) -> RetryPolicy:
        """Insert or replace the policy under ``name``.

        Executor calls that already captured a policy keep using it.

        Returns
        -------
        RetryPolicy
            The stored policy, renamed to ``name`` when its own name differs.

        Raises
        ------
        InvalidPolicyError
            If ``name`` is blank or ``policy`` is not a :class:`RetryPolicy`.
        """
        if not isinstance(name, str) or not name.strip():
            msg = "Retry policy name must be a non-empty string"
            raise InvalidPolicyError(msg)
        if not isinstance(policy, RetryPolicy):
            msg = f"Expected RetryPolicy, got {type(policy).__name__}"
            raise InvalidPolicyError(msg)
        key = name.strip()
        stored = policy.renamed(key)
        with self._lock:
            replaced = key in self._entries
            self._entries[key] = stored
        logger.info(
            "Registered retry policy",
            extra={
                "operation": "register_policy",
                "policy": key,
                "max_attempts": stored.max_attempts,
                "replaced": replaced,
            },
        )
        return stored

    def register_all(self, policies: Iterable[RetryPolicy]) -> None:
        """Register each policy under its own name."""
        for policy in policies:
            self.register(policy.name, policy)

    def load_directory(self, root: Path) -> list[str]:
        """Register every ``*.yaml`` / ``*.yml`` policy document under ``root``.

        Returns
        -------
        list[str]
            Names registered, in file order.

        Raises
        ------
        FileNotFoundError
            If ``root`` is not a directory.
        """
        if not root.is_dir():
            raise FileNotFoundError(root)
        paths = sorted([*root.glob("*.yaml"), *root.glob("*.yml")])
        loaded = [load_policy(path) for path in paths]
        self.register_all(loaded)
        return [policy.name for policy in loaded]

    def names(self) -> list[str]:
        """Return registered policy names, sorted."""
        with self._lock:
            return sorted(self._entries)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
