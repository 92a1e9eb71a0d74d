"""Command line entry point for one-off GET requests with retries."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Annotated

import typer

from retrying_client.cancellation import CancellationToken
from retrying_client.client import RetryingHttpClient
from retrying_client.errors import (
    RetryingClientError,
    UnacceptableResponseError,
)
from retrying_client.logging import get_logger, setup_logging, with_fields
from retrying_client.problem_details import render_problem
from retrying_client.request import DEFAULT_ACCEPTED_TYPE, RequestDescriptor
from retrying_client.settings import load_settings

__all__ = ["app", "get"]

LOGGER = get_logger(__name__)

EXIT_UNACCEPTED = 1
EXIT_ERROR = 2

app = typer.Typer(
    help="Retrying HTTP GET client.", no_args_is_help=True, add_completion=False
)


@app.callback()
def main() -> None:
    """Retrying HTTP GET client."""


def _pairs(values: list[str] | None, separator: str, what: str) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for value in values or []:
        key, sep, item = value.partition(separator)
        if not sep or not key.strip():
            msg = f"Expected {what} as KEY{separator}VALUE, got {value!r}"
            raise typer.BadParameter(msg)
        parsed[key.strip()] = item.strip()
    return parsed


def _fail(exc: RetryingClientError, uri: str, code: int) -> typer.Exit:
    LOGGER.log_failure(
        "GET failed",
        exception=exc,
        operation="cli_get",
        level=exc.log_level,
        uri=uri,
        exit_code=code,
    )
    typer.echo(render_problem(exc.to_problem_details(instance=uri)), err=True)
    return typer.Exit(code=code)


@app.command()
def get(  # noqa: PLR0913 - one option per request field
    url: Annotated[str, typer.Argument(help="Absolute URI to fetch.")],
    policy: Annotated[
        str | None,
        typer.Option("--policy", "-p", help="Registered retry policy name.", metavar="NAME"),
    ] = None,
    policies_dir: Annotated[
        Path | None,
        typer.Option(
            "--policies-dir",
            help="Directory of YAML retry policy documents.",
            exists=True,
            file_okay=False,
        ),
    ] = None,
    accept: Annotated[
        str, typer.Option("--accept", "-a", help="Accepted media type.", show_default=True)
    ] = DEFAULT_ACCEPTED_TYPE,
    header: Annotated[
        list[str] | None,
        typer.Option("--header", "-H", help="Request header as NAME:VALUE.", metavar="NAME:VALUE"),
    ] = None,
    param: Annotated[
        list[str] | None,
        typer.Option("--param", "-q", help="Query parameter as KEY=VALUE.", metavar="KEY=VALUE"),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", help="Overall deadline in seconds.", min=0.0),
    ] = None,
) -> None:
    """Fetch URL, retrying per the chosen policy, and print the terminal response.

    Raises
    ------
    typer.Exit
        With code 1 when the terminal status is not 200, and code 2 on
        transport, cancellation or configuration errors.
    """
    start = time.monotonic()
    try:
        settings = load_settings()
        if policies_dir is not None:
            settings = settings.model_copy(update={"policies_dir": policies_dir})
        setup_logging(settings.observability.log_level, json_format=settings.observability.json_logs)
        descriptor = RequestDescriptor(
            url,
            accepted_type=accept,
            headers=_pairs(header, ":", "header"),
            query_params=_pairs(param, "=", "query parameter"),
        )
        cancel = CancellationToken(deadline_s=timeout) if timeout is not None else None
        with (
            with_fields(LOGGER, operation="cli_get", uri=url) as logger,
            RetryingHttpClient(settings=settings) as client,
        ):
            outcome = client.get_with_retries(descriptor, policy, cancel=cancel)
            logger.log_success(
                "GET completed",
                duration_ms=(time.monotonic() - start) * 1000,
                status_code=outcome.status_code,
            )
    except RetryingClientError as exc:
        raise _fail(exc, url, EXIT_ERROR) from exc
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    typer.echo(f"HTTP {outcome.status_code}")
    if outcome.body:
        typer.echo(outcome.text)
    if not outcome.accepted:
        raise _fail(UnacceptableResponseError(outcome), url, EXIT_UNACCEPTED)


if __name__ == "__main__":  # pragma: no cover - manual execution entrypoint
    app()
