from pathlib import Path
import json as _json
import os
import sys

import typer

from bratsutils.adapters.certificates.stage import CertificateStage
from bratsutils.adapters.environment.suite_env import load_suite_config, worker_index_from_env
from bratsutils.adapters.errors import (
    AdapterError,
    CommandTimeout,
    LaunchError,
    MissingConfiguration,
)
from bratsutils.adapters.process.subprocess_supervisor import SubprocessSupervisor
from bratsutils.application import external_db, inner_director
from bratsutils.application.result_serialization import serialize_await_result
from bratsutils.domain.command import ExternalCommand
from bratsutils.domain.outcome import ExpectationOutcome
from bratsutils.domain.suite import SuiteConfig
from bratsutils.entrypoints.logging_setup import configure_logging

EXIT_MISMATCH = 1
EXIT_CONFIG = 2
EXIT_TIMEOUT = 124
EXIT_LAUNCH = 127

app = typer.Typer(add_completion=False)


def _exit_code_for(err: AdapterError) -> int:
    if isinstance(err, LaunchError):
        return EXIT_LAUNCH
    if isinstance(err, CommandTimeout):
        return EXIT_TIMEOUT
    if isinstance(err, MissingConfiguration):
        return EXIT_CONFIG
    return EXIT_MISMATCH


def _fail(err: AdapterError) -> typer.Exit:
    typer.echo(f"error: {err}", err=True)
    if err.hint:
        typer.echo(f"hint: {err.hint}", err=True)
    return typer.Exit(_exit_code_for(err))


def _suite(worker_index: int | None) -> SuiteConfig:
    env = dict(os.environ)
    index = worker_index if worker_index is not None else worker_index_from_env(env)
    return load_suite_config(env, index)


def _supervisor() -> SubprocessSupervisor:
    return SubprocessSupervisor(sink=sys.stdout)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v")) -> None:
    configure_logging(verbose)


@app.command(
    context_settings={"allow_interspersed_args": False, "ignore_unknown_options": True}
)
def run(
    executable: str = typer.Argument(...),
    args: list[str] = typer.Argument(None),
    timeout: float = typer.Option(60.0, "--timeout"),
    expect_exit: int = typer.Option(0, "--expect-exit"),
    pattern: str | None = typer.Option(None, "--pattern"),
    literal: bool = typer.Option(False, "--literal"),
    terminate_on_timeout: bool = typer.Option(False, "--terminate-on-timeout"),
    json: bool = False,
):
    """Run one command and check its exit code, optionally after a pattern."""
    command = ExternalCommand.of(executable, *(args or []))
    supervisor = SubprocessSupervisor(
        terminate_on_timeout=terminate_on_timeout,
        sink=None if json else sys.stdout,
    )
    try:
        process = supervisor.run(command)
    except LaunchError as e:
        raise _fail(e)
    if pattern is None:
        result = supervisor.await_exit(process, timeout, expect_exit)
    else:
        result = supervisor.await_pattern_then_exit(
            process, timeout, pattern, expect_exit, literal=literal
        )
    if json:
        typer.echo(_json.dumps(serialize_await_result(result, command)))
    else:
        typer.echo(f"{command.name}: {result.outcome.value}", err=True)
    if result.matched:
        raise typer.Exit(0)
    if result.outcome == ExpectationOutcome.TIMED_OUT:
        raise typer.Exit(EXIT_TIMEOUT)
    raise typer.Exit(EXIT_MISMATCH)


@app.command()
def start_director(
    args: list[str] = typer.Argument(None),
    expect_error: str | None = typer.Option(None, "--expect-error"),
    worker_index: int | None = typer.Option(None, "--worker-index"),
):
    try:
        suite = _suite(worker_index)
        inner_director.start_inner_bosh(
            suite, _supervisor(), *(args or []), expected_error=expect_error
        )
    except AdapterError as e:
        raise _fail(e)


@app.command()
def stop_director(worker_index: int | None = typer.Option(None, "--worker-index")):
    try:
        inner_director.stop_inner_bosh(_suite(worker_index), _supervisor())
    except AdapterError as e:
        raise _fail(e)


@app.command()
def upload_director_release(worker_index: int | None = typer.Option(None, "--worker-index")):
    """Build the director release under test and upload it to the outer director."""
    try:
        inner_director.create_and_upload_release(_suite(worker_index), _supervisor())
    except AdapterError as e:
        raise _fail(e)


@app.command()
def upload_stemcell(
    url: str,
    worker_index: int | None = typer.Option(None, "--worker-index"),
):
    try:
        inner_director.upload_stemcell(_suite(worker_index), _supervisor(), url)
    except AdapterError as e:
        raise _fail(e)


@app.command()
def upload_release(
    url: str,
    worker_index: int | None = typer.Option(None, "--worker-index"),
):
    try:
        inner_director.upload_release(_suite(worker_index), _supervisor(), url)
    except AdapterError as e:
        raise _fail(e)


def _with_external_db(
    dbaas: str,
    mutual_tls: bool,
    cert_dir: Path | None,
    worker_index: int | None,
    create: bool,
) -> None:
    try:
        suite = _suite(worker_index)
        supervisor = _supervisor()
        with CertificateStage(cert_dir) as stage:
            db = external_db.load_external_db_config(
                dbaas, suite, stage, supervisor, dict(os.environ), mutual_tls=mutual_tls
            )
            if create:
                external_db.create_db(db, supervisor)
            else:
                external_db.delete_db(db, supervisor)
            typer.echo(db.db_name)
    except AdapterError as e:
        raise _fail(e)


@app.command()
def create_db(
    dbaas: str,
    mutual_tls: bool = typer.Option(False, "--mutual-tls"),
    cert_dir: Path | None = typer.Option(None, "--cert-dir"),
    worker_index: int | None = typer.Option(None, "--worker-index"),
):
    _with_external_db(dbaas, mutual_tls, cert_dir, worker_index, create=True)


@app.command()
def drop_db(
    dbaas: str,
    mutual_tls: bool = typer.Option(False, "--mutual-tls"),
    cert_dir: Path | None = typer.Option(None, "--cert-dir"),
    worker_index: int | None = typer.Option(None, "--worker-index"),
):
    _with_external_db(dbaas, mutual_tls, cert_dir, worker_index, create=False)
