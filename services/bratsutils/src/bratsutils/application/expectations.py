from __future__ import annotations

import re

from bratsutils.adapters.errors import CommandFailed, CommandTimeout
from bratsutils.domain.command import ExternalCommand
from bratsutils.domain.outcome import AwaitResult, ExpectationOutcome
from bratsutils.ports.process_supervisor import ProcessSupervisorPort


def _failure_details(result: AwaitResult, command: ExternalCommand) -> dict[str, object]:
    return {
        "executable": command.executable,
        "outcome": result.outcome.value,
        "expected_exit_code": result.expected_exit_code,
        "exit_code": result.exit_code,
        "pattern": result.pattern,
        "elapsed": round(result.elapsed, 3),
        "output_tail": result.output_tail(),
    }


def ensure_matched(result: AwaitResult, command: ExternalCommand) -> AwaitResult:
    if result.matched:
        return result
    details = _failure_details(result, command)
    if result.outcome == ExpectationOutcome.TIMED_OUT:
        raise CommandTimeout(
            f"{command.name} did not finish within {result.elapsed:.1f}s", details=details
        )
    if result.outcome == ExpectationOutcome.PATTERN_MISSING:
        raise CommandFailed(
            f"{command.name} never printed {result.pattern!r}",
            details=details,
        )
    raise CommandFailed(
        f"{command.name} exited with {result.exit_code}, expected {result.expected_exit_code}",
        details=details,
    )


def expect_exit(
    supervisor: ProcessSupervisorPort,
    command: ExternalCommand,
    timeout: float,
    exit_code: int = 0,
) -> AwaitResult:
    process = supervisor.run(command)
    return ensure_matched(supervisor.await_exit(process, timeout, exit_code), command)


def expect_failure(
    supervisor: ProcessSupervisorPort,
    command: ExternalCommand,
    timeout: float,
    pattern: str | re.Pattern[str],
    exit_code: int = 1,
) -> AwaitResult:
    process = supervisor.run(command)
    result = supervisor.await_pattern_then_exit(process, timeout, pattern, exit_code)
    return ensure_matched(result, command)
