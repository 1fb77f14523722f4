from __future__ import annotations

import re
from pathlib import Path

import pytest

from bratsutils.adapters.process.subprocess_supervisor import SubprocessSupervisor
from bratsutils.domain.command import ExternalCommand
from bratsutils.domain.outcome import AwaitResult, CommandResult, ExpectationOutcome
from bratsutils.domain.suite import SuiteConfig


class FakeProcess:
    def __init__(self, command: ExternalCommand, pid: int) -> None:
        self.command = command
        self.pid = pid
        self.output = ""
        self.drained = True
        self.terminated = False

    def poll(self) -> int | None:
        return 0

    def wait(self, timeout: float) -> int | None:
        return 0

    def wait_for_output(self, regex: re.Pattern[str], timeout: float) -> re.Match[str] | None:
        return regex.search(self.output)

    def terminate(self, grace: float = 5.0) -> int | None:
        self.terminated = True
        return 0


class RecordingSupervisor:
    """Records every command and answers with canned outcomes."""

    def __init__(self) -> None:
        self.commands: list[ExternalCommand] = []
        self.awaits: list[tuple[str, float, str | None, int]] = []
        self.outcome = ExpectationOutcome.EXIT_CODE_MATCHED
        self.capture_result = CommandResult(exit_code=0, stdout="", stderr="")

    def run(self, command: ExternalCommand) -> FakeProcess:
        self.commands.append(command)
        return FakeProcess(command, pid=1000 + len(self.commands))

    def _result(self, expected: int, pattern: str | None) -> AwaitResult:
        exit_code = None if self.outcome == ExpectationOutcome.TIMED_OUT else expected
        if self.outcome == ExpectationOutcome.EXIT_CODE_MISMATCH:
            exit_code = expected + 1
        return AwaitResult(
            outcome=self.outcome,
            expected_exit_code=expected,
            exit_code=exit_code,
            output="",
            elapsed=0.0,
            pattern=pattern,
        )

    def await_exit(self, process, timeout, expected_exit_code=0):
        self.awaits.append(("exit", timeout, None, expected_exit_code))
        return self._result(expected_exit_code, None)

    def await_pattern_then_exit(
        self, process, timeout, pattern, expected_exit_code=1, literal=False
    ):
        text = pattern if isinstance(pattern, str) else pattern.pattern
        self.awaits.append(("pattern", timeout, text, expected_exit_code))
        return self._result(expected_exit_code, text)

    def capture(self, command: ExternalCommand, timeout: float) -> CommandResult:
        self.commands.append(command)
        return self.capture_result


@pytest.fixture
def recording_supervisor() -> RecordingSupervisor:
    return RecordingSupervisor()


@pytest.fixture
def supervisor() -> SubprocessSupervisor:
    return SubprocessSupervisor(poll_interval=0.05)


@pytest.fixture
def sh():
    def _sh(script: str, env: dict[str, str] | None = None) -> ExternalCommand:
        return ExternalCommand.of("sh", "-c", script, env=env)

    return _sh


@pytest.fixture
def suite(tmp_path: Path) -> SuiteConfig:
    return SuiteConfig(
        worker_index=2,
        outer_bosh_binary_path="/usr/local/bin/bosh",
        director_release_path="/tmp/releases/bosh-dev.tgz",
        stemcell_os="ubuntu-jammy",
        bosh_environment="10.0.0.6",
        bosh_deployment_path=tmp_path / "bosh-deployment",
        assets_path=tmp_path / "assets",
        scripts_path=tmp_path / "scripts",
        inner_bosh_root=tmp_path / "inner-bosh",
    )
