from __future__ import annotations

import re
from typing import Protocol

from bratsutils.domain.command import ExternalCommand
from bratsutils.domain.outcome import AwaitResult, CommandResult


class RunningProcessPort(Protocol):
    @property
    def command(self) -> ExternalCommand: ...
    @property
    def pid(self) -> int: ...
    @property
    def output(self) -> str: ...
    @property
    def drained(self) -> bool: ...
    def poll(self) -> int | None: ...
    def wait(self, timeout: float) -> int | None: ...
    def wait_for_output(self, regex: re.Pattern[str], timeout: float) -> re.Match[str] | None: ...
    def terminate(self, grace: float = ...) -> int | None: ...


class ProcessSupervisorPort(Protocol):
    def run(self, command: ExternalCommand) -> RunningProcessPort: ...
    def await_exit(
        self, process: RunningProcessPort, timeout: float, expected_exit_code: int = 0
    ) -> AwaitResult: ...
    def await_pattern_then_exit(
        self,
        process: RunningProcessPort,
        timeout: float,
        pattern: str | re.Pattern[str],
        expected_exit_code: int = 1,
        literal: bool = False,
    ) -> AwaitResult: ...
    def capture(self, command: ExternalCommand, timeout: float) -> CommandResult: ...
