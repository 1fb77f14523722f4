from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ExpectationOutcome(str, Enum):
    EXIT_CODE_MATCHED = "exit_code_matched"
    PATTERN_THEN_EXIT_MATCHED = "pattern_then_exit_matched"
    TIMED_OUT = "timed_out"
    EXIT_CODE_MISMATCH = "exit_code_mismatch"
    PATTERN_MISSING = "pattern_missing"

    @property
    def matched(self) -> bool:
        return self in (
            ExpectationOutcome.EXIT_CODE_MATCHED,
            ExpectationOutcome.PATTERN_THEN_EXIT_MATCHED,
        )


@dataclass(frozen=True)
class AwaitResult:
    outcome: ExpectationOutcome
    expected_exit_code: int
    exit_code: int | None
    output: str
    elapsed: float
    pattern: str | None = None

    @property
    def matched(self) -> bool:
        return self.outcome.matched

    def output_tail(self, limit: int = 2000) -> str:
        if len(self.output) <= limit:
            return self.output
        return self.output[-limit:]


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    stdout: str
    stderr: str
