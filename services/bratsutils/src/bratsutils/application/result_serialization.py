from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from bratsutils.domain.command import ExternalCommand
from bratsutils.domain.outcome import AwaitResult


def serialize_await_result(result: AwaitResult, command: ExternalCommand) -> dict[str, Any]:
    return {
        "result_schema_version": 1,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "executable": command.executable,
        "args": list(command.args),
        "outcome": result.outcome.value,
        "matched": result.matched,
        "expected_exit_code": result.expected_exit_code,
        "exit_code": result.exit_code,
        "pattern": result.pattern,
        "elapsed": round(result.elapsed, 3),
        "output": result.output,
    }
