from __future__ import annotations

import codecs
import logging
import os
import re
import subprocess
import sys
import threading
import time
from typing import IO, Mapping, TextIO

import psutil

from bratsutils.adapters.errors import CommandTimeout, LaunchError
from bratsutils.domain.command import ExternalCommand
from bratsutils.domain.outcome import AwaitResult, CommandResult, ExpectationOutcome
from bratsutils.ports.process_supervisor import RunningProcessPort

log = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_TERMINATE_GRACE = 5.0
CHUNK_SIZE = 65536


def compile_pattern(pattern: str | re.Pattern[str], literal: bool = False) -> re.Pattern[str]:
    if isinstance(pattern, re.Pattern):
        return pattern
    return re.compile(re.escape(pattern) if literal else pattern)


class OutputBuffer:
    """Combined stdout/stderr text of one child process.

    Appended to by the reader thread only; closed once the stream hits EOF.
    """

    def __init__(self) -> None:
        self._chunks: list[str] = []
        self._closed = False
        self._cond = threading.Condition()

    def append(self, chunk: str) -> None:
        with self._cond:
            self._chunks.append(chunk)
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def _joined(self) -> str:
        if len(self._chunks) > 1:
            self._chunks = ["".join(self._chunks)]
        return self._chunks[0] if self._chunks else ""

    def text(self) -> str:
        with self._cond:
            return self._joined()

    def wait_closed(self, timeout: float) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._closed, timeout=max(timeout, 0.0))

    def wait_for_match(self, regex: re.Pattern[str], timeout: float) -> re.Match[str] | None:
        """Block until ``regex`` matches, the stream closes, or ``timeout`` elapses."""
        deadline = time.monotonic() + timeout
        with self._cond:
            while True:
                match = regex.search(self._joined())
                if match is not None or self._closed:
                    return match
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(timeout=remaining)


def _drain(
    stream: IO[bytes],
    buffer: OutputBuffer,
    proc_logger: logging.Logger,
    sink: TextIO | None,
) -> None:
    # Raw chunks, not lines: a banner printed without a newline must still be
    # visible to pattern waits.
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    fd = stream.fileno()
    try:
        while True:
            data = os.read(fd, CHUNK_SIZE)
            text = decoder.decode(data, final=not data)
            if text:
                buffer.append(text)
                if sink is not None:
                    sink.write(text)
                *lines, pending = (pending + text).split("\n")
                for line in lines:
                    proc_logger.debug(line)
            if not data:
                break
        if pending:
            proc_logger.debug(pending)
    finally:
        stream.close()
        buffer.close()


class RunningProcess:
    def __init__(
        self,
        command: ExternalCommand,
        handle: subprocess.Popen[bytes],
        buffer: OutputBuffer,
        reader: threading.Thread,
    ) -> None:
        self._command = command
        self._handle = handle
        self._buffer = buffer
        self._reader = reader

    @property
    def command(self) -> ExternalCommand:
        return self._command

    @property
    def pid(self) -> int:
        return self._handle.pid

    @property
    def output(self) -> str:
        return self._buffer.text()

    @property
    def drained(self) -> bool:
        return self._buffer.closed

    def poll(self) -> int | None:
        # Exit status is only reported once the output has been read to EOF.
        if not self._buffer.closed:
            return None
        return self._handle.poll()

    def wait(self, timeout: float) -> int | None:
        deadline = time.monotonic() + timeout
        if not self._buffer.wait_closed(timeout):
            return None
        try:
            return self._handle.wait(timeout=max(deadline - time.monotonic(), 0.0))
        except subprocess.TimeoutExpired:
            return None

    def wait_for_output(self, regex: re.Pattern[str], timeout: float) -> re.Match[str] | None:
        return self._buffer.wait_for_match(regex, timeout)

    def _descendants(self) -> list[psutil.Process]:
        """Processes to stop alongside the child: its tree plus its session group.

        Helpers re-parented to init after their shell died are only found
        through the process group the child leads.
        """
        found: dict[int, psutil.Process] = {}
        try:
            root = psutil.Process(self.pid)
            for child in root.children(recursive=True):
                found[child.pid] = child
        except psutil.NoSuchProcess:
            pass
        if sys.platform != "win32":
            for proc in psutil.process_iter():
                if proc.pid == self.pid or proc.pid in found:
                    continue
                try:
                    if os.getpgid(proc.pid) == self.pid:
                        found[proc.pid] = proc
                except (ProcessLookupError, PermissionError):
                    continue
        return list(found.values())

    def terminate(self, grace: float = DEFAULT_TERMINATE_GRACE) -> int | None:
        descendants = self._descendants()
        if self._handle.poll() is None:
            log.info("Terminating %s (pid %d)", self._command.name, self.pid)
            self._handle.terminate()
        for proc in descendants:
            try:
                proc.terminate()
            except psutil.NoSuchProcess:
                pass
        try:
            # Popen reaps the child itself so the real return code is kept.
            self._handle.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            log.warning("%s ignored SIGTERM, killing pid %d", self._command.name, self.pid)
            self._handle.kill()
            self._handle.wait()
        _, alive = psutil.wait_procs(descendants, timeout=grace)
        for proc in alive:
            log.warning("Killing leftover pid %d of %s", proc.pid, self._command.name)
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                pass
        psutil.wait_procs(alive, timeout=grace)
        self._reader.join(timeout=grace)
        return self._handle.returncode


class SubprocessSupervisor:
    def __init__(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        terminate_on_timeout: bool = False,
        sink: TextIO | None = None,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        if not 0 < poll_interval < 1:
            raise ValueError("poll_interval must be between 0 and 1 second")
        self.poll_interval = poll_interval
        self.terminate_on_timeout = terminate_on_timeout
        self.sink = sink
        self.base_env = base_env

    def _env_for(self, command: ExternalCommand) -> dict[str, str]:
        return command.merged_env(os.environ if self.base_env is None else self.base_env)

    def _launch_error(self, command: ExternalCommand, exc: OSError) -> LaunchError:
        return LaunchError(
            f"Could not start {command.executable}: {exc.strerror or exc}",
            details={"executable": command.executable, "cwd": str(command.cwd or "")},
            hint="Check that the executable exists and is executable",
            cause=exc,
        )

    def run(self, command: ExternalCommand) -> RunningProcess:
        log.debug("Starting %s with %d args", command.executable, len(command.args))
        try:
            handle = subprocess.Popen(
                command.argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                env=self._env_for(command),
                cwd=command.cwd,
                start_new_session=sys.platform != "win32",
            )
        except OSError as e:
            raise self._launch_error(command, e) from e
        assert handle.stdout is not None
        buffer = OutputBuffer()
        reader = threading.Thread(
            target=_drain,
            args=(handle.stdout, buffer, logging.getLogger(f"proc.{command.name}"), self.sink),
            name=f"drain-{command.name}-{handle.pid}",
            daemon=True,
        )
        reader.start()
        log.info("Started %s (pid %d)", command.name, handle.pid)
        return RunningProcess(command, handle, buffer, reader)

    def await_exit(
        self, process: RunningProcessPort, timeout: float, expected_exit_code: int = 0
    ) -> AwaitResult:
        started = time.monotonic()
        return self._await_exit_until(
            process,
            started,
            started + timeout,
            expected_exit_code,
            ExpectationOutcome.EXIT_CODE_MATCHED,
        )

    def await_pattern_then_exit(
        self,
        process: RunningProcessPort,
        timeout: float,
        pattern: str | re.Pattern[str],
        expected_exit_code: int = 1,
        literal: bool = False,
    ) -> AwaitResult:
        started = time.monotonic()
        deadline = started + timeout
        regex = compile_pattern(pattern, literal)
        match = process.wait_for_output(regex, timeout)
        if match is None:
            if process.drained:
                log.warning("%s finished without printing %r", process.command.name, regex.pattern)
                return self._result(
                    process,
                    ExpectationOutcome.PATTERN_MISSING,
                    started,
                    expected_exit_code,
                    process.wait(max(deadline - time.monotonic(), 0.0)),
                    regex.pattern,
                )
            return self._timed_out(process, started, timeout, expected_exit_code, regex.pattern)
        log.debug("%s printed %r", process.command.name, match.group(0))
        return self._await_exit_until(
            process,
            started,
            deadline,
            expected_exit_code,
            ExpectationOutcome.EXIT_CODE_MATCHED,
            regex.pattern,
        )

    def capture(self, command: ExternalCommand, timeout: float) -> CommandResult:
        log.debug("Capturing %s with %d args", command.executable, len(command.args))
        try:
            completed = subprocess.run(
                command.argv,
                capture_output=True,
                stdin=subprocess.DEVNULL,
                env=self._env_for(command),
                cwd=command.cwd,
                text=True,
                timeout=timeout,
            )
        except OSError as e:
            raise self._launch_error(command, e) from e
        except subprocess.TimeoutExpired as e:
            raise CommandTimeout(
                f"{command.name} did not finish within {timeout:g}s",
                details={"executable": command.executable, "timeout": timeout},
                cause=e,
            ) from e
        return CommandResult(
            exit_code=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )

    def _await_exit_until(
        self,
        process: RunningProcessPort,
        started: float,
        deadline: float,
        expected_exit_code: int,
        success: ExpectationOutcome,
        pattern: str | None = None,
    ) -> AwaitResult:
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return self._timed_out(
                    process, started, deadline - started, expected_exit_code, pattern
                )
            exit_code = process.wait(min(remaining, self.poll_interval))
            if exit_code is None:
                continue
            if exit_code == expected_exit_code:
                outcome = success
            else:
                log.warning(
                    "%s exited with %d, expected %d",
                    process.command.name,
                    exit_code,
                    expected_exit_code,
                )
                outcome = ExpectationOutcome.EXIT_CODE_MISMATCH
            return self._result(process, outcome, started, expected_exit_code, exit_code, pattern)

    def _timed_out(
        self,
        process: RunningProcessPort,
        started: float,
        timeout: float,
        expected_exit_code: int,
        pattern: str | None,
    ) -> AwaitResult:
        log.warning("%s (pid %d) timed out after %gs", process.command.name, process.pid, timeout)
        if self.terminate_on_timeout:
            process.terminate()
        return self._result(
            process, ExpectationOutcome.TIMED_OUT, started, expected_exit_code, None, pattern
        )

    def _result(
        self,
        process: RunningProcessPort,
        outcome: ExpectationOutcome,
        started: float,
        expected_exit_code: int,
        exit_code: int | None,
        pattern: str | None,
    ) -> AwaitResult:
        return AwaitResult(
            outcome=outcome,
            expected_exit_code=expected_exit_code,
            exit_code=exit_code,
            output=process.output,
            elapsed=time.monotonic() - started,
            pattern=pattern,
        )
