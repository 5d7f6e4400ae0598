"""
sbuild-lint — bounded subprocess execution

File: src/sbuild_lint/utils/process.py

Purpose
- Run external tools and untrusted recipe fragments as scoped acquisitions:
  spawn, then wait-or-kill in all exit paths.

Functional requirements
- Each command runs in its own session so the whole process tree can be
  signalled at once.
- Timeout and task cancellation kill the process group before returning or
  re-raising; no child of the command survives the call.
- The deadline covers the command itself, not its output pipes: a command that
  exits in time is never reported as timed out because a background child
  still holds stdout open.
- Spawn failures (missing binary, bad cwd) are reported as results, not raised.

Non-functional requirements
- Output is captured as text with normalized newlines and bounded size.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from sbuild_lint.constants import KILL_GRACE_SECONDS

logger = logging.getLogger(__name__)

_DEFAULT_MAX_OUTPUT_CHARS = 200_000
_EXIT_POLL_SECONDS = 0.02
_READ_CHUNK_BYTES = 64 * 1024


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """Portable command invocation contract."""

    argv: tuple[str, ...]
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    timeout_seconds: float | None = None
    inherit_env: bool = True

    def __post_init__(self) -> None:
        if not self.argv or not all(isinstance(item, str) and item for item in self.argv):
            raise ValueError("CommandSpec.argv must be a non-empty tuple of non-empty strings")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("CommandSpec.timeout_seconds must be > 0")

    def build_env(self) -> dict[str, str]:
        if not self.inherit_env:
            return dict(self.env)
        env = dict(os.environ)
        env.update(self.env)
        return env


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Deterministic command execution outcome."""

    argv: tuple[str, ...]
    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False
    error: str | None = None

    @property
    def spawn_failed(self) -> bool:
        return self.error is not None and not self.timed_out

    def is_success(self) -> bool:
        if self.timed_out or self.error is not None or self.exit_code is None:
            return False
        return self.exit_code == 0


@runtime_checkable
class CommandRunner(Protocol):
    """Pluggable async command execution interface."""

    async def run(self, spec: CommandSpec) -> CommandResult: ...


class LocalProcessRunner(CommandRunner):
    """Async local runner that owns the full lifetime of each child process group."""

    def __init__(
        self,
        *,
        kill_grace_seconds: float = KILL_GRACE_SECONDS,
        max_output_chars: int | None = _DEFAULT_MAX_OUTPUT_CHARS,
    ) -> None:
        if kill_grace_seconds <= 0:
            raise ValueError("kill_grace_seconds must be > 0")
        self._kill_grace_seconds = kill_grace_seconds
        self._max_output_chars = max_output_chars

    async def run(self, spec: CommandSpec) -> CommandResult:
        started_ns = time.monotonic_ns()

        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                cwd=spec.cwd,
                env=spec.build_env(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            return CommandResult(
                argv=spec.argv,
                exit_code=None,
                stdout="",
                stderr="",
                duration_ms=_elapsed_ms(started_ns),
                error=str(exc),
            )

        logger.debug("spawned %s (pid %d)", spec.argv[0], process.pid)
        stdout_buffer = bytearray()
        stderr_buffer = bytearray()
        readers = {
            asyncio.create_task(_read_stream(process.stdout, stdout_buffer)),
            asyncio.create_task(_read_stream(process.stderr, stderr_buffer)),
        }
        timed_out = False
        error_text: str | None = None
        try:
            try:
                await asyncio.wait_for(_wait_for_exit(process), timeout=spec.timeout_seconds)
            except TimeoutError:
                timed_out = True
                error_text = f"command timed out after {spec.timeout_seconds:g}s"
                logger.warning("killed %s (pid %d): %s", spec.argv[0], process.pid, error_text)
        finally:
            # Background children left behind by a finished command are reaped too.
            _kill_process_group(process)
            await self._drain(process, readers)

        return CommandResult(
            argv=spec.argv,
            exit_code=None if timed_out else process.returncode,
            stdout=self._render(stdout_buffer),
            stderr=self._render(stderr_buffer),
            duration_ms=_elapsed_ms(started_ns),
            timed_out=timed_out,
            error=error_text,
        )

    def _render(self, raw: bytearray) -> str:
        return _truncate_text(_normalize_output_text(bytes(raw)), self._max_output_chars)

    async def _drain(
        self, process: asyncio.subprocess.Process, readers: set[asyncio.Task[None]]
    ) -> None:
        _, pending = await asyncio.wait(readers, timeout=self._kill_grace_seconds)
        if pending:
            logger.warning("pid %d did not release its output pipes after kill", process.pid)
            for task in pending:
                task.cancel()
        await asyncio.gather(*readers, return_exceptions=True)
        if process.returncode is None:
            with suppress(TimeoutError):
                await asyncio.wait_for(_wait_for_exit(process), timeout=self._kill_grace_seconds)


async def _wait_for_exit(process: asyncio.subprocess.Process) -> int:
    # Process.wait() also waits for the pipes, which a background child may hold open.
    while process.returncode is None:
        await asyncio.sleep(_EXIT_POLL_SECONDS)
    return process.returncode


async def _read_stream(stream: asyncio.StreamReader | None, sink: bytearray) -> None:
    if stream is None:
        return
    while chunk := await stream.read(_READ_CHUNK_BYTES):
        sink.extend(chunk)


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    if hasattr(os, "killpg"):
        with suppress(ProcessLookupError, PermissionError):
            os.killpg(process.pid, signal.SIGKILL)
            return
    if process.returncode is None:
        with suppress(ProcessLookupError):
            process.kill()


def _elapsed_ms(started_ns: int) -> int:
    delta_ns = time.monotonic_ns() - started_ns
    if delta_ns < 0:
        return 0
    return delta_ns // 1_000_000


def _normalize_output_text(raw: bytes) -> str:
    text = raw.decode("utf-8", errors="replace")
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _truncate_text(text: str, max_chars: int | None) -> str:
    if max_chars is None or len(text) <= max_chars:
        return text
    omitted = len(text) - max_chars
    return f"{text[:max_chars]}\n...[truncated {omitted} chars]"


__all__ = ["CommandResult", "CommandRunner", "CommandSpec", "LocalProcessRunner"]
