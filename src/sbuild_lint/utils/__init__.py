"""Utility exports for filesystem, hashing, process and concurrency helpers."""

from sbuild_lint.utils.concurrency import CancellationToken, PoolRun, ResultSink, WorkerPool
from sbuild_lint.utils.fs import (
    atomic_write,
    atomic_write_async,
    read_text,
    read_text_async,
    scratch_script,
    sidecar_path,
)
from sbuild_lint.utils.hashing import sha256_bytes, sha256_text
from sbuild_lint.utils.process import (
    CommandResult,
    CommandRunner,
    CommandSpec,
    LocalProcessRunner,
)

__all__ = [
    "CancellationToken",
    "CommandResult",
    "CommandRunner",
    "CommandSpec",
    "LocalProcessRunner",
    "PoolRun",
    "ResultSink",
    "WorkerPool",
    "atomic_write",
    "atomic_write_async",
    "read_text",
    "read_text_async",
    "scratch_script",
    "sha256_bytes",
    "sha256_text",
    "sidecar_path",
]
