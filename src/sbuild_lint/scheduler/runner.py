"""Concurrent lint run over many recipe files."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from sbuild_lint.config.options import LintOptions
from sbuild_lint.domain.errors import RecipeIOError
from sbuild_lint.domain.models import JobOutcome, RunReport
from sbuild_lint.recipe.schema import load_schema
from sbuild_lint.scheduler.job import RecipeJob
from sbuild_lint.utils.concurrency import WorkerPool
from sbuild_lint.utils.fs import atomic_write
from sbuild_lint.utils.process import LocalProcessRunner
from sbuild_lint.validation.syntax_checker import SyntaxChecker
from sbuild_lint.validation.version_probe import VersionProber

if TYPE_CHECKING:
    from sbuild_lint.recipe.schema import Schema
    from sbuild_lint.utils.concurrency import CancellationToken
    from sbuild_lint.utils.process import CommandRunner

logger = logging.getLogger(__name__)


async def run_lint(
    paths: Iterable[str],
    options: LintOptions | None = None,
    *,
    cancel_token: CancellationToken | None = None,
    runner: CommandRunner | None = None,
    schema: Schema | None = None,
) -> RunReport:
    """Lint ``paths`` with ``options.parallelism`` workers and return the report.

    Outcomes are in completion order; use ``RunReport.sorted_by_input`` for
    input order. When ``cancel_token`` fires, in-flight jobs are cancelled
    (killing their subprocesses) and the report lists the unprocessed paths.
    """

    active_options = options or LintOptions()
    active_schema = schema or load_schema()
    command_runner = runner or LocalProcessRunner()

    syntax_checker: SyntaxChecker | None = None
    if active_options.syntax_check:
        syntax_checker = SyntaxChecker(
            command_runner,
            executable=active_options.shellcheck_executable,
            severity=active_options.shellcheck_severity,
            timeout_seconds=active_options.syntax_check_timeout_seconds,
        )
    prober: VersionProber | None = None
    if active_options.pkgver:
        prober = VersionProber(
            command_runner, timeout_seconds=active_options.probe_timeout_seconds
        )

    async def handle(item: tuple[int, str]) -> JobOutcome:
        index, path = item
        job = RecipeJob(
            path,
            options=active_options,
            schema=active_schema,
            syntax_checker=syntax_checker,
            prober=prober,
            input_index=index,
        )
        return await job.run()

    items = list(enumerate(str(path) for path in paths))
    logger.info("linting %d recipe(s) with %d worker(s)", len(items), active_options.parallelism)

    started_ns = time.monotonic_ns()
    pool: WorkerPool[tuple[int, str], JobOutcome] = WorkerPool(
        size=active_options.parallelism, cancel_token=cancel_token
    )
    pool_run = await pool.run(items, handle)

    report = RunReport(
        outcomes=pool_run.results,
        cancelled=pool_run.cancelled,
        pending=tuple(path for _, path in pool_run.unprocessed),
        duration_ms=(time.monotonic_ns() - started_ns) // 1_000_000,
    )
    if report.cancelled:
        logger.warning("run cancelled with %d recipe(s) unprocessed", len(report.pending))

    await asyncio.to_thread(write_path_lists, report, active_options)
    return report


def write_path_lists(report: RunReport, options: LintOptions) -> None:
    """Persist succeeded/failed path lists, one path per line, input order."""

    ordered = report.sorted_by_input()
    if options.success_list is not None:
        _write_list(options.success_list, ordered.succeeded_paths)
    if options.failure_list is not None:
        _write_list(options.failure_list, ordered.failed_paths)


def _write_list(destination: str, paths: Sequence[str]) -> None:
    content = "".join(f"{path}\n" for path in paths)
    try:
        atomic_write(destination, content)
    except OSError as exc:
        raise RecipeIOError(destination, f"cannot write path list: {exc}") from exc
    logger.debug("wrote %d path(s) to %s", len(paths), destination)


__all__ = ["run_lint", "write_path_lists"]
