"""
sbuild-lint — integration tests for concurrent lint runs

File: tests/integration/test_run_lint.py

Purpose
- Exercise ``run_lint`` end to end with real files and real ``pkgver`` shells.

What this test file should cover
- Version discovery updates the reported outcome without touching the source.
- One bad recipe never affects its siblings under parallelism, including when
  the syntax checker crashes on it.
- In-place rewrites, success/failure path lists and cancellation.
"""

from __future__ import annotations

import asyncio
import shutil
import sys
from pathlib import Path

import pytest

from sbuild_lint.config.options import LintOptions
from sbuild_lint.domain.errors import RecipeIOError
from sbuild_lint.domain.models import FailureKind, JobState, RunReport
from sbuild_lint.scheduler import run_lint, write_path_lists
from sbuild_lint.utils.concurrency import CancellationToken
from sbuild_lint.utils.process import CommandResult, CommandSpec

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(shutil.which("sh") is None, reason="requires a POSIX shell"),
]

SCENARIO = "#!/SBUILD\npkg=foo\nversion=1.0.0\npkgver=echo 1.2.0\n"
VALID = "#!/SBUILD\npkg=bar\nversion=2.0\ndescription=Bar\n"
BROKEN = '#!/SBUILD\npkg=baz\nversion=1\ndescription="never closed\n'


def _write(directory: Path, name: str, text: str) -> str:
    path = directory / name
    path.write_text(text, encoding="utf-8")
    return str(path)


async def test_pkgver_discovers_new_version(tmp_path: Path) -> None:
    path = _write(tmp_path, "foo.SBUILD", SCENARIO)

    report = await run_lint([path], LintOptions(pkgver=True, syntax_check=False))

    (outcome,) = report.outcomes
    assert outcome.state is JobState.SUCCEEDED
    assert outcome.errors == ()
    assert outcome.discovered_version == "1.2.0"
    assert outcome.version_updated is True
    assert outcome.canonical_text == '#!/SBUILD\npkg=foo\nversion=1.2.0\npkgver="echo 1.2.0"\n'
    assert Path(path).read_text(encoding="utf-8") == SCENARIO
    assert report.has_failures is False


async def test_bad_recipe_does_not_affect_siblings(tmp_path: Path) -> None:
    good = _write(tmp_path, "bar.SBUILD", VALID)
    bad = _write(tmp_path, "baz.SBUILD", BROKEN)

    report = await run_lint([good, bad], LintOptions(parallelism=2, syntax_check=False))

    assert set(report.succeeded_paths) == {good}
    assert set(report.failed_paths) == {bad}
    failed = report.outcome_for(bad)
    assert failed is not None
    assert failed.failure is FailureKind.PARSE_ERROR
    assert [(item.rule, item.line) for item in failed.errors] == [("parse", 4)]


class _CrashingCheckerRunner:
    """Fails the syntax check for scripts containing ``crash_here``."""

    async def run(self, spec: CommandSpec) -> CommandResult:
        script = Path(spec.argv[-1]).read_text(encoding="utf-8")
        if "crash_here" in script:
            return CommandResult(
                argv=spec.argv, exit_code=3, stdout="", stderr="internal error\n", duration_ms=1
            )
        return CommandResult(
            argv=spec.argv, exit_code=0, stdout='{"comments": []}', stderr="", duration_ms=1
        )


async def test_crashing_syntax_checker_fails_only_its_recipe(tmp_path: Path) -> None:
    crashing = _write(tmp_path, "a.SBUILD", VALID.replace("pkg=bar", "pkg=aaa") + "run=crash_here\n")
    clean = _write(tmp_path, "b.SBUILD", VALID + "run=make\n")
    options = LintOptions(parallelism=2, shellcheck_executable=sys.executable)

    report = await run_lint([crashing, clean], options, runner=_CrashingCheckerRunner())

    failed = report.outcome_for(crashing)
    assert failed is not None
    assert failed.state is JobState.FAILED
    assert [(item.rule, item.message) for item in failed.errors] == [
        ("syntax-check", "syntax checker failed: exited with status 3: internal error")
    ]
    passed = report.outcome_for(clean)
    assert passed is not None
    assert passed.state is JobState.SUCCEEDED
    assert passed.errors == ()
    assert report.succeeded_paths == (clean,)


async def test_inplace_rewrite_updates_version(tmp_path: Path) -> None:
    path = _write(tmp_path, "foo.SBUILD", "version=1.0.0\npkg=foo\npkgver=echo 1.2.0\n")

    report = await run_lint([path], LintOptions(pkgver=True, syntax_check=False, inplace=True))

    assert report.succeeded_paths == (path,)
    assert Path(path).read_text(encoding="utf-8") == (
        '#!/SBUILD\npkg=foo\nversion=1.2.0\npkgver="echo 1.2.0"\n'
    )


async def test_path_lists_are_written_in_input_order(tmp_path: Path) -> None:
    paths = [
        _write(tmp_path, "a.SBUILD", VALID),
        _write(tmp_path, "b.SBUILD", BROKEN),
        _write(tmp_path, "c.SBUILD", VALID.replace("pkg=bar", "pkg=cee")),
        str(tmp_path / "missing.SBUILD"),
    ]
    success = tmp_path / "ok.txt"
    failure = tmp_path / "fail.txt"
    options = LintOptions(
        parallelism=3,
        syntax_check=False,
        success_list=str(success),
        failure_list=str(failure),
    )

    report = await run_lint(paths, options)

    assert success.read_text(encoding="utf-8") == f"{paths[0]}\n{paths[2]}\n"
    assert failure.read_text(encoding="utf-8") == f"{paths[1]}\n{paths[3]}\n"
    missing = report.outcome_for(paths[3])
    assert missing is not None and missing.state is JobState.IO_ERROR


def test_path_list_write_failure_raises_recipe_io_error(tmp_path: Path) -> None:
    options = LintOptions(success_list=str(tmp_path / "no-such-dir" / "ok.txt"))

    with pytest.raises(RecipeIOError, match="cannot write path list"):
        write_path_lists(RunReport(outcomes=()), options)


async def test_cancellation_stops_running_and_queued_jobs(tmp_path: Path) -> None:
    slow = "#!/SBUILD\npkg=slow\nversion=1\npkgver=\"sleep 30; echo 2\"\n"
    paths = [_write(tmp_path, f"slow{index}.SBUILD", slow) for index in range(3)]
    token = CancellationToken()
    options = LintOptions(pkgver=True, syntax_check=False, parallelism=1, probe_timeout_seconds=60)

    asyncio.get_running_loop().call_later(0.5, token.cancel)
    report = await asyncio.wait_for(run_lint(paths, options, cancel_token=token), timeout=15)

    assert report.cancelled is True
    assert report.outcomes == ()
    assert report.pending == tuple(paths)
    assert report.has_failures


async def test_empty_input_is_an_empty_report() -> None:
    report = await run_lint([], LintOptions())

    assert report.outcomes == ()
    assert report.cancelled is False
    assert report.has_failures is False
