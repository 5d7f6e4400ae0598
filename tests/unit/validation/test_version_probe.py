"""
sbuild-lint — unit tests for the pkgver version prober

File: tests/unit/validation/test_version_probe.py

Purpose
- Validate how ``pkgver`` output is interpreted and how failures are typed.

What this test file should cover
- First non-blank stdout line wins; extra lines and stderr become warnings.
- Non-zero exit, empty or invalid output raise ``ProbeFailure``.
- Timeouts raise ``ProbeTimeout``.
- Exported environment and working directory.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from sbuild_lint.domain.errors import ProbeFailure, ProbeTimeout
from sbuild_lint.recipe.parser import parse_recipe
from sbuild_lint.utils.process import CommandResult, CommandSpec, LocalProcessRunner
from sbuild_lint.validation.version_probe import VersionProber, probe_environment

RECIPE = "#!/SBUILD\npkg=Foo_Bar\nversion=1.0.0\npkgver=echo 1.2.0\n"


class _ScriptedRunner:
    def __init__(self, **result: object) -> None:
        self.result = result
        self.calls: list[CommandSpec] = []
        self.script_text = ""

    async def run(self, spec: CommandSpec) -> CommandResult:
        self.calls.append(spec)
        self.script_text = Path(spec.argv[-1]).read_text(encoding="utf-8")
        fields: dict[str, object] = {"exit_code": 0, "stdout": "", "stderr": "", "duration_ms": 3}
        fields.update(self.result)
        return CommandResult(argv=spec.argv, **fields)  # type: ignore[arg-type]


def _prober(runner: _ScriptedRunner, **kwargs: object) -> VersionProber:
    return VersionProber(runner, which=lambda name: f"/bin/{name}", **kwargs)  # type: ignore[arg-type]


def test_probe_environment_exports_lower_and_upper_case() -> None:
    env = probe_environment(parse_recipe(RECIPE))

    assert env["pkg"] == env["PKG"] == "Foo_Bar"
    assert env["pkg_id"] == "foo-bar"
    assert env["pkgver"] == env["SBUILD_PKGVER"] == "1.0.0"
    assert "pkg_type" not in env


async def test_first_stdout_line_is_the_version() -> None:
    runner = _ScriptedRunner(stdout="  1.2.0  \n")
    result = await _prober(runner).probe(parse_recipe(RECIPE), cwd="/tmp")

    assert result.version == "1.2.0"
    assert result.warnings == ()
    assert result.duration_ms == 3
    spec = runner.calls[0]
    assert spec.argv[0] == "/bin/sh"
    assert spec.cwd == "/tmp"
    assert spec.timeout_seconds == 30.0
    assert spec.env["PKG"] == "Foo_Bar"
    assert runner.script_text == "#!/usr/bin/env sh\necho 1.2.0\n"


async def test_extra_lines_and_stderr_become_warnings() -> None:
    runner = _ScriptedRunner(stdout="1.2.0\n1.3.0\n", stderr="curl: slow\n")
    result = await _prober(runner).probe(parse_recipe(RECIPE))

    assert result.version == "1.2.0"
    assert result.warnings == (
        "pkgver script printed 2 lines; using the first",
        "pkgver script wrote to stderr: curl: slow",
    )


async def test_leading_blank_lines_are_skipped_with_a_warning() -> None:
    runner = _ScriptedRunner(stdout="\n  \n1.2.0\n")
    result = await _prober(runner).probe(parse_recipe(RECIPE))

    assert result.version == "1.2.0"
    assert result.warnings == ("pkgver script printed blank lines before the version",)


@pytest.mark.parametrize(
    ("result", "reason"),
    [
        ({"exit_code": 3, "stderr": "no network\n"}, "pkgver script exited with status 3: no network"),
        ({"exit_code": 1}, "pkgver script exited with status 1"),
        ({"stdout": "   \n"}, "pkgver script printed no version"),
        ({"stdout": "not a version!\n"}, "pkgver script printed invalid version 'not a version!'"),
        ({"exit_code": None, "error": "Permission denied"}, "could not start sh: Permission denied"),
    ],
)
async def test_probe_failures(result: dict[str, object], reason: str) -> None:
    with pytest.raises(ProbeFailure) as excinfo:
        await _prober(_ScriptedRunner(**result)).probe(parse_recipe(RECIPE))

    assert excinfo.value.reason == reason


async def test_timeout_raises_probe_timeout() -> None:
    runner = _ScriptedRunner(exit_code=None, timed_out=True, error="command timed out")

    with pytest.raises(ProbeTimeout) as excinfo:
        await _prober(runner, timeout_seconds=0.5).probe(parse_recipe(RECIPE))

    assert excinfo.value.timeout_seconds == 0.5
    assert str(excinfo.value) == "pkgver check timed out after 0.5s"


async def test_missing_fragment_or_shell_fails_without_running() -> None:
    runner = _ScriptedRunner()

    with pytest.raises(ProbeFailure, match="no pkgver script"):
        await _prober(runner).probe(parse_recipe("pkg=foo\nversion=1\n"))

    prober = VersionProber(runner, which=lambda _: None)  # type: ignore[arg-type]
    with pytest.raises(ProbeFailure, match="shell 'sh' not found"):
        await prober.probe(parse_recipe(RECIPE))

    assert runner.calls == []


def test_timeout_must_be_positive() -> None:
    with pytest.raises(ValueError):
        VersionProber(_ScriptedRunner(), timeout_seconds=0)  # type: ignore[arg-type]


@pytest.mark.skipif(shutil.which("sh") is None, reason="requires a POSIX shell")
async def test_real_shell_sees_exported_variables(tmp_path: Path) -> None:
    recipe = parse_recipe('pkg=foo\nversion=1.0\npkgver="echo ${PKG}-$(basename \\"$(pwd -P)\\")"\n')
    prober = VersionProber(LocalProcessRunner(), timeout_seconds=10)

    result = await prober.probe(recipe, cwd=str(tmp_path))

    assert result.version == f"foo-{tmp_path.name}"
