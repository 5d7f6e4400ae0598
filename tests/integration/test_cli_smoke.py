"""
sbuild-lint — CLI subprocess smoke contracts

File: tests/integration/test_cli_smoke.py

Purpose
- Enforce CLI behavior for `python -m sbuild_lint`: exit codes, report output
  and file side effects.

What this test file should cover
- Exit 0 for clean runs, 1 for lint failures, 2 for config/usage errors.
- Human-readable diagnostics and summary line.
- `--json` report, `--keep-order`, `--inplace`, `--success` / `--fail` lists.
- Config file and environment overrides reaching the run.
"""

from __future__ import annotations

import json
import os
import shutil
import subprocess
import sys
from pathlib import Path

import pytest

from sbuild_lint import __version__

pytestmark = pytest.mark.integration

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"

VALID = "#!/SBUILD\npkg=bar\nversion=2.0\ndescription=Bar\nsources=(https://example.org/bar.tar.gz)\nrun=make\n"
BROKEN = '#!/SBUILD\npkg=baz\nversion=1\ndescription="never closed\n'


def _run_cli(
    workdir: Path, *args: str, extra_env: dict[str, str] | None = None
) -> subprocess.CompletedProcess[str]:
    env = {key: value for key, value in os.environ.items() if not key.startswith("SBUILD_LINT_")}
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath if not existing_pythonpath else f"{src_pythonpath}:{existing_pythonpath}"
    )
    env.update(extra_env or {})
    return subprocess.run(
        [sys.executable, "-m", "sbuild_lint", *args],
        cwd=workdir,
        text=True,
        capture_output=True,
        check=False,
        env=env,
        timeout=60,
    )


def _write(directory: Path, name: str, text: str) -> str:
    (directory / name).write_text(text, encoding="utf-8")
    return name


def test_clean_recipe_exits_zero(tmp_path: Path) -> None:
    name = _write(tmp_path, "bar.SBUILD", VALID)

    result = _run_cli(tmp_path, "--no-shellcheck", name)

    assert result.returncode == 0, result.stderr
    assert result.stdout.splitlines() == ["checked 1 recipe(s): 1 succeeded, 0 failed"]


def test_verbose_lists_every_recipe(tmp_path: Path) -> None:
    name = _write(tmp_path, "bar.SBUILD", VALID)

    result = _run_cli(tmp_path, "--no-shellcheck", "-v", name)

    assert result.returncode == 0, result.stderr
    assert f"{name}: ok" in result.stdout.splitlines()


def test_broken_recipe_exits_one_with_located_diagnostic(tmp_path: Path) -> None:
    good = _write(tmp_path, "bar.SBUILD", VALID)
    bad = _write(tmp_path, "baz.SBUILD", BROKEN)

    result = _run_cli(tmp_path, "--no-shellcheck", "--keep-order", good, bad)

    assert result.returncode == 1
    lines = result.stdout.splitlines()
    assert lines == [
        f"{bad}:4: error [parse] unterminated double-quoted value",
        f"{bad}: failed",
        "checked 2 recipe(s): 1 succeeded, 1 failed",
    ]


def test_json_report(tmp_path: Path) -> None:
    good = _write(tmp_path, "bar.SBUILD", VALID)
    bad = _write(tmp_path, "baz.SBUILD", BROKEN)

    result = _run_cli(tmp_path, "--no-shellcheck", "--json", "--keep-order", good, bad)

    assert result.returncode == 1
    payload = json.loads(result.stdout)
    assert payload["succeeded"] == [good]
    assert payload["failed"] == [bad]
    assert [item["state"] for item in payload["outcomes"]] == ["succeeded", "failed"]
    assert payload["outcomes"][1]["failure"] == "parse_error"
    assert payload["cancelled"] is False


def test_inplace_and_path_lists(tmp_path: Path) -> None:
    messy = _write(tmp_path, "messy.SBUILD", "run=make\nversion=1.0\npkg=messy\n")
    bad = _write(tmp_path, "baz.SBUILD", BROKEN)

    result = _run_cli(
        tmp_path,
        "--no-shellcheck",
        "--inplace",
        "--success",
        "ok.txt",
        "--fail",
        "failed.txt",
        messy,
        bad,
    )

    assert result.returncode == 1
    assert (tmp_path / messy).read_text(encoding="utf-8") == (
        "#!/SBUILD\npkg=messy\nversion=1.0\nrun=make\n"
    )
    assert (tmp_path / bad).read_text(encoding="utf-8") == BROKEN
    assert (tmp_path / "ok.txt").read_text(encoding="utf-8") == f"{messy}\n"
    assert (tmp_path / "failed.txt").read_text(encoding="utf-8") == f"{bad}\n"


@pytest.mark.skipif(shutil.which("sh") is None, reason="requires a POSIX shell")
def test_pkgver_reports_version_change(tmp_path: Path) -> None:
    name = _write(tmp_path, "foo.SBUILD", "#!/SBUILD\npkg=foo\nversion=1.0.0\npkgver=echo 1.2.0\n")

    result = _run_cli(tmp_path, "--no-shellcheck", "--pkgver", "--write-pkgver", name)

    assert result.returncode == 0, result.stderr
    assert f"{name}:3: warning [pkgver] version changed from 1.0.0 to 1.2.0" in result.stdout
    assert f"{name}: version 1.0.0 -> 1.2.0" in result.stdout
    assert (tmp_path / f"{name}.pkgver").read_text(encoding="utf-8") == "1.2.0\n"


def test_missing_config_file_exits_two(tmp_path: Path) -> None:
    name = _write(tmp_path, "bar.SBUILD", VALID)

    result = _run_cli(tmp_path, "--config", "absent.toml", name)

    assert result.returncode == 2
    assert result.stderr.startswith("error: config file not found")


def test_invalid_config_file_exits_two(tmp_path: Path) -> None:
    name = _write(tmp_path, "bar.SBUILD", VALID)
    (tmp_path / "sbuild-lint.toml").write_text("[lint]\nparallelism = 0\n", encoding="utf-8")

    result = _run_cli(tmp_path, name)

    assert result.returncode == 2
    assert "lint.parallelism: must be >= 1" in result.stderr


def test_environment_override_is_validated(tmp_path: Path) -> None:
    name = _write(tmp_path, "bar.SBUILD", VALID)

    result = _run_cli(tmp_path, name, extra_env={"SBUILD_LINT_LINT_PARALLELISM": "lots"})

    assert result.returncode == 2
    assert "SBUILD_LINT_LINT_PARALLELISM -> lint.parallelism must be an integer" in result.stderr


def test_config_file_disables_syntax_check(tmp_path: Path) -> None:
    name = _write(tmp_path, "bar.SBUILD", VALID)
    (tmp_path / "sbuild-lint.toml").write_text(
        '[lint]\nsyntax_check = false\n\n[shellcheck]\nexecutable = "/nonexistent/shellcheck"\n',
        encoding="utf-8",
    )

    result = _run_cli(tmp_path, "--json", name)

    assert result.returncode == 0, result.stderr
    payload = json.loads(result.stdout)
    assert payload["outcomes"][0]["diagnostics"] == []


def test_usage_errors_exit_two(tmp_path: Path) -> None:
    result = _run_cli(tmp_path)

    assert result.returncode == 2
    assert "usage: sbuild-lint" in result.stderr


def test_version_flag(tmp_path: Path) -> None:
    result = _run_cli(tmp_path, "--version")

    assert result.returncode == 0
    assert result.stdout.strip() == f"sbuild-lint {__version__}"
