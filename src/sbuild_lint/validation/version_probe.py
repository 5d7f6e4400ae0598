"""
sbuild-lint — dynamic version prober ("pkgver check")

File: src/sbuild_lint/validation/version_probe.py

Purpose
- Execute a recipe's untrusted ``pkgver`` fragment and read the upstream
  version it prints.

Functional requirements
- The fragment runs with the recipe's ``shell`` in its own process session,
  working directory set to the recipe's directory, under a hard wall-clock
  timeout; on expiry the whole process tree is killed.
- The first non-blank stdout line is the version. Leading blank lines, extra
  lines and stderr output are reported as warnings.
- The recipe file itself is never written here.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sbuild_lint.constants import (
    DEFAULT_PROBE_TIMEOUT_SECONDS,
    DEFAULT_SHELL,
    PROBE_ENV_KEYS,
    SCRIPT_HEADER_TEMPLATE,
)
from sbuild_lint.domain.errors import ProbeFailure, ProbeTimeout
from sbuild_lint.recipe.canonical import derive_pkg_id
from sbuild_lint.utils.fs import scratch_script
from sbuild_lint.utils.process import CommandSpec
from sbuild_lint.validation.rules import is_valid_version

if TYPE_CHECKING:
    from sbuild_lint.domain.models import Recipe
    from sbuild_lint.utils.process import CommandRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProbeResult:
    version: str
    warnings: tuple[str, ...] = ()
    duration_ms: int = 0


def probe_environment(recipe: Recipe) -> dict[str, str]:
    """Variables exported to the ``pkgver`` fragment, lower and upper case."""

    pkg = recipe.value("pkg") or ""
    version = recipe.value("version") or ""
    values = {
        "pkg": pkg,
        "pkg_id": recipe.value("pkg_id") or derive_pkg_id(pkg),
        "pkg_type": recipe.value("pkg_type") or "",
        "pkgver": version,
        "sbuild_pkg": pkg,
        "sbuild_pkgver": version,
    }
    env: dict[str, str] = {}
    for key in PROBE_ENV_KEYS:
        value = values[key]
        if not value:
            continue
        env[key] = value
        env[key.upper()] = value
    return env


class VersionProber:
    """Runs ``pkgver`` fragments through a ``CommandRunner``."""

    def __init__(
        self,
        runner: CommandRunner,
        *,
        timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._runner = runner
        self._timeout_seconds = timeout_seconds
        self._which = which

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    async def probe(self, recipe: Recipe, *, cwd: str | None = None) -> ProbeResult:
        """Run the fragment and return the discovered version.

        Raises ``ProbeTimeout`` when the budget expires and ``ProbeFailure`` for
        every other way the fragment can fail to produce a version.
        """

        fragment = recipe.value("pkgver")
        if fragment is None or not fragment.strip():
            raise ProbeFailure("recipe has no pkgver script")

        shell = (recipe.value("shell") or DEFAULT_SHELL).strip() or DEFAULT_SHELL
        shell_path = self._which(shell)
        if shell_path is None:
            raise ProbeFailure(f"shell {shell!r} not found")

        content = SCRIPT_HEADER_TEMPLATE.format(shell=shell) + fragment + "\n"
        async with scratch_script(content, prefix="sbuild-pkgver-") as script_path:
            result = await self._runner.run(
                CommandSpec(
                    argv=(shell_path, str(script_path)),
                    cwd=cwd,
                    env=probe_environment(recipe),
                    timeout_seconds=self._timeout_seconds,
                )
            )

        if result.timed_out:
            raise ProbeTimeout(self._timeout_seconds)
        if result.spawn_failed:
            raise ProbeFailure(f"could not start {shell}: {result.error}")
        if result.exit_code != 0:
            reason = f"pkgver script exited with status {result.exit_code}"
            stderr_line = _first_line(result.stderr)
            if stderr_line:
                reason = f"{reason}: {stderr_line}"
            raise ProbeFailure(reason, exit_code=result.exit_code, stderr=result.stderr)

        lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if not lines:
            raise ProbeFailure("pkgver script printed no version", exit_code=0, stderr=result.stderr)
        version = lines[0]
        if not is_valid_version(version):
            raise ProbeFailure(f"pkgver script printed invalid version {version!r}", exit_code=0)

        warnings: list[str] = []
        if not result.stdout.splitlines()[0].strip():
            warnings.append("pkgver script printed blank lines before the version")
        if len(lines) > 1:
            warnings.append(f"pkgver script printed {len(lines)} lines; using the first")
        stderr_line = _first_line(result.stderr)
        if stderr_line:
            warnings.append(f"pkgver script wrote to stderr: {stderr_line}")

        logger.debug("pkgver for %s resolved to %s in %dms", recipe.source, version, result.duration_ms)
        return ProbeResult(version=version, warnings=tuple(warnings), duration_ms=result.duration_ms)


def _first_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return ""


__all__ = ["ProbeResult", "VersionProber", "probe_environment"]
