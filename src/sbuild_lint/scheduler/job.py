"""
sbuild-lint — per-recipe job state machine

File: src/sbuild_lint/scheduler/job.py

Purpose
- Drive one recipe file through parse, static validation, syntax checking,
  optional version probing and canonicalization.

Functional requirements
- State transitions are decided by the pure ``advance`` function; the job only
  executes the phase for the current state and reports a ``Progress``.
- Parse errors end the job immediately. Any error diagnostic collected before
  probing moves the job to ``failed`` without running the probe.
- Every domain error and file I/O error is converted into the outcome; only
  cancellation and programming errors escape ``RecipeJob.run``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from sbuild_lint.constants import PKGVER_SUFFIX, VALIDATED_SUFFIX
from sbuild_lint.domain.errors import ParseError, ProbeFailure, ProbeTimeout, ValidationError
from sbuild_lint.domain.models import Diagnostic, FailureKind, JobOutcome, JobState
from sbuild_lint.observability.logging import correlation_scope
from sbuild_lint.recipe.canonical import canonicalize, recipe_hash
from sbuild_lint.recipe.parser import parse_recipe
from sbuild_lint.utils.fs import atomic_write_async, read_text_async, sidecar_path
from sbuild_lint.validation.rules import ensure_valid

if TYPE_CHECKING:
    from sbuild_lint.config.options import LintOptions
    from sbuild_lint.domain.models import Recipe
    from sbuild_lint.recipe.schema import Schema
    from sbuild_lint.validation.syntax_checker import SyntaxChecker
    from sbuild_lint.validation.version_probe import VersionProber

logger = logging.getLogger(__name__)

PROBE_RULE_ID = "pkgver"
PARSE_RULE_ID = "parse"
IO_RULE_ID = "io"


@dataclass(frozen=True, slots=True)
class Progress:
    """What the phase that just ran tells the state machine."""

    has_errors: bool = False
    failure: FailureKind | None = None
    wants_probe: bool = False


def advance(state: JobState, progress: Progress, options: LintOptions) -> JobState:
    """Return the state that follows ``state`` given the phase's ``progress``."""

    if state.is_terminal:
        raise ValueError(f"job already finished in state {state}")
    if progress.failure is FailureKind.IO_ERROR:
        return JobState.IO_ERROR
    if progress.failure is FailureKind.PROBE_TIMEOUT:
        return JobState.TIMED_OUT
    if progress.failure is FailureKind.PARSE_ERROR:
        return JobState.FAILED

    if state is JobState.QUEUED:
        return JobState.PARSING
    if state is JobState.PARSING:
        return JobState.STATIC_VALIDATING
    if state is JobState.STATIC_VALIDATING and options.syntax_check:
        return JobState.SYNTAX_CHECKING
    if state in (JobState.STATIC_VALIDATING, JobState.SYNTAX_CHECKING):
        if progress.has_errors:
            return JobState.FAILED
        if options.pkgver and progress.wants_probe:
            return JobState.VERSION_PROBING
        return JobState.CANONICALIZING
    if state is JobState.VERSION_PROBING:
        return JobState.FAILED if progress.has_errors else JobState.CANONICALIZING
    if state is JobState.CANONICALIZING:
        return JobState.SUCCEEDED
    raise ValueError(f"no transition from state {state}")


class RecipeJob:
    """One recipe file moving through the lint pipeline."""

    def __init__(
        self,
        path: str,
        *,
        options: LintOptions,
        schema: Schema,
        syntax_checker: SyntaxChecker | None = None,
        prober: VersionProber | None = None,
        input_index: int = 0,
    ) -> None:
        self.path = path
        self.state = JobState.QUEUED
        self._options = options
        self._schema = schema
        self._syntax_checker = syntax_checker
        self._prober = prober
        self._input_index = input_index
        self._diagnostics: list[Diagnostic] = []
        self._failure: FailureKind | None = None
        self._recipe: Recipe | None = None
        self._text = ""
        self._declared_version: str | None = None
        self._discovered_version: str | None = None
        self._version_updated = False
        self._canonical_text: str | None = None
        self._recipe_hash: str | None = None

    async def run(self) -> JobOutcome:
        started_ns = time.monotonic_ns()
        with correlation_scope(recipe=self.path):
            progress = Progress()
            while not self.state.is_terminal:
                next_state = advance(self.state, progress, self._options)
                logger.debug("%s -> %s", self.state, next_state)
                self.state = next_state
                if self.state.is_terminal:
                    break
                progress = await self._run_phase(self.state)

            if self.state is JobState.FAILED and self._failure is None:
                self._failure = FailureKind.VALIDATION_ERROR
            logger.info("finished in state %s", self.state)

        return JobOutcome(
            path=self.path,
            state=self.state,
            diagnostics=tuple(sorted(self._diagnostics, key=lambda item: item.sort_key())),
            failure=self._failure,
            canonical_text=self._canonical_text,
            declared_version=self._declared_version,
            discovered_version=self._discovered_version,
            version_updated=self._version_updated,
            recipe_hash=self._recipe_hash,
            duration_ms=max(0, (time.monotonic_ns() - started_ns) // 1_000_000),
            input_index=self._input_index,
        )

    async def _run_phase(self, state: JobState) -> Progress:
        if state is JobState.PARSING:
            return await self._parse()
        if state is JobState.STATIC_VALIDATING:
            return self._validate()
        if state is JobState.SYNTAX_CHECKING:
            if self._syntax_checker is not None:
                found = await self._syntax_checker.check(self._require_recipe(), self._schema)
                self._diagnostics.extend(found)
            return self._progress()
        if state is JobState.VERSION_PROBING:
            return await self._probe()
        if state is JobState.CANONICALIZING:
            return await self._canonicalize()
        raise ValueError(f"state {state} has no phase")

    def _progress(self) -> Progress:
        recipe = self._recipe
        wants_probe = recipe is not None and bool((recipe.value("pkgver") or "").strip())
        return Progress(
            has_errors=any(item.is_error for item in self._diagnostics),
            wants_probe=wants_probe,
        )

    def _require_recipe(self) -> Recipe:
        if self._recipe is None:
            raise RuntimeError("recipe has not been parsed")
        return self._recipe

    def _fail(self, kind: FailureKind, diagnostic: Diagnostic) -> Progress:
        self._diagnostics.append(diagnostic)
        self._failure = kind
        return Progress(has_errors=True, failure=kind)

    async def _parse(self) -> Progress:
        try:
            self._text = await read_text_async(self.path)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("cannot read recipe: %s", exc)
            return self._fail(
                FailureKind.IO_ERROR, Diagnostic.error(IO_RULE_ID, f"cannot read recipe: {exc}")
            )

        try:
            self._recipe = parse_recipe(
                self._text,
                source=self.path,
                schema=self._schema,
                strict=self._options.strict_unknown_fields,
            )
        except ParseError as exc:
            return self._fail(
                FailureKind.PARSE_ERROR,
                Diagnostic.error(PARSE_RULE_ID, exc.reason, line=exc.line),
            )

        self._declared_version = self._recipe.value("version")
        return self._progress()

    def _validate(self) -> Progress:
        try:
            self._diagnostics.extend(ensure_valid(self._require_recipe(), self._schema))
        except ValidationError as exc:
            logger.info("%s", exc)
            self._diagnostics.extend(exc.diagnostics)
        return self._progress()

    async def _probe(self) -> Progress:
        recipe = self._require_recipe()
        if self._prober is None:
            return self._progress()

        version_field = recipe.first("version")
        line = version_field.line if version_field is not None else None
        try:
            result = await self._prober.probe(recipe, cwd=str(Path(self.path).resolve().parent))
        except ProbeTimeout as exc:
            logger.warning("%s", exc)
            return self._fail(
                FailureKind.PROBE_TIMEOUT,
                Diagnostic.error(PROBE_RULE_ID, str(exc), field="pkgver"),
            )
        except ProbeFailure as exc:
            message = f"pkgver check failed: {exc.reason}"
            if self._options.probe_failure_fatal:
                return self._fail(
                    FailureKind.PROBE_FAILURE,
                    Diagnostic.error(PROBE_RULE_ID, message, field="pkgver"),
                )
            self._diagnostics.append(Diagnostic.warning(PROBE_RULE_ID, message, field="pkgver"))
            return self._progress()

        for warning in result.warnings:
            self._diagnostics.append(Diagnostic.warning(PROBE_RULE_ID, warning, field="pkgver"))

        self._discovered_version = result.version
        if result.version != self._declared_version:
            recipe.set_value("version", result.version)
            self._version_updated = True
            previous = self._declared_version or "(none)"
            self._diagnostics.append(
                Diagnostic.warning(
                    PROBE_RULE_ID,
                    f"version changed from {previous} to {result.version}",
                    field="version",
                    line=line,
                )
            )
        return self._progress()

    async def _canonicalize(self) -> Progress:
        recipe = self._require_recipe()
        canonical = canonicalize(recipe, self._schema)
        self._canonical_text = canonical
        self._recipe_hash = recipe_hash(recipe, schema=self._schema)

        try:
            await self._write_outputs(canonical)
        except OSError as exc:
            logger.warning("cannot write output: %s", exc)
            return self._fail(
                FailureKind.IO_ERROR, Diagnostic.error(IO_RULE_ID, f"cannot write output: {exc}")
            )
        return Progress()

    async def _write_outputs(self, canonical: str) -> None:
        if self._options.inplace:
            if canonical != self._text:
                await atomic_write_async(self.path, canonical)
                logger.info("rewrote recipe in place")
        elif self._options.write_validated:
            await atomic_write_async(sidecar_path(self.path, VALIDATED_SUFFIX), canonical)

        if self._options.write_pkgver_file and self._discovered_version is not None:
            await atomic_write_async(
                sidecar_path(self.path, PKGVER_SUFFIX), self._discovered_version + "\n"
            )


__all__ = ["IO_RULE_ID", "PARSE_RULE_ID", "PROBE_RULE_ID", "Progress", "RecipeJob", "advance"]
