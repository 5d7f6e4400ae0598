"""Module entrypoint for ``python -m sbuild_lint``."""

from __future__ import annotations

from sbuild_lint.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
