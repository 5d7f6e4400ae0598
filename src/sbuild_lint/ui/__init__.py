"""Command-line interface and output rendering."""

from sbuild_lint.ui.cli import CLIError, build_parser, run_cli
from sbuild_lint.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIError", "CLIRenderer", "build_parser", "create_renderer", "run_cli"]
