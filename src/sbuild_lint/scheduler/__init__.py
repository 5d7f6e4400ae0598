"""Recipe job state machine and the concurrent lint runner."""

from sbuild_lint.scheduler.job import Progress, RecipeJob, advance
from sbuild_lint.scheduler.runner import run_lint, write_path_lists

__all__ = ["Progress", "RecipeJob", "advance", "run_lint", "write_path_lists"]
