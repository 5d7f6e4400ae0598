"""
sbuild-lint — package root

File: src/sbuild_lint/__init__.py

Purpose
- Package root for the SBUILD recipe validation and linting engine.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
- Heavy submodules (scheduler, CLI) are imported lazily by their callers.
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
