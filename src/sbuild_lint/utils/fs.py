"""
sbuild-lint — filesystem utilities

File: src/sbuild_lint/utils/fs.py

Purpose
- Atomic recipe rewrites and private scratch files for external tools.

Functional requirements
- Atomic writes use a temp file in the destination directory and replace the
  target in a single ``os.replace`` step; readers never see partial content.
- Scratch scripts are created with owner-only permissions and removed on every
  exit path, including cancellation.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import stat
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "atomic_write_async",
    "read_text",
    "read_text_async",
    "scratch_script",
    "sidecar_path",
]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """
    Atomically write ``data`` to ``path``.

    The write strategy is:
    1. create temp file in the same directory,
    2. write + flush + fsync file data,
    3. copy the permission bits of an existing target,
    4. replace target via ``os.replace``.
    """

    target = Path(path)
    target_parent = target.parent.resolve(strict=True)
    if not target_parent.is_dir():
        raise NotADirectoryError(f"{target_parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)
    payload = data if isinstance(data, bytes) else data.encode(encoding)

    try:
        with os.fdopen(fd, "wb") as file_handle:
            file_handle.write(payload)
            file_handle.flush()
            os.fsync(file_handle.fileno())

        with contextlib.suppress(FileNotFoundError):
            os.chmod(temp_path, stat.S_IMODE(target.stat().st_mode))
        os.replace(temp_path, target)
        _fsync_directory(target_parent)
    except BaseException:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def read_text(path: PathLike, *, encoding: str = "utf-8") -> str:
    """Read a recipe strictly as UTF-8 text."""

    return Path(path).read_text(encoding=encoding, errors="strict")


async def read_text_async(path: PathLike, *, encoding: str = "utf-8") -> str:
    return await asyncio.to_thread(read_text, path, encoding=encoding)


async def atomic_write_async(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    await asyncio.to_thread(atomic_write, path, data, encoding=encoding)


def sidecar_path(path: PathLike, suffix: str) -> Path:
    """Return ``<path><suffix>`` next to the recipe (``foo.sbuild.pkgver``)."""

    target = Path(path)
    return target.with_name(target.name + suffix)


@asynccontextmanager
async def scratch_script(
    content: str, *, prefix: str = "sbuild-", suffix: str = ".sh"
) -> AsyncIterator[Path]:
    """Yield a private executable script file and delete it on exit.

    Creation and removal run in a worker thread so the event loop never blocks
    on the filesystem.
    """

    script_path = await asyncio.to_thread(_create_script, content, prefix, suffix)
    try:
        yield script_path
    finally:
        await asyncio.to_thread(_remove_quietly, script_path)


def _create_script(content: str, prefix: str, suffix: str) -> Path:
    fd, name = tempfile.mkstemp(prefix=prefix, suffix=suffix)
    script_path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.chmod(script_path, stat.S_IRUSR | stat.S_IWUSR | stat.S_IXUSR)
    except BaseException:
        _remove_quietly(script_path)
        raise
    return script_path


def _remove_quietly(path: Path) -> None:
    with contextlib.suppress(OSError):
        path.unlink(missing_ok=True)


def _fsync_directory(path: Path) -> None:
    """
    Best-effort directory fsync for metadata durability after ``os.replace``.

    Some platforms/filesystems do not support fsync on directories.
    """

    if os.name == "nt":
        return

    flags = os.O_RDONLY
    if hasattr(os, "O_DIRECTORY"):
        flags |= os.O_DIRECTORY

    try:
        dir_fd = os.open(path, flags)
    except OSError:
        return

    try:
        os.fsync(dir_fd)
    except OSError:
        return
    finally:
        os.close(dir_fd)
