from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Sequence

from mtimecache.errors import ArchiveError


def _tar_binary() -> str:
    binary = shutil.which("tar")
    if binary is None:
        raise ArchiveError("`tar` was not found on PATH.")
    return binary


def _run_tar(args: list[str]) -> str:
    try:
        completed = subprocess.run(
            [_tar_binary(), *args],
            check=True,
            capture_output=True,
            text=True,
        )
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or "").strip()
        raise ArchiveError(f"tar failed with exit code {exc.returncode}: {detail}") from exc
    # `tar -v` lists members on stderr for create with some implementations.
    return "\n".join(part for part in (completed.stdout, completed.stderr) if part)


def pack(
    root: Path,
    archive_path: Path,
    *,
    excludes: Sequence[str] = (),
    verbose: bool = False,
) -> str:
    """Pack *root* into *archive_path*, keeping ``<basename>/...`` member names.

    *excludes* are member-name patterns relative to the parent of *root*.
    Returns tar's listing output (empty unless *verbose*).
    """
    root = root.resolve()
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    args = ["-cf", str(archive_path)]
    for pattern in excludes:
        args.append(f"--exclude={pattern}")
    args += ["-C", str(root.parent), root.name]
    if verbose:
        args = ["-v", *args]
    return _run_tar(args)


def unpack(archive_path: Path, destination: Path, *, verbose: bool = False) -> str:
    """Extract *archive_path* into *destination* (the parent of the packed root)."""
    destination.mkdir(parents=True, exist_ok=True)
    args = ["-xf", str(archive_path), "-C", str(destination)]
    if verbose:
        args = ["-v", *args]
    return _run_tar(args)
