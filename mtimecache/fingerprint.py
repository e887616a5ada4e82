from __future__ import annotations

import hashlib
import os
import stat
from pathlib import Path
from typing import Callable


def sha256_file(
    path: Path,
    chunk_size: int = 1024 * 1024,
    *,
    on_chunk: Callable[[int], None] | None = None,
) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        while True:
            chunk = fh.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
            if on_chunk is not None:
                on_chunk(len(chunk))
    return digest.hexdigest()


def sha256_directory(path: Path) -> str:
    """Hash the names of the direct children of *path*.

    Names are sorted by their raw bytes so the digest does not depend on
    locale or on the order the filesystem returns them in. Nested content
    is not hashed: deeper paths are tracked as entries of their own.
    """
    digest = hashlib.sha256()
    for name in sorted(os.fsencode(name) for name in os.listdir(path)):
        digest.update(name)
    return digest.hexdigest()


def fingerprint(path: Path, *, is_dir: bool | None = None) -> str:
    """Return the content digest of a file or directory.

    Raises ``FileNotFoundError`` if *path* disappears while being read.
    """
    if is_dir is None:
        is_dir = stat.S_ISDIR(path.stat().st_mode)
    if is_dir:
        return sha256_directory(path)
    return sha256_file(path)
