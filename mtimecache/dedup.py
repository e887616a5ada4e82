from __future__ import annotations

import os
import shutil
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from mtimecache.errors import RelocationError

# Held for the whole relocation window so nothing else reads or writes the
# nested tree while it is parked.
_RELOCATION_LOCK = threading.Lock()


def path_contains(parent: Path, child: Path) -> bool:
    """Return True if *child* is *parent* or lies underneath it."""
    try:
        relative = os.path.relpath(Path(child).resolve(), Path(parent).resolve())
    except ValueError:
        # Different drives on Windows.
        return False
    return relative != os.pardir and not relative.startswith(os.pardir + os.sep)


@dataclass(frozen=True, slots=True)
class ArchivePlan:
    root: Path
    nested: Path | None = None

    @property
    def needs_relocation(self) -> bool:
        return self.nested is not None


def plan_archive(root: Path, other_root: Path | None) -> ArchivePlan:
    """Plan archiving *root* so it never carries *other_root*'s children."""
    root = root.resolve()
    if other_root is None:
        return ArchivePlan(root=root)
    other = Path(other_root).resolve()
    if other == root or not path_contains(root, other):
        return ArchivePlan(root=root)
    return ArchivePlan(root=root, nested=other)


def _restore_location(original: Path, parked: Path) -> None:
    if not (parked.exists() or parked.is_symlink()):
        if original.is_dir() and not original.is_symlink() and not any(original.iterdir()):
            original.rmdir()
        # Whatever sits at the original path now is not the tree that was parked.
        raise RelocationError(
            f"Relocated tree is missing from {parked}; {original} no longer holds it"
        )

    if original.is_dir() and not original.is_symlink():
        try:
            original.rmdir()
        except OSError as exc:
            raise RelocationError(
                f"Cannot move {parked} back: {original} was modified while relocated"
            ) from exc
    elif original.exists() or original.is_symlink():
        raise RelocationError(
            f"Cannot move {parked} back: {original} was replaced while relocated"
        )
    shutil.move(str(parked), str(original))


@contextmanager
def relocated(nested: Path, temp_dir: Path) -> Iterator[Path]:
    """Move *nested* out of its parent tree for the duration of the block.

    An empty directory is left at the original path while the tree is
    parked, so an archive of the parent keeps the directory but none of its
    children. On exit the tree is moved back and verified; ``RelocationError``
    is raised if it cannot be found at either location.
    """
    nested = Path(nested)
    with _RELOCATION_LOCK:
        temp_dir.mkdir(parents=True, exist_ok=True)
        parking_dir = Path(tempfile.mkdtemp(prefix="relocate-", dir=temp_dir))
        parked = parking_dir / nested.name
        shutil.move(str(nested), str(parked))
        try:
            nested.mkdir()
            yield parked
        finally:
            _restore_location(nested, parked)
            shutil.rmtree(parking_dir, ignore_errors=True)
