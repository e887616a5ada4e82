from __future__ import annotations

import json
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from mtimecache.errors import ManifestError
from mtimecache.filters import PatternSet, resolve_patterns
from mtimecache.fingerprint import fingerprint
from mtimecache.models import Entry

MANIFEST_FILENAME = "mtimecache-mtime.json"


@dataclass(slots=True)
class ManifestBuildResult:
    entries: list[Entry]
    unreadable_paths: list[str] = field(default_factory=list)
    manifest_path: Path | None = None

    @property
    def stored_count(self) -> int:
        return len(self.entries)


def _entry_for_path(root: Path, relative_path: str) -> Entry:
    target = root / relative_path
    info = target.stat()
    return Entry(
        path=relative_path,
        mtime_ns=info.st_mtime_ns,
        sha256=fingerprint(target, is_dir=stat.S_ISDIR(info.st_mode)),
    )


def build_manifest(
    root: Path,
    pattern_set: PatternSet,
    extra_excludes: Iterable[Path] = (),
) -> ManifestBuildResult:
    """Capture ``(path, mtime, fingerprint)`` for every path *pattern_set* matches.

    *extra_excludes* are subtrees that are never tracked, typically the
    cache roots themselves. Paths that vanish or cannot be stat'ed between
    matching and reading are reported in ``unreadable_paths``.
    """
    root = root.resolve()
    entries: list[Entry] = []
    unreadable: list[str] = []
    for relative_path in resolve_patterns(root, pattern_set, extra_excludes):
        try:
            entries.append(_entry_for_path(root, relative_path))
        except (FileNotFoundError, NotADirectoryError, PermissionError):
            unreadable.append(relative_path)
    return ManifestBuildResult(entries=entries, unreadable_paths=unreadable)


def write_manifest(path: Path, entries: list[Entry]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = [entry.to_json() for entry in entries]
    with path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, separators=(",", ":"))
    return path


def read_manifest(path: Path) -> list[Entry] | None:
    """Load a manifest, or return ``None`` when *path* does not exist."""
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except FileNotFoundError:
        return None
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Manifest is not valid JSON: {path}") from exc

    if not isinstance(data, list):
        raise ManifestError(f"Manifest has invalid structure: {path}")
    try:
        return [Entry.from_json(item) for item in data]
    except (KeyError, TypeError, ValueError) as exc:
        raise ManifestError(f"Manifest has an invalid entry: {path}") from exc
