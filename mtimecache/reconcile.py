from __future__ import annotations

import os
import stat
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from mtimecache.fingerprint import fingerprint
from mtimecache.manifest import read_manifest
from mtimecache.models import Entry

_NOT_FOUND_ERRORS = (FileNotFoundError, NotADirectoryError)


class Outcome(str, Enum):
    RESTORED = "restored"
    UNCHANGED = "unchanged"
    CONTENT_CHANGED = "content_changed"
    MISSING = "missing"


@dataclass(slots=True)
class ReconcileResult:
    manifest_found: bool
    restored_paths: list[str] = field(default_factory=list)
    unchanged_paths: list[str] = field(default_factory=list)
    changed_paths: list[str] = field(default_factory=list)
    missing_paths: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def restored_count(self) -> int:
        return len(self.restored_paths)

    @property
    def skipped_count(self) -> int:
        return len(self.unchanged_paths) + len(self.changed_paths) + len(self.missing_paths)

    def counts(self) -> dict[Outcome, int]:
        return {
            Outcome.RESTORED: len(self.restored_paths),
            Outcome.UNCHANGED: len(self.unchanged_paths),
            Outcome.CONTENT_CHANGED: len(self.changed_paths),
            Outcome.MISSING: len(self.missing_paths),
        }

    def add(self, outcome: Outcome, path: str) -> None:
        bucket = {
            Outcome.RESTORED: self.restored_paths,
            Outcome.UNCHANGED: self.unchanged_paths,
            Outcome.CONTENT_CHANGED: self.changed_paths,
            Outcome.MISSING: self.missing_paths,
        }[outcome]
        bucket.append(path)


def reconcile_entry(root: Path, entry: Entry, *, dry_run: bool = False) -> Outcome:
    """Decide one entry and, when its content is intact, rewind its mtime.

    Only ``RESTORED`` touches the filesystem: both atime and mtime are set
    to the recorded value. A changed file keeps its fresh mtime so the
    build tool recompiles it.
    """
    target = root / entry.path
    try:
        info = target.stat()
    except _NOT_FOUND_ERRORS:
        return Outcome.MISSING

    if info.st_mtime_ns == entry.mtime_ns:
        return Outcome.UNCHANGED

    try:
        digest = fingerprint(target, is_dir=stat.S_ISDIR(info.st_mode))
    except _NOT_FOUND_ERRORS:
        return Outcome.MISSING
    if digest != entry.sha256:
        return Outcome.CONTENT_CHANGED

    if not dry_run:
        try:
            os.utime(target, ns=(entry.mtime_ns, entry.mtime_ns))
        except _NOT_FOUND_ERRORS:
            return Outcome.MISSING
    return Outcome.RESTORED


def reconcile_entries(
    root: Path,
    entries: list[Entry],
    *,
    workers: int = 1,
    dry_run: bool = False,
) -> ReconcileResult:
    root = root.resolve()
    result = ReconcileResult(manifest_found=True, dry_run=dry_run)

    # One entry per path, so no two workers ever touch the same file.
    unique: dict[str, Entry] = {}
    for entry in entries:
        unique[entry.path] = entry
    ordered = [unique[path] for path in sorted(unique)]

    if workers <= 1 or len(ordered) <= 1:
        outcomes = [reconcile_entry(root, entry, dry_run=dry_run) for entry in ordered]
    else:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mtimecache-mtime") as executor:
            outcomes = list(
                executor.map(lambda entry: reconcile_entry(root, entry, dry_run=dry_run), ordered)
            )

    for entry, outcome in zip(ordered, outcomes):
        result.add(outcome, entry.path)
    return result


def restore_mtimes(
    root: Path,
    manifest_path: Path,
    *,
    workers: int = 1,
    dry_run: bool = False,
) -> ReconcileResult:
    """Reconcile every entry of the manifest at *manifest_path* against *root*."""
    entries = read_manifest(manifest_path)
    if entries is None:
        return ReconcileResult(manifest_found=False, dry_run=dry_run)
    return reconcile_entries(root, entries, workers=workers, dry_run=dry_run)
