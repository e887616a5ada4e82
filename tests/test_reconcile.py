import hashlib
import os
from pathlib import Path

import mtimecache.reconcile as reconcile_module
from mtimecache.filters import parse_patterns
from mtimecache.manifest import build_manifest, write_manifest
from mtimecache.models import Entry, parse_mtime
from mtimecache.reconcile import Outcome, reconcile_entries, reconcile_entry, restore_mtimes

SECOND = 1_000_000_000


def _sha(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def test_matching_content_rewinds_mtime(tmp_path: Path, write_file) -> None:
    write_file(tmp_path / "A.swift", b"h1 content", mtime_s=200)
    entry = Entry(path="A.swift", mtime_ns=parse_mtime("100.000000000"), sha256=_sha(b"h1 content"))

    result = reconcile_entries(tmp_path, [entry])

    info = (tmp_path / "A.swift").stat()
    assert info.st_mtime_ns == 100 * SECOND
    assert info.st_atime_ns == 100 * SECOND
    assert result.restored_count == 1
    assert result.skipped_count == 0


def test_changed_content_keeps_current_mtime(tmp_path: Path, write_file) -> None:
    write_file(tmp_path / "A.swift", b"h2 content", mtime_s=200)
    entry = Entry(path="A.swift", mtime_ns=100 * SECOND, sha256=_sha(b"h1 content"))

    result = reconcile_entries(tmp_path, [entry])

    assert (tmp_path / "A.swift").stat().st_mtime_ns == 200 * SECOND
    assert result.restored_count == 0
    assert result.skipped_count == 1
    assert result.changed_paths == ["A.swift"]


def test_equal_mtime_short_circuits_fingerprint(tmp_path: Path, write_file, monkeypatch) -> None:
    write_file(tmp_path / "A.swift", b"anything", mtime_s=100)

    def fail_fingerprint(path: Path, *, is_dir: bool | None = None) -> str:
        raise AssertionError("fingerprint should not be computed")

    monkeypatch.setattr(reconcile_module, "fingerprint", fail_fingerprint)
    entry = Entry(path="A.swift", mtime_ns=100 * SECOND, sha256="stale")

    assert reconcile_entry(tmp_path, entry) is Outcome.UNCHANGED


def test_missing_entry_is_not_an_error(tmp_path: Path) -> None:
    entry = Entry(path="gone/A.swift", mtime_ns=100 * SECOND, sha256="h1")

    result = reconcile_entries(tmp_path, [entry])

    assert result.missing_paths == ["gone/A.swift"]
    assert result.counts()[Outcome.MISSING] == 1


def test_directory_entries_are_reconciled(tmp_path: Path, write_file, set_mtime) -> None:
    write_file(tmp_path / "Res.bundle" / "img.png", b"png")
    set_mtime(tmp_path / "Res.bundle", 100)
    manifest = build_manifest(tmp_path, parse_patterns(["**/*.bundle"]))
    set_mtime(tmp_path / "Res.bundle", 500)

    result = reconcile_entries(tmp_path, manifest.entries)

    assert result.restored_paths == ["Res.bundle"]
    assert (tmp_path / "Res.bundle").stat().st_mtime_ns == 100 * SECOND


def test_dry_run_leaves_timestamps_alone(tmp_path: Path, write_file) -> None:
    write_file(tmp_path / "A.swift", b"same", mtime_s=200)
    entry = Entry(path="A.swift", mtime_ns=100 * SECOND, sha256=_sha(b"same"))

    result = reconcile_entries(tmp_path, [entry], dry_run=True)

    assert result.restored_paths == ["A.swift"]
    assert (tmp_path / "A.swift").stat().st_mtime_ns == 200 * SECOND


def test_round_trip_restores_exact_nanoseconds(tmp_path: Path, write_file) -> None:
    original_ns = 1694535491_104939637
    paths = [write_file(tmp_path / "src" / f"F{index}.swift", f"file {index}") for index in range(20)]
    for path in paths:
        os.utime(path, ns=(original_ns, original_ns))
    manifest_path = tmp_path / "cache" / "manifest.json"
    write_manifest(manifest_path, build_manifest(tmp_path, parse_patterns(["**/*.swift"])).entries)
    for path in paths:
        os.utime(path, ns=(1_800_000_000 * SECOND, 1_800_000_000 * SECOND))

    result = restore_mtimes(tmp_path, manifest_path, workers=4)

    assert result.restored_count == 20
    assert result.changed_paths == []
    assert all(path.stat().st_mtime_ns == original_ns for path in paths)


def test_untouched_files_report_unchanged(tmp_path: Path, write_file) -> None:
    write_file(tmp_path / "A.swift", "a", mtime_s=100)
    manifest_path = tmp_path / "manifest.json"
    write_manifest(manifest_path, build_manifest(tmp_path, parse_patterns(["*.swift"])).entries)

    result = restore_mtimes(tmp_path, manifest_path)

    assert result.unchanged_paths == ["A.swift"]
    assert (tmp_path / "A.swift").stat().st_mtime_ns == 100 * SECOND


def test_restore_mtimes_without_manifest(tmp_path: Path) -> None:
    result = restore_mtimes(tmp_path, tmp_path / "missing.json")

    assert result.manifest_found is False
    assert result.restored_count == 0


def test_duplicate_paths_are_processed_once(tmp_path: Path, write_file) -> None:
    write_file(tmp_path / "A.swift", b"same", mtime_s=200)
    entry = Entry(path="A.swift", mtime_ns=100 * SECOND, sha256=_sha(b"same"))

    result = reconcile_entries(tmp_path, [entry, entry], workers=2)

    assert result.restored_paths == ["A.swift"]
