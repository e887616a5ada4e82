import hashlib
from pathlib import Path

import pytest

from mtimecache.errors import CacheEntryExistsError, CacheEntryNotFoundError
from mtimecache.keys import (
    CacheDomain,
    SaveDecision,
    decide_save,
    hash_files,
    lockfile_cache_key,
    save_domain,
)


class RecordingBackend:
    def __init__(self, *, save_error: Exception | None = None, delete_error: Exception | None = None) -> None:
        self.saved: list[str] = []
        self.deleted: list[str] = []
        self.save_error = save_error
        self.delete_error = delete_error

    def restore(self, archive_path: Path, key: str, restore_keys) -> str | None:
        return None

    def save(self, archive_path: Path, key: str) -> None:
        if self.save_error is not None:
            raise self.save_error
        self.saved.append(key)

    def delete(self, key: str, archive_name: str) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(key)


def _domain(tmp_path: Path) -> CacheDomain:
    return CacheDomain(name="build", root=tmp_path, key="build-v2", restore_keys=("build-",))


def test_decide_save(tmp_path: Path) -> None:
    domain = _domain(tmp_path)

    assert decide_save(domain, "build-v2") is SaveDecision.SKIP_EXACT_HIT
    assert decide_save(domain, "build-v1") is SaveDecision.SAVE
    assert decide_save(domain, None) is SaveDecision.SAVE
    assert decide_save(domain, None, read_only=True) is SaveDecision.SKIP_READ_ONLY


def test_save_domain_writes_primary_key(tmp_path: Path) -> None:
    backend = RecordingBackend()

    result = save_domain(backend, _domain(tmp_path), tmp_path / "build.tar", None)

    assert result.saved is True
    assert backend.saved == ["build-v2"]
    assert backend.deleted == []


def test_existing_entry_is_a_warning(tmp_path: Path) -> None:
    backend = RecordingBackend(save_error=CacheEntryExistsError("build-v2"))

    result = save_domain(backend, _domain(tmp_path), tmp_path / "build.tar", None)

    assert result.saved is False
    assert len(result.warnings) == 1
    assert "already exists" in result.warnings[0]


def test_prune_deletes_previous_key(tmp_path: Path) -> None:
    backend = RecordingBackend()

    result = save_domain(backend, _domain(tmp_path), tmp_path / "build.tar", "build-v1", prune=True)

    assert backend.deleted == ["build-v1"]
    assert result.pruned_key == "build-v1"


def test_prune_without_restore_does_nothing(tmp_path: Path) -> None:
    backend = RecordingBackend()

    save_domain(backend, _domain(tmp_path), tmp_path / "build.tar", None, prune=True)

    assert backend.deleted == []


def test_prune_not_found_is_a_note(tmp_path: Path) -> None:
    backend = RecordingBackend(delete_error=CacheEntryNotFoundError("build-v1"))

    result = save_domain(backend, _domain(tmp_path), tmp_path / "build.tar", "build-v1", prune=True)

    assert result.pruned_key is None
    assert result.notes == ["build cache to prune was not found: build-v1"]


def test_prune_other_failures_propagate(tmp_path: Path) -> None:
    backend = RecordingBackend(delete_error=PermissionError("forbidden"))

    with pytest.raises(PermissionError):
        save_domain(backend, _domain(tmp_path), tmp_path / "build.tar", "build-v1", prune=True)


def test_hash_files_hashes_digests_in_path_order(tmp_path: Path, write_file) -> None:
    write_file(tmp_path / "b" / "Package.resolved", b"two")
    write_file(tmp_path / "a" / "Package.resolved", b"one")
    expected = hashlib.sha256(
        hashlib.sha256(b"one").digest() + hashlib.sha256(b"two").digest()
    ).hexdigest()

    assert hash_files(tmp_path, ["**/Package.resolved"]) == expected


def test_hash_files_without_matches_is_empty(tmp_path: Path) -> None:
    assert hash_files(tmp_path, ["**/Package.resolved"]) == ""
    assert lockfile_cache_key(tmp_path, ["**/Package.resolved"], "deps-") == "deps-"
