import hashlib
from pathlib import Path

import pytest

from mtimecache.fingerprint import fingerprint, sha256_directory, sha256_file


def test_sha256_file_hashes_full_content(tmp_path: Path) -> None:
    payload = b"x" * (3 * 1024 * 1024 + 17)
    path = tmp_path / "big.bin"
    path.write_bytes(payload)

    assert sha256_file(path) == hashlib.sha256(payload).hexdigest()
    assert sha256_file(path, chunk_size=1000) == hashlib.sha256(payload).hexdigest()


def test_directory_fingerprint_hashes_sorted_child_names(tmp_path: Path) -> None:
    (tmp_path / "b").mkdir()
    (tmp_path / "a.txt").write_text("ignored content", encoding="utf-8")

    assert sha256_directory(tmp_path) == hashlib.sha256(b"a.txtb").hexdigest()


def test_directory_fingerprint_ignores_creation_order(tmp_path: Path) -> None:
    first = tmp_path / "first"
    second = tmp_path / "second"
    first.mkdir()
    second.mkdir()
    for name in ["x.swift", "y.swift", "z.swift"]:
        (first / name).write_text(name, encoding="utf-8")
    for name in ["z.swift", "x.swift", "y.swift"]:
        (second / name).write_text(name, encoding="utf-8")

    assert fingerprint(first) == fingerprint(second)


def test_directory_fingerprint_is_shallow(tmp_path: Path) -> None:
    nested = tmp_path / "dir" / "child"
    nested.mkdir(parents=True)
    before = fingerprint(tmp_path / "dir")

    (nested / "deep.swift").write_text("new", encoding="utf-8")

    assert fingerprint(tmp_path / "dir") == before


def test_directory_fingerprint_changes_with_child_names(tmp_path: Path) -> None:
    (tmp_path / "a").write_text("", encoding="utf-8")
    before = fingerprint(tmp_path)

    (tmp_path / "b").write_text("", encoding="utf-8")

    assert fingerprint(tmp_path) != before


def test_fingerprint_missing_path_raises_not_found(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        fingerprint(tmp_path / "gone.swift")
