import shutil
import tarfile
from pathlib import Path

import pytest

from mtimecache.archive import pack, unpack
from mtimecache.errors import ArchiveError

pytestmark = pytest.mark.skipif(shutil.which("tar") is None, reason="tar is required")


def _tree(tmp_path: Path) -> Path:
    root = tmp_path / "work" / "DerivedData"
    for relative_path in ("App/Build/out.o", "App/SourcePackages/checkouts/lib.swift", "build.log"):
        path = root / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(relative_path, encoding="utf-8")
    return root


def test_pack_honors_exclude_patterns(tmp_path: Path) -> None:
    root = _tree(tmp_path)
    archive = tmp_path / "tmp" / "build.tar"

    pack(root, archive, excludes=["DerivedData/App/SourcePackages", "*.log"])

    with tarfile.open(archive) as tar:
        names = {name.rstrip("/") for name in tar.getnames()}
    assert "DerivedData/App/Build/out.o" in names
    assert not any("SourcePackages" in name for name in names)
    assert "DerivedData/build.log" not in names


def test_unpack_recreates_tree_under_destination(tmp_path: Path) -> None:
    root = _tree(tmp_path)
    archive = tmp_path / "tmp" / "build.tar"
    pack(root, archive)

    unpack(archive, tmp_path / "restored")

    restored = tmp_path / "restored" / "DerivedData" / "App" / "Build" / "out.o"
    assert restored.read_text(encoding="utf-8") == "App/Build/out.o"


def test_unpack_of_missing_archive_raises(tmp_path: Path) -> None:
    with pytest.raises(ArchiveError):
        unpack(tmp_path / "missing.tar", tmp_path / "restored")
