from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Sequence

from mtimecache.backends import CacheBackend
from mtimecache.errors import CacheEntryExistsError, CacheEntryNotFoundError
from mtimecache.filters import parse_patterns, resolve_patterns
from mtimecache.fingerprint import sha256_file

BUILD_DOMAIN = "build"
DEPS_DOMAIN = "deps"


@dataclass(slots=True)
class CacheDomain:
    name: str
    root: Path
    key: str
    restore_keys: tuple[str, ...] = ()

    @property
    def archive_name(self) -> str:
        return f"{self.name}.tar"


class SaveDecision(str, Enum):
    SAVE = "save"
    SKIP_EXACT_HIT = "skip_exact_hit"
    SKIP_READ_ONLY = "skip_read_only"


@dataclass(slots=True)
class DomainStoreResult:
    domain: str
    key: str
    decision: SaveDecision
    saved: bool = False
    pruned_key: str | None = None
    warnings: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    listing: str = ""


def decide_save(
    domain: CacheDomain,
    restored_key: str | None,
    *,
    read_only: bool = False,
) -> SaveDecision:
    """Decide whether the store phase should write *domain* under its primary key.

    A restore hit on the primary key means the remote already holds this
    content; a fallback hit or a miss means it should be written.
    """
    if read_only:
        return SaveDecision.SKIP_READ_ONLY
    if restored_key is not None and restored_key == domain.key:
        return SaveDecision.SKIP_EXACT_HIT
    return SaveDecision.SAVE


def save_domain(
    backend: CacheBackend,
    domain: CacheDomain,
    archive_path: Path,
    restored_key: str | None,
    *,
    prune: bool = False,
) -> DomainStoreResult:
    result = DomainStoreResult(domain=domain.name, key=domain.key, decision=SaveDecision.SAVE)
    try:
        backend.save(archive_path, domain.key)
        result.saved = True
    except CacheEntryExistsError:
        result.warnings.append(
            f"{domain.name} cache already exists for key {domain.key}; keeping the existing entry"
        )

    if prune and restored_key is not None and restored_key != domain.key:
        try:
            backend.delete(restored_key, archive_path.name)
            result.pruned_key = restored_key
        except CacheEntryNotFoundError:
            # The old entry may live in a scope this run cannot see.
            result.notes.append(f"{domain.name} cache to prune was not found: {restored_key}")
    return result


def hash_files(root: Path, patterns: Sequence[str]) -> str:
    """Hash every regular file matched by *patterns*; empty string when none match."""
    root = root.resolve()
    outer = hashlib.sha256()
    matched = 0
    for relative_path in resolve_patterns(root, parse_patterns(patterns)):
        path = root / relative_path
        if not path.is_file():
            continue
        outer.update(bytes.fromhex(sha256_file(path)))
        matched += 1
    return outer.hexdigest() if matched else ""


def lockfile_cache_key(root: Path, patterns: Sequence[str], prefix: str) -> str:
    return f"{prefix}{hash_files(root, patterns)}"
