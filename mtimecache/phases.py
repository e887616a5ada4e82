"""The two lifecycle phases.

``restore_phase`` runs before a build: it restores both cache domains and
rewinds the timestamps of unchanged sources. ``store_phase`` runs after the
build: it captures the mtime manifest and saves whichever domains need it.
The phases share state only through the state database.
"""

from __future__ import annotations

import shutil
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console

from mtimecache.archive import pack, unpack
from mtimecache.backends import CacheBackend, create_backend
from mtimecache.config import DEPS_KEY_PREFIX, MtimeCacheConfig
from mtimecache.dedup import ArchivePlan, plan_archive, relocated
from mtimecache.filters import DEFAULT_MTIME_TARGETS, PatternSet, parse_patterns
from mtimecache.keys import (
    BUILD_DOMAIN,
    DEPS_DOMAIN,
    CacheDomain,
    DomainStoreResult,
    SaveDecision,
    decide_save,
    lockfile_cache_key,
    save_domain,
)
from mtimecache.manifest import MANIFEST_FILENAME, ManifestBuildResult, build_manifest, write_manifest
from mtimecache.reconcile import ReconcileResult, restore_mtimes
from mtimecache.state_db import begin_restore, load_restored_keys, record_restored_key


@dataclass(slots=True)
class DomainRestoreResult:
    domain: str
    root: Path
    key: str
    restored_key: str | None
    listing: str = ""

    @property
    def restored(self) -> bool:
        return self.restored_key is not None

    @property
    def exact_hit(self) -> bool:
        return self.restored_key == self.key


@dataclass(slots=True)
class RestoreResult:
    domains: list[DomainRestoreResult]
    reconcile: ReconcileResult | None
    manifest_path: Path
    notes: list[str] = field(default_factory=list)


@dataclass(slots=True)
class StoreResult:
    manifest: ManifestBuildResult | None
    domains: list[DomainStoreResult]
    warnings: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


@contextmanager
def _status(console: Console | None, message: str):
    if console is None:
        yield
        return
    with console.status(message):
        yield


def mtime_patterns(config: MtimeCacheConfig) -> PatternSet:
    patterns = parse_patterns(DEFAULT_MTIME_TARGETS) if config.use_default_mtime_targets else PatternSet()
    return patterns + parse_patterns(config.mtime_targets)


def build_domain(config: MtimeCacheConfig) -> CacheDomain:
    return CacheDomain(
        name=BUILD_DOMAIN,
        root=config.build_dir_path,
        key=config.key,
        restore_keys=tuple(config.restore_keys),
    )


def deps_domain(config: MtimeCacheConfig, deps_dir: Path, work_dir: Path) -> CacheDomain:
    key = config.deps_cache_key or lockfile_cache_key(
        work_dir, config.lockfile_pattern_list(), DEPS_KEY_PREFIX
    )
    return CacheDomain(
        name=DEPS_DOMAIN,
        root=deps_dir,
        key=key,
        restore_keys=tuple(config.deps_restore_keys),
    )


async def _restore_domain(
    config: MtimeCacheConfig,
    backend: CacheBackend,
    domain: CacheDomain,
    *,
    console: Console | None,
) -> DomainRestoreResult:
    archive = config.temp_dir_path / domain.archive_name
    with _status(console, f"Restoring {domain.name} cache..."):
        matched = backend.restore(archive, domain.key, domain.restore_keys)
    result = DomainRestoreResult(domain=domain.name, root=domain.root, key=domain.key, restored_key=matched)
    if matched is None:
        return result

    with _status(console, f"Unpacking {domain.archive_name}..."):
        result.listing = unpack(archive, domain.root.parent, verbose=config.verbose)
    await record_restored_key(config.state_db_path, config.run_id, domain.name, matched)
    return result


async def restore_phase(
    config: MtimeCacheConfig,
    *,
    backend: CacheBackend | None = None,
    work_dir: Path | None = None,
    console: Console | None = None,
) -> RestoreResult:
    backend = backend or create_backend(config)
    work_dir = (work_dir or Path.cwd()).resolve()
    await begin_restore(config.state_db_path, config.run_id)

    build = build_domain(config)
    manifest_path = build.root / MANIFEST_FILENAME
    domains = [await _restore_domain(config, backend, build, console=console)]
    notes: list[str] = []

    # Looked up after the build restore: the deps tree may live inside it.
    deps_dir = config.deps_dir_path()
    if deps_dir is None:
        notes.append("Deps directory not found, skipped restoring deps cache.")
    else:
        domain = deps_domain(config, deps_dir, work_dir)
        domains.append(await _restore_domain(config, backend, domain, console=console))

    reconcile: ReconcileResult | None = None
    if domains[0].restored:
        with _status(console, "Restoring mtimes..."):
            reconcile = restore_mtimes(
                work_dir,
                manifest_path,
                workers=config.reconcile_workers,
            )

    if not config.keep_temp:
        shutil.rmtree(config.temp_dir_path, ignore_errors=True)

    return RestoreResult(domains=domains, reconcile=reconcile, manifest_path=manifest_path, notes=notes)


def _store_domain(
    config: MtimeCacheConfig,
    backend: CacheBackend,
    domain: CacheDomain,
    plan: ArchivePlan,
    restored_key: str | None,
    *,
    prune: bool,
    console: Console | None,
) -> DomainStoreResult:
    decision = decide_save(domain, restored_key, read_only=config.cache_read_only)
    if decision is not SaveDecision.SAVE:
        return DomainStoreResult(domain=domain.name, key=domain.key, decision=decision)

    archive = config.temp_dir_path / domain.archive_name
    with _status(console, f"Packing {domain.archive_name}..."):
        if plan.nested is not None:
            with relocated(plan.nested, config.temp_dir_path):
                listing = pack(plan.root, archive, verbose=config.verbose)
        else:
            listing = pack(plan.root, archive, verbose=config.verbose)

    with _status(console, f"Saving {domain.name} cache..."):
        result = save_domain(backend, domain, archive, restored_key, prune=prune)
    result.listing = listing
    if not config.keep_temp:
        archive.unlink(missing_ok=True)
    return result


async def store_phase(
    config: MtimeCacheConfig,
    *,
    backend: CacheBackend | None = None,
    work_dir: Path | None = None,
    console: Console | None = None,
) -> StoreResult:
    backend = backend or create_backend(config)
    work_dir = (work_dir or Path.cwd()).resolve()
    restored = await load_restored_keys(config.state_db_path, config.run_id)

    build = build_domain(config)
    deps_dir = config.deps_dir_path()
    result = StoreResult(manifest=None, domains=[])

    # Captured before packing so archiving cannot disturb the timestamps.
    if build.root.is_dir():
        excludes = [build.root] + ([deps_dir] if deps_dir is not None else [])
        with _status(console, "Hashing mtime targets..."):
            manifest = build_manifest(work_dir, mtime_patterns(config), excludes)
        manifest.manifest_path = write_manifest(build.root / MANIFEST_FILENAME, manifest.entries)
        result.manifest = manifest
    else:
        result.warnings.append(
            f"Build directory not found: {build.root}; skipped storing mtime and build cache."
        )

    if deps_dir is None:
        result.notes.append("Deps directory not found, skipped storing deps cache.")
    elif not deps_dir.is_dir():
        result.warnings.append(f"Deps directory not found: {deps_dir}; skipped storing deps cache.")
    else:
        domain = deps_domain(config, deps_dir, work_dir)
        result.domains.append(
            _store_domain(
                config,
                backend,
                domain,
                plan_archive(deps_dir, None),
                restored.get(domain.name),
                prune=False,
                console=console,
            )
        )

    if build.root.is_dir():
        result.domains.append(
            _store_domain(
                config,
                backend,
                build,
                plan_archive(build.root, deps_dir),
                restored.get(build.name),
                prune=config.delete_used_build_cache,
                console=console,
            )
        )
    return result
