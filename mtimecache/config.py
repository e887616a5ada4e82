from __future__ import annotations

import json
import os
import sys
import tempfile
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path

from mtimecache.errors import ConfigError, UnsupportedHostError

CONFIG_FILENAME = ".mtimecache.json"
STATE_DB_FILENAME = "mtimecache-state.db"
DEFAULT_BUILD_DIR = "~/Library/Developer/Xcode/DerivedData"
DEFAULT_LOCKFILE_PATTERNS = (
    "**/*.xcodeproj/project.xcworkspace/xcshareddata/swiftpm/Package.resolved",
    "**/*.xcworkspace/xcshareddata/swiftpm/Package.resolved",
)
DEPS_KEY_PREFIX = "mtimecache-deps-"
SUPPORTED_BACKENDS = {"hub", "local"}
# Hosts whose utime() accepts nanosecond timestamps.
SUPPORTED_PLATFORMS = {"darwin", "linux"}


def _expand(path: str) -> Path:
    return Path(path).expanduser()


def default_temp_dir() -> str:
    base = os.getenv("RUNNER_TEMP") or tempfile.gettempdir()
    return str(Path(base) / "mtimecache")


def default_run_id() -> str:
    explicit = os.getenv("MTIMECACHE_RUN_ID", "").strip()
    if explicit:
        return explicit
    run_id = os.getenv("GITHUB_RUN_ID", "").strip()
    if run_id:
        return f"{run_id}-{os.getenv('GITHUB_RUN_ATTEMPT', '1').strip() or '1'}"
    return "local"


@dataclass(slots=True)
class MtimeCacheConfig:
    key: str
    restore_keys: list[str] = field(default_factory=list)
    build_dir: str = DEFAULT_BUILD_DIR
    deps_dir: str | None = None
    mtime_targets: list[str] = field(default_factory=list)
    use_default_mtime_targets: bool = True
    lockfile_patterns: list[str] = field(default_factory=list)
    deps_cache_key: str | None = None
    deps_restore_keys: list[str] = field(default_factory=list)
    delete_used_build_cache: bool = False
    cache_read_only: bool = False
    verbose: bool = False
    backend: str = "hub"
    repo_id: str = ""
    repo_type: str = "dataset"
    token: str = ""
    local_cache_dir: str = ".mtimecache-store"
    temp_dir: str = field(default_factory=default_temp_dir)
    state_db: str | None = None
    run_id: str = field(default_factory=default_run_id)
    reconcile_workers: int = 4
    keep_temp: bool = False

    @property
    def build_dir_path(self) -> Path:
        return _expand(self.build_dir).resolve()

    @property
    def temp_dir_path(self) -> Path:
        return _expand(self.temp_dir).resolve()

    @property
    def local_cache_path(self) -> Path:
        return _expand(self.local_cache_dir).resolve()

    @property
    def state_db_path(self) -> Path:
        if self.state_db:
            return _expand(self.state_db).resolve()
        # Outside temp_dir, which the restore phase deletes.
        return self.temp_dir_path.parent / STATE_DB_FILENAME

    def deps_dir_path(self) -> Path | None:
        """Return the configured deps tree, or the first ``<build_dir>/*/SourcePackages``."""
        if self.deps_dir:
            return _expand(self.deps_dir).resolve()
        build_dir = self.build_dir_path
        if not build_dir.is_dir():
            return None
        matches = sorted(build_dir.glob("*/SourcePackages"))
        return matches[0].resolve() if matches else None

    def lockfile_pattern_list(self) -> list[str]:
        return list(self.lockfile_patterns or DEFAULT_LOCKFILE_PATTERNS)


def config_path(base_dir: Path | None = None) -> Path:
    return (base_dir or Path.cwd()).resolve() / CONFIG_FILENAME


def load_config(base_dir: Path | None = None) -> MtimeCacheConfig:
    path = config_path(base_dir)
    if not path.exists():
        raise FileNotFoundError(
            f"Config file not found: {path}. Run `mtc init <key>` first."
        )

    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a JSON object: {path}")

    known = {item.name for item in fields(MtimeCacheConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config field(s) in {path}: {', '.join(unknown)}")
    if "key" not in data:
        raise ConfigError(f"Config file is missing the required `key`: {path}")
    return MtimeCacheConfig(**data)


def save_config(config: MtimeCacheConfig, base_dir: Path | None = None) -> Path:
    path = config_path(base_dir)
    payload = asdict(config)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2)
        fh.write("\n")
    return path


def validate_config(config: MtimeCacheConfig) -> None:
    if not config.key.strip():
        raise ConfigError("`key` must not be empty.")
    if config.backend not in SUPPORTED_BACKENDS:
        raise ConfigError(
            f"Unknown backend {config.backend!r}. Use one of: {', '.join(sorted(SUPPORTED_BACKENDS))}."
        )
    if config.backend == "hub" and not config.repo_id.strip():
        raise ConfigError("The `hub` backend requires `repo_id`.")
    if config.reconcile_workers < 1:
        raise ConfigError("`reconcile_workers` must be at least 1.")


def check_host(platform: str | None = None) -> None:
    platform = platform or sys.platform
    if platform not in SUPPORTED_PLATFORMS:
        raise UnsupportedHostError(f"Host is not supported: {platform}")
