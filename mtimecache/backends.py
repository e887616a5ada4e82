"""Remote cache stores.

Entries are addressed by key and hold one archive each. ``restore`` follows
the usual restore-key rules: the exact key wins, otherwise each fallback is
tried in order, first as an exact key and then as a prefix, picking the
newest matching entry.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping, Protocol, Sequence
from urllib.parse import quote, unquote

from mtimecache.auth import resolve_hub_token
from mtimecache.errors import CacheEntryExistsError, CacheEntryNotFoundError, ConfigError

if TYPE_CHECKING:
    from mtimecache.config import MtimeCacheConfig


class CacheBackend(Protocol):
    def restore(self, archive_path: Path, key: str, restore_keys: Sequence[str]) -> str | None:
        """Fetch the best entry into *archive_path*; return its key, or None on a miss."""

    def save(self, archive_path: Path, key: str) -> None:
        """Store *archive_path* under *key*; raise ``CacheEntryExistsError`` if taken."""

    def delete(self, key: str, archive_name: str) -> None:
        """Remove *archive_name* under *key*; raise ``CacheEntryNotFoundError`` if absent."""


def _encode_key(key: str) -> str:
    return quote(key, safe="")


def select_restore_key(
    available: Mapping[str, float],
    key: str,
    restore_keys: Sequence[str],
) -> str | None:
    """Pick a key from *available* (key -> age ordinal, larger is newer)."""
    if key in available:
        return key
    for prefix in restore_keys:
        if prefix in available:
            return prefix
        candidates = [candidate for candidate in available if candidate.startswith(prefix)]
        if candidates:
            return max(candidates, key=lambda candidate: (available[candidate], candidate))
    return None


class LocalCacheBackend:
    """Directory-backed store: an entry exists iff ``<root>/<key>/<archive>`` exists."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _entry_dir(self, key: str) -> Path:
        return self.root / _encode_key(key)

    def _available(self, archive_name: str) -> dict[str, float]:
        if not self.root.is_dir():
            return {}
        available: dict[str, float] = {}
        for entry_dir in self.root.iterdir():
            archive = entry_dir / archive_name
            if archive.is_file():
                available[unquote(entry_dir.name)] = archive.stat().st_mtime_ns
        return available

    def restore(self, archive_path: Path, key: str, restore_keys: Sequence[str]) -> str | None:
        matched = select_restore_key(self._available(archive_path.name), key, restore_keys)
        if matched is None:
            return None
        archive_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self._entry_dir(matched) / archive_path.name, archive_path)
        return matched

    def save(self, archive_path: Path, key: str) -> None:
        entry_dir = self._entry_dir(key)
        target = entry_dir / archive_path.name
        if target.exists():
            raise CacheEntryExistsError(key)
        entry_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(archive_path, target)

    def delete(self, key: str, archive_name: str) -> None:
        entry_dir = self._entry_dir(key)
        target = entry_dir / archive_name
        if not target.is_file():
            raise CacheEntryNotFoundError(key)
        target.unlink()
        if not any(entry_dir.iterdir()):
            entry_dir.rmdir()


def _load_hub_symbols():
    try:
        from huggingface_hub import HfApi, hf_hub_download
    except ImportError as exc:
        raise RuntimeError(
            "huggingface_hub is required for the `hub` backend. Install dependencies first."
        ) from exc
    return HfApi, hf_hub_download


def _iter_exception_chain(exc: BaseException):
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _is_not_found_error(exc: BaseException) -> bool:
    for current in _iter_exception_chain(exc):
        if current.__class__.__name__ in {"EntryNotFoundError", "RepositoryNotFoundError"}:
            return True
        message = str(current).lower()
        if "404" in message or "not found" in message:
            return True
    return False


def _commit_timestamp(entry: Any) -> float:
    last_commit = getattr(entry, "last_commit", None)
    date = getattr(last_commit, "date", None)
    return date.timestamp() if date is not None else 0.0


class HubCacheBackend:
    """Store entries as ``<encoded key>/<archive>`` files in a Hugging Face Hub repo."""

    def __init__(self, repo_id: str, *, token: str | None = None, repo_type: str = "dataset") -> None:
        self.repo_id = repo_id
        self.token = token
        self.repo_type = repo_type

    def _api(self):
        HfApi, _ = _load_hub_symbols()
        return HfApi(token=self.token)

    def _available(self, api, archive_name: str) -> dict[str, float]:
        try:
            files = set(
                api.list_repo_files(repo_id=self.repo_id, repo_type=self.repo_type, token=self.token)
            )
            tree = list(
                api.list_repo_tree(
                    repo_id=self.repo_id,
                    repo_type=self.repo_type,
                    expand=True,
                    token=self.token,
                )
            )
        except Exception as exc:
            if _is_not_found_error(exc):
                return {}
            raise

        available: dict[str, float] = {}
        for entry in tree:
            folder = getattr(entry, "path", "")
            if f"{folder}/{archive_name}" in files:
                available[unquote(folder)] = _commit_timestamp(entry)
        return available

    def restore(self, archive_path: Path, key: str, restore_keys: Sequence[str]) -> str | None:
        _, hf_hub_download = _load_hub_symbols()
        api = self._api()
        matched = select_restore_key(self._available(api, archive_path.name), key, restore_keys)
        if matched is None:
            return None

        staging = archive_path.parent / ".download"
        staging.mkdir(parents=True, exist_ok=True)
        try:
            downloaded = hf_hub_download(
                repo_id=self.repo_id,
                filename=f"{_encode_key(matched)}/{archive_path.name}",
                repo_type=self.repo_type,
                token=self.token,
                local_dir=str(staging),
            )
            shutil.move(str(downloaded), str(archive_path))
        finally:
            shutil.rmtree(staging, ignore_errors=True)
        return matched

    def save(self, archive_path: Path, key: str) -> None:
        api = self._api()
        path_in_repo = f"{_encode_key(key)}/{archive_path.name}"
        api.create_repo(
            repo_id=self.repo_id,
            repo_type=self.repo_type,
            private=True,
            exist_ok=True,
            token=self.token,
        )
        if api.file_exists(
            repo_id=self.repo_id,
            filename=path_in_repo,
            repo_type=self.repo_type,
            token=self.token,
        ):
            raise CacheEntryExistsError(key)
        api.upload_file(
            path_or_fileobj=str(archive_path),
            path_in_repo=path_in_repo,
            repo_id=self.repo_id,
            repo_type=self.repo_type,
            token=self.token,
            commit_message=f"mtimecache save: {key}",
        )

    def delete(self, key: str, archive_name: str) -> None:
        api = self._api()
        try:
            api.delete_file(
                path_in_repo=f"{_encode_key(key)}/{archive_name}",
                repo_id=self.repo_id,
                repo_type=self.repo_type,
                token=self.token,
                commit_message=f"mtimecache delete: {key}",
            )
        except Exception as exc:
            if _is_not_found_error(exc):
                raise CacheEntryNotFoundError(key) from exc
            raise


def create_backend(config: "MtimeCacheConfig") -> CacheBackend:
    if config.backend == "local":
        return LocalCacheBackend(config.local_cache_path)
    if config.backend == "hub":
        return HubCacheBackend(
            config.repo_id,
            token=resolve_hub_token(config.token),
            repo_type=config.repo_type,
        )
    raise ConfigError(f"Unknown backend {config.backend!r}.")
