"""Error types raised by mtimecache.

Recoverable conditions (missing files, changed content, remote conflicts)
are normally folded into phase results; the classes here cover the cases
that escape a single entry or a single remote call.
"""

from __future__ import annotations


class MtimeCacheError(RuntimeError):
    """Base class for every error raised by this package."""


class ConfigError(MtimeCacheError):
    pass


class UnsupportedHostError(MtimeCacheError):
    pass


class ManifestError(MtimeCacheError):
    pass


class ArchiveError(MtimeCacheError):
    pass


class StateError(MtimeCacheError):
    pass


class RelocationError(MtimeCacheError):
    """A relocated tree is at neither its original nor its parking path."""


class CacheEntryExistsError(MtimeCacheError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Cache entry already exists: {key}")
        self.key = key


class CacheEntryNotFoundError(MtimeCacheError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Cache entry not found: {key}")
        self.key = key
