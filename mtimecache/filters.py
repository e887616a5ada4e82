from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

NEGATION_MARKER = "!"
GLOB_CHARS = frozenset("*?[")

DEFAULT_MTIME_TARGETS = (
    "**/*.swift",
    "**/*.xib",
    "**/*.storyboard",
    "**/*.strings",
    "**/*.plist",
    "**/*.bundle",
    "**/*.bundle/**/*",
    "**/*.m",
    "**/*.mm",
    "**/*.h",
    "**/*.c",
    "**/*.cc",
    "**/*.cpp",
    "**/*.hpp",
    "**/*.hxx",
)


def _normalize_pattern(pattern: str) -> str:
    normalized = pattern.strip().replace("\\", "/")
    if normalized.startswith("./"):
        normalized = normalized[2:]
    if normalized.startswith("~/"):
        normalized = str(Path.home() / normalized[2:])
    return normalized.rstrip("/") or normalized


@dataclass(frozen=True, slots=True)
class PatternSet:
    includes: tuple[str, ...] = ()
    excludes: tuple[str, ...] = ()

    def __add__(self, other: "PatternSet") -> "PatternSet":
        return PatternSet(
            includes=self.includes + other.includes,
            excludes=self.excludes + other.excludes,
        )


def parse_patterns(lines: Iterable[str]) -> PatternSet:
    """Split raw pattern lines into includes and ``!``-prefixed excludes.

    The input order between the two kinds does not matter: excludes are
    always applied after every include has been expanded.
    """
    includes: list[str] = []
    excludes: list[str] = []
    for line in lines:
        text = line.strip()
        if not text or text.startswith("#"):
            continue
        if text.startswith(NEGATION_MARKER):
            pattern = _normalize_pattern(text[len(NEGATION_MARKER):])
            if pattern:
                excludes.append(pattern)
            continue
        includes.append(_normalize_pattern(text))
    return PatternSet(includes=tuple(includes), excludes=tuple(excludes))


def _split_pattern(root: Path, pattern: str) -> tuple[Path, str]:
    # Longest literal prefix becomes the glob base; the rest is globbed.
    path = Path(pattern)
    if path.is_absolute():
        base = Path(path.anchor)
        parts = path.parts[1:]
    else:
        base = root
        parts = path.parts
    literal: list[str] = []
    for index, part in enumerate(parts):
        if GLOB_CHARS.intersection(part):
            return base.joinpath(*literal).resolve(), "/".join(parts[index:])
        literal.append(part)
    return base.joinpath(*literal).resolve(), ""


def _glob(root: Path, pattern: str) -> Iterator[Path]:
    base, rest = _split_pattern(root, pattern)
    if not rest:
        if os.path.lexists(base):
            yield base
        return
    if not base.is_dir():
        return
    yield from base.glob(rest)


def _with_descendants(paths: Iterable[Path]) -> Iterator[Path]:
    for path in paths:
        yield path
        if path.is_dir() and not path.is_symlink():
            yield from path.rglob("*")


def _is_excluded(path: Path, excluded: set[Path]) -> bool:
    if path in excluded:
        return True
    return any(parent in excluded for parent in path.parents)


def resolve_patterns(
    root: Path,
    pattern_set: PatternSet,
    extra_excludes: Iterable[Path] = (),
) -> list[str]:
    """Expand *pattern_set* under *root* into sorted root-relative POSIX paths.

    Files and directories both match, and a matched directory brings its
    whole subtree along. A matched exclude, or any path in
    *extra_excludes*, removes itself and its entire subtree from the result.
    """
    root = root.resolve()
    matched: set[Path] = set()
    for pattern in pattern_set.includes:
        matched.update(_with_descendants(_glob(root, pattern)))

    excluded = {Path(path).expanduser().resolve() for path in extra_excludes}
    for pattern in pattern_set.excludes:
        excluded.update(_glob(root, pattern))

    result = {
        Path(os.path.relpath(path, root)).as_posix()
        for path in matched
        if not _is_excluded(path, excluded)
    }
    result.discard(".")
    return sorted(result)
