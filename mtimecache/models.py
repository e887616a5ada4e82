from __future__ import annotations

from dataclasses import dataclass
from typing import Any

NANOSECONDS = 1_000_000_000


def format_mtime(mtime_ns: int) -> str:
    """Render nanoseconds since epoch as ``<seconds>.<9-digit-nanoseconds>``."""
    seconds, nanos = divmod(mtime_ns, NANOSECONDS)
    return f"{seconds}.{nanos:09d}"


def parse_mtime(value: str) -> int:
    text = value.strip().replace(",", ".")
    seconds_part, sep, nanos_part = text.partition(".")
    if not seconds_part.lstrip("-").isdigit():
        raise ValueError(f"Invalid mtime value: {value!r}")
    if sep and (not nanos_part.isdigit() or len(nanos_part) > 9):
        raise ValueError(f"Invalid mtime value: {value!r}")
    nanos = int(nanos_part.ljust(9, "0")) if nanos_part else 0
    return int(seconds_part) * NANOSECONDS + nanos


@dataclass(slots=True)
class Entry:
    path: str
    mtime_ns: int
    sha256: str

    @property
    def time(self) -> str:
        return format_mtime(self.mtime_ns)

    def to_json(self) -> dict[str, str]:
        return {"path": self.path, "time": self.time, "sha256": self.sha256}

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Entry":
        return cls(
            path=str(data["path"]),
            mtime_ns=parse_mtime(str(data["time"])),
            sha256=str(data["sha256"]),
        )
