from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator

TOKEN_ENV_NAMES = ("MTIMECACHE_TOKEN", "HF_TOKEN", "HUGGING_FACE_HUB_TOKEN")


def _token_files() -> list[Path]:
    hf_home = os.getenv("HF_HOME")
    xdg_cache_home = os.getenv("XDG_CACHE_HOME")
    candidates = [
        Path(hf_home) / "token" if hf_home else None,
        Path(xdg_cache_home) / "huggingface" / "token" if xdg_cache_home else None,
        Path.home() / ".cache" / "huggingface" / "token",
    ]
    return list(dict.fromkeys(path for path in candidates if path is not None))


def _read_token_file(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8").strip() if path.is_file() else None
    except OSError:
        return None


def _token_sources(config_token: str | None) -> Iterator[tuple[str, str | None]]:
    for env_name in TOKEN_ENV_NAMES:
        yield f"env:{env_name}", os.getenv(env_name)
    yield "config", config_token

    from huggingface_hub import get_token

    yield "huggingface_hub login", get_token()
    for path in _token_files():
        yield f"file:{path}", _read_token_file(path)


def find_hub_token(config_token: str | None = None) -> tuple[str | None, str | None]:
    """Return ``(token, source)`` for the first non-blank token, or ``(None, None)``.

    Sources are consulted lazily in order: the environment, the config file,
    the huggingface_hub login cache, then token files on disk.
    """
    for source, value in _token_sources(config_token):
        token = (value or "").strip()
        if token:
            return token, source
    return None, None


def resolve_hub_token(config_token: str | None = None) -> str | None:
    return find_hub_token(config_token)[0]
