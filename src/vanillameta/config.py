"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_ORIGIN = "vanilla_meta"
DEFAULT_METADATA_URL = ""


def _get_default_cache_dir() -> Path:
    """Get the per-user cache directory holding the feed and the silo."""
    xdg_cache = os.environ.get("XDG_CACHE_HOME")
    base = Path(xdg_cache) if xdg_cache else Path.home() / ".cache"
    return base / DEFAULT_ORIGIN


def _get_default_locales() -> tuple[str, ...]:
    """Derive the preferred locales from the environment, most specific first."""
    locales: list[str] = []
    for var in ("LC_ALL", "LC_MESSAGES", "LANG"):
        value = os.environ.get(var)
        if not value:
            continue
        # en_US.UTF-8@euro -> en_US, en
        lang = value.split(".")[0].split("@")[0]
        if lang in ("C", "POSIX"):
            break
        locales.append(lang)
        if "_" in lang:
            locales.append(lang.split("_")[0])
        break
    locales.append("C")
    return tuple(dict.fromkeys(locales))


@dataclass(slots=True)
class AppConfig:
    cache_dir: Path | None = None
    metadata_url: str = DEFAULT_METADATA_URL
    locales: tuple[str, ...] = field(default_factory=_get_default_locales)
    origin: str = DEFAULT_ORIGIN
    ignore_invalid: bool = True
    refine_scope_origin: bool = False
    apx_binary: str = "apx"
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.cache_dir is None:
            self.cache_dir = _get_default_cache_dir()

    def resolve_cache_dir(self, base_dir: Path | None = None) -> Path:
        if self.cache_dir is None:
            self.cache_dir = _get_default_cache_dir()
        if Path(self.cache_dir).is_absolute() or base_dir is None:
            return Path(self.cache_dir)
        return base_dir / self.cache_dir
