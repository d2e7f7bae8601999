"""Core vanillameta data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntFlag
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

CONTAINER_BINDING_KEY = "container-binding"


class AppState(str, Enum):
    AVAILABLE = "available"
    INSTALLING = "installing"
    INSTALLED = "installed"


class RefreshFlags(IntFlag):
    NONE = 0
    INTERACTIVE = 1


class RefineFlags(IntFlag):
    NONE = 0
    REQUIRE_DESCRIPTION = 1
    REQUIRE_KEYWORDS = 2
    INTERACTIVE = 4


@dataclass(slots=True, frozen=True)
class CachedDocument:
    """Compressed feed stored in the cache directory."""

    path: Path
    mtime: float
    size: int


@dataclass(slots=True, frozen=True)
class RefreshRequest:
    max_age: float
    flags: RefreshFlags = RefreshFlags.NONE


@dataclass(slots=True, frozen=True)
class Bundle:
    """A package shipped inside a specific container/runtime binding."""

    kind: str
    container: str
    package: str


@dataclass(slots=True, frozen=True)
class IndexEntry:
    """One advertised application in the compiled silo."""

    id: str
    name: str = ""
    summary: str = ""
    description: str = ""
    keywords: Tuple[str, ...] = ()
    origin: str = ""
    bundles: Tuple[Bundle, ...] = ()
    launchables: Tuple[str, ...] = ()
    mimetypes: Tuple[str, ...] = ()
    icon: str = ""
    wildcard: bool = False


@dataclass(slots=True, frozen=True)
class CompiledIndex:
    """Immutable, queryable snapshot of one compiled feed.

    ``packages`` maps a package identifier to every (entry position, bundle
    position) pair carrying it, in document order. ``tokens`` maps a token to
    (entry position, field) pairs; ``vocabulary`` holds its keys sorted for
    prefix lookups.
    """

    entries: Tuple[IndexEntry, ...]
    packages: Mapping[str, Tuple[Tuple[int, int], ...]]
    tokens: Mapping[str, Tuple[Tuple[int, str], ...]]
    origin: str
    locales: Tuple[str, ...]
    source_sha256: str = ""
    rules: Tuple[str, ...] = ()
    vocabulary: Tuple[str, ...] = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "vocabulary", tuple(sorted(self.tokens)))

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(slots=True)
class RefreshResult:
    fetched: bool
    compiled: bool
    index: Optional[CompiledIndex]


@dataclass(slots=True)
class ApplicationRecord:
    """Host application record; only claimed records are mutated."""

    id: str
    name: str = ""
    summary: str = ""
    description: str = ""
    keywords: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    origin: str = ""
    management_owner: str | None = None
    state: AppState = AppState.AVAILABLE
    wildcard: bool = False
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def default_source(self) -> str | None:
        return self.sources[0] if self.sources else None

    @property
    def container_binding(self) -> str | None:
        return self.metadata.get(CONTAINER_BINDING_KEY)

    @container_binding.setter
    def container_binding(self, value: str | None) -> None:
        if value is None:
            self.metadata.pop(CONTAINER_BINDING_KEY, None)
        else:
            self.metadata[CONTAINER_BINDING_KEY] = value

    def get_metadata_item(self, key: str) -> str | None:
        return self.metadata.get(key)

    def set_metadata(self, key: str, value: str | None) -> None:
        if value is None:
            self.metadata.pop(key, None)
        else:
            self.metadata[key] = value


@dataclass(slots=True, frozen=True)
class AppQuery:
    """Host list request. Only keyword and alternate lookups are answerable."""

    keywords: Tuple[str, ...] = ()
    alternate_of: Optional[ApplicationRecord] = None
    provides_files: Tuple[str, ...] = ()
    category: Optional[str] = None
