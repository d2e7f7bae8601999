"""Compilation of the cached feed into a queryable silo.

The feed is a gzip-compressed AppStream collection::

    <components version="0.14">
      <component type="desktop-application">
        <id>org.example.App</id>
        <name>Example</name>
        <name xml:lang="de">Beispiel</name>
        <summary>An example</summary>
        <keywords><keyword>demo</keyword></keywords>
        <bundle type="apx" container="apx_managed_debian">example-pkg</bundle>
      </component>
    </components>

Parsing is incremental, each finished ``component`` element is turned into an
``IndexEntry`` and then released so large feeds stay cheap to compile.
"""

from __future__ import annotations

import gzip
import logging
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Dict, Iterable, List, Sequence, Tuple
from xml.etree import ElementTree as ET

from vanillameta.cancellable import Cancellable, check
from vanillameta.errors import CompileError
from vanillameta.index.storage import SiloStore
from vanillameta.models import Bundle, CompiledIndex, IndexEntry
from vanillameta.utils.files import compute_sha256
from vanillameta.utils.text import normalize_whitespace, tokenize

LOGGER = logging.getLogger(__name__)

XML_LANG = "{http://www.w3.org/XML/1998/namespace}lang"
UNTRANSLATED = "C"
COLLECTION_TAG = "components"
COMPONENT_TAG = "component"
GZIP_MAGIC = b"\x1f\x8b"

TOKENIZED_FIELDS: Tuple[str, ...] = ("id", "keyword", "launchable", "mimetype", "name", "summary")


@dataclass(slots=True)
class CompileState:
    """Mutable accumulator shared by the transform rules during one compile."""

    entries: List[IndexEntry] = field(default_factory=list)
    packages: Dict[str, List[Tuple[int, int]]] = field(default_factory=dict)
    tokens: Dict[str, List[Tuple[int, str]]] = field(default_factory=dict)
    skipped: int = 0


class TransformRule:
    """Hook applied to every node while the feed is compiled."""

    name = "rule"

    def on_root(self, element: ET.Element) -> None:
        pass

    def on_entry(self, entry: IndexEntry, position: int, state: CompileState) -> None:
        pass


class OriginTagRule(TransformRule):
    """Marks collection roots that carry no origin as ours."""

    def __init__(self, origin: str) -> None:
        self.origin = origin
        self.name = f"origin:{origin}"

    def on_root(self, element: ET.Element) -> None:
        if not element.get("origin"):
            element.set("origin", self.origin)


class TokenizeRule(TransformRule):
    """Pre-computes search tokens for a fixed set of text fields."""

    def __init__(self, fields: Sequence[str] = TOKENIZED_FIELDS) -> None:
        self.fields = tuple(fields)
        self.name = "tokenize:" + ",".join(self.fields)

    def on_entry(self, entry: IndexEntry, position: int, state: CompileState) -> None:
        values = {
            "id": [entry.id],
            "keyword": list(entry.keywords),
            "launchable": list(entry.launchables),
            "mimetype": list(entry.mimetypes),
            "name": [entry.name],
            "summary": [entry.summary],
        }
        for field_name in self.fields:
            seen = set()
            for text in values.get(field_name, ()):
                for token in tokenize(text):
                    if token in seen:
                        continue
                    seen.add(token)
                    state.tokens.setdefault(token, []).append((position, field_name))


def default_rules(origin: str) -> list[TransformRule]:
    return [OriginTagRule(origin), TokenizeRule()]


def _pick_locale(candidates: Iterable[str], locales: Sequence[str]) -> str | None:
    available = list(dict.fromkeys(candidates))
    if not available:
        return None
    for locale in locales:
        if locale in available:
            return locale
    if UNTRANSLATED in available:
        return UNTRANSLATED
    return available[0]


def _localized_text(component: ET.Element, tag: str, locales: Sequence[str]) -> str:
    texts: Dict[str, str] = {}
    for child in component.findall(tag):
        lang = child.get(XML_LANG, UNTRANSLATED)
        if tag == "description":
            text = normalize_whitespace(child.itertext())
        else:
            text = (child.text or "").strip()
        texts.setdefault(lang, text)
    chosen = _pick_locale(texts, locales)
    return texts[chosen] if chosen is not None else ""


def _localized_keywords(component: ET.Element, locales: Sequence[str]) -> Tuple[str, ...]:
    pairs: List[Tuple[str, str]] = []
    for group in component.findall("keywords"):
        group_lang = group.get(XML_LANG, UNTRANSLATED)
        for keyword in group.findall("keyword"):
            text = (keyword.text or "").strip()
            if text:
                pairs.append((keyword.get(XML_LANG, group_lang), text))
    chosen = _pick_locale((lang for lang, _ in pairs), locales)
    return tuple(dict.fromkeys(text for lang, text in pairs if lang == chosen))


def _texts(component: ET.Element, path: str) -> Tuple[str, ...]:
    values = ((node.text or "").strip() for node in component.findall(path))
    return tuple(dict.fromkeys(value for value in values if value))


def _parse_bundles(component: ET.Element, app_id: str, ignore_invalid: bool) -> Tuple[Bundle, ...]:
    bundles: List[Bundle] = []
    for node in component.findall("bundle"):
        package = (node.text or "").strip()
        if not package:
            message = f"Bundle without package identifier in {app_id}"
            if not ignore_invalid:
                raise CompileError(message)
            LOGGER.debug("Ignoring invalid bundle: %s", message)
            continue
        bundles.append(
            Bundle(
                kind=node.get("type", ""),
                container=node.get("container", ""),
                package=package,
            )
        )
    return tuple(bundles)


def parse_component(
    component: ET.Element,
    *,
    origin: str,
    locales: Sequence[str],
    ignore_invalid: bool = True,
) -> IndexEntry | None:
    """Build an entry from a ``component`` element, None when it is invalid and ignored."""
    app_id = (component.findtext("id") or "").strip()
    if not app_id:
        if not ignore_invalid:
            raise CompileError("Component without <id>")
        LOGGER.debug("Ignoring component without <id>")
        return None

    icon = component.find("icon")
    return IndexEntry(
        id=app_id,
        name=_localized_text(component, "name", locales),
        summary=_localized_text(component, "summary", locales),
        description=_localized_text(component, "description", locales),
        keywords=_localized_keywords(component, locales),
        origin=origin,
        bundles=_parse_bundles(component, app_id, ignore_invalid),
        launchables=_texts(component, "launchable"),
        mimetypes=_texts(component, "mimetypes/mimetype"),
        icon=(icon.text or "").strip() if icon is not None else "",
    )


def _open_document(document_path: Path) -> IO[bytes]:
    with document_path.open("rb") as handle:
        magic = handle.read(2)
    if magic == GZIP_MAGIC:
        return gzip.open(document_path, "rb")
    return document_path.open("rb")


def compile_index(
    document_path: Path,
    locales: Sequence[str],
    rules: Sequence[TransformRule],
    *,
    origin: str,
    ignore_invalid: bool = True,
    cancellable: Cancellable | None = None,
) -> CompiledIndex:
    """Compile the cached feed at ``document_path`` into an in-memory silo.

    Raises ``CompileError`` when the document cannot be read or parsed, and
    ``OperationCancelled`` when ``cancellable`` fires between entries.
    """
    document_path = Path(document_path)
    check(cancellable)
    try:
        sha256 = compute_sha256(document_path)
        stream = _open_document(document_path)
    except OSError as exc:
        raise CompileError(f"Unable to read {document_path}: {exc}") from exc

    state = CompileState()
    origins: List[str] = []
    try:
        with stream:
            for event, element in ET.iterparse(stream, events=("start", "end")):
                if element.tag == COLLECTION_TAG:
                    if event == "start":
                        for rule in rules:
                            rule.on_root(element)
                        origins.append(element.get("origin") or origin)
                    else:
                        origins.pop()
                    continue
                if event != "end" or element.tag != COMPONENT_TAG:
                    continue

                check(cancellable)
                entry = parse_component(
                    element,
                    origin=origins[-1] if origins else origin,
                    locales=locales,
                    ignore_invalid=ignore_invalid,
                )
                element.clear()
                if entry is None:
                    state.skipped += 1
                    continue
                _add_entry(state, entry, rules)
    except ET.ParseError as exc:
        raise CompileError(f"Malformed metadata in {document_path}: {exc}") from exc
    except (OSError, EOFError, zlib.error) as exc:
        raise CompileError(f"Unable to decompress {document_path}: {exc}") from exc

    LOGGER.info(
        "Compiled %d components from %s (%d ignored)",
        len(state.entries),
        document_path,
        state.skipped,
    )
    return CompiledIndex(
        entries=tuple(state.entries),
        packages={key: tuple(value) for key, value in state.packages.items()},
        tokens={key: tuple(value) for key, value in state.tokens.items()},
        origin=origin,
        locales=tuple(locales),
        source_sha256=sha256,
        rules=tuple(rule.name for rule in rules),
    )


def _add_entry(state: CompileState, entry: IndexEntry, rules: Sequence[TransformRule]) -> None:
    position = len(state.entries)
    state.entries.append(entry)
    for bundle_position, bundle in enumerate(entry.bundles):
        state.packages.setdefault(bundle.package, []).append((position, bundle_position))
    for rule in rules:
        rule.on_entry(entry, position, state)


class IndexCompiler:
    """Coordinates compiling the cached feed and persisting the resulting silo."""

    def __init__(
        self,
        silo: SiloStore,
        *,
        origin: str,
        locales: Sequence[str],
        rules: Sequence[TransformRule] | None = None,
        ignore_invalid: bool = True,
    ) -> None:
        self.silo = silo
        self.origin = origin
        self.locales = tuple(locales)
        self.rules = list(rules) if rules is not None else default_rules(origin)
        self.ignore_invalid = ignore_invalid

    @property
    def rule_names(self) -> Tuple[str, ...]:
        return tuple(rule.name for rule in self.rules)

    def is_current(self, index: CompiledIndex | None, document_path: Path) -> bool:
        """True if ``index`` was compiled from this document with these settings."""
        if index is None or not document_path.exists():
            return False
        return (
            index.locales == self.locales
            and index.rules == self.rule_names
            and index.origin == self.origin
            and index.source_sha256 == compute_sha256(document_path)
        )

    def compile(self, document_path: Path, cancellable: Cancellable | None = None) -> CompiledIndex:
        index = compile_index(
            document_path,
            self.locales,
            self.rules,
            origin=self.origin,
            ignore_invalid=self.ignore_invalid,
            cancellable=cancellable,
        )
        check(cancellable)
        self.silo.write(index)
        return index
