"""Keyword search and structured lookups over a compiled silo."""

from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Sequence

import numpy as np

from vanillameta.index.aliases import suggestions_for
from vanillameta.models import Bundle, CompiledIndex, IndexEntry
from vanillameta.utils.text import unique_tokens

FIELD_WEIGHTS: Dict[str, float] = {
    "id": 16.0,
    "name": 8.0,
    "keyword": 4.0,
    "launchable": 4.0,
    "mimetype": 2.0,
    "summary": 1.0,
}
PREFIX_PENALTY = 0.5


@dataclass(slots=True, frozen=True)
class BundleMatch:
    entry: IndexEntry
    bundle: Bundle


def _tokens_with_prefix(index: CompiledIndex, term: str) -> Iterator[str]:
    vocabulary = index.vocabulary
    position = bisect_left(vocabulary, term)
    while position < len(vocabulary) and vocabulary[position].startswith(term):
        yield vocabulary[position]
        position += 1


def _term_scores(index: CompiledIndex, term: str) -> np.ndarray:
    """Best field weight per entry for one search term, zero if it does not match."""
    scores = np.zeros(len(index.entries), dtype="float32")
    for token in _tokens_with_prefix(index, term):
        factor = 1.0 if token == term else PREFIX_PENALTY
        for position, field in index.tokens[token]:
            weight = FIELD_WEIGHTS.get(field, 1.0) * factor
            if weight > scores[position]:
                scores[position] = weight
    return scores


def _normalized_id(app_id: str) -> str:
    return app_id.removesuffix(".desktop").casefold()


def find_alternates_of(index: CompiledIndex, reference: IndexEntry) -> List[IndexEntry]:
    """Entries describing the same app as ``reference`` through another id or bundle."""
    ref_id = _normalized_id(reference.id)
    ref_packages = {bundle.package for bundle in reference.bundles}
    results: List[IndexEntry] = []
    for entry in index.entries:
        if entry == reference:
            continue
        same_id = _normalized_id(entry.id) == ref_id
        shared = any(bundle.package in ref_packages for bundle in entry.bundles)
        if same_id or shared:
            results.append(entry)
    return results


def search(index: CompiledIndex, keywords: str | Sequence[str]) -> List[IndexEntry]:
    """Return entries matching every keyword, best match first.

    Ties keep document order so identical input always yields identical
    output. Matches are followed by their alternates and, finally, by any
    wildcard suggestions from the alias table.
    """
    if isinstance(keywords, str):
        keywords = [keywords]
    terms = unique_tokens(keywords)
    if not terms:
        return []

    total = np.zeros(len(index.entries), dtype="float32")
    matched = np.ones(len(index.entries), dtype=bool)
    for term in terms:
        scores = _term_scores(index, term)
        matched &= scores > 0
        total += scores

    results: List[IndexEntry] = []
    if len(index.entries):
        order = np.argsort(-total, kind="stable")
        results = [index.entries[i] for i in order if matched[i]]

    seen_ids = {entry.id for entry in results}
    for entry in list(results):
        for alternate in find_alternates_of(index, entry):
            if alternate not in results:
                results.append(alternate)
                seen_ids.add(alternate.id)

    for suggestion in suggestions_for(terms):
        if suggestion.id not in seen_ids:
            results.append(suggestion)
            seen_ids.add(suggestion.id)
    return results


def find_bundle_for(
    index: CompiledIndex,
    package: str,
    *,
    container: str | None = None,
    origin: str | None = None,
) -> BundleMatch | None:
    """Locate the first entry shipping ``package``; None is the expected miss."""
    for position, bundle_position in index.packages.get(package, ()):
        entry = index.entries[position]
        bundle = entry.bundles[bundle_position]
        if container is not None and bundle.container != container:
            continue
        if origin is not None and entry.origin != origin:
            continue
        return BundleMatch(entry=entry, bundle=bundle)
    return None


def entries_by_id(index: CompiledIndex, app_ids: Iterable[str]) -> List[IndexEntry]:
    wanted = {_normalized_id(app_id) for app_id in app_ids}
    return [entry for entry in index.entries if _normalized_id(entry.id) in wanted]
