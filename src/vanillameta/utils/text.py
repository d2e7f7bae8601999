"""Text helpers for keyword tokenization."""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable, Iterator

_SPLIT_RE = re.compile(r"[^\w]+", re.UNICODE)
MIN_TOKEN_LENGTH = 2


def normalize_token(token: str) -> str:
    """Casefold and strip accents so search is case and locale tolerant."""
    decomposed = unicodedata.normalize("NFKD", token.casefold())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def tokenize(text: str) -> Iterator[str]:
    """Split text into normalized word tokens.

    Dotted identifiers such as ``org.gnome.Maps`` yield both their parts and
    the whole identifier so exact-id searches still hit.
    """
    if not text:
        return
    for word in text.split():
        if "." in word.strip("."):
            whole = normalize_token(word.strip("."))
            if whole:
                yield whole
        for part in _SPLIT_RE.split(word):
            norm = normalize_token(part)
            if len(norm) >= MIN_TOKEN_LENGTH:
                yield norm


def unique_tokens(texts: Iterable[str]) -> list[str]:
    """Tokenize several strings, dropping duplicates but keeping order."""
    return list(dict.fromkeys(token for text in texts for token in tokenize(text)))


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace and join lines."""
    return "\n".join(" ".join(line.split()) for line in lines if line.strip())
