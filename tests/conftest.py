"""Shared fixtures for building metadata feeds."""

from __future__ import annotations

import gzip
from pathlib import Path
from typing import Callable

import pytest

EXAMPLE_COMPONENT = """
  <component type="desktop-application">
    <id>org.example.App</id>
    <name>Example</name>
    <name xml:lang="de">Beispiel</name>
    <summary>An example application</summary>
    <description><p>Does example things.</p></description>
    <keywords><keyword>demo</keyword><keyword>sample</keyword></keywords>
    <launchable type="desktop-id">org.example.App.desktop</launchable>
    <bundle type="apx" container="apx_managed_debian">example-pkg</bundle>
  </component>
"""


def feed_xml(components: str, root_attrs: str = 'version="0.14"') -> str:
    return f'<?xml version="1.0" encoding="UTF-8"?>\n<components {root_attrs}>{components}</components>\n'


def gzip_feed(components: str, root_attrs: str = 'version="0.14"') -> bytes:
    return gzip.compress(feed_xml(components, root_attrs).encode("utf-8"))


@pytest.fixture
def write_feed(tmp_path: Path) -> Callable[..., Path]:
    """Write a gzip feed made of the given component markup and return its path."""

    def _write(components: str = EXAMPLE_COMPONENT, path: Path | None = None, **kwargs: str) -> Path:
        target = path or tmp_path / "metadata.xml.gz"
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(gzip_feed(components, **kwargs))
        return target

    return _write
