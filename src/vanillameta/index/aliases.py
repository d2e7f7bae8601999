"""Static table of common misspellings and proprietary names.

A hit produces a wildcard suggestion: the app is recommended, but this
subsystem does not claim to provide it.
"""

from __future__ import annotations

from typing import Dict, Iterable, List

from vanillameta.models import IndexEntry

ALIASES: Dict[str, str] = {
    "fotoshop": "org.gimp.GIMP",
    "photoshop": "org.gimp.GIMP",
    "illustrator": "org.inkscape.Inkscape",
    "excel": "org.libreoffice.LibreOffice.calc",
    "powerpoint": "org.libreoffice.LibreOffice.impress",
    "msword": "org.libreoffice.LibreOffice.writer",
    "itunes": "org.gnome.Rhythmbox3",
    "outlook": "org.gnome.Evolution",
}


def suggestions_for(tokens: Iterable[str]) -> List[IndexEntry]:
    """Return one wildcard entry per distinct app the tokens alias to."""
    app_ids = dict.fromkeys(ALIASES[token] for token in tokens if token in ALIASES)
    return [IndexEntry(id=app_id, wildcard=True) for app_id in app_ids]
