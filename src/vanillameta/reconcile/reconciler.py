"""Claiming and refining host application records."""

from __future__ import annotations

import logging
from typing import Dict, Iterable

from vanillameta.errors import RefineError
from vanillameta.index.search import find_bundle_for
from vanillameta.models import (
    CONTAINER_BINDING_KEY,
    ApplicationRecord,
    CompiledIndex,
    RefineFlags,
)
from vanillameta.reconcile.apx import container_flag_from_name

LOGGER = logging.getLogger(__name__)

PACKAGING_INFO: Dict[str, str] = {
    "GnomeSoftware::PackagingFormat": "Apx",
    "GnomeSoftware::PackagingBaseCssColor": "warning_color",
    "GnomeSoftware::PackagingIcon": "org.vanillaos.FirstSetup-symbolic",
}


def set_packaging_info(record: ApplicationRecord) -> None:
    for key, value in PACKAGING_INFO.items():
        record.set_metadata(key, value)


class Reconciler:
    """Claims records for this subsystem and enriches them from the silo."""

    def __init__(self, origin: str, *, scope_to_origin: bool = False) -> None:
        self.origin = origin
        self.scope_to_origin = scope_to_origin

    def owns(self, record: ApplicationRecord) -> bool:
        return record.management_owner == self.origin

    def claim(self, records: Iterable[ApplicationRecord]) -> None:
        for record in records:
            if record.wildcard:
                continue
            if record.management_owner not in (None, self.origin):
                continue
            record.origin = self.origin
            record.management_owner = self.origin
            set_packaging_info(record)

    def adopt(self, record: ApplicationRecord) -> bool:
        """Take ownership of a record already carrying a container binding."""
        if record.get_metadata_item(CONTAINER_BINDING_KEY) is None:
            return False
        LOGGER.debug("Adopting app %s", record.name or record.id)
        record.management_owner = self.origin
        return True

    def refine(
        self,
        records: Iterable[ApplicationRecord],
        index: CompiledIndex,
        flags: RefineFlags = RefineFlags.NONE,
    ) -> None:
        """Enrich owned records from ``index``.

        Records without a match keep their fields. Records whose bundle
        yields no usable container are collected and reported together in a
        ``RefineError`` once every record was processed.
        """
        failures: Dict[str, str] = {}
        origin = self.origin if self.scope_to_origin else None
        for record in records:
            if not self.owns(record):
                continue
            package = record.default_source
            if package is None:
                LOGGER.debug("App %s has no default package, not refining", record.id)
                continue
            match = find_bundle_for(index, package, origin=origin)
            if match is None:
                LOGGER.debug("No bundle for %s in the silo", package)
                continue

            entry = match.entry
            if entry.name:
                record.name = entry.name
            if entry.summary:
                record.summary = entry.summary
            if entry.description and (flags & RefineFlags.REQUIRE_DESCRIPTION or not record.description):
                record.description = entry.description
            if entry.keywords and (flags & RefineFlags.REQUIRE_KEYWORDS or not record.keywords):
                record.keywords = list(entry.keywords)

            flag = container_flag_from_name(match.bundle.container)
            if flag is None:
                failures[record.id] = f"bundle for {package} has no container"
                continue
            record.container_binding = flag

        if failures:
            raise RefineError(failures)
