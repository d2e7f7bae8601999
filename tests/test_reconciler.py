"""Tests for claiming, adopting and refining app records."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Callable

import pytest

from conftest import EXAMPLE_COMPONENT
from vanillameta.errors import RefineError
from vanillameta.index.compiler import compile_index, default_rules
from vanillameta.models import CONTAINER_BINDING_KEY, ApplicationRecord, CompiledIndex, RefineFlags
from vanillameta.reconcile.reconciler import PACKAGING_INFO, Reconciler

ORIGIN = "vanilla_meta"

NO_CONTAINER_COMPONENT = """
  <component>
    <id>org.example.Bare</id>
    <name>Bare</name>
    <bundle type="apx">bare-pkg</bundle>
  </component>
"""


@pytest.fixture
def index(write_feed: Callable[..., Path]) -> CompiledIndex:
    path = write_feed(EXAMPLE_COMPONENT + NO_CONTAINER_COMPONENT)
    return compile_index(path, ("C",), default_rules(ORIGIN), origin=ORIGIN)


@pytest.fixture
def reconciler() -> Reconciler:
    return Reconciler(ORIGIN)


class TestClaim:
    """Tests for Reconciler.claim."""

    def test_claims_unowned(self, reconciler: Reconciler) -> None:
        record = ApplicationRecord(id="org.example.App")

        reconciler.claim([record])

        assert record.origin == ORIGIN
        assert record.management_owner == ORIGIN
        for key, value in PACKAGING_INFO.items():
            assert record.get_metadata_item(key) == value

    def test_wildcard_never_mutated(self, reconciler: Reconciler) -> None:
        record = ApplicationRecord(id="org.gimp.GIMP", wildcard=True)
        before = copy.deepcopy(record)

        reconciler.claim([record])

        assert record == before

    def test_foreign_owner_untouched(self, reconciler: Reconciler) -> None:
        record = ApplicationRecord(id="org.example.App", management_owner="flatpak", origin="flathub")
        before = copy.deepcopy(record)

        reconciler.claim([record])

        assert record == before

    def test_reclaim_is_stable(self, reconciler: Reconciler) -> None:
        record = ApplicationRecord(id="org.example.App")
        reconciler.claim([record])
        before = copy.deepcopy(record)

        reconciler.claim([record])

        assert record == before


class TestAdopt:
    """Tests for Reconciler.adopt."""

    def test_adopts_records_with_binding(self, reconciler: Reconciler) -> None:
        record = ApplicationRecord(id="x", metadata={CONTAINER_BINDING_KEY: "--debian"})

        assert reconciler.adopt(record) is True
        assert record.management_owner == ORIGIN

    def test_ignores_records_without_binding(self, reconciler: Reconciler) -> None:
        record = ApplicationRecord(id="x", management_owner="flatpak")

        assert reconciler.adopt(record) is False
        assert record.management_owner == "flatpak"


class TestRefine:
    """Tests for Reconciler.refine."""

    def _owned(self, reconciler: Reconciler, package: str) -> ApplicationRecord:
        record = ApplicationRecord(id=package, sources=[package])
        reconciler.claim([record])
        return record

    def test_sets_container_binding(self, reconciler: Reconciler, index: CompiledIndex) -> None:
        record = self._owned(reconciler, "example-pkg")

        reconciler.refine([record], index)

        assert record.metadata[CONTAINER_BINDING_KEY] == "--debian"
        assert record.origin == ORIGIN
        assert record.name == "Example"
        assert record.summary == "An example application"
        assert record.description == "Does example things."
        assert record.keywords == ["demo", "sample"]

    def test_keeps_existing_description_unless_required(
        self, reconciler: Reconciler, index: CompiledIndex
    ) -> None:
        record = self._owned(reconciler, "example-pkg")
        record.description = "Host description"

        reconciler.refine([record], index)
        assert record.description == "Host description"

        reconciler.refine([record], index, RefineFlags.REQUIRE_DESCRIPTION)
        assert record.description == "Does example things."

    def test_foreign_record_unmodified(self, reconciler: Reconciler, index: CompiledIndex) -> None:
        record = ApplicationRecord(id="x", sources=["example-pkg"], management_owner="flatpak")
        before = copy.deepcopy(record)

        reconciler.refine([record], index)

        assert record == before

    def test_unclaimed_record_unmodified(self, reconciler: Reconciler, index: CompiledIndex) -> None:
        record = ApplicationRecord(id="x", sources=["example-pkg"])
        before = copy.deepcopy(record)

        reconciler.refine([record], index)

        assert record == before

    def test_no_match_is_not_an_error(self, reconciler: Reconciler, index: CompiledIndex) -> None:
        record = self._owned(reconciler, "unknown-pkg")
        before = copy.deepcopy(record)

        reconciler.refine([record], index)

        assert record == before

    def test_record_without_sources(self, reconciler: Reconciler, index: CompiledIndex) -> None:
        record = ApplicationRecord(id="x")
        reconciler.claim([record])

        reconciler.refine([record], index)

        assert record.container_binding is None

    def test_missing_container_reported_after_all_records(
        self, reconciler: Reconciler, index: CompiledIndex
    ) -> None:
        bare = self._owned(reconciler, "bare-pkg")
        good = self._owned(reconciler, "example-pkg")

        with pytest.raises(RefineError) as exc_info:
            reconciler.refine([bare, good], index)

        assert list(exc_info.value.failures) == ["bare-pkg"]
        assert bare.container_binding is None
        assert bare.name == "Bare"
        assert good.container_binding == "--debian"

    def test_origin_scoping(self, write_feed: Callable[..., Path]) -> None:
        path = write_feed(root_attrs='version="0.14" origin="flathub"')
        foreign = compile_index(path, ("C",), default_rules(ORIGIN), origin=ORIGIN)

        scoped = Reconciler(ORIGIN, scope_to_origin=True)
        record = self._owned(scoped, "example-pkg")
        scoped.refine([record], foreign)
        assert record.container_binding is None

        unscoped = Reconciler(ORIGIN)
        record = self._owned(unscoped, "example-pkg")
        unscoped.refine([record], foreign)
        assert record.container_binding == "--debian"
