"""Exceptions raised by the metadata pipeline."""

from __future__ import annotations

from typing import Dict


class VanillaMetaError(Exception):
    """Base class for all pipeline failures."""


class FetchError(VanillaMetaError):
    """The remote feed could not be downloaded."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class CompileError(VanillaMetaError):
    """The cached feed could not be compiled into a silo."""


class UnsupportedQueryError(VanillaMetaError):
    """The query layer cannot answer the requested query shape."""


class RefineError(VanillaMetaError):
    """One or more records could not be refined.

    ``failures`` maps record ids to the reason they were left un-enriched.
    """

    def __init__(self, failures: Dict[str, str]) -> None:
        summary = ", ".join(f"{app_id}: {reason}" for app_id, reason in failures.items())
        super().__init__(f"Failed to refine {len(failures)} app(s): {summary}")
        self.failures = failures


class InstallError(VanillaMetaError):
    """Install or launch parameters could not be resolved or executed."""


class OperationCancelled(VanillaMetaError):
    """The operation was cancelled before it completed."""
