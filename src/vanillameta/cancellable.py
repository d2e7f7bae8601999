"""Cancellation token shared between the caller and the worker."""

from __future__ import annotations

import threading

from vanillameta.errors import OperationCancelled


class Cancellable:
    """Thread-safe flag checked at every suspension point."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Operation was cancelled")


def check(cancellable: Cancellable | None) -> None:
    """Raise ``OperationCancelled`` if the optional token was cancelled."""
    if cancellable is not None:
        cancellable.raise_if_cancelled()
