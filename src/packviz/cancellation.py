# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Cooperative cancellation for long running analyses."""

import threading


class AnalysisCancelledError(Exception):
    """Raised when an analysis observes a cancellation request.

    Cancellation is a "no result" outcome, distinct from an empty document.
    """

    pass


class CancellationToken:
    """A flag the caller sets and the engines poll at their checkpoints.

    Thread-safe: may be cancelled from any thread while workers read it.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancellation_requested(self) -> bool:
        return self._event.is_set()

    def raise_if_cancellation_requested(self) -> None:
        """Raise AnalysisCancelledError if cancel() was called."""
        if self._event.is_set():
            raise AnalysisCancelledError("Analysis was cancelled")
