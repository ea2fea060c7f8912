# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Running an analysis off the caller's thread.

The entry point runs on a worker thread with its own CancellationToken.
Progress values are forwarded as they are reported; on completion the
callback receives the result, or None when the run was cancelled.
"""

import logging
import threading
from typing import Callable, Generic, Optional, TypeVar

from packviz.cancellation import AnalysisCancelledError, CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[float], None]
Work = Callable[[CancellationToken, ProgressCallback], Optional[T]]


class BackgroundAnalysis(Generic[T]):
    """One analysis run on a background thread.

    Usage:
        run = BackgroundAnalysis(
            lambda token, progress: inspector.execute(token, progress),
            on_progress=print,
            on_completed=show,
        ).start()
        ...
        run.cancel()
        document = run.wait()
    """

    def __init__(
        self,
        work: Work,
        on_progress: Optional[ProgressCallback] = None,
        on_completed: Optional[Callable[[Optional[T]], None]] = None,
    ) -> None:
        self.token = CancellationToken()
        self._work = work
        self._on_progress = on_progress
        self._on_completed = on_completed
        self._thread: Optional[threading.Thread] = None
        self._result: Optional[T] = None
        self._error: Optional[BaseException] = None

    def start(self) -> "BackgroundAnalysis[T]":
        if self._thread is not None:
            raise RuntimeError("Analysis already started")
        self._thread = threading.Thread(target=self._run, name="packviz-background", daemon=True)
        self._thread.start()
        return self

    def cancel(self) -> None:
        self.token.cancel()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def wait(self, timeout: Optional[float] = None) -> Optional[T]:
        """Block until the run finished.

        Returns:
            The result, or None if the run was cancelled.

        Raises:
            RuntimeError: If the run was never started.
            TimeoutError: If the run is still going after timeout seconds.
            Exception: Whatever unexpected error the work raised.
        """
        if self._thread is None:
            raise RuntimeError("Analysis was not started")
        self._thread.join(timeout)
        if self._thread.is_alive():
            raise TimeoutError(f"Analysis still running after {timeout} seconds")
        if self._error is not None:
            raise self._error
        return self._result

    def _report_progress(self, value: float) -> None:
        if self._on_progress is not None:
            self._on_progress(value)

    def _run(self) -> None:
        try:
            try:
                result = self._work(self.token, self._report_progress)
            except AnalysisCancelledError:
                logger.info("Analysis cancelled")
                result = None

            self._result = result
            if self._on_completed is not None:
                self._on_completed(result)
        except Exception as e:
            logger.error(f"Background analysis failed: {e}", exc_info=True)
            self._error = e


def run_async(
    work: Work,
    on_progress: Optional[ProgressCallback] = None,
    on_completed: Optional[Callable[[Optional[T]], None]] = None,
) -> BackgroundAnalysis:
    """Start work on a background thread and return the handle."""
    return BackgroundAnalysis(work, on_progress, on_completed).start()
