import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Iterable, Optional

from nashra.services.exceptions import RefreshInProgressError
from nashra.services.refresh_service import DataRefreshService, RefreshResult

logger = logging.getLogger(__name__)


class RefreshHandle:
    """One in-flight refresh cycle."""

    def __init__(self, future: Future, cancel_event: threading.Event, result: RefreshResult,
                 timeout: float):
        self.future = future
        self.cancel_event = cancel_event
        self.result = result
        self.timeout = timeout

    def done(self) -> bool:
        return self.future.done()

    def cancel(self) -> None:
        self.cancel_event.set()

    def wait(self, timeout: Optional[float] = None) -> RefreshResult:
        """Block until the cycle finishes or the ceiling passes.

        On timeout the cycle is told to stop at its next item boundary and
        the partial result is returned with a timeout error. Writes already
        committed stay.
        """
        timeout = self.timeout if timeout is None else timeout
        try:
            return self.future.result(timeout=timeout)
        except FuturesTimeoutError:
            self.cancel()
            logger.error("Refresh timed out after %gs", timeout)
            # the worker may still append a cancellation note; report a snapshot
            partial = RefreshResult(
                stocks_updated=self.result.stocks_updated,
                news_added=self.result.news_added,
                indices_updated=self.result.indices_updated,
                errors=list(self.result.errors),
            )
            partial.errors.append(f"Refresh timed out after {timeout:g}s")
            return partial


class RefreshRunner:
    """Runs at most one refresh cycle at a time, each on its own thread."""

    def __init__(self, service: DataRefreshService, timeout_seconds: float = 300.0):
        self.service = service
        self.timeout_seconds = timeout_seconds
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def start(self, trigger: str = "manual", stages: Optional[Iterable[str]] = None) -> RefreshHandle:
        if not self._lock.acquire(blocking=False):
            raise RefreshInProgressError("A refresh is already in progress")

        cancel_event = threading.Event()
        result = RefreshResult()
        future: Future = Future()

        def _run():
            # release before resolving the future so a waiter can start the next cycle
            try:
                logger.info("Starting %s data refresh...", trigger)
                outcome = self.service.refresh_all_data(cancel_event=cancel_event, result=result,
                                                         stages=stages)
            except BaseException as e:
                self._lock.release()
                future.set_exception(e)
            else:
                self._lock.release()
                future.set_result(outcome)

        try:
            threading.Thread(target=_run, name=f"refresh-{trigger}", daemon=True).start()
        except Exception:
            self._lock.release()
            raise
        return RefreshHandle(future, cancel_event, result, self.timeout_seconds)

    def run(self, trigger: str = "manual", stages: Optional[Iterable[str]] = None) -> RefreshResult:
        return self.start(trigger, stages=stages).wait()
