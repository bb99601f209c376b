"""Supervised background tasks with cooperative cancellation."""
import threading
import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Optional, Set

from app.core.exceptions import ProvisioningCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag checked by a task at its suspension points."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ProvisioningCancelledError("Provisioning cancelled")

    def sleep(self, seconds: float) -> None:
        """Wait up to `seconds`; wakes and raises as soon as cancellation is requested."""
        if self._event.wait(timeout=max(seconds, 0)):
            raise ProvisioningCancelledError("Provisioning cancelled during backoff")


class TaskSupervisor:
    """
    Runs fire-and-forget tasks on a bounded thread pool.

    Every task is wrapped so an unhandled exception is logged and contained;
    one failing task never affects its siblings or the process.
    """

    def __init__(self, max_workers: int = 8, name: str = "supervisor"):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._pending: Set[Future] = set()

    def submit(self, fn: Callable, *args, task_name: Optional[str] = None, **kwargs) -> Future:
        label = task_name or getattr(fn, "__name__", "task")

        def _run():
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                logger.exception(f"Background task {label} crashed: {e}")
                return None

        future = self._executor.submit(_run)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every submitted task finished. Returns False on timeout."""
        with self._lock:
            pending = set(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_tasks: bool = False) -> None:
        self._executor.shutdown(wait=wait_for_tasks, cancel_futures=not wait_for_tasks)
