"""Fixed-size worker pool with fan-out/fan-in barrier semantics."""

from __future__ import annotations

import itertools
import logging
import os
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from types import TracebackType

from gradmpc.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CALLER_WORKER_INDEX = -1


class WorkerPool:
    """Thread pool that exposes a stable per-thread worker index.

    Work items are zero-argument callables. ``wait_for_completions`` blocks
    until the oldest ``count`` scheduled items have finished and re-raises
    the first exception any of them raised.

    Args:
        thread_count: Number of worker threads. Defaults to the CPU count.
    """

    def __init__(self, thread_count: int | None = None) -> None:
        """Start the worker threads lazily on first use.

        Args:
            thread_count: Number of worker threads. Defaults to the CPU count.

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If ``thread_count``
                is not positive.
        """
        count = thread_count if thread_count is not None else max(os.cpu_count() or 1, 1)
        if count < 1:
            msg = f"thread_count must be positive, got: {count}"
            raise ConfigurationError(msg)
        self.thread_count = int(count)
        self._local = threading.local()
        self._indices = itertools.count()
        self._index_lock = threading.Lock()
        self._pending: list[Future[None]] = []
        self._pending_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=self.thread_count,
            thread_name_prefix="gradmpc-worker",
            initializer=self._register_worker,
        )

    def _register_worker(self) -> None:
        """Assign the calling pool thread its worker index."""
        with self._index_lock:
            self._local.index = next(self._indices)

    def worker_index(self) -> int:
        """Return the worker index of the calling thread.

        Returns:
            Index in ``[0, thread_count)`` on pool threads, or
            ``CALLER_WORKER_INDEX`` on any other thread.
        """
        return int(getattr(self._local, "index", CALLER_WORKER_INDEX))

    def schedule(self, work: Callable[[], None]) -> None:
        """Queue one unit of work.

        Args:
            work: Zero-argument callable.
        """
        future = self._executor.submit(work)
        with self._pending_lock:
            self._pending.append(future)

    def wait_for_completions(self, count: int) -> None:
        """Block until ``count`` scheduled units have completed.

        Args:
            count: Number of oldest pending units to wait for.

        Raises:
            gradmpc.utils.exceptions.ConfigurationError: If more completions
                are requested than units were scheduled.
            Exception: The first exception raised by a completed unit.
        """
        with self._pending_lock:
            if count > len(self._pending):
                msg = f"Requested {count} completions but only {len(self._pending)} are pending."
                raise ConfigurationError(msg)
            batch = self._pending[:count]
            del self._pending[:count]
        wait(batch)
        for future in batch:
            error = future.exception()
            if error is not None:
                logger.debug("Worker unit failed: %s", error)
                raise error

    def shutdown(self) -> None:
        """Stop the worker threads after queued work has finished."""
        self._executor.shutdown(wait=True)

    def __enter__(self) -> WorkerPool:
        """Enter a context that shuts the pool down on exit.

        Returns:
            This pool.
        """
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """Shut the pool down.

        Args:
            exc_type: Exception type raised in the context, if any.
            exc: Exception raised in the context, if any.
            traceback: Traceback of the raised exception, if any.
        """
        self.shutdown()
