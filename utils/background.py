"""
Background task runner for work that must not block the caller
(async managed-job polling, product metadata enrichment)
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """Thin wrapper over a ThreadPoolExecutor that logs task failures"""

    def __init__(self, max_workers: int = 2):
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="bg-task")

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        future = self._executor.submit(fn, *args, **kwargs)
        future.add_done_callback(self._log_failure(getattr(fn, '__name__', repr(fn))))
        return future

    def submit_chain(self, *steps: Callable[..., Any]) -> Future:
        """
        Run steps one after another on a single worker.
        Each step receives the previous step's return value (the first gets none).
        """
        def run_chain():
            result = None
            for index, step in enumerate(steps):
                result = step() if index == 0 else step(result)
            return result

        names = " -> ".join(getattr(s, '__name__', 'step') for s in steps)
        logger.info(f"Dispatching background chain: {names}")
        return self.submit(run_chain)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _log_failure(name: str) -> Callable[[Future], None]:
        def callback(future: Future) -> None:
            if future.cancelled():
                logger.warning(f"Background task {name} was cancelled")
                return
            exc = future.exception()
            if exc is not None:
                logger.error(f"Background task {name} failed: {exc}")
        return callback
