"""
Execution backends for the per-sample import steps.

Each backend exposes a single ``map(items, worker)`` method that returns the
worker results in input order. Workers must be top-level functions so that
they can be pickled by the process pool.
"""

import logging
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor

from bcbio_single_cell.errors import ValidationError

logger = logging.getLogger(__name__)


class SerialBackend:
    """Run every task in the calling thread."""

    workers = 1

    def map(self, items, worker):
        return [worker(item) for item in items]

    def __repr__(self):
        return "SerialBackend()"


class PoolBackend:
    """
    Run tasks on a bounded ``concurrent.futures`` pool.

    Parameters
    ----------
    workers : int
        Maximum number of concurrent tasks.
    kind : str
        ``'process'`` or ``'thread'``.
    """

    def __init__(self, workers, kind='process'):
        if not isinstance(workers, int) or workers < 1:
            raise ValidationError(f"workers must be a positive integer, got {workers!r}")
        if kind not in ('process', 'thread'):
            raise ValidationError(f"kind must be 'process' or 'thread', got {kind!r}")
        self.workers = workers
        self.kind = kind

    def map(self, items, worker):
        items = list(items)
        if not items:
            return []
        executor_class = ProcessPoolExecutor if self.kind == 'process' else ThreadPoolExecutor
        n_workers = min(self.workers, len(items))
        logger.debug(f"Running {len(items)} tasks on {n_workers} {self.kind} workers")
        # Executor.map yields in submission order and re-raises the first failure.
        with executor_class(max_workers=n_workers) as executor:
            return list(executor.map(worker, items))

    def __repr__(self):
        return f"PoolBackend(workers={self.workers}, kind={self.kind!r})"


def get_backend(workers=1, kind='process'):
    """Return a serial backend for one worker, a pool otherwise."""
    if workers is None or workers <= 1:
        return SerialBackend()
    return PoolBackend(workers, kind=kind)
