"""Fixed-size worker pool for per-sample gradient computation."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Sequence, TypeVar

from .matrix import Matrix

logger = logging.getLogger(__name__)

R = TypeVar("R")


class GradientPool:
    """Fan a batch out over ``max_workers`` threads and join in sample order.

    Workers only read network parameters; results are returned in the order
    of the submitted samples so the caller can accumulate them
    deterministically.
    """

    def __init__(self, max_workers: int) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.max_workers = int(max_workers)
        self._executor: ThreadPoolExecutor | None = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="digitscanner-grad"
        )
        logger.debug("Started gradient pool with %d workers", self.max_workers)

    def map(
        self,
        fn: Callable[[Matrix, Matrix], R],
        inputs: Sequence[Matrix],
        targets: Sequence[Matrix],
    ) -> List[R]:
        if self._executor is None:
            raise RuntimeError("GradientPool has been closed")
        futures = [self._executor.submit(fn, x, y) for x, y in zip(inputs, targets)]
        # ``result`` re-raises any worker exception in the caller's thread.
        return [future.result() for future in futures]

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
            logger.debug("Gradient pool shut down")

    def __enter__(self) -> "GradientPool":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = ["GradientPool"]
