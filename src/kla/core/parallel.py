"""
Range splitting for kernel parallelism.

Large products and reductions are cut into contiguous ranges and mapped
onto a thread pool; the caller blocks until every range is done. numpy
releases the GIL inside its inner loops, so the workers run concurrently.

One executor is created lazily per worker count and reused by every
kernel call; it is shut down at interpreter exit.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from .config import KernelConfig, get_kernel_config

__all__ = ['split_range', 'map_ranges']

T = TypeVar("T")

_executors: Dict[int, ThreadPoolExecutor] = {}
_executors_lock = threading.Lock()


def _executor(num_threads: int) -> ThreadPoolExecutor:
    """Shared pool with `num_threads` workers."""
    with _executors_lock:
        pool = _executors.get(num_threads)
        if pool is None:
            pool = ThreadPoolExecutor(
                max_workers=num_threads, thread_name_prefix=f"kla-{num_threads}"
            )
            _executors[num_threads] = pool
        return pool


def split_range(n: int, parts: int) -> List[Tuple[int, int]]:
    """
    Split [0, n) into at most `parts` contiguous, non-empty ranges.

    Example:
        >>> split_range(10, 3)
        [(0, 4), (4, 7), (7, 10)]
    """
    if n <= 0:
        return []
    parts = max(1, min(parts, n))
    base, extra = divmod(n, parts)
    ranges = []
    start = 0
    for k in range(parts):
        stop = start + base + (1 if k < extra else 0)
        ranges.append((start, stop))
        start = stop
    return ranges


def map_ranges(
    n: int,
    fn: Callable[[int, int], T],
    work: int,
    config: Optional[KernelConfig] = None,
) -> List[T]:
    """
    Apply ``fn(start, stop)`` over [0, n), split across the worker pool
    when `work` is large enough.

    Args:
        n: Length of the range to cover
        fn: Callable computing the partial result for one range
        work: Size of the operand, compared to the parallel threshold
        config: Kernel configuration (process default if None)

    Returns:
        Partial results in range order
    """
    config = get_kernel_config(config)
    if not config.use_parallel(work) or n < 2:
        return [fn(0, n)] if n > 0 else []

    ranges = split_range(n, config.num_threads)
    pool = _executor(config.num_threads)
    futures = [pool.submit(fn, start, stop) for start, stop in ranges]
    return [f.result() for f in futures]
