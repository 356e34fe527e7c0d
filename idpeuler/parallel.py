"""
Split per-edge work into contiguous ranges and run them on a thread
pool.  numpy releases the GIL inside its array kernels, so the ranges
do overlap in practice.
"""


from concurrent.futures import ThreadPoolExecutor

import numpy as np


def partition(n, n_workers):
    """return the contiguous ranges [start, stop) that split n items into
    (at most) n_workers nearly equal pieces"""

    n_workers = max(1, min(n_workers, n))
    bounds = np.linspace(0, n, n_workers + 1).astype(int)
    return [(start, stop) for start, stop in zip(bounds[:-1], bounds[1:]) if stop > start]


def for_each_range(n, func, *, n_workers=1):
    """call func(start, stop) for every range of a partition of n items

    Every call has to write only into its own slice of a preallocated
    output.  The function returns once all ranges are done; an exception
    raised by any range is re-raised here.

    Parameters
    ----------
    n : int
        the number of items.
    func : function
        the work to do on a range, with signature `func(start, stop)`.
    n_workers : int, optional
        the number of threads.  With 1 everything runs in the calling
        thread.
    """

    ranges = partition(n, n_workers)

    if len(ranges) <= 1:
        for start, stop in ranges:
            func(start, stop)
        return

    with ThreadPoolExecutor(max_workers=len(ranges)) as pool:
        futures = [pool.submit(func, start, stop) for start, stop in ranges]

        # collecting the results is the barrier of the phase
        for future in futures:
            future.result()
