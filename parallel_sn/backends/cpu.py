"""
CPU Backend: multiprocessing + Numba JIT

Parallelization strategy:
- Split the mesh cells into n_workers contiguous owned partitions
- Each worker integrates its cells and scatters local blocks into COO
  triplets / partial vectors with JIT-compiled kernels
- The driver merges the partial results (the finalize step)

Worker functions must be module-level so the pool can pickle them; all
collaborators passed to them are read-only copies.
"""
from multiprocessing import Pool, cpu_count
from typing import Callable, List, Optional, Sequence

from .base import AssemblyBackend


class CPUBackend(AssemblyBackend):
    """Process-parallel assembly backend.

    Args:
        n_workers: number of worker processes (None -> os.cpu_count()).
            With a single worker everything runs inline in the driver.

    The pool is created on first use and kept until :meth:`close`, so the
    repeated linear-form passes of an iteration do not pay process start-up.
    """

    def __init__(self, n_workers: Optional[int] = None):
        if n_workers is None:
            n_workers = cpu_count() or 1
        self._n_workers = max(1, int(n_workers))
        self._pool = None

    # ------------------------------------------------------------------
    # AssemblyBackend interface
    # ------------------------------------------------------------------

    @property
    def n_workers(self) -> int:
        return self._n_workers

    def map(self, func: Callable, args_list: Sequence) -> List:
        args_list = list(args_list)
        if self._n_workers == 1 or len(args_list) <= 1:
            return [func(args) for args in args_list]
        return self._get_pool().map(func, args_list)

    def get_name(self) -> str:
        n = self._n_workers
        return f"CPU ({n} worker{'s' if n > 1 else ''}, Numba JIT)"

    def is_available(self) -> bool:
        return True  # CPU is always available

    def close(self):
        if self._pool is not None:
            self._pool.close()
            self._pool.join()
            self._pool = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _get_pool(self):
        if self._pool is None:
            self._pool = Pool(processes=self._n_workers)
        return self._pool

    def __getstate__(self):
        state = self.__dict__.copy()
        state['_pool'] = None
        return state
