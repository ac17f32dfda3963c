"""Abstract base class for assembly execution backends."""
from abc import ABC, abstractmethod
from typing import Callable, List, Sequence

import numpy as np


class AssemblyBackend(ABC):
    """Execution context for partitioned assembly.

    The mesh is split into one owned-cell partition per worker. ``map`` runs a
    top-level worker function over per-partition argument tuples and returns
    the partial results in partition order; the driver merges them. The
    reductions are the synchronization points of an assembly pass.

    Only the driver (rank 0) logs.
    """

    rank = 0

    @property
    @abstractmethod
    def n_workers(self) -> int:
        """Number of owned-cell partitions."""
        pass

    @abstractmethod
    def map(self, func: Callable, args_list: Sequence) -> List:
        """Apply ``func`` to every argument tuple; results keep input order."""
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Human-readable backend name, e.g. 'CPU (4 workers)'."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this backend can run on the current machine."""
        pass

    def partition(self, mesh) -> List[np.ndarray]:
        """Owned cells per worker: disjoint, contiguous, covering the mesh."""
        return mesh.partition(self.n_workers)

    def allreduce_sum(self, partials):
        """Sum partial values (scalars or equally shaped arrays)."""
        total = 0.0
        for value in partials:
            total = total + value
        return total

    def log(self, message: str):
        if self.rank == 0:
            print(message)

    def close(self):
        """Release worker resources."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
