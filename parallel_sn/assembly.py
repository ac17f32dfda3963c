"""
Sparse assembly primitives.

Local cell blocks are scattered into COO triplets (row, col, val); the
COO -> CSR conversion at finalize sums duplicate entries, which is exactly
the finite element assembly operation.

The scatter loops are Numba JIT kernels; the growable buffers and the merge
of per-worker triplets run in plain numpy / scipy.
"""
from typing import List, Tuple

import numpy as np
from numba import njit
from scipy.sparse import coo_matrix, csr_matrix


# ===================================================================
# Numba JIT scatter kernels (module-level, compiled once)
# ===================================================================

@njit(cache=True)
def _scatter_block_jit(rows, cols, vals, pos, dofs_i, dofs_j, block):
    """Write ``block[a, b]`` at (dofs_i[a], dofs_j[b]) starting at ``pos``.

    Returns the next free position.
    """
    for a in range(dofs_i.shape[0]):
        for b in range(dofs_j.shape[0]):
            rows[pos] = dofs_i[a]
            cols[pos] = dofs_j[b]
            vals[pos] = block[a, b]
            pos += 1
    return pos


@njit(cache=True)
def _scatter_vector_jit(vector, dofs, local):
    for a in range(dofs.shape[0]):
        vector[dofs[a]] += local[a]


def scatter_add(vector: np.ndarray, dofs: np.ndarray, local: np.ndarray):
    """vector[dofs] += local, accumulating repeated dofs."""
    _scatter_vector_jit(vector, np.ascontiguousarray(dofs, dtype=np.int64),
                        np.ascontiguousarray(local, dtype=np.float64))


# ===================================================================
# COO triplet buffer
# ===================================================================

class CooBuffer:
    """Growable (row, col, val) storage for one component matrix."""

    def __init__(self, capacity: int = 1024):
        capacity = max(1, int(capacity))
        self.rows = np.empty(capacity, dtype=np.int64)
        self.cols = np.empty(capacity, dtype=np.int64)
        self.vals = np.empty(capacity, dtype=np.float64)
        self.size = 0

    def _reserve(self, extra: int):
        needed = self.size + extra
        if needed <= len(self.vals):
            return
        capacity = max(needed, 2 * len(self.vals))
        for name in ('rows', 'cols', 'vals'):
            old = getattr(self, name)
            new = np.empty(capacity, dtype=old.dtype)
            new[:self.size] = old[:self.size]
            setattr(self, name, new)

    def add_block(self, dofs_i: np.ndarray, dofs_j: np.ndarray, block: np.ndarray):
        self._reserve(len(dofs_i) * len(dofs_j))
        self.size = _scatter_block_jit(
            self.rows, self.cols, self.vals, self.size,
            np.ascontiguousarray(dofs_i, dtype=np.int64),
            np.ascontiguousarray(dofs_j, dtype=np.int64),
            np.ascontiguousarray(block, dtype=np.float64),
        )

    def arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Trimmed copies of the triplets."""
        return (self.rows[:self.size].copy(),
                self.cols[:self.size].copy(),
                self.vals[:self.size].copy())


def triplets_to_csr(triplets: List[Tuple[np.ndarray, np.ndarray, np.ndarray]],
                    n_dofs: int) -> csr_matrix:
    """Merge per-worker triplets into one CSR matrix (duplicates summed)."""
    triplets = [t for t in triplets if len(t[2]) > 0]
    if not triplets:
        return csr_matrix((n_dofs, n_dofs))
    rows = np.concatenate([t[0] for t in triplets])
    cols = np.concatenate([t[1] for t in triplets])
    vals = np.concatenate([t[2] for t in triplets])
    matrix = coo_matrix((vals, (rows, cols)), shape=(n_dofs, n_dofs)).tocsr()
    matrix.sum_duplicates()
    return matrix
