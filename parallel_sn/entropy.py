"""
Shannon entropy of the fission source distribution.

Used to monitor convergence of the fission source shape during power
iteration. The entropy should plateau when the source is converged.

H = -sum_i (p_i * ln(p_i))

where p_i = (fission source in bin i) / (total source), binned by cell
center on a coarse (x[, y]) mesh.
"""
import numpy as np

from .constants import ENTROPY_NX, ENTROPY_NY


class EntropyMonitor:
    """Shannon entropy of the cellwise fission source on a coarse mesh."""

    def __init__(self, mesh, n_x=ENTROPY_NX, n_y=ENTROPY_NY):
        self.dim = mesh.dim
        self.n_x = min(n_x, mesh.nx)
        self.n_y = 1 if mesh.dim == 1 else min(n_y, mesh.ny)

        upper = mesh.domain_upper
        self.x_edges = np.linspace(0.0, upper[0], self.n_x + 1)
        self.y_edges = None if mesh.dim == 1 else np.linspace(0.0, upper[1], self.n_y + 1)

        # bin of every cell, fixed for the mesh
        centers = mesh.cell_centers
        ix = np.clip(np.searchsorted(self.x_edges, centers[:, 0]) - 1, 0, self.n_x - 1)
        if mesh.dim == 1:
            self._cell_bins = ix
        else:
            iy = np.clip(np.searchsorted(self.y_edges, centers[:, 1]) - 1, 0, self.n_y - 1)
            self._cell_bins = ix + self.n_x * iy

        self.history = []
        self.max_entropy = np.log(self.n_x * self.n_y)  # maximum possible entropy

    def compute(self, cell_source):
        """Compute Shannon entropy of the fission source.

        Args:
            cell_source: fission source integral per cell [n_cells]

        Returns:
            H: Shannon entropy value
        """
        counts = np.bincount(self._cell_bins, weights=np.abs(cell_source),
                             minlength=self.n_x * self.n_y)

        total = np.sum(counts)
        if total == 0:
            self.history.append(0.0)
            return 0.0

        probs = counts / total
        probs = probs[probs > 0]  # remove zeros (log(0) undefined)
        H = float(-np.sum(probs * np.log(probs)))

        self.history.append(H)
        return H

    @property
    def is_converged(self):
        """Check if entropy has converged (simple heuristic).

        Converged if last 10 values have std < 5% of mean.
        """
        if len(self.history) < 20:
            return False
        last_10 = self.history[-10:]
        mean = np.mean(last_10)
        std = np.std(last_10)
        return std < 0.05 * mean if mean > 0 else False
