"""
Result figures (PNG) from a result dict as written by ``--output``.

  convergence.png   err_k / err_phi per outer iteration (eigenvalue runs)
  entropy.png       Shannon entropy of the fission source
  flux.png          cell-averaged flux per group (1D profile or 2D map)
"""
import os
from typing import List

import numpy as np


def _style_axis(ax):
    """Apply professional styling to an axis."""
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.spines["left"].set_linewidth(0.6)
    ax.spines["bottom"].set_linewidth(0.6)
    ax.tick_params(labelsize=8, direction="out", width=0.6)
    ax.grid(True, alpha=0.3, linewidth=0.4, linestyle="--")


def _save_figure(plt, fig, path, dpi=150):
    fig.savefig(path, dpi=dpi, bbox_inches="tight", facecolor="white",
                edgecolor="none", pad_inches=0.15)
    plt.close(fig)
    return path


def plot_results(results: dict, out_dir: str) -> List[str]:
    """Write the figures for ``results`` into ``out_dir``; returns their paths."""
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    os.makedirs(out_dir, exist_ok=True)
    paths = []

    err_k = results.get("err_k_history", [])
    err_phi = results.get("err_phi_history", [])
    if err_k or err_phi:
        fig, ax = plt.subplots(figsize=(7, 3.8))
        if err_k:
            ax.semilogy(np.arange(1, len(err_k) + 1), err_k, color="#1565C0",
                        linewidth=0.9, marker="o", markersize=2.5, label="err_k")
        if err_phi:
            ax.semilogy(np.arange(1, len(err_phi) + 1), err_phi, color="#6A1B9A",
                        linewidth=0.9, marker="s", markersize=2.5, label="err_phi")
        title = "Outer iteration convergence"
        if "keff" in results:
            title += f" (k_eff = {results['keff']:.6f})"
        ax.set_title(title, fontsize=11, pad=10)
        ax.set_xlabel("Iteration", fontsize=9)
        ax.set_ylabel("Relative change", fontsize=9)
        _style_axis(ax)
        ax.legend(loc="upper right", fontsize=7, framealpha=0.8)
        fig.tight_layout()
        paths.append(_save_figure(plt, fig, os.path.join(out_dir, "convergence.png")))

    entropy = results.get("entropy_history", [])
    if entropy:
        fig, ax = plt.subplots(figsize=(7, 3.8))
        ax.plot(np.arange(1, len(entropy) + 1), entropy, color="#2E7D32", linewidth=0.9)
        ax.set_title("Shannon entropy of the fission source", fontsize=11, pad=10)
        ax.set_xlabel("Iteration", fontsize=9)
        ax.set_ylabel("H", fontsize=9)
        _style_axis(ax)
        fig.tight_layout()
        paths.append(_save_figure(plt, fig, os.path.join(out_dir, "entropy.png")))

    cell_flux = np.asarray(results.get("cell_flux", []), dtype=float)
    centers = np.asarray(results.get("cell_centers", []), dtype=float)
    if cell_flux.size and centers.size:
        n_groups = cell_flux.shape[1]
        if centers.shape[1] == 1:
            fig, ax = plt.subplots(figsize=(7, 3.8))
            for g in range(n_groups):
                ax.plot(centers[:, 0], cell_flux[:, g], linewidth=0.9, label=f"group {g}")
            ax.set_xlabel("x", fontsize=9)
            ax.set_ylabel("Cell-averaged flux", fontsize=9)
            ax.legend(loc="upper right", fontsize=7, framealpha=0.8)
            _style_axis(ax)
        else:
            fig, axes = plt.subplots(1, n_groups, figsize=(4 * n_groups, 3.6), squeeze=False)
            for g, ax in enumerate(axes[0]):
                sc = ax.tricontourf(centers[:, 0], centers[:, 1], cell_flux[:, g], levels=20)
                fig.colorbar(sc, ax=ax)
                ax.set_title(f"group {g}", fontsize=10)
                ax.set_aspect("equal")
        fig.tight_layout()
        paths.append(_save_figure(plt, fig, os.path.join(out_dir, "flux.png")))

    return paths
