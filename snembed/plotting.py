"""
Diagnostic figures. Every helper returns the matplotlib Figure; saving and
showing are up to the caller.
"""

import matplotlib.pyplot as plt
import numpy as np


def plot_embedding(ym, labels=None, title="Embedding", ax=None, cmap="tab10"):
    """Scatter plot of the first two embedding dimensions."""
    ym = np.asarray(ym)
    if ax is None:
        fig, ax = plt.subplots(figsize=(6, 6))
    else:
        fig = ax.figure

    if labels is None:
        ax.scatter(ym[:, 0], ym[:, 1], s=15, alpha=0.7)
    else:
        ax.scatter(ym[:, 0], ym[:, 1], c=labels, cmap=cmap, s=15, alpha=0.7)
    ax.set_title(title, fontsize=12, fontweight='bold')
    ax.set_aspect('equal')
    ax.set_xticks([])
    ax.set_yticks([])
    return fig


def plot_cost_history(costs, iterations=None, title="Cost", ax=None, log_scale=False):
    """Cost against iteration."""
    if ax is None:
        fig, ax = plt.subplots(figsize=(7, 4))
    else:
        fig = ax.figure
    if iterations is None:
        iterations = np.arange(1, len(costs) + 1)
    ax.plot(iterations, costs, linewidth=2)
    ax.set_xlabel('Iteration')
    ax.set_ylabel('Cost')
    if log_scale:
        ax.set_yscale('log')
    ax.set_title(title, fontsize=12, fontweight='bold')
    ax.grid(True, alpha=0.3)
    return fig


def plot_embedding_history(snapshots, labels=None, titles=None, n_cols=4):
    """Grid of embedding snapshots, e.g. NeighborEmbedding.embedding_history_."""
    n_show = len(snapshots)
    if n_show == 0:
        raise ValueError("No snapshots to plot")
    n_rows = int(np.ceil(n_show / n_cols))
    fig, axes = plt.subplots(n_rows, n_cols, figsize=(4 * n_cols, 4 * n_rows))
    axes = np.atleast_1d(axes).flatten()

    for i, Y_snap in enumerate(snapshots):
        title = titles[i] if titles is not None else f'Snapshot {i + 1}'
        plot_embedding(Y_snap, labels=labels, title=title, ax=axes[i])
    for j in range(n_show, len(axes)):
        axes[j].axis('off')

    plt.tight_layout()
    return fig
