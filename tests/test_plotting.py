import matplotlib.pyplot as plt
import numpy as np
import pytest
from matplotlib.figure import Figure

from snembed.plotting import plot_cost_history, plot_embedding, plot_embedding_history


def test_plot_embedding_returns_figure(rng):
    fig = plot_embedding(rng.normal(size=(20, 2)), labels=np.arange(20) % 3, title="Clusters")
    assert isinstance(fig, Figure)
    assert fig.axes[0].get_title() == "Clusters"
    plt.close(fig)


def test_plot_embedding_on_existing_axes(rng):
    fig, ax = plt.subplots()
    assert plot_embedding(rng.normal(size=(10, 2)), ax=ax) is fig
    plt.close(fig)


def test_plot_cost_history():
    fig = plot_cost_history([3.0, 2.0, 1.5], iterations=[10, 20, 30], log_scale=True)
    ax = fig.axes[0]
    assert ax.get_yscale() == "log"
    assert list(ax.lines[0].get_xdata()) == [10, 20, 30]
    plt.close(fig)


def test_plot_embedding_history(rng):
    snapshots = [rng.normal(size=(10, 2)) for _ in range(5)]
    fig = plot_embedding_history(snapshots, n_cols=4)
    assert len(fig.axes) == 8
    plt.close(fig)


def test_plot_embedding_history_needs_snapshots():
    with pytest.raises(ValueError):
        plot_embedding_history([])
