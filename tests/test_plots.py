import numpy as np
import pytest
from matplotlib.figure import Figure
from matplotlib.patches import Ellipse, Polygon

from analysis.dfa import run_dfa
from analysis.pca import run_pca
from analysis.plots import (
    confidence_ellipse,
    convex_hull,
    plot_biplot,
    plot_classification_table,
    plot_dfa_scatter,
    plot_loadings,
    plot_pca_scatter,
    plot_scree,
    save_figure,
)


@pytest.fixture
def pca_result(measurements):
    return run_pca(measurements)


@pytest.fixture
def dfa_result(measurements, populations):
    return run_dfa(measurements, populations)


def test_convex_hull_skips_interior_points():
    square = np.array([[0, 0], [1, 0], [1, 1], [0, 1], [0.5, 0.5]])

    hull = convex_hull(square)

    assert len(hull) == 4
    assert not any(np.allclose(vertex, [0.5, 0.5]) for vertex in hull)


def test_convex_hull_degenerate_inputs():
    two = np.array([[0, 0], [1, 1]])
    line = np.array([[0, 0], [1, 1], [2, 2]])

    np.testing.assert_array_equal(convex_hull(two), two)
    np.testing.assert_array_equal(convex_hull(line), line)


def test_confidence_ellipse():
    rng = np.random.default_rng(1)
    points = rng.normal(size=(200, 2)) * [3.0, 1.0] + [10.0, -2.0]

    ellipse = confidence_ellipse(points, level=0.95)

    assert isinstance(ellipse, Ellipse)
    assert ellipse.width > ellipse.height
    np.testing.assert_allclose(ellipse.get_center(), points.mean(axis=0))
    assert confidence_ellipse(points[:2]) is None


def test_pca_scatter_with_hulls_and_ellipses(pca_result, populations):
    fig = plot_pca_scatter(pca_result, populations, hulls=True, ellipses=True)

    ax = fig.axes[0]
    assert isinstance(fig, Figure)
    assert ax.get_xlabel().startswith("PC1")
    assert sum(isinstance(p, Polygon) for p in ax.patches) == 3
    assert sum(isinstance(p, Ellipse) for p in ax.patches) == 3
    assert len(ax.get_legend().get_texts()) == 3


def test_pca_scatter_without_groups(pca_result):
    fig = plot_pca_scatter(pca_result, pcs=(2, 3))

    assert fig.axes[0].get_xlabel().startswith("PC2")
    assert fig.axes[0].get_legend() is None


def test_pca_scatter_unknown_component(pca_result):
    with pytest.raises(ValueError):
        plot_pca_scatter(pca_result, pcs=(1, 42))


def test_scree_loadings_and_biplot(pca_result, populations):
    assert isinstance(plot_scree(pca_result), Figure)
    assert isinstance(plot_loadings(pca_result, n_components=2), Figure)

    fig = plot_biplot(pca_result, populations, n_arrows=4)
    labels = {text.get_text() for text in fig.axes[0].texts if text.get_text()}
    assert len(labels) == 4
    assert labels <= set(pca_result.variables)


def test_dfa_scatter_and_table(dfa_result):
    fig = plot_dfa_scatter(dfa_result)
    assert fig.axes[0].get_xlabel().startswith("LD1")
    assert fig.axes[0].get_ylabel().startswith("LD2")

    fig = plot_classification_table(dfa_result)
    assert "Jackknifed" in fig.axes[0].get_title()


def test_dfa_single_axis_draws_histogram(measurements, populations):
    keep = (populations != "pop_C").to_numpy()
    result = run_dfa(measurements[keep], populations[keep])

    fig = plot_dfa_scatter(result)

    assert fig.axes[0].get_xlabel().startswith("LD1")


def test_save_figure_creates_directories(tmp_path, pca_result):
    path = tmp_path / "figures" / "nested" / "scree.png"

    written = save_figure(plot_scree(pca_result), str(path), dpi=50)

    assert written == str(path)
    assert path.exists()
    assert path.stat().st_size > 0
