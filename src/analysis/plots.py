"""
Figures for the PCA and DFA walkthroughs.

Specimens are drawn in component or discriminant space, coloured by group,
with each group outlined by its convex hull or a confidence ellipse. Every
plotting function returns the matplotlib Figure so callers can save or show
it.
"""

import logging
import os
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.figure import Figure
from matplotlib.patches import Ellipse, Polygon
from scipy.spatial import ConvexHull, QhullError
from scipy.stats import chi2

from analysis.dfa import DFAResult
from analysis.pca import PCAResult

logger = logging.getLogger(__name__)


def save_figure(fig: Figure, path: str, dpi: int = 300) -> str:
    """Saves a figure to disk and closes it.

    Args:
        fig (Figure): The figure to save.
        path (str): Output file; the format follows the extension.
        dpi (int, optional): Resolution for raster formats. Defaults to 300.

    Returns:
        str: The path written.
    """
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    fig.savefig(path, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"Saved figure to {path}")
    return path


def convex_hull(points: np.ndarray) -> np.ndarray:
    """Vertices of the convex hull of 2D points, in drawing order.

    Fewer than three points, or points on a line, have no area to enclose;
    they are returned unchanged.
    """
    points = np.asarray(points, dtype=float)
    if len(points) < 3:
        return points
    try:
        hull = ConvexHull(points)
    except QhullError:
        return points
    return points[hull.vertices]


def confidence_ellipse(points: np.ndarray, level: float = 0.95, **kwargs) -> Optional[Ellipse]:
    """Ellipse enclosing ``level`` of a bivariate normal fitted to the points.

    Args:
        points (np.ndarray): n x 2 coordinates.
        level (float, optional): Coverage probability. Defaults to 0.95.
        **kwargs: Passed to :class:`matplotlib.patches.Ellipse`.

    Returns:
        Ellipse | None: None when there are fewer than three points.
    """
    points = np.asarray(points, dtype=float)
    if len(points) < 3:
        return None

    covariance = np.cov(points, rowvar=False)
    eigenvalues, eigenvectors = np.linalg.eigh(covariance)
    eigenvalues = np.clip(eigenvalues, 0, None)

    radius = np.sqrt(chi2.ppf(level, df=2))
    major = eigenvectors[:, 1]
    angle = np.degrees(np.arctan2(major[1], major[0]))

    return Ellipse(
        xy=points.mean(axis=0),
        width=2 * radius * np.sqrt(eigenvalues[1]),
        height=2 * radius * np.sqrt(eigenvalues[0]),
        angle=angle,
        **kwargs,
    )


def group_palette(groups: pd.Series) -> dict:
    labels = sorted(pd.unique(groups.dropna()), key=str)
    colours = sns.color_palette("tab10" if len(labels) <= 10 else "husl", len(labels))
    return dict(zip(labels, colours))


def _scatter_groups(
    ax,
    coordinates: pd.DataFrame,
    x: str,
    y: str,
    groups: Optional[pd.Series],
    hulls: bool,
    ellipses: bool,
) -> None:
    if groups is None:
        ax.scatter(coordinates[x], coordinates[y], s=30, color="0.3", edgecolor="white")
        return

    groups = groups.reindex(coordinates.index) if not groups.index.equals(coordinates.index) else groups
    palette = group_palette(groups)

    for label, colour in palette.items():
        members = coordinates[(groups == label).to_numpy()]
        points = members[[x, y]].to_numpy()

        ax.scatter(points[:, 0], points[:, 1], s=30, color=colour, edgecolor="white", label=str(label))

        if hulls and len(points) >= 3:
            vertices = convex_hull(points)
            if len(vertices) >= 3:
                ax.add_patch(Polygon(vertices, closed=True, facecolor=colour, edgecolor=colour, alpha=0.2))

        if ellipses:
            ellipse = confidence_ellipse(points, facecolor="none", edgecolor=colour, linewidth=1.5)
            if ellipse is not None:
                ax.add_patch(ellipse)

    ax.legend(title=groups.name or "Group", frameon=False)


def plot_pca_scatter(
    result: PCAResult,
    groups: Optional[pd.Series] = None,
    pcs: tuple[int, int] = (1, 2),
    hulls: bool = True,
    ellipses: bool = False,
    ax=None,
) -> Figure:
    """Specimens on two principal components.

    Args:
        result (PCAResult): A fitted PCA.
        groups (pd.Series, optional): Group of each specimen, indexed like
            the scores.
        pcs (tuple[int, int], optional): 1-based components for the x and y
            axes. Defaults to (1, 2).
        hulls (bool, optional): Shade each group's convex hull.
        ellipses (bool, optional): Draw each group's 95% ellipse.
        ax (matplotlib.axes.Axes, optional): Axes to draw on.

    Returns:
        Figure: The figure holding the plot.
    """
    x, y = (f"PC{pc}" for pc in pcs)
    for name in (x, y):
        if name not in result.scores.columns:
            raise ValueError(f"Component {name} not available, PCA kept {result.scores.shape[1]}")

    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 7))
    else:
        fig = ax.figure

    _scatter_groups(ax, result.scores, x, y, groups, hulls, ellipses)

    ax.axhline(0, color="0.8", linewidth=0.8, zorder=0)
    ax.axvline(0, color="0.8", linewidth=0.8, zorder=0)
    ax.set_xlabel(f"{x} ({result.proportion_variance[x]:.1%})")
    ax.set_ylabel(f"{y} ({result.proportion_variance[y]:.1%})")
    ax.set_title("Principal Component Analysis")
    return fig


def plot_scree(result: PCAResult) -> Figure:
    """Variance explained per component with the cumulative curve."""
    fig, ax = plt.subplots(figsize=(8, 5))
    positions = np.arange(1, len(result.proportion_variance) + 1)

    ax.bar(positions, result.proportion_variance.to_numpy(), color="steelblue", label="Component")
    ax.plot(positions, result.cumulative_variance.to_numpy(), "o-", color="firebrick", label="Cumulative")

    ax.set_xticks(positions)
    ax.set_xticklabels(result.proportion_variance.index)
    ax.set_ylim(0, 1.05)
    ax.set_xlabel("Principal component")
    ax.set_ylabel("Proportion of variance")
    ax.set_title("Scree plot")
    ax.legend(frameon=False)
    return fig


def plot_loadings(result: PCAResult, n_components: int = 3) -> Figure:
    """Heatmap of variable loadings on the first components."""
    loadings = result.loadings.iloc[:, :n_components]
    fig, ax = plt.subplots(figsize=(2 + 1.2 * loadings.shape[1], 1 + 0.4 * len(loadings)))
    sns.heatmap(
        loadings,
        annot=True,
        fmt=".2f",
        cmap="RdBu_r",
        vmin=-1,
        vmax=1,
        center=0,
        cbar_kws={"label": "Loading"},
        ax=ax,
    )
    ax.set_title("PCA loadings")
    return fig


def plot_biplot(
    result: PCAResult,
    groups: Optional[pd.Series] = None,
    pcs: tuple[int, int] = (1, 2),
    n_arrows: int = 8,
) -> Figure:
    """Scores with arrows for the variables loading most on the two axes."""
    fig = plot_pca_scatter(result, groups, pcs=pcs, hulls=False)
    ax = fig.axes[0]
    x, y = (f"PC{pc}" for pc in pcs)

    loadings = result.loadings[[x, y]]
    strength = np.hypot(loadings[x], loadings[y]).sort_values(ascending=False)
    chosen = loadings.loc[strength.index[:n_arrows]]

    # Stretch the arrows over most of the score cloud
    reach = 0.8 * np.abs(result.scores[[x, y]].to_numpy()).max()
    for variable, (dx, dy) in chosen.iterrows():
        ax.annotate(
            "",
            xy=(dx * reach, dy * reach),
            xytext=(0, 0),
            arrowprops={"arrowstyle": "->", "color": "0.25", "linewidth": 1},
        )
        ax.text(dx * reach * 1.08, dy * reach * 1.08, str(variable), fontsize=8, ha="center", va="center")

    ax.set_title("PCA biplot")
    return fig


def plot_dfa_scatter(result: DFAResult, ld: tuple[int, int] = (1, 2), hulls: bool = True) -> Figure:
    """Specimens on the discriminant axes.

    With two groups there is a single discriminant function, so the scores
    are shown as overlapping histograms along LD1 instead.
    """
    fig, ax = plt.subplots(figsize=(8, 7 if result.n_axes > 1 else 5))

    if result.n_axes == 1:
        frame = pd.DataFrame({"LD1": result.scores["LD1"], "group": result.groups.astype(str)})
        palette = {str(k): v for k, v in group_palette(result.groups).items()}
        sns.histplot(data=frame, x="LD1", hue="group", palette=palette, element="step", ax=ax)
        ax.set_xlabel(f"LD1 ({result.proportion_of_trace['LD1']:.1%})")
        ax.set_title("Discriminant Function Analysis")
        return fig

    x, y = (f"LD{axis}" for axis in ld)
    for name in (x, y):
        if name not in result.scores.columns:
            raise ValueError(f"Discriminant axis {name} not available")

    _scatter_groups(ax, result.scores, x, y, result.groups, hulls, ellipses=False)
    ax.set_xlabel(f"{x} ({result.proportion_of_trace[x]:.1%})")
    ax.set_ylabel(f"{y} ({result.proportion_of_trace[y]:.1%})")
    ax.set_title("Discriminant Function Analysis")
    return fig


def plot_classification_table(result: DFAResult, cross_validated: bool = True) -> Figure:
    """Heatmap of actual against predicted groups."""
    table = result.classification_table(cross_validated).astype(int)
    size = 2 + 0.8 * len(table)
    fig, ax = plt.subplots(figsize=(size + 1, size))
    sns.heatmap(table, annot=True, fmt="d", cmap="Blues", cbar=False, ax=ax)

    kind = "Jackknifed" if cross_validated else "Resubstitution"
    ax.set_title(f"{kind} classification ({result.accuracy(cross_validated):.1%} correct)")
    return fig
