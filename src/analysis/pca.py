"""
Principal Component Analysis of skull and mandible measurements.

Follows the conventions of R's ``princomp`` so the numbers line up with the
classical morphometric literature: variables are centred on their means and,
for a correlation-matrix PCA, scaled by their population standard deviation
(divisor n). Component standard deviations are the square roots of the
eigenvalues of that divisor-n matrix. The decomposition itself is delegated to
scikit-learn.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA

logger = logging.getLogger(__name__)


def component_names(n: int, prefix: str = "PC") -> list[str]:
    return [f"{prefix}{i + 1}" for i in range(n)]


@dataclass
class PCAResult:
    """Output of :func:`run_pca`.

    Attributes:
        sdev (pd.Series): Standard deviation of each component.
        proportion_variance (pd.Series): Share of total variance per component.
        cumulative_variance (pd.Series): Running total of the shares.
        rotation (pd.DataFrame): Eigenvectors, variables x components.
        loadings (pd.DataFrame): Correlation of each variable with each
            component's scores.
        scores (pd.DataFrame): Specimen coordinates, specimens x components.
        center (pd.Series): Column means removed before the decomposition.
        scale (pd.Series): Column divisors (all ones for covariance PCA).
        n_obs (int): Number of specimens.
        use_correlation (bool): Whether the correlation matrix was used.
        total_variance (float): Trace of the analysed matrix.
    """

    sdev: pd.Series
    proportion_variance: pd.Series
    cumulative_variance: pd.Series
    rotation: pd.DataFrame
    loadings: pd.DataFrame
    scores: pd.DataFrame
    center: pd.Series
    scale: pd.Series
    n_obs: int
    use_correlation: bool
    total_variance: float

    @property
    def eigenvalues(self) -> pd.Series:
        return self.sdev**2

    @property
    def variables(self) -> list[str]:
        return list(self.rotation.index)

    def importance(self) -> pd.DataFrame:
        """Importance of components, laid out like ``summary(princomp(...))``."""
        return pd.DataFrame(
            [self.sdev, self.proportion_variance, self.cumulative_variance],
            index=["Standard deviation", "Proportion of Variance", "Cumulative Proportion"],
        )

    def top_loadings(self, component: int | str = 1, n: int = 5) -> pd.Series:
        """Variables most strongly correlated with a component.

        Args:
            component (int | str): 1-based component number or its name.
            n (int): How many variables to return.

        Returns:
            pd.Series: Loadings ordered by absolute value, largest first.
        """
        name = component if isinstance(component, str) else f"PC{component}"
        if name not in self.loadings.columns:
            raise ValueError(f"Unknown component: {component}")
        column = self.loadings[name]
        order = column.abs().sort_values(ascending=False).index
        return column[order].head(n)

    def n_components_for(self, threshold: float) -> int:
        """Fewest components whose cumulative share reaches ``threshold``.

        Raises:
            ValueError: If the threshold is outside (0, 1] or the retained
                components never reach it.
        """
        if not 0 < threshold <= 1:
            raise ValueError("threshold must be in (0, 1]")
        cumulative = self.cumulative_variance.to_numpy()
        if cumulative[-1] < threshold - 1e-12:
            raise ValueError(
                f"{len(cumulative)} components explain {cumulative[-1]:.1%} of the variance, "
                f"short of {threshold:.0%}"
            )
        return int(np.searchsorted(cumulative, threshold - 1e-12)) + 1

    def _threshold_line(self, threshold: float) -> str:
        try:
            return f"Components needed for {threshold:.0%} of variance: {self.n_components_for(threshold)}"
        except ValueError:
            return (
                f"Components needed for {threshold:.0%} of variance: "
                f"not reached within {len(self.cumulative_variance)} components"
            )

    def kaiser_components(self) -> list[str]:
        """Components retained by the Kaiser-Guttman criterion.

        With a correlation matrix the cut-off is an eigenvalue of 1; with a
        covariance matrix it is the mean eigenvalue.
        """
        cutoff = 1.0 if self.use_correlation else self.total_variance / len(self.rotation)
        return [name for name, value in self.eigenvalues.items() if value > cutoff]

    def summary(self, n_loadings: int = 5) -> str:
        matrix = "correlation" if self.use_correlation else "covariance"
        lines = [
            f"Principal Component Analysis ({matrix} matrix)",
            f"  Specimens: {self.n_obs}",
            f"  Variables: {len(self.variables)}",
            "",
            "Importance of components:",
            self.importance().to_string(float_format=lambda v: f"{v:.4f}"),
            "",
            f"Components retained by Kaiser criterion: {self.kaiser_components()}",
            self._threshold_line(0.9),
            "",
            "Loadings (correlations between variables and components):",
            self.loadings.to_string(float_format=lambda v: f"{v:.3f}"),
        ]
        for name in self.loadings.columns[:2]:
            top = self.top_loadings(name, n_loadings)
            lines.append("")
            lines.append(f"Strongest loadings on {name}:")
            lines.extend(f"  {var}: {value:+.3f}" for var, value in top.items())
        return "\n".join(lines)


def run_pca(
    X: pd.DataFrame, use_correlation: bool = True, n_components: Optional[int] = None
) -> PCAResult:
    """Runs a PCA on a complete measurement table.

    Args:
        X (pd.DataFrame): Specimens x measurements, no missing values.
        use_correlation (bool, optional): Analyse the correlation matrix
            (standardised variables) rather than the covariance matrix.
            Defaults to True, which is what mixed-size skull measurements
            usually call for.
        n_components (int, optional): Components to keep. Defaults to all.

    Returns:
        PCAResult: Variance explained, rotation, loadings and scores.

    Raises:
        ValueError: If the table has missing values, is too small, or has a
            constant column while standardising.
    """
    if X.isna().any().any():
        raise ValueError("PCA requires a complete table; prune missing values first")

    n_obs, n_vars = X.shape
    if n_obs < 2 or n_vars < 2:
        raise ValueError(f"PCA needs at least 2 specimens and 2 variables, got {X.shape}")

    max_components = min(n_obs, n_vars)
    if n_components is None:
        n_components = max_components
    elif not 1 <= n_components <= max_components:
        raise ValueError(f"n_components must be between 1 and {max_components}")

    center = X.mean()
    if use_correlation:
        scale = X.std(ddof=0)
        constant = scale[scale == 0].index.tolist()
        if constant:
            raise ValueError(f"Cannot standardise constant variables: {constant}")
    else:
        scale = pd.Series(1.0, index=X.columns)

    Z = (X - center) / scale
    total_variance = float(Z.var(ddof=0).sum())

    logger.info(
        f"Running PCA on {n_obs} specimens x {n_vars} variables "
        f"({'correlation' if use_correlation else 'covariance'} matrix)"
    )

    pca = PCA(n_components=n_components, svd_solver="full")
    raw_scores = pca.fit_transform(Z.to_numpy())

    names = component_names(n_components)

    # sklearn divides by n - 1; princomp divides by n
    eigenvalues = pca.explained_variance_ * (n_obs - 1) / n_obs
    sdev = pd.Series(np.sqrt(np.clip(eigenvalues, 0, None)), index=names)
    proportion = pd.Series(pca.explained_variance_ratio_, index=names)
    cumulative = proportion.cumsum()

    rotation = pd.DataFrame(pca.components_.T, index=X.columns, columns=names)
    scores = pd.DataFrame(raw_scores, index=X.index, columns=names)

    variable_sd = Z.std(ddof=0).to_numpy()
    constant = variable_sd == 0
    divisor = np.where(constant, 1.0, variable_sd)[:, None]
    loadings = rotation * sdev.to_numpy()[None, :] / divisor
    loadings.loc[constant] = 0.0
    loadings = loadings.clip(-1.0, 1.0)

    for name in names[:3]:
        logger.info(f"{name}: {proportion[name]:.1%} of variance (cumulative {cumulative[name]:.1%})")

    return PCAResult(
        sdev=sdev,
        proportion_variance=proportion,
        cumulative_variance=cumulative,
        rotation=rotation,
        loadings=loadings,
        scores=scores,
        center=center,
        scale=scale,
        n_obs=n_obs,
        use_correlation=use_correlation,
        total_variance=total_variance,
    )
