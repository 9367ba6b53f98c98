"""
Discriminant Function Analysis of skull and mandible measurements.

Fits a Linear Discriminant Analysis for a grouping variable (population,
subspecies, sex...) and reports the quantities a morphometric DFA is read
from: prior probabilities, group means, coefficients of the linear
discriminants, proportion of trace, Wilks' lambda, structure correlations
between measurements and discriminant scores, and a jackknifed
(leave-one-out) classification table that estimates how well specimens of
unknown origin would be assigned.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
import pandas as pd
import scipy.linalg
from scipy.stats import chi2
from sklearn.discriminant_analysis import LinearDiscriminantAnalysis
from sklearn.model_selection import LeaveOneOut, cross_val_predict

from analysis.pca import component_names

logger = logging.getLogger(__name__)


@dataclass
class DFAResult:
    """Output of :func:`run_dfa`.

    Attributes:
        classes (np.ndarray): Group labels, sorted.
        priors (pd.Series): Prior probability per group.
        group_sizes (pd.Series): Specimens per group used in the fit.
        group_means (pd.DataFrame): Mean of each measurement per group.
        scalings (pd.DataFrame): Coefficients of linear discriminants,
            variables x discriminant axes.
        proportion_of_trace (pd.Series): Between-group variance captured by
            each discriminant axis.
        eigenvalues (pd.Series): Eigenvalues of W^-1 B.
        canonical_correlations (pd.Series): Canonical correlation per axis.
        wilks_lambda (float): Wilks' lambda for all axes together.
        chi_square (float): Bartlett's chi-square approximation of lambda.
        chi_square_df (int): Degrees of freedom of ``chi_square``.
        p_value (float): Upper-tail probability of ``chi_square``.
        scores (pd.DataFrame): Discriminant scores of each specimen.
        structure (pd.DataFrame): Correlations between measurements and
            discriminant scores.
        groups (pd.Series): True group of each specimen.
        resubstitution (pd.Series): Predicted group refitting on all data.
        jackknife (pd.Series | None): Leave-one-out predicted group.
        jackknife_posterior (pd.DataFrame | None): Leave-one-out posterior
            probabilities.
    """

    classes: np.ndarray
    priors: pd.Series
    group_sizes: pd.Series
    group_means: pd.DataFrame
    scalings: pd.DataFrame
    proportion_of_trace: pd.Series
    eigenvalues: pd.Series
    canonical_correlations: pd.Series
    wilks_lambda: float
    chi_square: float
    chi_square_df: int
    p_value: float
    scores: pd.DataFrame
    structure: pd.DataFrame
    groups: pd.Series
    resubstitution: pd.Series
    jackknife: Optional[pd.Series] = None
    jackknife_posterior: Optional[pd.DataFrame] = None
    model: Optional[LinearDiscriminantAnalysis] = None

    @property
    def n_axes(self) -> int:
        return self.scores.shape[1]

    def _predictions(self, cross_validated: bool) -> pd.Series:
        if not cross_validated:
            return self.resubstitution
        if self.jackknife is None:
            raise ValueError("Cross-validation was not run for this analysis")
        return self.jackknife

    def classification_table(self, cross_validated: bool = True) -> pd.DataFrame:
        """Counts of actual (rows) against predicted (columns) groups."""
        predicted = self._predictions(cross_validated)
        return pd.crosstab(
            pd.Categorical(self.groups, categories=self.classes),
            pd.Categorical(predicted, categories=self.classes),
            rownames=["Actual"],
            colnames=["Predicted"],
            dropna=False,
        )

    def accuracy(self, cross_validated: bool = True) -> float:
        """Fraction of specimens assigned to their own group."""
        predicted = self._predictions(cross_validated)
        return float((predicted.to_numpy() == self.groups.to_numpy()).mean())

    def per_group_accuracy(self, cross_validated: bool = True) -> pd.Series:
        table = self.classification_table(cross_validated)
        correct = pd.Series(np.diag(table.to_numpy()), index=self.classes)
        return correct / table.sum(axis=1).to_numpy()

    def misclassified(self, cross_validated: bool = True) -> pd.DataFrame:
        """Specimens whose predicted group differs from their actual group."""
        predicted = self._predictions(cross_validated)
        wrong = predicted.to_numpy() != self.groups.to_numpy()
        return pd.DataFrame(
            {"actual": self.groups[wrong], "predicted": predicted[wrong]}
        )

    def summary(self) -> str:
        lines = [
            "Discriminant Function Analysis",
            f"  Specimens: {len(self.groups)}",
            f"  Variables: {len(self.scalings)}",
            f"  Groups: {len(self.classes)}",
            "",
            "Prior probabilities of groups:",
            self.priors.to_string(float_format=lambda v: f"{v:.4f}"),
            "",
            "Group means:",
            self.group_means.to_string(float_format=lambda v: f"{v:.4f}"),
            "",
            "Coefficients of linear discriminants:",
            self.scalings.to_string(float_format=lambda v: f"{v:.4f}"),
            "",
            "Proportion of trace:",
            self.proportion_of_trace.to_string(float_format=lambda v: f"{v:.4f}"),
            "",
            "Canonical correlations:",
            self.canonical_correlations.to_string(float_format=lambda v: f"{v:.4f}"),
            "",
            f"Wilks' lambda: {self.wilks_lambda:.4f} "
            f"(chi-square = {self.chi_square:.3f}, df = {self.chi_square_df}, "
            f"p = {self.p_value:.3g})",
            "",
            "Structure correlations (loadings):",
            self.structure.to_string(float_format=lambda v: f"{v:.3f}"),
            "",
            "Resubstitution classification:",
            self.classification_table(cross_validated=False).to_string(),
            f"Correctly classified: {self.accuracy(cross_validated=False):.1%}",
        ]
        if self.jackknife is not None:
            lines.extend(
                [
                    "",
                    "Jackknifed (leave-one-out) classification:",
                    self.classification_table().to_string(),
                    f"Correctly classified: {self.accuracy():.1%}",
                    "",
                    "Correctly classified per group:",
                    self.per_group_accuracy().to_string(float_format=lambda v: f"{v:.1%}"),
                ]
            )
        return "\n".join(lines)


def _align_groups(X: pd.DataFrame, groups) -> pd.Series:
    if isinstance(groups, pd.Series):
        if groups.index.equals(X.index):
            return groups
        if len(groups) == len(X) and not groups.index.isin(X.index).all():
            return pd.Series(groups.to_numpy(), index=X.index, name=groups.name)
        return groups.reindex(X.index)

    values = np.asarray(groups, dtype=object)
    if len(values) != len(X):
        raise ValueError(f"Got {len(values)} group labels for {len(X)} specimens")
    return pd.Series(values, index=X.index, name="group")


def _resolve_priors(
    priors: Union[None, dict, list, np.ndarray], classes: np.ndarray, sizes: pd.Series
) -> np.ndarray:
    if priors is None:
        return (sizes / sizes.sum()).to_numpy()

    if isinstance(priors, dict):
        missing = [c for c in classes if c not in priors]
        if missing:
            raise ValueError(f"No prior given for groups: {missing}")
        values = np.array([priors[c] for c in classes], dtype=float)
    else:
        values = np.asarray(priors, dtype=float)
        if len(values) != len(classes):
            raise ValueError(f"Expected {len(classes)} priors, got {len(values)}")

    if (values < 0).any() or not np.isclose(values.sum(), 1.0):
        raise ValueError("Priors must be non-negative and sum to 1")
    return values


def _scatter_matrices(X: np.ndarray, y: np.ndarray, classes: np.ndarray):
    """Within-group (W) and between-group (B) sums of squares and products."""
    overall_mean = X.mean(axis=0)
    n_vars = X.shape[1]
    W = np.zeros((n_vars, n_vars))
    B = np.zeros((n_vars, n_vars))
    for label in classes:
        members = X[y == label]
        deviation = members - members.mean(axis=0)
        W += deviation.T @ deviation
        offset = members.mean(axis=0) - overall_mean
        B += len(members) * np.outer(offset, offset)
    return W, B


def run_dfa(
    X: pd.DataFrame,
    groups,
    priors=None,
    min_group_size: int = 2,
    cross_validate: bool = True,
) -> DFAResult:
    """Runs a linear discriminant analysis with jackknifed classification.

    Args:
        X (pd.DataFrame): Specimens x measurements, no missing values.
        groups (pd.Series | array-like): Group of each specimen. Specimens
            without a group are left out.
        priors (dict | array-like, optional): Prior probability per group,
            in sorted group order when given as a sequence. Defaults to the
            group proportions.
        min_group_size (int, optional): Groups smaller than this are
            dropped. Defaults to 2, the least leave-one-out can work with.
        cross_validate (bool, optional): Compute the leave-one-out
            classification. Defaults to True.

    Returns:
        DFAResult: Discriminant axes, scores, loadings and classifications.

    Raises:
        ValueError: If measurements are missing, labels don't match the
            table, fewer than two groups are usable, or leave-one-out is
            requested with ``min_group_size`` below 2.
        RuntimeError: If the discriminant model fails to fit.
    """
    if cross_validate and min_group_size < 2:
        raise ValueError(
            "Leave-one-out cross-validation needs at least 2 specimens per group, "
            f"got min_group_size={min_group_size}"
        )
    if X.isna().any().any():
        raise ValueError("DFA requires a complete table; prune missing values first")

    y = _align_groups(X, groups)
    labelled = y.notna().to_numpy()
    if not labelled.all():
        logger.warning(f"Dropping {int((~labelled).sum())} specimens without a group")
    X = X[labelled]
    y = y[labelled]

    sizes = y.value_counts()
    small = sizes[sizes < min_group_size]
    if not small.empty:
        logger.warning(
            f"Dropping groups with fewer than {min_group_size} specimens: {small.to_dict()}"
        )
        keep = ~y.isin(small.index).to_numpy()
        X = X[keep]
        y = y[keep]

    classes = np.unique(y.to_numpy())
    if len(classes) < 2:
        raise ValueError(f"DFA needs at least 2 groups, found {len(classes)}")

    sizes = y.value_counts().reindex(classes)
    prior_values = _resolve_priors(priors, classes, sizes)

    logger.info(
        f"Running DFA on {len(X)} specimens x {X.shape[1]} variables, "
        f"{len(classes)} groups: {sizes.to_dict()}"
    )

    def make_model() -> LinearDiscriminantAnalysis:
        return LinearDiscriminantAnalysis(
            solver="svd", priors=prior_values, store_covariance=True
        )

    X_values = X.to_numpy()
    y_values = y.to_numpy()

    model = make_model()
    try:
        model.fit(X_values, y_values)
    except (ValueError, np.linalg.LinAlgError) as e:
        raise RuntimeError(f"Discriminant model failed to fit: {e}")

    raw_scores = model.transform(X_values)
    axes = component_names(raw_scores.shape[1], prefix="LD")

    scores = pd.DataFrame(raw_scores, index=X.index, columns=axes)
    scalings = pd.DataFrame(model.scalings_[:, : len(axes)], index=X.columns, columns=axes)
    proportion = pd.Series(model.explained_variance_ratio_[: len(axes)], index=axes)

    # Eigenvalues of W^-1 B for Wilks' lambda and canonical correlations
    W, B = _scatter_matrices(X_values, y_values, classes)
    try:
        eigvals = scipy.linalg.eigh(B, W, eigvals_only=True)
        eigvals = np.clip(np.sort(eigvals)[::-1][: len(axes)], 0, None)
    except (np.linalg.LinAlgError, ValueError):
        logger.warning("Within-group scatter matrix is singular; Wilks' lambda is undefined")
        eigvals = np.full(len(axes), np.nan)

    eigenvalues = pd.Series(eigvals, index=axes)
    canonical = np.sqrt(eigenvalues / (1 + eigenvalues))
    wilks = float(np.prod(1 / (1 + eigvals)))

    n_obs, n_vars, n_groups = len(X), X.shape[1], len(classes)
    chi_square = float(-(n_obs - 1 - (n_vars + n_groups) / 2) * np.log(wilks))
    chi_square_df = n_vars * (n_groups - 1)
    p_value = float(chi2.sf(chi_square, chi_square_df))

    correlations = np.corrcoef(np.hstack([X_values, raw_scores]), rowvar=False)
    structure = pd.DataFrame(
        correlations[:n_vars, n_vars:], index=X.columns, columns=axes
    )

    resubstitution = pd.Series(model.predict(X_values), index=X.index, name="predicted")

    jackknife = None
    posterior = None
    if cross_validate:
        logger.info(f"Jackknifing {n_obs} specimens (leave-one-out)")
        try:
            probabilities = cross_val_predict(
                make_model(), X_values, y_values, cv=LeaveOneOut(), method="predict_proba"
            )
        except (ValueError, np.linalg.LinAlgError) as e:
            raise RuntimeError(f"Leave-one-out cross-validation failed: {e}")
        posterior = pd.DataFrame(probabilities, index=X.index, columns=classes)
        jackknife = pd.Series(
            classes[probabilities.argmax(axis=1)], index=X.index, name="predicted"
        )

    result = DFAResult(
        classes=classes,
        priors=pd.Series(prior_values, index=classes),
        group_sizes=sizes,
        group_means=pd.DataFrame(model.means_, index=classes, columns=X.columns),
        scalings=scalings,
        proportion_of_trace=proportion,
        eigenvalues=eigenvalues,
        canonical_correlations=canonical,
        wilks_lambda=wilks,
        chi_square=chi_square,
        chi_square_df=chi_square_df,
        p_value=p_value,
        scores=scores,
        structure=structure,
        groups=y.rename("actual"),
        resubstitution=resubstitution,
        jackknife=jackknife,
        jackknife_posterior=posterior,
        model=model,
    )

    logger.info(f"Resubstitution accuracy: {result.accuracy(cross_validated=False):.1%}")
    if cross_validate:
        logger.info(f"Jackknifed accuracy: {result.accuracy():.1%}")

    return result
