import numpy as np
import pandas as pd
import pytest

from analysis.pca import run_pca


def test_correlation_pca_matches_correlation_eigenvalues(measurements):
    result = run_pca(measurements, use_correlation=True)

    expected = np.sort(np.linalg.eigvalsh(np.corrcoef(measurements.to_numpy(), rowvar=False)))[::-1]
    np.testing.assert_allclose(result.eigenvalues.to_numpy(), expected, rtol=1e-8, atol=1e-10)
    assert result.total_variance == pytest.approx(measurements.shape[1])


def test_covariance_pca_uses_divisor_n(measurements):
    result = run_pca(measurements, use_correlation=False)

    covariance = np.cov(measurements.to_numpy(), rowvar=False, bias=True)
    expected = np.sort(np.linalg.eigvalsh(covariance))[::-1]
    np.testing.assert_allclose(result.eigenvalues.to_numpy(), expected, rtol=1e-8, atol=1e-10)
    assert (result.scale == 1.0).all()


def test_proportions_and_cumulative(measurements):
    result = run_pca(measurements)

    assert result.proportion_variance.sum() == pytest.approx(1.0)
    assert result.cumulative_variance.iloc[-1] == pytest.approx(1.0)
    assert result.proportion_variance.is_monotonic_decreasing
    assert list(result.importance().index) == [
        "Standard deviation",
        "Proportion of Variance",
        "Cumulative Proportion",
    ]


def test_scores_are_uncorrelated_with_component_variances(measurements):
    result = run_pca(measurements)

    covariance = np.cov(result.scores.to_numpy(), rowvar=False, bias=True)
    np.testing.assert_allclose(np.diag(covariance), result.eigenvalues.to_numpy(), rtol=1e-8, atol=1e-10)
    off_diagonal = covariance - np.diag(np.diag(covariance))
    assert np.abs(off_diagonal).max() < 1e-8
    assert list(result.scores.index) == list(measurements.index)


def test_loadings_are_variable_component_correlations(measurements):
    result = run_pca(measurements)

    for variable in ["condylobasal_length", "toothrow_length"]:
        for component in ["PC1", "PC2"]:
            r = np.corrcoef(measurements[variable], result.scores[component])[0, 1]
            assert result.loadings.loc[variable, component] == pytest.approx(r, abs=1e-8)

    assert result.loadings.abs().max().max() <= 1.0


def test_rotation_is_orthonormal(measurements):
    result = run_pca(measurements)

    rotation = result.rotation.to_numpy()
    np.testing.assert_allclose(rotation.T @ rotation, np.eye(rotation.shape[1]), atol=1e-10)


def test_truncated_components(measurements):
    result = run_pca(measurements, n_components=2)

    assert list(result.scores.columns) == ["PC1", "PC2"]
    assert result.cumulative_variance.iloc[-1] < 1.0


def test_size_dominates_first_component(measurements):
    result = run_pca(measurements)

    loadings = result.loadings["PC1"]
    assert (np.sign(loadings) == np.sign(loadings.iloc[0])).all()
    assert result.proportion_variance["PC1"] > 0.5


def test_helpers(measurements):
    result = run_pca(measurements)

    top = result.top_loadings(1, n=3)
    assert len(top) == 3
    assert top.abs().is_monotonic_decreasing

    k = result.n_components_for(0.9)
    assert result.cumulative_variance.iloc[k - 1] >= 0.9 - 1e-12
    if k > 1:
        assert result.cumulative_variance.iloc[k - 2] < 0.9

    kaiser = result.kaiser_components()
    assert "PC1" in kaiser
    assert all(result.eigenvalues[name] > 1 for name in kaiser)

    text = result.summary()
    assert "correlation matrix" in text
    assert "Proportion of Variance" in text

    with pytest.raises(ValueError):
        result.top_loadings(99)


def test_missing_values_raise(measurements):
    broken = measurements.copy()
    broken.iloc[0, 0] = np.nan
    with pytest.raises(ValueError, match="complete"):
        run_pca(broken)


def test_constant_variable_raises_for_correlation(measurements):
    flat = measurements.assign(toothrow_length=12.0)
    with pytest.raises(ValueError, match="constant"):
        run_pca(flat, use_correlation=True)


def test_constant_variable_allowed_for_covariance(measurements):
    flat = measurements.assign(toothrow_length=12.0)
    result = run_pca(flat, use_correlation=False)

    assert (result.loadings.loc["toothrow_length"] == 0).all()


def test_too_small_table_raises():
    with pytest.raises(ValueError):
        run_pca(pd.DataFrame({"a": [1.0, 2.0, 3.0]}))


def test_invalid_component_count_raises(measurements):
    with pytest.raises(ValueError):
        run_pca(measurements, n_components=0)
    with pytest.raises(ValueError):
        run_pca(measurements, n_components=measurements.shape[1] + 1)


def test_threshold_beyond_retained_components(measurements):
    result = run_pca(measurements, n_components=1)

    with pytest.raises(ValueError, match="short of"):
        result.n_components_for(0.99)
    assert "not reached within 1 components" in result.summary()


def test_covariance_kaiser_cutoff_is_mean_eigenvalue(measurements):
    result = run_pca(measurements, use_correlation=False)
    cutoff = result.total_variance / measurements.shape[1]

    kaiser = result.kaiser_components()

    assert kaiser
    for name, value in result.eigenvalues.items():
        assert (name in kaiser) == (value > cutoff)
