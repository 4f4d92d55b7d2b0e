import numpy as np
import pytest

from sicomore.penalized import _group_lasso_path, group_lasso_cv, lasso_cv, one_se_alpha


@pytest.fixture
def sparse_problem():
    rng = np.random.default_rng(7)
    Z = rng.normal(size=(100, 5))
    y = 5.0 + 3.0 * Z[:, 0] - 2.0 * Z[:, 1] + 0.5 * rng.normal(size=100)
    return Z, y


def test_lasso_cv_recovers_active_columns(sparse_problem):
    Z, y = sparse_problem
    fit = lasso_cv(Z, y, n_alphas=30)

    assert {0, 1} <= set(fit.support.tolist())
    assert fit.coef[0] == pytest.approx(3.0, abs=0.5)
    assert fit.coef[1] == pytest.approx(-2.0, abs=0.5)
    assert fit.intercept == pytest.approx(5.0, abs=0.5)
    assert fit.alpha == fit.alpha_min
    assert fit.alpha_1se >= fit.alpha_min
    assert fit.cv_frame().shape == (30, 3)
    assert np.all(np.diff(fit.alphas) < 0)


def test_lasso_cv_one_standard_error_rule(sparse_problem):
    Z, y = sparse_problem
    fit = lasso_cv(Z, y, choice="lambda.1se", n_alphas=30)

    assert fit.alpha == fit.alpha_1se
    assert fit.choice == "lambda.1se"
    assert fit.coef[0] > 0


def test_lasso_cv_large_weight_excludes_column(sparse_problem):
    Z, y = sparse_problem
    fit = lasso_cv(Z, y, weights=[1e6, 1.0, 1.0, 1.0, 1.0], n_alphas=30)

    assert fit.coef[0] == 0.0
    assert fit.coef[1] < 0


def test_lasso_cv_predict_matches_coefficients(sparse_problem):
    Z, y = sparse_problem
    fit = lasso_cv(Z, y, n_alphas=30)

    np.testing.assert_allclose(fit.predict(Z), Z @ fit.coef + fit.intercept)
    assert np.corrcoef(fit.predict(Z), y)[0, 1] > 0.95


@pytest.mark.parametrize("kwargs", [
    {'y': np.ones(100)},
    {'weights': [1.0, 1.0, 0.0, 1.0, 1.0]},
    {'weights': [1.0, 1.0]},
    {'choice': 'lambda.best'},
    {'y': np.arange(50.0)},
])
def test_lasso_cv_rejects_invalid_inputs(sparse_problem, kwargs):
    Z, y = sparse_problem
    params = {'y': y, **kwargs}
    with pytest.raises(ValueError):
        lasso_cv(Z, **params)


def test_one_se_alpha_picks_largest_alpha_within_one_standard_error():
    alphas = np.array([1.0, 0.5, 0.25, 0.1])
    cv_mean = np.array([4.0, 2.0, 1.9, 1.8])
    cv_sd = np.array([0.1, 0.1, 0.1, 0.15])

    assert one_se_alpha(alphas, cv_mean, cv_sd) == 0.25


def test_group_lasso_selects_active_group():
    rng = np.random.default_rng(11)
    X = rng.normal(size=(100, 6))
    y = X[:, 0] + X[:, 1] + 0.3 * rng.normal(size=100)
    groups = [[0, 1], [2, 3], [4, 5]]

    fit = group_lasso_cv(X, y, groups, n_lambdas=20)
    norms = [np.linalg.norm(c) for c in fit.group_coef]

    assert norms[0] > 0
    assert norms[0] > 5 * max(norms[1], norms[2])
    assert len(fit.coef) == 6
    columns = np.concatenate(groups)
    assert np.corrcoef(X[:, columns] @ fit.coef + fit.intercept, y)[0, 1] > 0.9


def test_group_lasso_path_is_null_above_lambda_max():
    rng = np.random.default_rng(5)
    X = rng.normal(size=(40, 4))
    X -= X.mean(axis=0)
    y = X[:, 0] + rng.normal(size=40)
    y -= y.mean()
    blocks = [slice(0, 2), slice(2, 4)]
    weights = np.sqrt([2.0, 2.0])
    lam_max = max(np.linalg.norm(X[:, b].T @ y) / (40 * w) for b, w in zip(blocks, weights))

    path = _group_lasso_path(X, y, blocks, weights, np.array([lam_max * 1.01, lam_max * 0.1]), 5000, 1e-8)

    assert np.all(path[0] == 0)
    assert np.any(path[1] != 0)


def test_group_lasso_handles_overlapping_groups():
    rng = np.random.default_rng(2)
    X = rng.normal(size=(80, 4))
    y = X[:, 0] + X[:, 1] + 0.3 * rng.normal(size=80)

    fit = group_lasso_cv(X, y, [[0], [0, 1], [0, 1, 2, 3]], n_lambdas=15)

    assert len(fit.group_coef) == 3
    assert [c.size for c in fit.group_coef] == [1, 2, 4]


def test_group_lasso_rejects_out_of_range_group():
    X = np.random.default_rng(0).normal(size=(30, 3))
    with pytest.raises(ValueError):
        group_lasso_cv(X, X[:, 0], [[0, 5]])
