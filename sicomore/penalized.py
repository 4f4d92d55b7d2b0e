# sicomore/penalized.py
"""
Sparse linear regression with cross-validated sparsity parameter.

Two solvers are provided:
1. A (weighted) Lasso on compressed supervariables, built on scikit-learn's
   LassoCV. Penalty weights are applied by rescaling the standardized columns.
2. An overlapping group Lasso on the original variables (latent duplication of
   variables shared by several groups), solved by FISTA with warm starts.

Both return a PenalizedFit holding the cross-validation error curve and the
coefficients on the original scale of the inputs.
"""

import logging
import warnings
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import Lasso, LassoCV
from sklearn.model_selection import KFold

from .config import CHOICES

logger = logging.getLogger(__name__)


@dataclass
class PenalizedFit:
    """
    Result of a cross-validated penalized fit.

    Attributes:
        alphas (np.ndarray): Sparsity parameter grid, in decreasing order.
        cv_mean (np.ndarray): Mean squared prediction error over folds, per alpha.
        cv_sd (np.ndarray): Standard error of the fold errors, per alpha.
        alpha_min (float): Alpha minimizing the mean CV error.
        alpha_1se (float): Largest alpha within one standard error of the minimum.
        alpha (float): Alpha retained according to `choice`.
        cv_error (float): Mean CV error at the retained alpha.
        coef (np.ndarray): Coefficients on the original scale of the inputs.
        intercept (float): Intercept on the original scale.
        choice (str): 'lambda.min' or 'lambda.1se'.
        group_coef (Optional[List[np.ndarray]]): Per-group coefficient vectors
            (group Lasso only).
    """
    alphas: np.ndarray
    cv_mean: np.ndarray
    cv_sd: np.ndarray
    alpha_min: float
    alpha_1se: float
    alpha: float
    cv_error: float
    coef: np.ndarray
    intercept: float
    choice: str
    group_coef: Optional[List[np.ndarray]] = None

    @property
    def support(self) -> np.ndarray:
        """Indices of the non-zero coefficients."""
        return np.flatnonzero(self.coef != 0)

    def cv_frame(self) -> pd.DataFrame:
        return pd.DataFrame({'alpha': self.alphas, 'cv_mean': self.cv_mean, 'cv_sd': self.cv_sd})

    def predict(self, Z: np.ndarray) -> np.ndarray:
        return np.asarray(Z, dtype=float) @ self.coef + self.intercept


def one_se_alpha(alphas: np.ndarray, cv_mean: np.ndarray, cv_sd: np.ndarray) -> float:
    """Largest alpha whose mean CV error is within one standard error of the minimum."""
    i_min = int(np.argmin(cv_mean))
    threshold = cv_mean[i_min] + cv_sd[i_min]
    return float(np.max(np.asarray(alphas)[cv_mean <= threshold]))


def _check_inputs(Z: np.ndarray, y: np.ndarray, choice: str, n_folds: int):
    Z = np.asarray(Z, dtype=float)
    y = np.asarray(y, dtype=float).ravel()
    if Z.ndim != 2:
        raise ValueError(f"Design matrix must be 2-D, got {Z.ndim} dimension(s).")
    if Z.shape[0] != y.size:
        raise ValueError(f"Design matrix has {Z.shape[0]} rows but response has {y.size} values.")
    if Z.shape[1] == 0:
        raise ValueError("No candidate variable to fit.")
    if choice not in CHOICES:
        raise ValueError(f"Unknown choice '{choice}'. Expected one of {CHOICES}")
    if y.size < n_folds:
        raise ValueError(f"Cannot run {n_folds}-fold cross-validation on {y.size} samples.")
    if np.ptp(y) == 0:
        raise ValueError("Response has zero variance.")
    return Z, y


def _check_weights(weights: Optional[Sequence[float]], size: int) -> np.ndarray:
    if weights is None:
        return np.ones(size)
    w = np.asarray(weights, dtype=float).ravel()
    if w.shape != (size,):
        raise ValueError(f"Expected {size} penalty weights, got {w.size}.")
    if not np.all(np.isfinite(w)) or np.any(w <= 0):
        raise ValueError("Penalty weights must be finite and strictly positive.")
    return w


def _standardization(Z: np.ndarray):
    mu = Z.mean(axis=0)
    sd = Z.std(axis=0)
    sd[sd == 0] = 1.0
    return mu, sd


def _cv_summary(errors: np.ndarray):
    """Mean and standard error over folds of an (n_alphas, n_folds) error matrix."""
    n_folds = errors.shape[1]
    return errors.mean(axis=1), errors.std(axis=1, ddof=1) / np.sqrt(n_folds)


def lasso_cv(Z: np.ndarray, y: np.ndarray, weights: Optional[Sequence[float]] = None,
             choice: str = 'lambda.min', n_alphas: int = 50, eps: float = 1e-3, n_folds: int = 5,
             random_state: Optional[int] = 42, max_iter: int = 10000, tol: float = 1e-4,
             n_jobs: Optional[int] = None) -> PenalizedFit:
    """
    Weighted Lasso with the sparsity parameter chosen by K-fold cross-validation.

    Columns are standardized; column j is penalized by `alpha * weights[j]`.

    Args:
        Z: Design matrix (samples x candidate variables).
        y: Response vector.
        weights: Optional positive penalty weight per column.
        choice: 'lambda.min' or 'lambda.1se'.
        n_alphas: Length of the alpha grid.
        eps: Ratio between the smallest and the largest alpha.
        n_folds: Number of cross-validation folds.
        random_state: Seed of the fold assignment.
        max_iter: Maximum coordinate descent iterations.
        tol: Coordinate descent tolerance.
        n_jobs: Parallel jobs used by LassoCV.

    Returns:
        PenalizedFit: CV curve and coefficients on the original scale.

    Raises:
        ValueError: If inputs are inconsistent or the response is constant.
    """
    Z, y = _check_inputs(Z, y, choice, n_folds)
    w = _check_weights(weights, Z.shape[1])
    mu, sd = _standardization(Z)
    Zw = (Z - mu) / sd / w

    alpha_max = float(np.max(np.abs(Zw.T @ (y - y.mean())))) / y.size
    if alpha_max <= 0:
        raise ValueError("No candidate variable varies across samples.")
    grid = np.geomspace(alpha_max, alpha_max * eps, num=n_alphas)

    folds = KFold(n_splits=n_folds, shuffle=True, random_state=random_state)
    model = LassoCV(alphas=grid, cv=folds, max_iter=max_iter, tol=tol, n_jobs=n_jobs)
    model.fit(Zw, y)

    alphas = np.asarray(model.alphas_)
    cv_mean, cv_sd = _cv_summary(np.asarray(model.mse_path_))
    alpha_min = float(alphas[int(np.argmin(cv_mean))])
    alpha_1se = one_se_alpha(alphas, cv_mean, cv_sd)

    if choice == 'lambda.min':
        alpha = alpha_min
        coef_w, intercept_w = model.coef_, float(model.intercept_)
    else:
        alpha = alpha_1se
        refit = Lasso(alpha=alpha, max_iter=max_iter, tol=tol).fit(Zw, y)
        coef_w, intercept_w = refit.coef_, float(refit.intercept_)

    coef = np.asarray(coef_w) / w / sd
    intercept = intercept_w - float(mu @ coef)
    cv_error = float(cv_mean[int(np.argmin(np.abs(alphas - alpha)))])
    logger.debug(f"Lasso CV ({choice}): alpha={alpha:.4g}, {np.count_nonzero(coef)}/{coef.size} "
                 f"non-zero coefficients, CV error {cv_error:.4g}")

    return PenalizedFit(alphas=alphas, cv_mean=cv_mean, cv_sd=cv_sd, alpha_min=alpha_min,
                        alpha_1se=alpha_1se, alpha=alpha, cv_error=cv_error, coef=coef,
                        intercept=intercept, choice=choice)


def _group_soft_threshold(beta: np.ndarray, blocks: List[slice], thresholds: np.ndarray) -> np.ndarray:
    out = beta.copy()
    for block, threshold in zip(blocks, thresholds):
        norm = np.linalg.norm(beta[block])
        if norm <= threshold:
            out[block] = 0.0
        else:
            out[block] *= 1.0 - threshold / norm
    return out


def _fista(gram: np.ndarray, xty: np.ndarray, blocks: List[slice], thresholds: np.ndarray,
           beta: np.ndarray, lipschitz: float, max_iter: int, tol: float) -> np.ndarray:
    z = beta.copy()
    t = 1.0
    for _ in range(max_iter):
        new = _group_soft_threshold(z - (gram @ z - xty) / lipschitz, blocks, thresholds)
        t_next = (1.0 + np.sqrt(1.0 + 4.0 * t * t)) / 2.0
        z = new + ((t - 1.0) / t_next) * (new - beta)
        delta = np.linalg.norm(new - beta)
        beta, t = new, t_next
        if delta <= tol * max(1.0, np.linalg.norm(beta)):
            break
    else:
        warnings.warn(f"Group lasso did not converge after {max_iter} iterations.", ConvergenceWarning)
    return beta


def _group_lasso_path(X: np.ndarray, y: np.ndarray, blocks: List[slice], weights: np.ndarray,
                      lambdas: np.ndarray, max_iter: int, tol: float) -> np.ndarray:
    """Coefficient path (n_lambdas x n_columns) for centered X and y, warm-started."""
    n = X.shape[0]
    gram = X.T @ X / n
    xty = X.T @ y / n
    lipschitz = float(np.linalg.eigvalsh(gram)[-1]) if gram.size else 1.0
    if lipschitz <= 0:
        lipschitz = 1.0
    beta = np.zeros(X.shape[1])
    path = np.zeros((len(lambdas), X.shape[1]))
    for i, lam in enumerate(lambdas):
        beta = _fista(gram, xty, blocks, lam * weights / lipschitz, beta, lipschitz, max_iter, tol)
        path[i] = beta
    return path


def group_lasso_cv(X: np.ndarray, y: np.ndarray, groups: Sequence[Sequence[int]],
                   weights: Optional[Sequence[float]] = None, choice: str = 'lambda.min',
                   n_lambdas: int = 50, eps: float = 1e-3, n_folds: int = 5,
                   random_state: Optional[int] = 42, max_iter: int = 10000,
                   tol: float = 1e-4) -> PenalizedFit:
    """
    Overlapping group Lasso with the penalty chosen by K-fold cross-validation.

    Each group receives its own copy of its variables so that groups may share
    variables (nested nodes of a dendrogram). The penalty is
    `lambda * sum_g weights[g] * ||beta_g||_2` with default weights sqrt(|g|).

    Returns:
        PenalizedFit: `coef` lists the coefficients of the duplicated design
        (groups concatenated in order) and `group_coef` splits them per group.
    """
    X, y = _check_inputs(X, y, choice, n_folds)
    groups = [np.asarray(g, dtype=int) for g in groups]
    if not groups:
        raise ValueError("No group to fit.")
    for j, g in enumerate(groups):
        if g.size == 0:
            raise ValueError(f"Group {j} is empty.")
        if g.min() < 0 or g.max() >= X.shape[1]:
            raise ValueError(f"Group {j} refers to a column outside the {X.shape[1]} available.")
    w = _check_weights(weights if weights is not None else [np.sqrt(g.size) for g in groups], len(groups))

    mu, sd = _standardization(X)
    Xs = (X - mu) / sd
    columns = np.concatenate(groups)
    Xe = Xs[:, columns]
    bounds = np.cumsum([0] + [g.size for g in groups])
    blocks = [slice(bounds[j], bounds[j + 1]) for j in range(len(groups))]

    n = y.size
    yc = y - y.mean()
    lam_max = max(np.linalg.norm(Xe[:, b].T @ yc) / (n * wj) for b, wj in zip(blocks, w))
    if lam_max <= 0:
        raise ValueError("No candidate variable varies across samples.")
    lambdas = np.geomspace(lam_max, lam_max * eps, num=n_lambdas)

    errors = np.zeros((n_lambdas, n_folds))
    folds = KFold(n_splits=n_folds, shuffle=True, random_state=random_state)
    for f, (train, test) in enumerate(folds.split(Xe)):
        x_mean = Xe[train].mean(axis=0)
        y_mean = y[train].mean()
        path = _group_lasso_path(Xe[train] - x_mean, y[train] - y_mean, blocks, w, lambdas, max_iter, tol)
        pred = y_mean + (Xe[test] - x_mean) @ path.T
        errors[:, f] = ((y[test][:, None] - pred) ** 2).mean(axis=0)

    cv_mean, cv_sd = _cv_summary(errors)
    alpha_min = float(lambdas[int(np.argmin(cv_mean))])
    alpha_1se = one_se_alpha(lambdas, cv_mean, cv_sd)
    alpha = alpha_min if choice == 'lambda.min' else alpha_1se
    stop = int(np.argmin(np.abs(lambdas - alpha)))

    beta = _group_lasso_path(Xe, yc, blocks, w, lambdas[:stop + 1], max_iter, tol)[-1]
    coef = beta / sd[columns]
    group_coef = [coef[b] for b in blocks]
    intercept = float(y.mean() - mu[columns] @ coef)
    logger.debug(f"Group lasso CV ({choice}): lambda={alpha:.4g}, "
                 f"{sum(np.any(c != 0) for c in group_coef)}/{len(groups)} active groups")

    return PenalizedFit(alphas=lambdas, cv_mean=cv_mean, cv_sd=cv_sd, alpha_min=alpha_min,
                        alpha_1se=alpha_1se, alpha=alpha, cv_error=float(cv_mean[stop]), coef=coef,
                        intercept=intercept, choice=choice, group_coef=group_coef)
