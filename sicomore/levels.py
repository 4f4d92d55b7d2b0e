# sicomore/levels.py
"""
Level evaluator for a single hierarchy.

Searches the cut levels of a dendrogram of variables for the group structure
that best explains the phenotype. Each candidate group is compressed into one
supervariable and a sparse linear model is fit; cross-validation picks both the
sparsity parameter and the retained groups. Four selection methods are offered:

- hcar: one Lasso per cut level, the level with the smallest CV error wins.
- sicomore: one weighted Lasso on the supervariables of every node met over all
  candidate levels; a node is penalized by 1/sqrt(gap), so nodes that persist
  long in the dendrogram are easier to select.
- rho-sicomore: as sicomore, weights additionally scaled by sqrt(group size).
- mlgl: multi-layer group Lasso on the original variables, one overlapping
  group per node, weights sqrt(group size).
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .compression import compress, compress_frame
from .config import CHOICES, COMPRESSION_METHODS, SELECTION_METHODS, SicomoreConfig
from .hierarchy import Hierarchy, build_hierarchy
from .penalized import group_lasso_cv, lasso_cv
from .utils import as_matrix, as_response, to_serializable

logger = logging.getLogger(__name__)


@dataclass
class HierLevelResult:
    """
    Groups selected in one hierarchy and the model fitted on them.

    Attributes:
        method (str): Selection method used.
        choice (str): Rule used to pick the sparsity parameter.
        compression (str): Compression applied to each group.
        variables (List[str]): Names of the variables of the matrix.
        levels (List[int]): Numbers of groups evaluated.
        groups (List[np.ndarray]): Column indices of each selected group.
        group_names (List[str]): Name of each selected group.
        nodes (List[int]): Dendrogram node of each selected group.
        coefficients (pd.Series): Coefficient of each selected supervariable.
        intercept (float): Intercept of the fitted model.
        alpha (float): Retained sparsity parameter.
        cv_curves (Dict[str, pd.DataFrame]): Cross-validation error curve of
            every fitted model ('level_<k>' for hcar, 'multilayer' otherwise).
        cv_errors (pd.Series): CV error at the retained alpha of every curve.
        selected_level (Optional[int]): Number of groups of the retained cut
            (hcar only).
        compressed (pd.DataFrame): Supervariables of the selected groups.
        name (Optional[str]): Name of the predictor matrix.
    """
    method: str
    choice: str
    compression: str
    variables: List[str]
    levels: List[int]
    groups: List[np.ndarray]
    group_names: List[str]
    nodes: List[int]
    coefficients: pd.Series
    intercept: float
    alpha: float
    cv_curves: Dict[str, pd.DataFrame]
    cv_errors: pd.Series
    selected_level: Optional[int] = None
    compressed: pd.DataFrame = field(default_factory=pd.DataFrame)
    name: Optional[str] = None

    @property
    def n_groups(self) -> int:
        return len(self.groups)

    def get_grp(self) -> List[List[str]]:
        """Variable names of each selected group."""
        return [[self.variables[i] for i in group] for group in self.groups]

    def to_dict(self) -> Dict:
        return to_serializable({
            'name': self.name,
            'method': self.method,
            'choice': self.choice,
            'compression': self.compression,
            'levels': self.levels,
            'selected_level': self.selected_level,
            'alpha': self.alpha,
            'intercept': self.intercept,
            'cv_errors': self.cv_errors,
            'groups': [
                {'name': group_name, 'node': node, 'variables': variables,
                 'coefficient': self.coefficients[group_name]}
                for group_name, node, variables in zip(self.group_names, self.nodes, self.get_grp())
            ],
        })


def _distinct_nodes(hierarchy: Hierarchy, levels: Sequence[int]) -> List[int]:
    """Every node met when cutting at the given levels, each listed once."""
    seen = []
    for k in levels:
        for node in hierarchy.nodes_at(k):
            if node not in seen:
                seen.append(node)
    return seen


def _check_levels(levels: Optional[Sequence[int]], hierarchy: Hierarchy, config: SicomoreConfig) -> List[int]:
    if levels is None:
        return hierarchy.candidate_levels(config.n_levels, config.max_groups)
    checked = sorted({int(k) for k in levels})
    if not checked:
        raise ValueError("At least one level must be evaluated.")
    for k in checked:
        if not 1 <= k <= hierarchy.n_leaves:
            raise ValueError(f"Level {k} is outside [1, {hierarchy.n_leaves}].")
    return checked


def _solver_kwargs(config: SicomoreConfig) -> Dict:
    return {
        'eps': config.eps,
        'n_folds': config.n_folds,
        'random_state': config.random_state,
        'max_iter': config.max_iter,
        'tol': config.tol,
    }


def _select_hcar(matrix, response, hierarchy, levels, choice, compression, config):
    fits = {}
    best = None
    for k in levels:
        nodes = hierarchy.nodes_at(k)
        Z = compress(matrix, [hierarchy.members(node) for node in nodes], compression)
        fit = lasso_cv(Z, response, choice=choice, n_alphas=config.n_alphas, n_jobs=config.n_jobs,
                       **_solver_kwargs(config))
        fits[k] = (nodes, fit)
        logger.info(f"Level {k}: CV error {fit.cv_error:.4g}, {fit.support.size} group(s) selected")
        if best is None or fit.cv_error < fits[best][1].cv_error:
            best = k

    nodes, fit = fits[best]
    selected = fit.support
    curves = {f"level_{k}": f.cv_frame() for k, (_, f) in fits.items()}
    errors = pd.Series({f"level_{k}": f.cv_error for k, (_, f) in fits.items()})
    return [nodes[j] for j in selected], fit.coef[selected], fit, curves, errors, best


def _select_multilayer(matrix, response, hierarchy, levels, choice, compression, config, size_weighted):
    nodes = _distinct_nodes(hierarchy, levels)
    groups = [hierarchy.members(node) for node in nodes]
    Z = compress(matrix, groups, compression)

    weights = 1.0 / np.sqrt([hierarchy.gap(node) for node in nodes])
    if size_weighted:
        weights *= np.sqrt([g.size for g in groups])
    weights /= weights.mean()

    fit = lasso_cv(Z, response, weights=weights, choice=choice, n_alphas=config.n_alphas,
                   n_jobs=config.n_jobs, **_solver_kwargs(config))
    selected = fit.support
    logger.info(f"Multi-layer fit over {len(nodes)} nodes: CV error {fit.cv_error:.4g}, "
                f"{selected.size} group(s) selected")
    return ([nodes[j] for j in selected], fit.coef[selected], fit,
            {'multilayer': fit.cv_frame()}, pd.Series({'multilayer': fit.cv_error}), None)


def _select_mlgl(matrix, response, hierarchy, levels, choice, config):
    nodes = _distinct_nodes(hierarchy, levels)
    groups = [hierarchy.members(node) for node in nodes]
    fit = group_lasso_cv(matrix, response, groups, choice=choice, n_lambdas=config.n_alphas,
                         **_solver_kwargs(config))
    active = [j for j, coef in enumerate(fit.group_coef) if np.any(coef != 0)]
    # A mean supervariable with coefficient c spreads c / |g| on each member
    totals = np.array([fit.group_coef[j].sum() for j in active])
    logger.info(f"Multi-layer group lasso over {len(nodes)} nodes: CV error {fit.cv_error:.4g}, "
                f"{len(active)} group(s) selected")
    return ([nodes[j] for j in active], totals, fit,
            {'multilayer': fit.cv_frame()}, pd.Series({'multilayer': fit.cv_error}), None)


def get_hier_level(X, y, hierarchy: Optional[Hierarchy] = None, method: Optional[str] = None,
                   choice: Optional[str] = None, levels: Optional[Sequence[int]] = None,
                   compression: Optional[str] = None, config: Optional[SicomoreConfig] = None,
                   name: Optional[str] = None) -> HierLevelResult:
    """
    Find the groups of a hierarchy of variables that best explain the response.

    Args:
        X: Predictor matrix (samples x variables), ndarray or DataFrame.
        y: Response vector.
        hierarchy: Dendrogram of the columns of X. Built from `config` if None.
        method: 'sicomore', 'rho-sicomore', 'mlgl' or 'hcar' (default from config).
        choice: 'lambda.min' or 'lambda.1se' (default from config).
        levels: Numbers of groups to evaluate. Defaults to a geometric grid of
            `config.n_levels` levels.
        compression: 'mean', 'median' or 'pca' (default from config). mlgl always
            uses 'mean', the compression its group coefficients refer to.
        config: Pipeline configuration.
        name: Name of the matrix, used to prefix group names.

    Returns:
        HierLevelResult: Selected groups, coefficients and CV error curves.

    Raises:
        ValueError: On inconsistent inputs or unknown options.
    """
    config = config or SicomoreConfig()
    method = method or config.method
    choice = choice or config.choice
    compression = compression or config.compression
    if method not in SELECTION_METHODS:
        raise ValueError(f"Unknown selection method '{method}'. Expected one of {SELECTION_METHODS}")
    if choice not in CHOICES:
        raise ValueError(f"Unknown choice '{choice}'. Expected one of {CHOICES}")
    if compression not in COMPRESSION_METHODS:
        raise ValueError(f"Unknown compression '{compression}'. Expected one of {COMPRESSION_METHODS}")
    if method == 'mlgl' and compression != 'mean':
        # Group coefficients of mlgl are those of the mean supervariable
        warnings.warn(f"mlgl reports coefficients of mean supervariables; ignoring compression '{compression}'.")
        compression = 'mean'

    matrix, variables = as_matrix(X, name=name or "X")
    response = as_response(y, matrix.shape[0])
    index = X.index if isinstance(X, pd.DataFrame) else None

    if hierarchy is None:
        hierarchy = build_hierarchy(matrix, method=config.linkage_method, metric=config.distance_metric,
                                    constrained=config.constrained, standardize=config.standardize,
                                    labels=variables)
    elif hierarchy.n_leaves != matrix.shape[1]:
        raise ValueError(f"Hierarchy has {hierarchy.n_leaves} leaves but the matrix has "
                         f"{matrix.shape[1]} variables.")
    levels = _check_levels(levels, hierarchy, config)
    logger.info(f"Evaluating {len(levels)} level(s) of {name or 'X'} with method '{method}': {levels}")

    if method == 'hcar':
        nodes, coefs, fit, curves, errors, level = _select_hcar(
            matrix, response, hierarchy, levels, choice, compression, config)
    elif method == 'mlgl':
        nodes, coefs, fit, curves, errors, level = _select_mlgl(
            matrix, response, hierarchy, levels, choice, config)
    else:
        nodes, coefs, fit, curves, errors, level = _select_multilayer(
            matrix, response, hierarchy, levels, choice, compression, config,
            size_weighted=(method == 'rho-sicomore'))

    prefix = f"{name}." if name else ""
    group_names = [f"{prefix}G{node}" for node in nodes]
    groups = [hierarchy.members(node) for node in nodes]
    compressed = compress_frame(matrix, groups, group_names, compression, index=index)

    return HierLevelResult(
        method=method,
        choice=choice,
        compression=compression,
        variables=variables,
        levels=levels,
        groups=groups,
        group_names=group_names,
        nodes=list(nodes),
        coefficients=pd.Series(np.asarray(coefs, dtype=float), index=group_names, dtype=float),
        intercept=float(fit.intercept),
        alpha=float(fit.alpha),
        cv_curves=curves,
        cv_errors=errors,
        selected_level=level,
        compressed=compressed,
        name=name,
    )
