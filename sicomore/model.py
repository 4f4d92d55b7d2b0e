# sicomore/model.py
"""
Multi-dataset orchestration of SICOMORE.

Given a phenotype and several predictor matrices measured on the same samples,
SICOMORE selects compressed groups of variables in each matrix (one hierarchy
per matrix), then jointly models the main effects of the selected groups and
the pairwise interactions between groups of different matrices. Interaction
significance is assessed with ordinary least squares on each candidate term.
"""

import logging
import warnings
from itertools import combinations
from typing import Dict, List, Optional, Sequence, Union

import networkx as nx
import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.stats.multitest import multipletests

from .config import SicomoreConfig
from .compression import compress
from .hierarchy import Hierarchy, build_hierarchy
from .levels import HierLevelResult, get_hier_level
from .penalized import PenalizedFit, lasso_cv
from .utils import as_matrix, as_response, to_serializable

logger = logging.getLogger(__name__)


def _ols_pvalue(y: np.ndarray, columns: Sequence[np.ndarray], term: str) -> float:
    """P-value of the last column in an OLS fit of y on an intercept and the columns."""
    design = sm.add_constant(np.column_stack(columns), has_constant='add')
    with warnings.catch_warnings():
        # statsmodels warns on divide-by-zero for perfect fits; the result is checked below
        warnings.simplefilter('ignore', RuntimeWarning)
        result = sm.OLS(y, design).fit()
        p_value = float(result.pvalues[-1])
    if not np.isfinite(p_value) or result.df_resid <= 0:
        warnings.warn(f"OLS test of {term} is degenerate; reporting p-value 1.")
        return 1.0
    return p_value


class SicomoreModel:
    """
    Result of a SICOMORE fit.

    Holds the groups selected in every predictor matrix, the joint model of
    main and interaction effects, and the significance of every term.

    Attributes:
        names (List[str]): Name of each predictor matrix.
        levels (List[HierLevelResult]): Group selection of each matrix.
        hierarchies (List[Hierarchy]): Dendrogram of each matrix.
        coefficients (pd.Series): Coefficient of every main and interaction term.
        intercept (float): Intercept of the joint model.
        fit (Optional[PenalizedFit]): Cross-validated fit of the joint model.
        main_effects (pd.DataFrame): One row per selected group.
        interactions (pd.DataFrame): One row per interaction term.
        config (SicomoreConfig): Configuration used.
    """

    def __init__(self, names: List[str], levels: List[HierLevelResult], hierarchies: List[Hierarchy],
                 coefficients: pd.Series, intercept: float, fit: Optional[PenalizedFit],
                 main_effects: pd.DataFrame, interactions: pd.DataFrame, centers: Dict[str, float],
                 config: SicomoreConfig):
        self.names = names
        self.levels = levels
        self.hierarchies = hierarchies
        self.coefficients = coefficients
        self.intercept = intercept
        self.fit = fit
        self.main_effects = main_effects
        self.interactions = interactions
        self.config = config
        self._centers = centers

    def _dataset_index(self, dataset: Union[int, str]) -> int:
        if isinstance(dataset, str):
            if dataset not in self.names:
                raise ValueError(f"Unknown dataset '{dataset}'. Expected one of {self.names}")
            return self.names.index(dataset)
        if not 0 <= int(dataset) < len(self.names):
            raise ValueError(f"Dataset index {dataset} is outside [0, {len(self.names) - 1}].")
        return int(dataset)

    def get_grp(self, dataset: Optional[Union[int, str]] = None):
        """
        Selected groups as lists of variable names.

        Args:
            dataset: Index or name of a predictor matrix. None returns the
                groups of every matrix, one list per matrix.
        """
        if dataset is None:
            return [level.get_grp() for level in self.levels]
        return self.levels[self._dataset_index(dataset)].get_grp()

    def _pair_matrix(self, i: Union[int, str], j: Union[int, str], column: str) -> pd.DataFrame:
        i, j = self._dataset_index(i), self._dataset_index(j)
        if i == j:
            raise ValueError("Interactions are only modelled between different datasets.")
        first, second = min(i, j), max(i, j)
        rows = self.levels[first].group_names
        cols = self.levels[second].group_names
        subset = self.interactions[(self.interactions['dataset_i'] == self.names[first])
                                   & (self.interactions['dataset_j'] == self.names[second])]
        matrix = pd.DataFrame(0.0, index=pd.Index(rows, name=self.names[first]),
                              columns=pd.Index(cols, name=self.names[second]))
        for row in subset.itertuples(index=False):
            matrix.loc[row.group_i, row.group_j] = getattr(row, column)
        return matrix if i < j else matrix.T

    def get_significance(self, i: Union[int, str] = 0, j: Union[int, str] = 1, kind: str = 'interaction'):
        """
        Significance (1 - p-value) of the estimated effects.

        Args:
            i: First dataset (index or name).
            j: Second dataset, ignored for main effects.
            kind: 'interaction' for the matrix of interaction significances
                between the groups of i (rows) and j (columns), 'main' for the
                main effects of the groups of i.

        Returns:
            pd.DataFrame for interactions, pd.Series for main effects. Values
            are computed from corrected p-values when a correction is configured.
        """
        if kind == 'main':
            name = self.names[self._dataset_index(i)]
            subset = self.main_effects[self.main_effects['dataset'] == name]
            return pd.Series(subset['significance'].to_numpy(), index=subset['group'].to_list(),
                             name=name, dtype=float)
        if kind != 'interaction':
            raise ValueError(f"Unknown kind '{kind}'. Expected 'interaction' or 'main'.")
        return self._pair_matrix(i, j, 'significance')

    def interaction_matrix(self, i: Union[int, str] = 0, j: Union[int, str] = 1) -> pd.DataFrame:
        """Estimated interaction coefficients between the groups of i (rows) and j (columns)."""
        return self._pair_matrix(i, j, 'coefficient')

    def _design(self, blocks: List[np.ndarray]) -> np.ndarray:
        columns = [blocks[k][:, a] for k, level in enumerate(self.levels) for a in range(level.n_groups)]
        for row in self.interactions.itertuples(index=False):
            k_i, k_j = self.names.index(row.dataset_i), self.names.index(row.dataset_j)
            a = self.levels[k_i].group_names.index(row.group_i)
            b = self.levels[k_j].group_names.index(row.group_j)
            columns.append((blocks[k_i][:, a] - self._centers[row.group_i])
                           * (blocks[k_j][:, b] - self._centers[row.group_j]))
        return np.column_stack(columns) if columns else np.empty((blocks[0].shape[0], 0))

    def predict(self, X_list: Sequence) -> np.ndarray:
        """
        Predict the phenotype of new samples.

        The stored groups are compressed on the new matrices, so only
        data-independent compressions ('mean', 'median') are supported.
        """
        X_list = [X_list] if isinstance(X_list, (np.ndarray, pd.DataFrame)) else list(X_list)
        if len(X_list) != len(self.levels):
            raise ValueError(f"Expected {len(self.levels)} predictor matrices, got {len(X_list)}.")
        blocks = []
        for X, level in zip(X_list, self.levels):
            if level.compression == 'pca':
                raise ValueError("Prediction requires a data-independent compression ('mean' or 'median').")
            matrix, _ = as_matrix(X, name=level.name)
            if matrix.shape[1] != len(level.variables):
                raise ValueError(f"{level.name} has {matrix.shape[1]} variables, expected {len(level.variables)}.")
            blocks.append(compress(matrix, level.groups, level.compression))
        if len({block.shape[0] for block in blocks}) != 1:
            raise ValueError("All predictor matrices must have the same number of rows.")
        if self.fit is None:
            return np.full(blocks[0].shape[0], self.intercept)
        return self.fit.predict(self._design(blocks))

    def plot(self, i: Union[int, str] = 0, j: Union[int, str] = 1, values: str = 'coefficients',
             ax=None, **heatmap_kws):
        """
        Heatmap of the interaction matrix between the groups of two datasets.

        Args:
            i: Dataset shown in rows.
            j: Dataset shown in columns.
            values: 'coefficients' (estimated interaction effects) or
                'significance' (1 - p-value).
            ax: Matplotlib axes to draw on. A new figure is created if None.
            **heatmap_kws: Extra keyword arguments for seaborn.heatmap.

        Returns:
            matplotlib.axes.Axes: The axes holding the heatmap.
        """
        import matplotlib.pyplot as plt
        import seaborn as sns

        if values == 'coefficients':
            matrix = self.interaction_matrix(i, j)
            bound = (float(np.abs(matrix.to_numpy()).max()) if matrix.size else 0.0) or 1.0
            style = {'cmap': 'RdBu_r', 'center': 0.0, 'vmin': -bound, 'vmax': bound}
            label = 'Interaction coefficient'
        elif values == 'significance':
            matrix = self.get_significance(i, j)
            style = {'cmap': 'viridis', 'vmin': 0.0, 'vmax': 1.0}
            label = '1 - p-value'
        else:
            raise ValueError(f"Unknown values '{values}'. Expected 'coefficients' or 'significance'.")
        if matrix.size == 0:
            raise ValueError("No interaction to plot: a dataset has no selected group.")

        if ax is None:
            _, ax = plt.subplots(figsize=(max(4, 0.5 * matrix.shape[1] + 3), max(3, 0.4 * matrix.shape[0] + 2)))
        style.update(heatmap_kws)
        sns.heatmap(matrix, ax=ax, cbar_kws={'label': label}, **style)
        ax.set_title(f"Interactions {matrix.index.name} x {matrix.columns.name}")
        return ax

    def interaction_graph(self, threshold: Optional[float] = None) -> nx.Graph:
        """
        Graph of the selected groups, linking groups whose interaction significance
        reaches the threshold (default: 1 - significance_level).
        """
        if threshold is None:
            threshold = 1.0 - self.config.significance_level
        graph = nx.Graph()
        for level in self.levels:
            for group_name, variables in zip(level.group_names, level.get_grp()):
                graph.add_node(group_name, dataset=level.name, n_variables=len(variables),
                               variables=",".join(variables),
                               coefficient=float(self.coefficients.get(group_name, 0.0)))
        for row in self.interactions.itertuples(index=False):
            if row.significance >= threshold:
                graph.add_edge(row.group_i, row.group_j, weight=float(row.significance),
                               coefficient=float(row.coefficient))
        return graph

    def to_dict(self) -> Dict:
        return to_serializable({
            'datasets': self.names,
            'config': vars(self.config),
            'groups': {level.name: level.to_dict() for level in self.levels},
            'intercept': self.intercept,
            'coefficients': self.coefficients,
            'alpha': self.fit.alpha if self.fit is not None else None,
            'cv_error': self.fit.cv_error if self.fit is not None else None,
            'main_effects': self.main_effects.to_dict(orient='records'),
            'interactions': self.interactions.to_dict(orient='records'),
        })

    def __repr__(self) -> str:
        sizes = ", ".join(f"{level.name}: {level.n_groups}" for level in self.levels)
        return f"SicomoreModel(groups=[{sizes}], interactions={len(self.interactions)})"


def _drop_duplicate_samples(data, name: str):
    duplicates = data.index.duplicated(keep=False)
    if duplicates.any():
        logger.warning(f"Found {duplicates.sum()} duplicate sample IDs in {name}. Keeping first occurrence.")
        data = data[~data.index.duplicated(keep='first')]
    return data


def _align(y, X_list: List, names: List[str]):
    """Restrict pandas inputs to their common samples; plain arrays must already match."""
    indexed = isinstance(y, (pd.Series, pd.DataFrame)) and all(isinstance(X, pd.DataFrame) for X in X_list)
    if indexed:
        y = _drop_duplicate_samples(y, "response")
        X_list = [_drop_duplicate_samples(X, name) for X, name in zip(X_list, names)]
        common = y.index
        for X in X_list:
            common = common.intersection(X.index)
        if common.empty:
            raise ValueError("No common samples between the response and the predictor matrices.")
        if len(common) < len(y.index) or any(len(common) < len(X.index) for X in X_list):
            logger.info(f"Aligned inputs on {len(common)} common samples.")
        return y.loc[common], [X.loc[common] for X in X_list]

    n_rows = {np.shape(X)[0] for X in X_list}
    if len(n_rows) != 1:
        raise ValueError(f"Predictor matrices have different numbers of rows: "
                         f"{dict(zip(names, (np.shape(X)[0] for X in X_list)))}")
    return y, X_list


def sicomore(y, X_list, hierarchies: Optional[Sequence[Optional[Hierarchy]]] = None,
             method: Optional[str] = None, choice: Optional[str] = None,
             compression: Optional[str] = None, names: Optional[Sequence[str]] = None,
             levels: Optional[Sequence[int]] = None,
             config: Optional[SicomoreConfig] = None) -> SicomoreModel:
    """
    Select compressed groups in several predictor matrices and model their
    main and pairwise interaction effects on a phenotype.

    Args:
        y: Response vector (n samples).
        X_list: Predictor matrices (n x p_k), ndarrays or DataFrames. A single
            matrix is accepted and yields a main-effects-only model.
        hierarchies: Optional dendrogram per matrix (None entries are built).
        method: Selection method, 'sicomore', 'rho-sicomore', 'mlgl' or 'hcar'.
        choice: 'lambda.min' or 'lambda.1se'.
        compression: 'mean', 'median' or 'pca'.
        names: Name of each matrix (default: X1, X2, ...).
        levels: Numbers of groups evaluated in every hierarchy.
        config: Pipeline configuration; explicit arguments take precedence.

    Returns:
        SicomoreModel: Selected groups, joint model and significances.

    Raises:
        ValueError: On empty or inconsistent inputs.
    """
    config = (config or SicomoreConfig()).validate()
    if isinstance(X_list, (np.ndarray, pd.DataFrame)):
        X_list = [X_list]
    X_list = list(X_list)
    if not X_list:
        raise ValueError("At least one predictor matrix is required.")

    names = [f"X{k + 1}" for k in range(len(X_list))] if names is None else [str(n) for n in names]
    if len(names) != len(X_list):
        raise ValueError(f"Got {len(names)} names for {len(X_list)} predictor matrices.")
    if len(set(names)) != len(names):
        raise ValueError("Dataset names must be unique.")
    hierarchies = [None] * len(X_list) if hierarchies is None else list(hierarchies)
    if len(hierarchies) != len(X_list):
        raise ValueError(f"Got {len(hierarchies)} hierarchies for {len(X_list)} predictor matrices.")

    y, X_list = _align(y, X_list, names)
    response = as_response(y, np.shape(X_list[0])[0])

    results: List[HierLevelResult] = []
    built: List[Hierarchy] = []
    for X, name, hierarchy in zip(X_list, names, hierarchies):
        logger.info(f"Selecting groups in {name} ({np.shape(X)[1]} variables)")
        if hierarchy is None:
            hierarchy = build_hierarchy(X, method=config.linkage_method, metric=config.distance_metric,
                                        constrained=config.constrained, standardize=config.standardize)
        level = get_hier_level(X, response, hierarchy, method=method, choice=choice, levels=levels,
                               compression=compression, config=config, name=name)
        if level.n_groups == 0:
            warnings.warn(f"No group selected in {name}; its interactions are not modelled.")
        logger.info(f"{name}: {level.n_groups} group(s) selected")
        results.append(level)
        built.append(hierarchy)

    blocks = [level.compressed.to_numpy() for level in results]
    centers = {}
    for level, block in zip(results, blocks):
        for a, group_name in enumerate(level.group_names):
            centers[group_name] = float(block[:, a].mean()) if config.center_interactions else 0.0

    # Main effects
    main_rows = []
    terms, columns = [], []
    for level, block in zip(results, blocks):
        for a, group_name in enumerate(level.group_names):
            terms.append(group_name)
            columns.append(block[:, a])
            main_rows.append({'term': group_name, 'dataset': level.name, 'group': group_name,
                              'p_value': _ols_pvalue(response, [block[:, a]], group_name)})

    # Interactions between groups of different datasets
    inter_rows = []
    for k_i, k_j in combinations(range(len(results)), 2):
        for a, group_i in enumerate(results[k_i].group_names):
            phi_a = blocks[k_i][:, a] - centers[group_i]
            for b, group_j in enumerate(results[k_j].group_names):
                phi_b = blocks[k_j][:, b] - centers[group_j]
                term = f"{group_i}:{group_j}"
                terms.append(term)
                columns.append(phi_a * phi_b)
                inter_rows.append({'term': term, 'dataset_i': names[k_i], 'dataset_j': names[k_j],
                                   'group_i': group_i, 'group_j': group_j,
                                   'p_value': _ols_pvalue(response, [phi_a, phi_b, phi_a * phi_b], term)})
    logger.info(f"Joint model: {len(main_rows)} main effect(s), {len(inter_rows)} interaction(s)")

    if columns:
        fit = lasso_cv(np.column_stack(columns), response, choice=choice or config.choice,
                       n_alphas=config.n_alphas, eps=config.eps, n_folds=config.n_folds,
                       random_state=config.random_state, max_iter=config.max_iter, tol=config.tol,
                       n_jobs=config.n_jobs)
        coefficients = pd.Series(fit.coef, index=terms, dtype=float)
        intercept = fit.intercept
    else:
        warnings.warn("No group selected in any dataset; the joint model reduces to the intercept.")
        fit = None
        coefficients = pd.Series(dtype=float)
        intercept = float(response.mean())

    main_effects = pd.DataFrame(main_rows, columns=['term', 'dataset', 'group', 'p_value'])
    main_effects['coefficient'] = [float(coefficients[t]) for t in main_effects['term']]
    main_effects['significance'] = 1.0 - main_effects['p_value']

    interactions = pd.DataFrame(inter_rows, columns=['term', 'dataset_i', 'dataset_j', 'group_i',
                                                     'group_j', 'p_value'])
    interactions['coefficient'] = [float(coefficients[t]) for t in interactions['term']]
    if config.correction_method and len(interactions):
        interactions['p_adjusted'] = multipletests(interactions['p_value'].to_numpy(),
                                                   alpha=config.significance_level,
                                                   method=config.correction_method)[1]
    else:
        interactions['p_adjusted'] = interactions['p_value']
    interactions['significance'] = 1.0 - interactions['p_adjusted']
    interactions['significant'] = interactions['p_adjusted'] < config.significance_level

    n_significant = int(interactions['significant'].sum())
    logger.info(f"{n_significant}/{len(interactions)} interaction(s) significant at "
                f"level {config.significance_level}")

    return SicomoreModel(names=names, levels=results, hierarchies=built, coefficients=coefficients,
                         intercept=float(intercept), fit=fit, main_effects=main_effects,
                         interactions=interactions, centers=centers, config=config)
