# sicomore/hierarchy.py
"""
Hierarchy builder for SICOMORE.
Clusters the variables of a predictor matrix into a dendrogram whose cut levels
define the candidate group structures. Supports the usual scipy agglomeration
criteria and an adjacency-constrained Ward variant for ordered variables
(e.g. SNPs along a chromosome), where only neighbouring clusters may merge.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np
from scipy.cluster.hierarchy import linkage as scipy_linkage
from scipy.spatial.distance import pdist

from .config import LINKAGE_METHODS
from .utils import as_matrix

logger = logging.getLogger(__name__)


class Hierarchy:
    """
    Dendrogram over the variables of one predictor matrix.

    Nodes follow the scipy convention: leaves are numbered 0..p-1 and the node
    created by row r of the linkage matrix is p + r.
    """

    def __init__(self, linkage: np.ndarray, labels: Optional[Sequence[str]] = None,
                 method: str = 'ward', metric: str = 'euclidean'):
        Z = np.asarray(linkage, dtype=float)
        if Z.ndim != 2 or Z.shape[1] != 4:
            raise ValueError(f"Linkage matrix must have shape (p - 1, 4), got {Z.shape}.")
        self.linkage = Z
        self.n_leaves = Z.shape[0] + 1
        self.method = method
        self.metric = metric

        if labels is None:
            labels = [f"V{i + 1}" for i in range(self.n_leaves)]
        self.labels = [str(label) for label in labels]
        if len(self.labels) != self.n_leaves:
            raise ValueError(f"Hierarchy has {self.n_leaves} leaves but {len(self.labels)} labels were given.")

        p = self.n_leaves
        n_nodes = 2 * p - 1
        self._members: List[np.ndarray] = [np.array([i]) for i in range(p)]
        self._heights = np.zeros(n_nodes)
        self._parent = np.full(n_nodes, -1, dtype=int)
        for r, row in enumerate(Z):
            a, b, node = int(row[0]), int(row[1]), p + r
            for child in (a, b):
                if child < 0 or child >= node:
                    raise ValueError(f"Linkage row {r} refers to node {child} before it is created.")
                if self._parent[child] != -1:
                    raise ValueError(f"Node {child} is merged more than once.")
                self._parent[child] = node
            self._members.append(np.sort(np.concatenate([self._members[a], self._members[b]])))
            self._heights[node] = row[2]

    @classmethod
    def from_linkage(cls, Z: np.ndarray, labels: Optional[Sequence[str]] = None) -> 'Hierarchy':
        """Wrap a linkage matrix produced elsewhere (e.g. scipy.cluster.hierarchy.linkage)."""
        return cls(Z, labels, method='external', metric='external')

    @property
    def heights(self) -> np.ndarray:
        return self.linkage[:, 2].copy()

    @property
    def n_nodes(self) -> int:
        return 2 * self.n_leaves - 1

    def members(self, node: int) -> np.ndarray:
        """Column indices of the variables below a node."""
        return self._members[node]

    def height(self, node: int) -> float:
        return float(self._heights[node])

    def gap(self, node: int) -> float:
        """Height difference between a node and its parent (the root uses its own height)."""
        parent = self._parent[node]
        if parent < 0:
            value = self._heights[node]
        else:
            value = self._heights[parent] - self._heights[node]
        top = float(self._heights.max()) if self.n_nodes > 1 else 0.0
        return float(max(value, 1e-8 * max(1.0, top)))

    def nodes_at(self, k: int) -> List[int]:
        """Nodes forming the partition into k groups, ordered by their first variable."""
        p = self.n_leaves
        if not 1 <= k <= p:
            raise ValueError(f"Cannot cut a hierarchy of {p} variables into {k} groups.")
        active = set(range(p))
        for r in range(p - k):
            active.discard(int(self.linkage[r, 0]))
            active.discard(int(self.linkage[r, 1]))
            active.add(p + r)
        return sorted(active, key=lambda node: self._members[node][0])

    def cut(self, k: int) -> np.ndarray:
        """Group label (0..k-1) of every variable for the partition into k groups."""
        assignment = np.empty(self.n_leaves, dtype=int)
        for label, node in enumerate(self.nodes_at(k)):
            assignment[self._members[node]] = label
        return assignment

    def groups(self, k: int) -> List[np.ndarray]:
        return [self._members[node] for node in self.nodes_at(k)]

    def candidate_levels(self, n_levels: int = 10, max_groups: Optional[int] = None) -> List[int]:
        """
        Numbers of groups evaluated when searching the hierarchy.

        Levels are spread on a geometric grid so that coarse cuts, where each
        extra group changes the structure the most, are sampled more densely.
        """
        p = self.n_leaves
        upper = p if max_groups is None else min(p, max_groups)
        lower = 1 if upper == 1 else 2
        if upper <= lower or n_levels < 2:
            return [upper]
        grid = np.geomspace(lower, upper, num=n_levels)
        return sorted({int(round(value)) for value in grid})

    def __repr__(self) -> str:
        return f"Hierarchy(n_leaves={self.n_leaves}, method='{self.method}', metric='{self.metric}')"


def _constrained_ward(data: np.ndarray) -> np.ndarray:
    """Ward agglomeration where only adjacent segments (in row order) may merge."""
    p = data.shape[0]
    centroids = [row.astype(float) for row in data]
    sizes = [1] * p
    ids = list(range(p))
    Z = np.zeros((p - 1, 4))

    def merge_cost(i: int) -> float:
        na, nb = sizes[i], sizes[i + 1]
        diff = centroids[i] - centroids[i + 1]
        return na * nb / (na + nb) * float(diff @ diff)

    costs = [merge_cost(i) for i in range(p - 1)]
    for r in range(p - 1):
        i = int(np.argmin(costs))
        na, nb = sizes[i], sizes[i + 1]
        Z[r] = [ids[i], ids[i + 1], np.sqrt(2.0 * costs[i]), na + nb]

        centroids[i] = (na * centroids[i] + nb * centroids[i + 1]) / (na + nb)
        sizes[i] = na + nb
        ids[i] = p + r
        del centroids[i + 1], sizes[i + 1], ids[i + 1], costs[i]

        if i > 0:
            costs[i - 1] = merge_cost(i - 1)
        if i < len(costs):
            costs[i] = merge_cost(i)
    return Z


def build_hierarchy(X, method: str = 'ward', metric: str = 'euclidean', constrained: bool = False,
                    standardize: bool = True, labels: Optional[Sequence[str]] = None) -> Hierarchy:
    """
    Build a dendrogram over the columns of a predictor matrix.

    Args:
        X: ndarray or DataFrame (samples x variables).
        method: Agglomeration criterion ('ward', 'average', 'complete', 'single').
        metric: Distance between variables, any scipy pdist metric.
        constrained: Restrict merges to neighbouring columns (Ward only).
        standardize: Scale variables to unit variance before clustering.
        labels: Optional variable names overriding DataFrame columns.

    Returns:
        Hierarchy: The dendrogram of the variables.

    Raises:
        ValueError: If X is invalid, the method is unknown or distances are not finite.
    """
    matrix, names = as_matrix(X, labels=labels)
    if method not in LINKAGE_METHODS:
        raise ValueError(f"Unknown linkage method '{method}'. Expected one of {LINKAGE_METHODS}")

    if standardize and matrix.shape[0] > 1:
        sd = matrix.std(axis=0, ddof=1)
        sd[sd == 0] = 1.0
        matrix = (matrix - matrix.mean(axis=0)) / sd
    data = matrix.T
    p = data.shape[0]

    if p == 1:
        Z = np.empty((0, 4))
    elif constrained:
        if method != 'ward':
            raise ValueError("Adjacency-constrained clustering only supports Ward linkage.")
        Z = _constrained_ward(data)
    else:
        if method == 'ward' and metric != 'euclidean':
            logger.warning(f"Ward linkage assumes euclidean distances; using metric '{metric}' anyway.")
        distances = pdist(data, metric=metric)
        if not np.all(np.isfinite(distances)):
            raise ValueError(f"Distances between variables are not finite with metric '{metric}'. "
                             "Remove constant variables before clustering.")
        Z = scipy_linkage(distances, method=method)

    logger.info(f"Built {'constrained ' if constrained else ''}{method} hierarchy over {p} variables.")
    return Hierarchy(Z, names, method=method, metric=metric)
