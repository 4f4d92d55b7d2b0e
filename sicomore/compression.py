# sicomore/compression.py
"""
Group compression: reduce each group of correlated variables to one supervariable.
"""

from typing import List, Sequence

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA

from .config import COMPRESSION_METHODS


def _first_component(block: np.ndarray) -> np.ndarray:
    if block.shape[1] == 1:
        return block[:, 0].copy()
    scores = PCA(n_components=1).fit_transform(block)[:, 0]
    # PCA signs are arbitrary; orient the component like the group mean
    if np.dot(scores, block.mean(axis=1) - block.mean()) < 0:
        scores = -scores
    return scores


def compress(X: np.ndarray, groups: Sequence[Sequence[int]], method: str = 'mean') -> np.ndarray:
    """
    Compress each group of columns of X into a single column.

    Args:
        X: 2-D array (samples x variables).
        groups: Column indices of each group.
        method: 'mean' (row mean), 'median' or 'pca' (first principal component).

    Returns:
        np.ndarray: Matrix of shape (n_samples, len(groups)).

    Raises:
        ValueError: On an unknown method, an empty group or an out-of-range index.
    """
    if method not in COMPRESSION_METHODS:
        raise ValueError(f"Unknown compression '{method}'. Expected one of {COMPRESSION_METHODS}")
    X = np.asarray(X, dtype=float)
    out = np.empty((X.shape[0], len(groups)))
    for j, group in enumerate(groups):
        idx = np.asarray(group, dtype=int)
        if idx.size == 0:
            raise ValueError(f"Group {j} is empty.")
        if idx.min() < 0 or idx.max() >= X.shape[1]:
            raise ValueError(f"Group {j} refers to a column outside the {X.shape[1]} available.")
        block = X[:, idx]
        if method == 'mean':
            out[:, j] = block.mean(axis=1)
        elif method == 'median':
            out[:, j] = np.median(block, axis=1)
        else:
            out[:, j] = _first_component(block)
    return out


def compress_frame(X: np.ndarray, groups: Sequence[Sequence[int]], names: List[str],
                   method: str = 'mean', index=None) -> pd.DataFrame:
    """Same as compress, returned as a DataFrame with one named column per group."""
    return pd.DataFrame(compress(X, groups, method), columns=names, index=index)
