# sicomore/utils.py
"""
Utility functions for input coercion and result serialization.
"""

from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd


def as_matrix(X, name: str = "X", labels: Optional[Sequence[str]] = None) -> Tuple[np.ndarray, List[str]]:
    """
    Coerce a predictor matrix to a finite 2-D float array and its column labels.

    Args:
        X: ndarray or DataFrame (samples x variables).
        name: Name used in error messages.
        labels: Optional column labels, overriding DataFrame columns.

    Returns:
        Tuple[np.ndarray, List[str]]: The matrix and one label per column.

    Raises:
        ValueError: If X is not 2-D, has no column, or holds non-finite values.
    """
    if isinstance(X, pd.DataFrame):
        columns = [str(c) for c in X.columns]
        matrix = X.to_numpy(dtype=float)
    else:
        matrix = np.asarray(X, dtype=float)
        columns = None

    if matrix.ndim != 2:
        raise ValueError(f"{name} must be a 2-D matrix, got {matrix.ndim} dimension(s).")
    if matrix.shape[1] == 0:
        raise ValueError(f"{name} has no variable.")
    if not np.all(np.isfinite(matrix)):
        raise ValueError(f"{name} contains missing or infinite values.")

    if labels is not None:
        columns = [str(label) for label in labels]
    if columns is None:
        columns = [f"V{i + 1}" for i in range(matrix.shape[1])]
    if len(columns) != matrix.shape[1]:
        raise ValueError(f"{name} has {matrix.shape[1]} columns but {len(columns)} labels were given.")
    return matrix, columns


def as_response(y, n_samples: Optional[int] = None) -> np.ndarray:
    """Coerce the phenotype to a finite 1-D float array of the expected length."""
    if isinstance(y, pd.DataFrame):
        if y.shape[1] != 1:
            raise ValueError("Response must have a single column.")
        y = y.iloc[:, 0]
    response = np.asarray(y, dtype=float).ravel()
    if response.size == 0:
        raise ValueError("Response is empty.")
    if not np.all(np.isfinite(response)):
        raise ValueError("Response contains missing or infinite values.")
    if n_samples is not None and response.size != n_samples:
        raise ValueError(f"Response has {response.size} samples but predictors have {n_samples} rows.")
    return response


def to_serializable(obj: Any) -> Any:
    """Recursively convert numpy and pandas objects into JSON-compatible types."""
    if isinstance(obj, dict):
        return {str(k): to_serializable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_serializable(v) for v in obj]
    if isinstance(obj, pd.DataFrame):
        return to_serializable(obj.to_dict(orient='index'))
    if isinstance(obj, pd.Series):
        return to_serializable(obj.to_dict())
    if isinstance(obj, np.ndarray):
        return to_serializable(obj.tolist())
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        value = float(obj)
        return value if np.isfinite(value) else None
    return obj
