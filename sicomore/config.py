# sicomore/config.py
"""
Configuration module for SICOMORE.
This file defines a dataclass to hold configurable parameters for the pipeline,
allowing easy modification of settings like the selection method, the
cross-validation scheme and the significance correction.
"""

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

SELECTION_METHODS = ('sicomore', 'rho-sicomore', 'mlgl', 'hcar')
CHOICES = ('lambda.min', 'lambda.1se')
COMPRESSION_METHODS = ('mean', 'median', 'pca')
LINKAGE_METHODS = ('ward', 'average', 'complete', 'single')
CORRECTION_METHODS = ('bonferroni', 'fdr_bh', 'fdr_by', 'holm')

# Sections accepted in YAML configuration files
_SECTIONS = ('hierarchy', 'selection', 'cross_validation', 'significance', 'output')


@dataclass
class SicomoreConfig:
    """
    Configuration class for SICOMORE pipeline parameters.
    This dataclass encapsulates settings that control the hierarchy, the group
    selection and the significance testing steps.

    Attributes:
        method (str): Selection method, one of 'sicomore', 'rho-sicomore',
            'mlgl' or 'hcar' (default: 'sicomore').
        choice (str): Rule used to pick the sparsity parameter from the
            cross-validation curve, 'lambda.min' or 'lambda.1se'
            (default: 'lambda.min').
        compression (str): Function reducing a group to one supervariable,
            'mean', 'median' or 'pca' (default: 'mean').
        linkage_method (str): Agglomeration criterion of the hierarchy
            (default: 'ward').
        distance_metric (str): Distance between variables, any scipy pdist
            metric (default: 'euclidean').
        constrained (bool): Only merge neighbouring variables, for ordered
            data such as SNPs along a chromosome (default: False).
        standardize (bool): Scale variables to unit variance before
            clustering (default: True).
        n_levels (int): Number of candidate cut levels evaluated in each
            hierarchy (default: 10).
        max_groups (Optional[int]): Largest number of groups considered when
            cutting a hierarchy. None means all variables (default: None).
        n_folds (int): Number of cross-validation folds (default: 5).
        n_alphas (int): Length of the sparsity parameter grid (default: 50).
        eps (float): Ratio between the smallest and largest sparsity
            parameter of the grid (default: 1e-3).
        max_iter (int): Maximum number of solver iterations (default: 10000).
        tol (float): Solver tolerance (default: 1e-4).
        center_interactions (bool): Center compressed groups before taking
            their products (default: True).
        significance_level (float): Alpha level used to flag significant
            effects (default: 0.05).
        correction_method (Optional[str]): Multiple testing correction applied
            to the interaction p-values ('fdr_bh', 'bonferroni', 'fdr_by',
            'holm'), None keeps raw p-values (default: None).
        n_jobs (Optional[int]): Number of parallel jobs for cross-validation.
            -1 uses all available CPU cores (default: None).
        random_state (int): Random seed for fold assignment (default: 42).
        generate_plots (bool): Write heatmaps of the interaction matrices in
            the pipeline outputs (default: True).
    """
    method: str = 'sicomore'
    choice: str = 'lambda.min'
    compression: str = 'mean'
    linkage_method: str = 'ward'
    distance_metric: str = 'euclidean'
    constrained: bool = False
    standardize: bool = True
    n_levels: int = 10
    max_groups: Optional[int] = None
    n_folds: int = 5
    n_alphas: int = 50
    eps: float = 1e-3
    max_iter: int = 10000
    tol: float = 1e-4
    center_interactions: bool = True
    significance_level: float = 0.05
    correction_method: Optional[str] = None
    n_jobs: Optional[int] = None
    random_state: int = 42
    generate_plots: bool = True

    def validate(self) -> 'SicomoreConfig':
        """Check parameter values, raising ValueError on the first invalid one."""
        if self.method not in SELECTION_METHODS:
            raise ValueError(f"Unknown selection method '{self.method}'. Expected one of {SELECTION_METHODS}")
        if self.choice not in CHOICES:
            raise ValueError(f"Unknown choice '{self.choice}'. Expected one of {CHOICES}")
        if self.compression not in COMPRESSION_METHODS:
            raise ValueError(f"Unknown compression '{self.compression}'. Expected one of {COMPRESSION_METHODS}")
        if self.linkage_method not in LINKAGE_METHODS:
            raise ValueError(f"Unknown linkage method '{self.linkage_method}'. Expected one of {LINKAGE_METHODS}")
        if self.correction_method is not None and self.correction_method not in CORRECTION_METHODS:
            raise ValueError(f"Unknown correction method '{self.correction_method}'. "
                             f"Expected one of {CORRECTION_METHODS} or None")
        if self.n_levels < 1:
            raise ValueError("n_levels must be at least 1.")
        if self.max_groups is not None and self.max_groups < 1:
            raise ValueError("max_groups must be at least 1.")
        if self.n_folds < 2:
            raise ValueError("n_folds must be at least 2.")
        if self.n_alphas < 2:
            raise ValueError("n_alphas must be at least 2.")
        if not 0 < self.eps < 1:
            raise ValueError("eps must lie strictly between 0 and 1.")
        if not 0 < self.significance_level < 1:
            raise ValueError("significance_level must lie strictly between 0 and 1.")
        return self


def load_config(config_path: Optional[str] = None, **overrides) -> SicomoreConfig:
    """
    Load configuration from a JSON or YAML file.

    YAML files may either be flat or group parameters in the sections
    'hierarchy', 'selection', 'cross_validation', 'significance' and 'output'.
    Keyword overrides are applied last.

    Args:
        config_path (Optional[str]): Path to a .json, .yml or .yaml file.
        **overrides: Parameter values taking precedence over the file.

    Returns:
        SicomoreConfig: Validated configuration.

    Raises:
        ValueError: If the file extension is unsupported or a value is invalid.
    """
    config = SicomoreConfig()
    user_cfg = {}
    if config_path:
        path = Path(config_path)
        suffix = path.suffix.lower()
        with path.open('r') as f:
            if suffix == '.json':
                user_cfg = json.load(f)
            elif suffix in {'.yml', '.yaml'}:
                user_cfg = yaml.safe_load(f) or {}
            else:
                raise ValueError(f"Unsupported configuration format: {path.suffix}")
        logger.info(f"Loaded configuration from: {path}")

    flat = {}
    for key, value in user_cfg.items():
        if key in _SECTIONS and isinstance(value, dict):
            flat.update(value)
        else:
            flat[key] = value
    flat.update(overrides)

    known = {f.name for f in fields(SicomoreConfig)}
    for key, value in flat.items():
        if key in known:
            setattr(config, key, value)
        else:
            logger.warning(f"Unknown configuration parameter: {key}")

    return config.validate()
