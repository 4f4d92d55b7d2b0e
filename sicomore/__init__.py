# sicomore/__init__.py
"""
SICOMORE: Selection of Interaction effects in COmpressed Multiple Omics REpresentations

Links a phenotype to groups of correlated predictors. Each predictor matrix is
organised in a hierarchy of variables; the hierarchy is searched for the groups
whose compressed representation best explains the phenotype with a sparse
linear model, and interactions between groups of different matrices are
modelled and tested.
"""

__version__ = "0.1.0"

from .config import SicomoreConfig, load_config
from .hierarchy import Hierarchy, build_hierarchy
from .compression import compress
from .levels import HierLevelResult, get_hier_level
from .model import SicomoreModel, sicomore
from .pipeline import SicomorePipeline, run_sicomore_analysis

__all__ = [
    'SicomoreConfig',
    'load_config',
    'Hierarchy',
    'build_hierarchy',
    'compress',
    'HierLevelResult',
    'get_hier_level',
    'SicomoreModel',
    'sicomore',
    'SicomorePipeline',
    'run_sicomore_analysis',
]
