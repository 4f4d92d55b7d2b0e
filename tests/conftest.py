import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from sicomore import SicomoreConfig, sicomore


def _block_matrix(rng, n, n_blocks, block_size, prefix, index):
    latents = rng.normal(size=(n, n_blocks))
    columns = [latents[:, b] + 0.1 * rng.normal(size=n) for b in range(n_blocks) for _ in range(block_size)]
    names = [f"{prefix}{i + 1}" for i in range(n_blocks * block_size)]
    return pd.DataFrame(np.column_stack(columns), columns=names, index=index), latents


@pytest.fixture(scope="session")
def blocks():
    """Two matrices of correlated blocks; the first block of each drives the phenotype."""
    rng = np.random.default_rng(2020)
    n = 120
    index = pd.Index([f"s{i}" for i in range(n)], name="sample")
    X1, L1 = _block_matrix(rng, n, 3, 4, "snp", index)
    X2, L2 = _block_matrix(rng, n, 3, 3, "otu", index)
    noise = rng.normal(size=n)
    y_main = pd.Series(2.0 * L1[:, 0] + 0.5 * noise, index=index, name="pheno")
    y_inter = pd.Series(2.0 * L1[:, 0] + 1.5 * L2[:, 0] + 3.0 * L1[:, 0] * L2[:, 0] + 0.5 * noise,
                        index=index, name="pheno")
    return {
        'X1': X1,
        'X2': X2,
        'y_main': y_main,
        'y_inter': y_inter,
        'block1': {"snp1", "snp2", "snp3", "snp4"},
        'block2': {"otu1", "otu2", "otu3"},
    }


@pytest.fixture(scope="session")
def fast_config():
    return SicomoreConfig(n_levels=5, n_alphas=20)


@pytest.fixture(scope="session")
def fitted(blocks, fast_config):
    return sicomore(blocks['y_inter'], [blocks['X1'], blocks['X2']], names=["snp", "otu"], config=fast_config)
