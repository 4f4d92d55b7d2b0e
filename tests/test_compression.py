import numpy as np
import pytest

from sicomore.compression import compress, compress_frame


def test_mean_and_median_compression():
    X = np.array([[1.0, 2.0, 9.0], [3.0, 4.0, 5.0]])

    mean = compress(X, [[0, 1], [2]], method="mean")
    median = compress(X, [[0, 1, 2]], method="median")

    np.testing.assert_allclose(mean, [[1.5, 9.0], [3.5, 5.0]])
    np.testing.assert_allclose(median[:, 0], [2.0, 4.0])


def test_pca_compression_follows_group_mean():
    rng = np.random.default_rng(0)
    latent = rng.normal(size=50)
    X = np.column_stack([latent + 0.05 * rng.normal(size=50) for _ in range(4)])

    scores = compress(X, [[0, 1, 2, 3]], method="pca")[:, 0]

    assert np.corrcoef(scores, X.mean(axis=1))[0, 1] > 0.99


def test_compress_frame_names_columns():
    X = np.arange(12.0).reshape(3, 4)
    frame = compress_frame(X, [[0, 1], [2, 3]], ["A", "B"], index=["s1", "s2", "s3"])

    assert list(frame.columns) == ["A", "B"]
    assert list(frame.index) == ["s1", "s2", "s3"]


@pytest.mark.parametrize("groups, method", [
    ([[]], "mean"),
    ([[0, 7]], "mean"),
    ([[0]], "max"),
])
def test_compress_rejects_invalid_groups(groups, method):
    with pytest.raises(ValueError):
        compress(np.ones((3, 2)), groups, method=method)
