import numpy as np
import pytest
from scipy.cluster.hierarchy import linkage

from sicomore import Hierarchy, build_hierarchy


def test_ward_hierarchy_recovers_correlated_blocks(blocks):
    hierarchy = build_hierarchy(blocks['X1'])

    assert hierarchy.n_leaves == 12
    groups = [set(hierarchy.labels[i] for i in g) for g in hierarchy.groups(3)]
    assert blocks['block1'] in groups
    assert {"snp5", "snp6", "snp7", "snp8"} in groups


@pytest.mark.parametrize("k", [1, 2, 5, 12])
def test_cut_labels_partition_variables(blocks, k):
    hierarchy = build_hierarchy(blocks['X1'])
    labels = hierarchy.cut(k)
    groups = hierarchy.groups(k)

    assert len(np.unique(labels)) == k
    assert sorted(np.concatenate(groups).tolist()) == list(range(12))
    for label, group in enumerate(groups):
        assert np.all(labels[group] == label)


def test_nodes_at_rejects_invalid_level(blocks):
    hierarchy = build_hierarchy(blocks['X1'])
    with pytest.raises(ValueError):
        hierarchy.nodes_at(0)
    with pytest.raises(ValueError):
        hierarchy.nodes_at(13)


def test_constrained_hierarchy_only_merges_neighbours():
    rng = np.random.default_rng(1)
    X = rng.normal(size=(30, 10))
    hierarchy = build_hierarchy(X, constrained=True)

    for k in range(1, 11):
        for group in hierarchy.groups(k):
            assert np.all(np.diff(group) == 1)


def test_constrained_hierarchy_requires_ward():
    X = np.random.default_rng(1).normal(size=(20, 5))
    with pytest.raises(ValueError, match="Ward"):
        build_hierarchy(X, method="average", constrained=True)


def test_unknown_linkage_method_raises():
    X = np.random.default_rng(1).normal(size=(20, 5))
    with pytest.raises(ValueError):
        build_hierarchy(X, method="centroid")


def test_candidate_levels_span_coarse_to_fine(blocks):
    hierarchy = build_hierarchy(blocks['X1'])
    levels = hierarchy.candidate_levels(n_levels=4)

    assert levels[0] == 2
    assert levels[-1] == 12
    assert levels == sorted(set(levels))
    assert len(levels) <= 4
    assert hierarchy.candidate_levels(n_levels=4, max_groups=6)[-1] == 6


def test_gaps_are_positive(blocks):
    hierarchy = build_hierarchy(blocks['X1'])
    assert all(hierarchy.gap(node) > 0 for node in range(hierarchy.n_nodes))


def test_from_linkage_wraps_scipy_output():
    X = np.random.default_rng(3).normal(size=(25, 6))
    Z = linkage(X.T, method="average")
    hierarchy = Hierarchy.from_linkage(Z, labels=list("abcdef"))

    assert hierarchy.n_leaves == 6
    assert hierarchy.members(hierarchy.n_nodes - 1).tolist() == list(range(6))
    assert hierarchy.height(0) == 0.0


def test_linkage_referring_to_future_node_raises():
    Z = np.array([[0.0, 3.0, 1.0, 2.0], [1.0, 2.0, 2.0, 2.0]])
    with pytest.raises(ValueError):
        Hierarchy(Z)


def test_single_variable_hierarchy():
    hierarchy = build_hierarchy(np.arange(10.0).reshape(-1, 1))

    assert hierarchy.n_leaves == 1
    assert hierarchy.candidate_levels() == [1]
    assert hierarchy.groups(1)[0].tolist() == [0]
