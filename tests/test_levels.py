import json

import numpy as np
import pytest

from sicomore import SicomoreConfig, build_hierarchy, get_hier_level
from sicomore import levels as level_module
from sicomore.penalized import group_lasso_cv, lasso_cv


def _hits_block(groups, block):
    return any(set(group) & block for group in groups)


@pytest.mark.parametrize("method", ["sicomore", "rho-sicomore", "mlgl", "hcar"])
def test_every_method_selects_the_driving_block(blocks, fast_config, method):
    result = get_hier_level(blocks['X1'], blocks['y_main'], method=method, config=fast_config, name="snp")

    assert result.method == method
    assert result.n_groups > 0
    assert _hits_block(result.get_grp(), blocks['block1'])
    assert list(result.coefficients.index) == result.group_names
    assert result.compressed.shape == (120, result.n_groups)
    assert all(name.startswith("snp.") for name in result.group_names)


def test_hcar_reports_one_curve_per_level(blocks, fast_config):
    hierarchy = build_hierarchy(blocks['X1'])
    result = get_hier_level(blocks['X1'], blocks['y_main'], hierarchy, method="hcar",
                            levels=[2, 3, 6, 12], config=fast_config)

    assert result.levels == [2, 3, 6, 12]
    assert result.selected_level in result.levels
    assert sorted(result.cv_curves) == sorted(f"level_{k}" for k in result.levels)
    assert result.cv_errors.idxmin() == f"level_{result.selected_level}"
    assert set(result.cv_curves["level_3"].columns) == {"alpha", "cv_mean", "cv_sd"}


def test_multilayer_methods_report_a_single_curve(blocks, fast_config):
    result = get_hier_level(blocks['X1'], blocks['y_main'], method="sicomore", config=fast_config)

    assert list(result.cv_curves) == ["multilayer"]
    assert result.selected_level is None


def test_lambda_1se_is_not_less_sparse_than_lambda_min(blocks, fast_config):
    kwargs = dict(method="sicomore", levels=[3], config=fast_config)
    loose = get_hier_level(blocks['X1'], blocks['y_main'], choice="lambda.min", **kwargs)
    strict = get_hier_level(blocks['X1'], blocks['y_main'], choice="lambda.1se", **kwargs)

    assert strict.alpha >= loose.alpha


def test_numpy_inputs_get_default_variable_names(blocks, fast_config):
    result = get_hier_level(blocks['X1'].to_numpy(), blocks['y_main'].to_numpy(), method="hcar",
                            levels=[3], config=fast_config)

    assert result.variables[:2] == ["V1", "V2"]
    assert _hits_block(result.get_grp(), {"V1", "V2", "V3", "V4"})


def test_to_dict_is_json_serializable(blocks, fast_config):
    result = get_hier_level(blocks['X1'], blocks['y_main'], method="hcar", levels=[3, 6], config=fast_config)
    payload = json.loads(json.dumps(result.to_dict()))

    assert payload['method'] == "hcar"
    assert len(payload['groups']) == result.n_groups


@pytest.mark.parametrize("levels", [[0], [13], []])
def test_invalid_levels_raise(blocks, fast_config, levels):
    with pytest.raises(ValueError):
        get_hier_level(blocks['X1'], blocks['y_main'], levels=levels, config=fast_config)


def test_hierarchy_size_mismatch_raises(blocks, fast_config):
    hierarchy = build_hierarchy(blocks['X2'])
    with pytest.raises(ValueError, match="leaves"):
        get_hier_level(blocks['X1'], blocks['y_main'], hierarchy, config=fast_config)


def test_unknown_method_raises(blocks):
    with pytest.raises(ValueError):
        get_hier_level(blocks['X1'], blocks['y_main'], method="lasso")


def test_response_length_mismatch_raises(blocks):
    with pytest.raises(ValueError):
        get_hier_level(blocks['X1'], np.ones(10), config=SicomoreConfig())


@pytest.mark.parametrize("method", ["sicomore", "rho-sicomore"])
def test_multilayer_penalty_weights_follow_node_gaps(blocks, fast_config, monkeypatch, method):
    recorded = {}

    def recording_lasso_cv(Z, y, weights=None, **kwargs):
        recorded['weights'] = np.asarray(weights)
        return lasso_cv(Z, y, weights=weights, **kwargs)

    monkeypatch.setattr(level_module, "lasso_cv", recording_lasso_cv)
    hierarchy = build_hierarchy(blocks['X1'])
    get_hier_level(blocks['X1'], blocks['y_main'], hierarchy, method=method, levels=[2, 3, 6],
                   config=fast_config)

    nodes = level_module._distinct_nodes(hierarchy, [2, 3, 6])
    expected = 1.0 / np.sqrt([hierarchy.gap(node) for node in nodes])
    if method == "rho-sicomore":
        expected *= np.sqrt([hierarchy.members(node).size for node in nodes])
    expected /= expected.mean()

    np.testing.assert_allclose(recorded['weights'], expected)
    assert recorded['weights'].mean() == pytest.approx(1.0)


def test_mlgl_group_coefficient_is_sum_of_member_coefficients(blocks, fast_config, monkeypatch):
    fits = []

    def recording_group_lasso_cv(*args, **kwargs):
        fits.append(group_lasso_cv(*args, **kwargs))
        return fits[-1]

    monkeypatch.setattr(level_module, "group_lasso_cv", recording_group_lasso_cv)
    hierarchy = build_hierarchy(blocks['X1'])
    result = get_hier_level(blocks['X1'], blocks['y_main'], hierarchy, method="mlgl", levels=[2, 3, 6],
                            config=fast_config)

    nodes = level_module._distinct_nodes(hierarchy, [2, 3, 6])
    assert result.n_groups > 0
    for group_name, node in zip(result.group_names, result.nodes):
        member_coefs = fits[0].group_coef[nodes.index(node)]
        assert np.any(member_coefs != 0)
        assert result.coefficients[group_name] == pytest.approx(member_coefs.sum())


def test_mlgl_always_compresses_with_the_mean(blocks, fast_config):
    with pytest.warns(UserWarning, match="mlgl"):
        result = get_hier_level(blocks['X1'], blocks['y_main'], method="mlgl", compression="median",
                                levels=[3], config=fast_config)

    assert result.compression == "mean"
    for column, group in zip(result.compressed.columns, result.groups):
        np.testing.assert_allclose(result.compressed[column], blocks['X1'].iloc[:, group].mean(axis=1))
