import json
import logging

import pytest
import yaml

from sicomore.config import SicomoreConfig, load_config


def test_defaults_are_valid():
    config = load_config()

    assert config == SicomoreConfig()
    assert config.method == 'sicomore'
    assert config.choice == 'lambda.min'
    assert config.correction_method is None


@pytest.mark.parametrize("field, value", [
    ('method', 'lasso'),
    ('choice', 'lambda.best'),
    ('compression', 'max'),
    ('linkage_method', 'centroid'),
    ('correction_method', 'sidak_typo'),
    ('n_folds', 1),
    ('n_levels', 0),
    ('eps', 1.5),
    ('significance_level', 0.0),
])
def test_validate_rejects_invalid_values(field, value):
    config = SicomoreConfig(**{field: value})
    with pytest.raises(ValueError):
        config.validate()


def test_json_config_warns_on_unknown_keys(tmp_path, caplog):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({'method': 'hcar', 'n_folds': 4, 'colour': 'blue'}))

    with caplog.at_level(logging.WARNING, logger="sicomore.config"):
        config = load_config(str(path))

    assert config.method == 'hcar'
    assert config.n_folds == 4
    assert "colour" in caplog.text


def test_yaml_sections_are_flattened(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump({
        'hierarchy': {'linkage_method': 'average', 'constrained': False},
        'selection': {'method': 'rho-sicomore', 'compression': 'median'},
        'significance': {'correction_method': 'fdr_bh'},
        'random_state': 7,
    }))

    config = load_config(str(path))

    assert config.linkage_method == 'average'
    assert config.method == 'rho-sicomore'
    assert config.compression == 'median'
    assert config.correction_method == 'fdr_bh'
    assert config.random_state == 7


def test_overrides_take_precedence_over_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("selection:\n  method: mlgl\n")

    config = load_config(str(path), method='hcar', generate_plots=False)

    assert config.method == 'hcar'
    assert config.generate_plots is False


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yml"
    path.write_text("")

    assert load_config(str(path)) == SicomoreConfig()


def test_unsupported_extension_raises(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("[selection]\nmethod = hcar\n")
    with pytest.raises(ValueError, match="Unsupported"):
        load_config(str(path))


def test_invalid_value_in_file_raises(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({'choice': 'lambda.best'}))
    with pytest.raises(ValueError):
        load_config(str(path))
