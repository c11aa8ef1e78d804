import json

import pytest

from lyceum.config import DEFAULT_CONFIG, load_config, validate_config
from lyceum.core.exceptions import ConfigurationError


def test_defaults():
    config = load_config(environ={})
    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG


def test_file_then_environment(tmp_path):
    path = tmp_path / "lyceum.json"
    path.write_text(json.dumps({"rest_port": 9000, "log_level": "debug",
                                "database_config": {"database_path": "file.db"}}))
    config = load_config(str(path), environ={"LYCEUM_REST_PORT": "9100"})
    assert config["rest_port"] == 9100
    assert config["log_level"] == "DEBUG"
    assert config["database_config"]["database_path"] == "file.db"

    config = load_config(str(path), environ={"LYCEUM_DATABASE_PATH": ":memory:"})
    assert config["database_config"]["database_path"] == ":memory:"


@pytest.mark.parametrize("environ", [
    {"LYCEUM_REST_PORT": "http"},
    {"LYCEUM_REST_PORT": "70000"},
    {"LYCEUM_LOG_LEVEL": "chatty"},
])
def test_bad_values(environ):
    with pytest.raises(ConfigurationError):
        load_config(environ=environ)


def test_bad_file(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(ConfigurationError):
        load_config(str(path), environ={})
    with pytest.raises(ConfigurationError):
        load_config(str(tmp_path / "missing.json"), environ={})


@pytest.mark.parametrize("overrides", [
    {"max_history": 0},
    {"rest_port": 0},
    {"database_type": "postgres"},
    {"database_config": {"database_path": ["not", "a", "path"]}},
])
def test_model_rejects_out_of_range_values(tmp_path, overrides):
    path = tmp_path / "lyceum.json"
    path.write_text(json.dumps(overrides))
    with pytest.raises(ConfigurationError):
        load_config(str(path), environ={})


def test_validate_config_normalizes_case():
    config = validate_config({"database_type": "SQLite", "log_level": "warning"})
    assert config["database_type"] == "sqlite"
    assert config["log_level"] == "WARNING"
    assert config["max_history"] == DEFAULT_CONFIG["max_history"]
