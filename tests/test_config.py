"""
Configuration loading tests.
"""

import json

import pytest

from blocktime.config import Config, ENV_PREFIX, build_config, load_env
from blocktime.errors import ConfigError


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Keep a stray config.json in the working directory out of the tests."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


def write_config(path, data):
    path.write_text(json.dumps(data))
    return str(path)


class TestDefaults:
    def test_defaults_are_valid(self):
        config = build_config(environ={})
        assert config == Config()
        assert config.validate() == []
        assert config.chain.rpc_endpoint == "http://localhost:26657"
        assert config.calculator.sample_size == 100
        assert config.calculator.min_sample_size == 30
        assert config.calculator.use_median_absolute is True
        assert config.output.format == "text"


class TestPrecedence:
    """File < environment < command line overrides."""

    def test_file_values(self, tmp_path):
        path = write_config(tmp_path / "chain.json", {
            "chain": {"rpc_endpoint": "http://file:26657", "chain_type": "bitcoin"},
            "calculator": {"sample_size": 200},
        })
        config = build_config(path, environ={})
        assert config.chain.rpc_endpoint == "http://file:26657"
        assert config.chain.chain_type == "bitcoin"
        assert config.calculator.sample_size == 200
        assert config.chain.timeout == 30.0

    def test_env_overrides_file(self, tmp_path):
        path = write_config(tmp_path / "chain.json", {"chain": {"rpc_endpoint": "http://file:26657"}})
        environ = {ENV_PREFIX + "RPC": "http://env:26657", ENV_PREFIX + "SAMPLE_SIZE": "300"}
        config = build_config(path, environ=environ)
        assert config.chain.rpc_endpoint == "http://env:26657"
        assert config.calculator.sample_size == 300

    def test_overrides_win(self, tmp_path):
        path = write_config(tmp_path / "chain.json", {"calculator": {"confidence_level": 0.8}})
        environ = {ENV_PREFIX + "CONFIDENCE": "0.9"}
        config = build_config(path, overrides={"calculator": {"confidence_level": 0.5}}, environ=environ)
        assert config.calculator.confidence_level == 0.5

    def test_default_file_in_working_directory(self, isolated_cwd):
        write_config(isolated_cwd / "config.json", {"output": {"format": "json"}})
        assert build_config(environ={}).output.format == "json"

    def test_env_booleans(self):
        environ = {ENV_PREFIX + "USE_MAD": "false", ENV_PREFIX + "VERBOSE": "yes"}
        config = build_config(environ=environ)
        assert config.calculator.use_median_absolute is False
        assert config.output.verbose is True

    def test_load_env_ignores_other_variables(self):
        assert load_env({"PATH": "/usr/bin", ENV_PREFIX + "OUTPUT": "table"}) == {"output": {"format": "table"}}


class TestInvalid:
    def test_unknown_key(self, tmp_path):
        path = write_config(tmp_path / "chain.json", {"chain": {"rpc": "http://x"}})
        with pytest.raises(ConfigError) as exc_info:
            build_config(path, environ={})
        assert "unknown config key: chain.rpc" in exc_info.value.problems

    def test_unknown_section(self, tmp_path):
        path = write_config(tmp_path / "chain.json", {"network": {}})
        with pytest.raises(ConfigError):
            build_config(path, environ={})

    def test_min_sample_size_above_sample_size(self):
        with pytest.raises(ConfigError) as exc_info:
            build_config(overrides={"calculator": {"sample_size": 20, "min_sample_size": 30}}, environ={})
        assert any("min sample size" in p for p in exc_info.value.problems)

    @pytest.mark.parametrize("confidence", [0, 1, 1.5, -0.1])
    def test_confidence_out_of_range(self, confidence):
        with pytest.raises(ConfigError):
            build_config(overrides={"calculator": {"confidence_level": confidence}}, environ={})

    def test_bad_env_number(self):
        with pytest.raises(ConfigError) as exc_info:
            build_config(environ={ENV_PREFIX + "SAMPLE_SIZE": "lots"})
        assert exc_info.value.problems[0].startswith("calculator.sample_size")

    def test_unknown_chain_type(self):
        with pytest.raises(ConfigError):
            build_config(overrides={"chain": {"chain_type": "solana"}}, environ={})

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            build_config(str(tmp_path / "absent.json"), environ={})

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError):
            build_config(str(path), environ={})


def test_save_and_reload(tmp_path):
    path = str(tmp_path / "saved.json")
    original = build_config(overrides={"chain": {"chain_type": "bitcoin", "rpc_endpoint": "http://btc:8332"},
                                       "output": {"format": "table"}}, environ={})
    original.save(path)
    assert build_config(path, environ={}) == original
