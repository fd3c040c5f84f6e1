import json

import pytest

from memobench.config import BenchConfig, ConfigCreated, ConfigError, apply_env_overrides, load_config


def test_missing_file_writes_template(tmp_path):
    path = tmp_path / "config.json"

    with pytest.raises(ConfigCreated) as exc:
        load_config(path, environ={})

    assert exc.value.path == path
    written = json.loads(path.read_text())
    assert written["rpc_url"] == "http://node.foo.cc"
    assert written["rate_limit"] == 200
    assert written["tx_count"] == 100
    assert written["private_key"] == ""
    # and the template loads back
    assert load_config(path, environ={}) == BenchConfig()


def test_malformed_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    with pytest.raises(ConfigError, match="error parsing config file"):
        load_config(path, environ={})


def test_invalid_values(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"rpc_url": "http://x", "tx_count": -1}))
    with pytest.raises(ConfigError):
        load_config(path, environ={})


def test_endpoint_defaults():
    config = BenchConfig(rpc_url="https://rpc.example:8899")
    assert config.ws_endpoint == "wss://rpc.example:8899"
    assert config.send_endpoint == "https://rpc.example:8899"
    assert BenchConfig(rpc_url="http://127.0.0.1:8899").ws_endpoint == "ws://127.0.0.1:8899"


def test_explicit_endpoints_win():
    config = BenchConfig(rpc_url="http://a", ws_url="ws://b", send_rpc_url="http://c")
    assert config.ws_endpoint == "ws://b"
    assert config.send_endpoint == "http://c"


def test_burst_defaults_to_rate():
    assert BenchConfig(rate_limit=50).burst == 50
    assert BenchConfig(rate_limit=50, rate_burst=5).burst == 5


def test_costs():
    config = BenchConfig(tx_count=10, prio_fee=1.0)
    assert config.cost_per_tx == 35_000
    assert config.total_cost == 350_000
    assert BenchConfig(prio_fee=0).cost_per_tx == 5_000


def test_env_overrides(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"rpc_url": "http://file", "tx_count": 3}))

    config = load_config(path, environ={"RPC_URL": "http://env", "SEND_RPC_URL": "", "WS_URL": "ws://env"})

    assert config.rpc_url == "http://env"
    assert config.ws_url == "ws://env"
    assert config.send_endpoint == "http://env"
    assert config.tx_count == 3
    assert apply_env_overrides(config, environ={}) is config
