"""Benchmark configuration.

The config lives in a JSON file next to where the benchmark is run. If it doesn't
exist we write a default template and ask the operator to fill it in.
"""

import logging
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, NonNegativeFloat, NonNegativeInt, PositiveInt, ValidationError

import memobench.constants as C

log = logging.getLogger("memobench.config")

DEFAULT_CONFIG_FILE = Path("config.json")

# Same variable names the endpoints can be overridden with in docker setups.
ENV_OVERRIDES = {
    "rpc_url": "RPC_URL",
    "ws_url": "WS_URL",
    "send_rpc_url": "SEND_RPC_URL",
}


class ConfigError(Exception):
    """Config or credential can't be used. Fatal before anything is sent."""


class ConfigCreated(Exception):
    """No config existed, so a default template was written."""

    def __init__(self, path: Path):
        super().__init__(f"config file saved to {path}")
        self.path = path


class BenchConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    private_key: str = ""
    rpc_url: str = "http://node.foo.cc"
    ws_url: str = ""
    send_rpc_url: str = ""
    rate_limit: PositiveInt = 200
    rate_burst: PositiveInt | None = None
    tx_count: PositiveInt = 100
    prio_fee: NonNegativeFloat = 0.0  # lamports per compute unit
    node_retries: NonNegativeInt = 0

    @property
    def ws_endpoint(self) -> str:
        if self.ws_url:
            return self.ws_url
        return self.rpc_url.replace("http://", "ws://").replace("https://", "wss://")

    @property
    def send_endpoint(self) -> str:
        return self.send_rpc_url or self.rpc_url

    @property
    def burst(self) -> int:
        return self.rate_burst or self.rate_limit

    @property
    def cost_per_tx(self) -> int:
        """Worst case lamports per transaction: priority fee at the CU limit plus the base fee."""
        return int(self.prio_fee * C.COMPUTE_UNIT_LIMIT + C.BASE_FEE_LAMPORTS)

    @property
    def total_cost(self) -> int:
        return self.tx_count * self.cost_per_tx


def write_config(path: Path, config: BenchConfig) -> None:
    path.write_text(config.model_dump_json(indent=2) + "\n")


def apply_env_overrides(config: BenchConfig, environ=None) -> BenchConfig:
    environ = os.environ if environ is None else environ
    updates = {field: environ[var] for field, var in ENV_OVERRIDES.items() if environ.get(var)}
    if not updates:
        return config
    log.debug("Config overridden from environment: %s", sorted(updates))
    return config.model_copy(update=updates)


def load_config(path: Path = DEFAULT_CONFIG_FILE, environ=None) -> BenchConfig:
    """Read and validate the config file.

    Raises:
        ConfigCreated: the file was missing and a default one was written.
        ConfigError: the file couldn't be read or doesn't validate.
    """
    path = Path(path)
    try:
        text = path.read_text()
    except FileNotFoundError:
        try:
            write_config(path, BenchConfig())
        except OSError as e:
            raise ConfigError(f"error creating config file {path}: {e}") from e
        raise ConfigCreated(path)
    except OSError as e:
        raise ConfigError(f"error opening config file {path}: {e}") from e

    try:
        config = BenchConfig.model_validate_json(text)
    except ValidationError as e:
        raise ConfigError(f"error parsing config file {path}: {e}") from e

    return apply_env_overrides(config, environ)
