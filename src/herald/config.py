"""Configuration loading and merging for herald."""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, Optional

import yaml


DEFAULT_KEY_PREFIX = "registry.redis."
DEFAULT_CLUSTER = "default"


@dataclass
class PoolConfig:
    """Connection pool knobs.

    Non-positive values mean "leave the pool default alone". Only the knobs
    with a redis-py counterpart change pool behaviour (see ``pool_kwargs``);
    the rest are accepted so existing registry config files load unchanged.
    """
    max_idle: int = 0
    min_idle: int = 0
    max_active: int = 0
    max_total: int = 0
    max_wait: int = 0  # milliseconds
    test_on_borrow: bool = True
    test_on_return: bool = False
    test_while_idle: bool = False
    num_tests_per_eviction_run: int = 0
    time_between_eviction_runs_millis: int = 0
    min_evictable_idle_time_millis: int = 0

    def pool_kwargs(self) -> dict:
        """Translate to ``redis.BlockingConnectionPool`` keyword arguments."""
        kwargs: dict = {}
        # max_total wins over max_active when both are set
        max_connections = self.max_total if self.max_total > 0 else self.max_active
        if max_connections > 0:
            kwargs["max_connections"] = max_connections
        if self.max_wait > 0:
            kwargs["timeout"] = self.max_wait / 1000.0
        if self.test_while_idle and self.time_between_eviction_runs_millis > 0:
            kwargs["health_check_interval"] = max(1, self.time_between_eviction_runs_millis // 1000)
        return kwargs


@dataclass
class RegistryConfig:
    # Store endpoint
    server_addr: str = "localhost:6379"
    password: Optional[str] = None
    db: int = 0
    socket_timeout: float = 2.0

    # Cluster this process registers into, and the hash/channel key prefix
    cluster: str = DEFAULT_CLUSTER
    key_prefix: str = DEFAULT_KEY_PREFIX

    # Lookup key -> cluster name
    vgroup_mapping: Dict[str, str] = field(default_factory=dict)

    # Heartbeat re-registration
    heartbeat_enabled: bool = True
    heartbeat_period: float = 60.0

    # Subscription loop backoff (seconds); None retries forever
    backoff_base: float = 0.5
    backoff_max: float = 30.0
    backoff_max_retries: Optional[int] = None
    poll_interval: float = 1.0

    # How long a first lookup waits for its cluster's initial sync (seconds)
    lookup_timeout: float = 5.0

    pool: PoolConfig = field(default_factory=PoolConfig)

    @property
    def host(self) -> str:
        return self.server_addr.rsplit(":", 1)[0]

    @property
    def port(self) -> int:
        return int(self.server_addr.rsplit(":", 1)[1])

    def registry_key(self, cluster: str) -> str:
        """Hash key and channel name for *cluster* (the same string serves both)."""
        return f"{self.key_prefix}{cluster}"


def load_config(path: str | Path) -> RegistryConfig:
    """Load a RegistryConfig from a YAML file."""
    path = Path(path)
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    # Pool knobs live in their own section
    raw_pool = {k.replace("-", "_"): v for k, v in (data.pop("pool", None) or {}).items()}
    # "timeout" is the older name for max_wait
    if "max_wait" not in raw_pool and "timeout" in raw_pool:
        raw_pool["max_wait"] = raw_pool["timeout"]
    pool_fields = {f.name for f in fields(PoolConfig)}
    pool = PoolConfig(**{k: v for k, v in raw_pool.items() if k in pool_fields})

    valid_fields = {f.name for f in fields(RegistryConfig)} - {"pool"}
    filtered = {k.replace("-", "_"): v for k, v in data.items()
                if k.replace("-", "_") in valid_fields}
    if filtered.get("vgroup_mapping") is None:
        filtered.pop("vgroup_mapping", None)

    return RegistryConfig(**filtered, pool=pool)


def merge_cli_args(config: RegistryConfig, args) -> RegistryConfig:
    """Overlay CLI arguments onto an existing config. CLI values take precedence."""
    for f in fields(RegistryConfig):
        if f.name in ("pool", "vgroup_mapping"):
            continue
        cli_val = getattr(args, f.name, None)
        if cli_val is not None:
            setattr(config, f.name, cli_val)
    return config


def config_to_yaml(config: RegistryConfig) -> str:
    """Serialize a RegistryConfig to YAML."""
    data: dict = {
        "server_addr": config.server_addr,
        "db": config.db,
        "cluster": config.cluster,
    }
    if config.password:
        data["password"] = config.password
    if config.key_prefix != DEFAULT_KEY_PREFIX:
        data["key_prefix"] = config.key_prefix
    if config.vgroup_mapping:
        data["vgroup_mapping"] = dict(config.vgroup_mapping)
    data["heartbeat_enabled"] = config.heartbeat_enabled
    data["heartbeat_period"] = config.heartbeat_period

    # Only non-default pool knobs
    defaults = PoolConfig()
    pool = {
        f.name: getattr(config.pool, f.name)
        for f in fields(PoolConfig)
        if getattr(config.pool, f.name) != getattr(defaults, f.name)
    }
    if pool:
        data["pool"] = pool

    return yaml.dump(data, default_flow_style=False, sort_keys=False)
