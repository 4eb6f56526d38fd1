"""Configuration module: frozen dataclass loaded from YAML and env vars."""

import logging
import os
from dataclasses import dataclass, fields

import yaml

logger = logging.getLogger(__name__)


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class Config:
    host: str = "127.0.0.1"
    port: int = 8080
    # "-" is stdout, "" disables the sink, anything else is a file path.
    access_log: str = "-"
    access_format: str = "combined"
    perf_log: str = ""
    error_log: str = "-"
    stack_in_500: bool = False
    stack_in_log: bool = False
    queue_capacity: int = 1000
    overflow_policy: str = "block"
    log_level: str = "INFO"


def load_yaml_config(path: str | None) -> dict:
    """Load overrides from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config file %s is not a mapping, ignoring it", path)
        return {}
    logger.info("Loaded YAML config from %s", path)
    return data


def load_config(path: str | None = None) -> Config:
    """Build Config from defaults <- YAML file <- env vars (highest priority).

    The YAML path comes from *path* or the ``CONFIG_PATH`` env var.
    """
    known = {f.name for f in fields(Config)}
    kwargs: dict = {}

    for key, value in load_yaml_config(path or os.environ.get("CONFIG_PATH")).items():
        if key in known:
            kwargs[key] = value
        else:
            logger.warning("Ignoring unknown config key %r", key)

    # DETAILED_STACKS turns both on; the specific switches win over it.
    if "DETAILED_STACKS" in os.environ:
        detailed = _parse_bool(os.environ["DETAILED_STACKS"])
        kwargs["stack_in_500"] = detailed
        kwargs["stack_in_log"] = detailed

    env_map = {
        "SERVER_HOST": "host",
        "SERVER_PORT": "port",
        "ACCESS_LOG": "access_log",
        "ACCESS_FORMAT": "access_format",
        "PERF_LOG": "perf_log",
        "ERROR_LOG": "error_log",
        "STACK_IN_500": "stack_in_500",
        "STACK_IN_LOG": "stack_in_log",
        "QUEUE_CAPACITY": "queue_capacity",
        "OVERFLOW_POLICY": "overflow_policy",
        "LOG_LEVEL": "log_level",
    }
    for env_key, field_name in env_map.items():
        if env_key in os.environ:
            kwargs[field_name] = os.environ[env_key]

    return Config(
        host=str(kwargs.get("host", Config.host)),
        port=int(kwargs.get("port", Config.port)),
        access_log=str(kwargs.get("access_log", Config.access_log) or ""),
        access_format=str(kwargs.get("access_format", Config.access_format)).lower(),
        perf_log=str(kwargs.get("perf_log", Config.perf_log) or ""),
        error_log=str(kwargs.get("error_log", Config.error_log) or ""),
        stack_in_500=_parse_bool(kwargs.get("stack_in_500", Config.stack_in_500)),
        stack_in_log=_parse_bool(kwargs.get("stack_in_log", Config.stack_in_log)),
        queue_capacity=int(kwargs.get("queue_capacity", Config.queue_capacity)),
        overflow_policy=str(kwargs.get("overflow_policy", Config.overflow_policy)).lower(),
        log_level=str(kwargs.get("log_level", Config.log_level)).upper(),
    )
