import json
import re

from .logger import get_logger
from .models import RolloutConfig

# Recognized keys, camelCase as written in rollout files -> RolloutConfig field
KEYS = {
    "batchSize": "batch_size",
    "healthRetries": "health_retries",
    "healthDelay": "health_delay_s",
    "failFast": "fail_fast",
    "targetList": "target_list",
    "maxConcurrency": "max_concurrency",
    "failureTolerance": "failure_tolerance",
    "healthStatusCode": "health_status_code",
    "updateTimeout": "update_timeout_s",
    "requestTimeout": "request_timeout_s",
    "lbUrl": "lb_url",
    "updateCommand": "update_command",
}
DURATION_FIELDS = {"health_delay_s", "update_timeout_s", "request_timeout_s"}
_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, None: 1.0}


def parse_duration(value):
    """Seconds as a number, or a string like "500ms", "10s", "2m" """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"duration must be >= 0: {value}")
        return float(value)
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ValueError(f"invalid duration: {value!r}")
    return float(match.group(1)) * _UNITS[match.group(2)]


def _check_int(name, value, minimum):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")


def _check_seconds(name, value, optional=False):
    if value is None and optional:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number of seconds")
    if value < 0:
        raise ValueError(f"{name} must be >= 0")


def validate_config(config):
    _check_int("batch_size", config.batch_size, 1)
    _check_int("health_retries", config.health_retries, 1)
    _check_int("max_concurrency", config.max_concurrency, 1)
    _check_int("failure_tolerance", config.failure_tolerance, 0)
    _check_int("health_status_code", config.health_status_code, 100)
    _check_seconds("health_delay_s", config.health_delay_s)
    _check_seconds("request_timeout_s", config.request_timeout_s)
    _check_seconds("update_timeout_s", config.update_timeout_s, optional=True)
    if not isinstance(config.fail_fast, bool):
        raise ValueError("fail_fast must be a boolean")
    if not all(isinstance(t, str) and t for t in config.target_list):
        raise ValueError("target_list must contain non-empty strings")
    if len(set(config.target_list)) != len(config.target_list):
        raise ValueError("target_list contains duplicates")
    if not all(isinstance(part, str) for part in config.update_command):
        raise ValueError("update_command must be a list of strings")
    return config


def config_from_mapping(data, **overrides):
    """Build a RolloutConfig from camelCase or snake_case keys; overrides win when not None"""
    logger = get_logger("config")
    fields = {}
    for key, value in dict(data).items():
        name = KEYS.get(key, key)
        if name not in RolloutConfig.__dataclass_fields__:
            logger.warning(f"Ignoring unknown config key: {key}")
            continue
        fields[name] = value
    for name, value in overrides.items():
        if value is not None:
            fields[name] = value

    for name in DURATION_FIELDS & set(fields):
        fields[name] = parse_duration(fields[name])
    if "target_list" in fields:
        fields["target_list"] = list(fields["target_list"])
    if "update_command" in fields:
        fields["update_command"] = list(fields["update_command"] or [])

    return validate_config(RolloutConfig(**fields))


def load_config(path, **overrides):
    logger = get_logger("config")
    try:
        with open(path) as f:
            data = json.load(f)
    except Exception as e:
        logger.error(f"Error loading config: {e}")
        raise
    if not isinstance(data, dict):
        raise ValueError("config file must contain a JSON object")
    return config_from_mapping(data, **overrides)
