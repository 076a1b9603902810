from __future__ import annotations

import logging
import os
from typing import Any

_ENV_CACHE: dict[str, str] | None = None

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] %(message)s"


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and ((value[0] == value[-1]) and value.startswith(("'", '"'))):
        return value[1:-1]
    return value


def _parse_env_lines(lines) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):]
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key:
            data[key] = _strip_quotes(value.strip())
    return data


def _load_env_file() -> dict[str, str]:
    env_path = os.environ.get("ENV_FILE", ".env")
    if not os.path.isabs(env_path):
        base_dir = os.path.dirname(os.path.abspath(__file__))
        env_path = os.path.join(base_dir, env_path)

    if not os.path.exists(env_path):
        return {}

    try:
        with open(env_path, "r") as f:
            return _parse_env_lines(f)
    except OSError as e:
        logging.getLogger("led_matrix").warning(f"Cannot read env file {env_path}: {e}")
        return {}


def _get_cache() -> dict[str, str]:
    global _ENV_CACHE
    if _ENV_CACHE is None:
        _ENV_CACHE = _load_env_file()
    return _ENV_CACHE


def reload_config() -> None:
    """Drop the cached .env contents so the next lookup re-reads the file."""
    global _ENV_CACHE
    _ENV_CACHE = None


def get_config(key: str, default: Any | None = None) -> Any:
    cache = _get_cache()
    if key in cache:
        return cache[key]
    return os.environ.get(key, default)


def get_bool(key: str, default: bool = False) -> bool:
    value = get_config(key, None)
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _get_number(key: str, default, cast):
    value = get_config(key, None)
    if value is None or str(value).strip() == "":
        return default
    try:
        return cast(value)
    except (TypeError, ValueError):
        logging.getLogger("led_matrix").warning(
            f"Invalid value for {key}: {value!r}, using default {default}"
        )
        return default


def get_int(key: str, default: int) -> int:
    return _get_number(key, default, int)


def get_float(key: str, default: float) -> float:
    return _get_number(key, default, float)


def get_logger(name: str = "led_matrix") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(sh)
    level_name = str(get_config("LOG_LEVEL", "INFO")).strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        logger.warning(f"Unknown LOG_LEVEL {level_name!r}, using INFO")
        level = logging.INFO
    logger.setLevel(level)
    return logger
