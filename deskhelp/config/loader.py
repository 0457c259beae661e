from __future__ import annotations

import logging
import os
import sys
from typing import Any, Mapping

from dotenv import load_dotenv
import yaml

from .models import Config
from .personas import resolve_system_prompt
from .validator import validate_config, ConfigValidationError


DEFAULT_CONFIG_FILE = "config.yaml"
CONFIG_ENV_VAR = "CONFIG_PATH"


def get_config_path(env: Mapping[str, str] | None = None) -> tuple[str, bool]:
    """
    Resolve the config path, preferring an explicit environment override.

    Returns (path, explicit); only an explicit path is required to exist.
    """
    env = os.environ if env is None else env
    env_path = env.get(CONFIG_ENV_VAR)
    if env_path:
        return env_path, True
    return DEFAULT_CONFIG_FILE, False


def _load_raw_config(path: str, required: bool) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        if not required:
            logging.debug("No config file at %s, using defaults", path)
            return {}
        logging.error("Config file not found: %s", path)
        raise ConfigValidationError(f"Config file not found: {path}")
    except yaml.YAMLError as e:
        logging.error("YAML parsing error in %s: %s", path, e)
        raise ConfigValidationError(f"YAML parsing error in {path}") from e

    if not isinstance(data, dict):
        logging.error("Config root must be a mapping, got %s", type(data).__name__)
        raise ConfigValidationError("Config root must be a mapping")

    return data


def _parse_ids(values: Any) -> list[int]:
    if isinstance(values, str):
        values = values.split(",")
    return [int(str(v).strip()) for v in values or () if str(v).strip()]


def load_config(env: Mapping[str, str] | None = None, path: str | None = None) -> Config:
    """
    Build a Config from the environment and the optional YAML settings file.

    Raises ConfigValidationError on any missing secret or malformed setting.
    """
    env = os.environ if env is None else env
    if path is None:
        path, required = get_config_path(env)
    else:
        required = True

    settings = _load_raw_config(path, required)
    validate_config(env, settings, path)

    autorespond = _parse_ids(env.get("AUTORESPOND_CHANNELS") or settings.get("autorespond_channels"))
    admin_ids = _parse_ids(env.get("ADMIN_IDS") or settings.get("admin_ids"))
    max_tokens = settings.get("max_tokens", 1800)

    return Config(
        discord_token=env["DISCORD_TOKEN"].strip(),
        openai_api_key=env["OPENAI_API_KEY"].strip(),
        openai_base_url=env["OPENAI_BASE_URL"].strip(),
        ai_model=env["AI_MODEL"].strip(),
        system_prompt=resolve_system_prompt(settings),
        autorespond_channels=frozenset(autorespond),
        admin_ids=tuple(admin_ids),
        max_tokens=max_tokens,
        response_timeout=float(settings.get("response_timeout", 60)),
        stream_responses=settings.get("stream_responses", True),
        show_footer=settings.get("show_footer", True),
        allow_dms=settings.get("allow_dms", True),
        status_message=(settings.get("status_message") or "").strip(),
    )


def get_config(path: str | None = None) -> Config:
    """
    Public helper for loading configuration at startup.

    - Reads a .env file first; variables already in the environment win.
    - Respects CONFIG_PATH if set.
    - Exits with error code 1 if validation fails, before any network I/O.
    """
    load_dotenv()
    try:
        return load_config(path=path)
    except ConfigValidationError:
        sys.exit(1)
