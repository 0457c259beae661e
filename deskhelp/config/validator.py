"""
Configuration validator for the environment and the optional config.yaml.

Validates required secrets, structure, and common misconfigurations.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping


logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = ("DISCORD_TOKEN", "OPENAI_API_KEY", "OPENAI_BASE_URL", "AI_MODEL")
ID_LIST_ENV_VARS = ("AUTORESPOND_CHANNELS", "ADMIN_IDS")


class ConfigValidationError(Exception):
    """Raised when config validation fails."""
    pass


def _is_id(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and value.strip().isdigit()


def validate_config(
    env: Mapping[str, str],
    settings: dict[str, Any],
    config_path: str = "config.yaml",
) -> None:
    """
    Validation of the process environment and config.yaml content.

    Raises ConfigValidationError if validation fails.
    Logs detailed error messages before raising.

    Args:
        env: Environment variables (usually os.environ)
        settings: The loaded YAML settings dictionary (may be empty)
        config_path: Path to config file (for error messages)

    Raises:
        ConfigValidationError: If validation fails
    """
    errors = []
    warnings = []

    # ── Check required environment variables ────────────────────────────────
    for name in REQUIRED_ENV_VARS:
        if not (env.get(name) or "").strip():
            errors.append(f"Missing or empty required environment variable: {name}")

    base_url = (env.get("OPENAI_BASE_URL") or "").strip()
    if base_url and not base_url.startswith(("http://", "https://")):
        errors.append(f"OPENAI_BASE_URL must start with http:// or https://, got '{base_url}'")

    for name in ID_LIST_ENV_VARS:
        raw = env.get(name) or ""
        for part in filter(None, (p.strip() for p in raw.split(","))):
            if not part.isdigit():
                errors.append(f"{name} must be a comma-separated list of ids, got '{part}'")

    # ── Check root structure ────────────────────────────────────────────────
    if not isinstance(settings, dict):
        errors.append(f"Config root must be a mapping, got {type(settings).__name__}")
        settings = {}

    # ── Validate string settings ────────────────────────────────────────────
    for key in ("persona", "system_prompt", "status_message"):
        if key in settings and settings[key] is not None and not isinstance(settings[key], str):
            errors.append(f"'{key}' must be a string, got {type(settings[key]).__name__}")

    # ── Validate id lists ───────────────────────────────────────────────────
    for key in ("autorespond_channels", "admin_ids"):
        if key in settings:
            ids = settings[key]
            if ids is None:
                continue
            if not isinstance(ids, list):
                errors.append(f"'{key}' must be a list, got {type(ids).__name__}")
                continue
            for i, value in enumerate(ids):
                if not _is_id(value):
                    errors.append(f"'{key}[{i}]' must be a Discord id, got {value!r}")

    # ── Validate numbers ────────────────────────────────────────────────────
    if "max_tokens" in settings:
        max_tokens = settings["max_tokens"]
        if max_tokens is not None and (isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0):
            errors.append(f"'max_tokens' must be a positive integer or null, got {max_tokens!r}")

    if "response_timeout" in settings:
        timeout = settings["response_timeout"]
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            errors.append(f"'response_timeout' must be a positive number, got {timeout!r}")
        elif timeout > 600:
            warnings.append(f"'response_timeout' of {timeout}s is unusually long")

    # ── Validate flags ──────────────────────────────────────────────────────
    for key in ("stream_responses", "show_footer", "allow_dms"):
        if key in settings and not isinstance(settings[key], bool):
            errors.append(f"'{key}' must be boolean, got {type(settings[key]).__name__}")

    known = {
        "persona", "system_prompt", "status_message", "autorespond_channels", "admin_ids",
        "max_tokens", "response_timeout", "stream_responses", "show_footer", "allow_dms",
    }
    for key in settings:
        if key not in known:
            warnings.append(f"Unknown config key '{key}' is ignored")

    # ── Log warnings ────────────────────────────────────────────────────────
    for warning in warnings:
        logger.warning("Config warning: %s", warning)

    # ── Log errors and raise if any ─────────────────────────────────────────
    if errors:
        logger.error("=" * 70)
        logger.error("CONFIG VALIDATION FAILED (%s)", config_path)
        logger.error("=" * 70)
        for i, error in enumerate(errors, 1):
            logger.error("[%d] %s", i, error)
        logger.error("=" * 70)
        logger.error("Please fix the errors above and restart the bot.")
        logger.error("=" * 70)
        raise ConfigValidationError(f"Config validation failed with {len(errors)} error(s)")
