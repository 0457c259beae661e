"""
System prompt personas shipped under deskhelp/config/personas/.

A persona is a plain prompt file (`.md` or `.txt`) or a YAML mapping holding
the prompt under `prompt` or `system_prompt`. `{date}` and `{time}` in the
prompt are filled in per request by format_system_prompt.
"""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
from typing import Any

import yaml


PERSONAS_DIR = Path(__file__).parent / "personas"
DEFAULT_PERSONA = "deskthing"

# Lookup order when several files share a persona name.
PERSONA_SUFFIXES = (".md", ".txt", ".yaml", ".yml")


def find_persona_file(name: str, base: Path = PERSONAS_DIR) -> Path:
    for suffix in PERSONA_SUFFIXES:
        path = base / f"{name}{suffix}"
        if path.is_file():
            return path
    raise FileNotFoundError(f"Persona '{name}' not found in {base}")


def _read_persona(path: Path) -> str:
    raw = path.read_text(encoding="utf-8")
    if path.suffix not in (".yaml", ".yml"):
        return raw.strip()

    data: Any = yaml.safe_load(raw) or {}
    prompt = next(
        (data[key] for key in ("prompt", "system_prompt") if isinstance(data, dict) and isinstance(data.get(key), str)),
        None,
    )
    if prompt is None:
        raise ValueError(f"{path.name}: expected a 'prompt' or 'system_prompt' string")
    return prompt.strip()


def load_persona(name: str, base: Path = PERSONAS_DIR) -> str:
    return _read_persona(find_persona_file(name, base))


def resolve_system_prompt(settings: dict[str, Any], base: Path = PERSONAS_DIR) -> str:
    """
    Pick the system prompt for the bot from the YAML settings.

    `persona` names a file under `base`; if it is unset and no inline
    `system_prompt` is given either, DEFAULT_PERSONA is used. A persona that
    fails to load is logged and the inline prompt (possibly empty) is used.
    """
    inline = (settings.get("system_prompt") or "").strip()
    persona = settings.get("persona", None if inline else DEFAULT_PERSONA)
    if not persona:
        return inline
    try:
        return load_persona(persona, base) or inline
    except (OSError, ValueError, yaml.YAMLError) as e:
        logging.warning("Persona '%s' unavailable, using inline system_prompt: %s", persona, e)
        return inline


def format_system_prompt(prompt: str, now: datetime | None = None) -> str:
    now = now or datetime.now().astimezone()
    return prompt.replace("{date}", now.strftime("%B %d %Y")).replace("{time}", now.strftime("%H:%M:%S %Z%z")).strip()
