"""
Environment loader for the arena.
Reads .env and exposes decision provider credentials without logging secrets.
"""

from __future__ import annotations

import os
from typing import Dict, Optional

ENV_KEYS = [
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "GROQ_API_KEY",
]


def _parse_dotenv(path: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    if not os.path.exists(path):
        return values
    with open(path, "r", encoding="utf-8") as f:
        for line in f.readlines():
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if stripped.startswith("export "):
                stripped = stripped[len("export ") :]
            if "=" not in stripped:
                continue
            key, value = stripped.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key:
                values[key] = value
    return values


def load_env(dotenv_path: str = ".env") -> Dict[str, Optional[str]]:
    """
    Load provider credentials from .env and os.environ.

    Process environment wins over the file. Missing keys map to None; empty
    strings are treated as missing so a blank line in .env never enables a
    provider.
    """

    env_values = _parse_dotenv(dotenv_path)
    for key in ENV_KEYS:
        if key in os.environ:
            env_values[key] = os.environ[key]
    return {key: (env_values.get(key) or None) for key in ENV_KEYS}


def configured_providers(dotenv_path: str = ".env") -> Dict[str, bool]:
    """Which providers have a key, by provider name. Values only, never the keys."""
    env = load_env(dotenv_path)
    return {
        "anthropic": bool(env["ANTHROPIC_API_KEY"]),
        "gemini": bool(env["GEMINI_API_KEY"]),
        "groq": bool(env["GROQ_API_KEY"]),
    }


def apply_env(dotenv_path: str = ".env") -> Dict[str, bool]:
    """Export .env credentials into os.environ so gateway config sees them."""
    for key, value in load_env(dotenv_path).items():
        if value and key not in os.environ:
            os.environ[key] = value
    return configured_providers(dotenv_path)


__all__ = ["load_env", "configured_providers", "apply_env", "ENV_KEYS"]
