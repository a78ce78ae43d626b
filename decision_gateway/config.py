"""
Decision gateway configuration.
Single choke-point between the match engine and external decision providers.
"""

import os

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
ANTHROPIC_HOST = os.getenv("ARENA_ANTHROPIC_HOST", "https://api.anthropic.com")
ANTHROPIC_MODEL = os.getenv("ARENA_ANTHROPIC_MODEL", "claude-sonnet-4-20250514")
ANTHROPIC_VERSION = os.getenv("ARENA_ANTHROPIC_VERSION", "2023-06-01")

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_HOST = os.getenv(
    "ARENA_GEMINI_HOST", "https://generativelanguage.googleapis.com"
)
GEMINI_MODEL = os.getenv("ARENA_GEMINI_MODEL", "gemini-2.0-flash")

GROQ_API_KEY = os.getenv("GROQ_API_KEY", "")
GROQ_HOST = os.getenv("ARENA_GROQ_HOST", "https://api.groq.com/openai/v1")
GROQ_MODEL = os.getenv("ARENA_GROQ_MODEL", "llama-3.3-70b-versatile")

# Comma-separated provider priority; providers without a key are skipped.
PROVIDER_ORDER = [
    p.strip().lower()
    for p in os.getenv("ARENA_PROVIDER_ORDER", "anthropic,gemini,groq").split(",")
    if p.strip()
]

AI_TIMEOUT = float(os.getenv("ARENA_AI_TIMEOUT", "5"))
STRATEGY_TIMEOUT = float(os.getenv("ARENA_STRATEGY_TIMEOUT", "30"))
PROVIDER_COOLDOWN = float(os.getenv("ARENA_PROVIDER_COOLDOWN", "300"))

# Token bucket shared by every external call in the process.
DECISION_RATE = float(os.getenv("ARENA_DECISION_RATE", "2.0"))
DECISION_BURST = float(os.getenv("ARENA_DECISION_BURST", "1"))

BATTLE_MAX_TOKENS = int(os.getenv("ARENA_BATTLE_MAX_TOKENS", "200"))
RPS_MAX_TOKENS = int(os.getenv("ARENA_RPS_MAX_TOKENS", "100"))

# Structured error codes (error.status / error.type / error.code) that mean rate limited.
RATE_LIMIT_CODES = (
    "429",
    "rate_limit_error",
    "rate_limit_exceeded",
    "resource_exhausted",
    "overloaded_error",
    "too_many_requests",
)
