from strategies.base import (
    CallableStrategy,
    Strategy,
    available_strategies,
    get_strategy,
    register_strategy,
)
from strategies.templates import TEMPLATES, TemplateStrategy

__all__ = [
    "CallableStrategy",
    "Strategy",
    "TEMPLATES",
    "TemplateStrategy",
    "available_strategies",
    "get_strategy",
    "register_strategy",
]
