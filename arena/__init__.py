from .models import Arena, ArenaStatus, MatchResult
from .scheduler import ArenaScheduler, SchedulerConfig
from .tiers import TierCatalogue, TierConfig, load_tiers

__all__ = [
    "Arena",
    "ArenaStatus",
    "MatchResult",
    "ArenaScheduler",
    "SchedulerConfig",
    "TierCatalogue",
    "TierConfig",
    "load_tiers",
]
