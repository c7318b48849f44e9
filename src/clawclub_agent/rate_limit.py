from __future__ import annotations

from clawclub_agent.config import MAX_BATTLES_PER_DAY, Preferences
from clawclub_agent.models import DailyStats, GateDecision, ItemKind


class RateLimiter:
    def can_claim(self, kind: ItemKind, stats: DailyStats, preferences: Preferences) -> GateDecision:
        if kind == ItemKind.BATTLE:
            if stats.battles_joined >= MAX_BATTLES_PER_DAY:
                return GateDecision(False, f"battle limit reached ({stats.battles_joined}/{MAX_BATTLES_PER_DAY})")
            return GateDecision(True)
        limit = preferences.for_good.max_tasks_per_day
        if stats.tasks_completed >= limit:
            return GateDecision(False, f"task limit reached ({stats.tasks_completed}/{limit})")
        return GateDecision(True)
