from __future__ import annotations

from datetime import datetime
import logging
import math
from typing import Callable

from clawclub_agent.config import BudgetConfig
from clawclub_agent.models import DailyStats, ItemKind, utc_now
from clawclub_agent.storage import KeyValueStore

LOGGER = logging.getLogger("clawclub_agent")

DAILY_KEY = "daily"


class BudgetLedger:
    """Daily token spend and per-kind counters, persisted under ``daily``.

    The reserve is carved off the nominal daily ceiling on every read, so
    ``available()`` can go negative when external spends push ``tokens_used``
    past ``daily_tokens - reserve``; nothing is capped after the fact.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: BudgetConfig,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.config = config
        self.clock = clock
        self.stats = DailyStats.from_dict(store.get(DAILY_KEY), self._today())
        self.rollover_if_new_day()

    def _today(self) -> str:
        return self.clock().date().isoformat()

    def rollover_if_new_day(self) -> bool:
        today = self._today()
        if self.stats.date == today:
            return False
        LOGGER.info(
            "budget_rollover previous_date=%s tokens_used=%s battles=%s tasks=%s",
            self.stats.date or "-",
            self.stats.tokens_used,
            self.stats.battles_joined,
            self.stats.tasks_completed,
        )
        self.stats = DailyStats(date=today)
        return True

    def reserve(self) -> float:
        return self.config.reserve

    def available(self) -> int:
        return math.floor(self.config.daily_tokens - self.stats.tokens_used - self.reserve())

    def record_spend(self, tokens: int) -> None:
        if tokens < 0:
            raise ValueError(f"spend must be >= 0, got {tokens}")
        self.stats.tokens_used += int(tokens)

    def record_battle(self) -> None:
        self.stats.battles_joined += 1

    def record_task(self) -> None:
        self.stats.tasks_completed += 1

    def record_completion(self, kind: ItemKind, tokens: int) -> None:
        self.record_spend(tokens)
        if kind == ItemKind.BATTLE:
            self.record_battle()
        else:
            self.record_task()
        self.save()

    def save(self) -> None:
        self.store.set(DAILY_KEY, self.stats.to_dict())
