from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Callable, Iterable

from clawclub_agent.models import WorkItem, parse_int, parse_ts, utc_now
from clawclub_agent.storage import KeyValueStore

LOGGER = logging.getLogger("clawclub_agent")

CLAIMED_KEY = "claimed"


class ClaimRegistry:
    """Every item identifier this agent ever claimed, with its claim time.

    Entries are only removed by an explicit ``prune`` call; the arbiter never
    prunes.

    Older state stored a bare list of issue numbers. Such numbers are mapped
    onto ``"<pool>#<number>"`` for every pool in ``legacy_pools``, since the
    list never recorded which repository a number came from.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], datetime] = utc_now,
        legacy_pools: Iterable[str] = (),
    ) -> None:
        self.store = store
        self.clock = clock
        self.legacy_pools = tuple(legacy_pools)
        self._claimed = self._load()

    def _load(self) -> dict[str, str]:
        raw = self.store.get(CLAIMED_KEY)
        if isinstance(raw, dict):
            return {str(key): str(value) for key, value in raw.items()}
        if isinstance(raw, list):
            # Bare lists carry no claim time.
            out: dict[str, str] = {}
            for entry in raw:
                for item_id in self._legacy_ids(entry):
                    out[item_id] = ""
            return out
        return {}

    def _legacy_ids(self, entry: object) -> list[str]:
        number = parse_int(entry, 0)
        text = str(entry).strip()
        if number <= 0 or "#" in text:
            return [text] if text else []
        if not self.legacy_pools:
            return [str(number)]
        return [WorkItem.make_id(pool, number) for pool in self.legacy_pools]

    def __len__(self) -> int:
        return len(self._claimed)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._claimed

    def contains(self, item_id: str) -> bool:
        return item_id in self._claimed

    def claimed_at(self, item_id: str) -> datetime | None:
        return parse_ts(self._claimed.get(item_id))

    def add(self, item_id: str) -> None:
        if item_id in self._claimed:
            return
        self._claimed[item_id] = self.clock().isoformat()
        self.store.set(CLAIMED_KEY, self._claimed)

    def unclaimed(self, items: Iterable[WorkItem]) -> list[WorkItem]:
        return [item for item in items if item.item_id not in self._claimed]

    def prune(self, older_than: timedelta) -> list[str]:
        cutoff = self.clock() - older_than
        removed: list[str] = []
        for item_id in list(self._claimed):
            claimed_at = self.claimed_at(item_id)
            if claimed_at is not None and claimed_at < cutoff:
                removed.append(item_id)
                del self._claimed[item_id]
        if removed:
            self.store.set(CLAIMED_KEY, self._claimed)
            LOGGER.info("claims_pruned count=%s remaining=%s", len(removed), len(self._claimed))
        return removed
