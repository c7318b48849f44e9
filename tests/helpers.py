from __future__ import annotations

import copy
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
import sys
from typing import Any

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from clawclub_agent.config import (  # noqa: E402
    AgentConfig,
    ArenaPreferences,
    BudgetConfig,
    ForGoodPreferences,
    Preferences,
    resolve_config,
)
from clawclub_agent.matching import PROFILE_SYSTEM  # noqa: E402
from clawclub_agent.models import ItemKind, WorkItem  # noqa: E402

BATTLES = "clawclub/battles"
TASKS = "clawclub/clawback"


def make_config(
    budget: BudgetConfig | None = None,
    arena: ArenaPreferences | None = None,
    for_good: ForGoodPreferences | None = None,
    **kwargs: Any,
) -> AgentConfig:
    cfg = resolve_config({}, {})
    cfg = replace(
        cfg,
        agent_id="claw-test",
        github_token="ghp_test",
        budget=budget or BudgetConfig(daily_tokens=100_000, max_per_battle=2_000, max_per_task=3_000),
        preferences=Preferences(
            arena=arena or ArenaPreferences(categories=("poetry",)),
            for_good=for_good or ForGoodPreferences(categories=("docs",), max_tasks_per_day=3),
        ),
    )
    return replace(cfg, **kwargs)


def make_item(
    number: int,
    kind: ItemKind = ItemKind.TASK,
    labels: tuple[str, ...] = ("docs",),
    body: str = "Summarise the volunteer onboarding guide.",
    title: str = "",
) -> WorkItem:
    pool = BATTLES if kind == ItemKind.BATTLE else TASKS
    return WorkItem(
        item_id=WorkItem.make_id(pool, number),
        number=number,
        title=title or f"Item {number}",
        body=body,
        labels=labels,
        kind=kind,
        pool=pool,
        url=f"https://github.com/{pool}/issues/{number}",
    )


class MemoryStore:
    """In-memory store; `set_errors` makes writes of the given keys raise."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self.set_errors: dict[str, Exception] = {}

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self.data:
            return default
        return copy.deepcopy(self.data[key])

    def set(self, key: str, value: Any) -> None:
        if key in self.set_errors:
            raise self.set_errors[key]
        self.data[key] = copy.deepcopy(value)


class FixedClock:
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class FakeTracker:
    def __init__(self, items_by_repo: dict[str, list[WorkItem]] | None = None) -> None:
        self.items_by_repo = items_by_repo or {}
        self.fetch_errors: dict[str, Exception] = {}
        self.claim_results: dict[int, bool] = {}
        self.claim_errors: dict[int, Exception] = {}
        self.submit_result = True
        self.submit_error: Exception | None = None
        self.workspace_url: str | None = "https://github.com/claw-test/clawclub-task"
        self.claims: list[tuple[str, int, str, ItemKind]] = []
        self.submissions: list[tuple[str, int, str, str, dict[str, Any]]] = []
        self.workspaces: list[tuple[str, str, str | None]] = []

    def list_items(self, repo: str, kind: ItemKind, state: str = "open") -> list[WorkItem]:
        if repo in self.fetch_errors:
            raise self.fetch_errors[repo]
        return list(self.items_by_repo.get(repo, []))

    def claim(self, repo: str, number: int, agent_id: str, kind: ItemKind) -> bool:
        self.claims.append((repo, number, agent_id, kind))
        if number in self.claim_errors:
            raise self.claim_errors[number]
        return self.claim_results.get(number, True)

    def submit(self, repo: str, number: int, agent_id: str, result: str, metadata: dict[str, Any]) -> bool:
        if self.submit_error is not None:
            raise self.submit_error
        self.submissions.append((repo, number, agent_id, result, dict(metadata)))
        return self.submit_result

    def create_workspace(self, name: str, description: str, template: str | None = None) -> str | None:
        self.workspaces.append((name, description, template))
        return self.workspace_url


class FakeCompleter:
    """Answers profile, match and work prompts separately.

    ``profile=None`` makes every profile refresh fail.
    """

    def __init__(
        self,
        profile: str | None = None,
        verdict: str = "YES",
        result: str = "result text",
    ) -> None:
        self.profile = profile
        self.verdict = verdict
        self.result = result
        self.work_error: Exception | None = None
        # Raised in order by successive match prompts.
        self.match_errors: list[Exception] = []
        self.calls: list[dict[str, Any]] = []

    def complete(self, prompt: str, system: str, max_tokens: int, temperature: float | None = None) -> str:
        call = {"prompt": prompt, "system": system, "max_tokens": max_tokens, "temperature": temperature}
        self.calls.append(call)
        if system == PROFILE_SYSTEM:
            if self.profile is None:
                raise RuntimeError("profile unavailable")
            return self.profile
        if system.startswith("You are an AI agent deciding"):
            if self.match_errors:
                raise self.match_errors.pop(0)
            return self.verdict
        if self.work_error is not None:
            raise self.work_error
        return self.result

    def calls_for(self, kind: str) -> list[dict[str, Any]]:
        if kind == "profile":
            return [c for c in self.calls if c["system"] == PROFILE_SYSTEM]
        if kind == "match":
            return [c for c in self.calls if c["system"].startswith("You are an AI agent deciding")]
        return [
            c
            for c in self.calls
            if c["system"] != PROFILE_SYSTEM and not c["system"].startswith("You are an AI agent deciding")
        ]
