from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Callable

from clawclub_agent.clients_llm import Completer
from clawclub_agent.config import Preferences
from clawclub_agent.issue_config import IssueConfig
from clawclub_agent.models import GateDecision, ItemKind, OwnerProfile, WorkItem, parse_ts, utc_now
from clawclub_agent.storage import KeyValueStore

LOGGER = logging.getLogger("clawclub_agent")

PROFILE_KEY = "owner_knowledge"
PROFILE_UPDATED_KEY = "owner_knowledge_updated"
PROFILE_REFRESH_INTERVAL = timedelta(days=7)
DEFAULT_CATEGORY = "general"
MATCH_PROMPT_CHARS = 500

PROFILE_PROMPT = (
    "Based on all our conversations and your memory of me, summarize: What are my interests, "
    "skills, values, goals, and what kind of work would I want an AI agent to do on my behalf? "
    "What would I NOT want you to work on? Be concise but specific."
)
PROFILE_SYSTEM = (
    "You are an AI assistant reflecting on what you know about your owner. Summarize their "
    "profile based on your persistent memory of all conversations and interactions."
)

MATCH_SYSTEM_TEMPLATE = """You are an AI agent deciding whether to claim a {kind} on behalf of your owner.

What you know about your owner:
{profile}

Your job: Decide if this {kind} is something your owner would want you to spend their token budget on. Consider:
- Does it align with their interests and values?
- Would they be proud of the result?
- Would they enjoy hearing about it?
- Is it a good use of their resources?

Respond with ONLY "YES" or "NO". Be honest - if it doesn't fit, say NO."""


class OwnerProfileCache:
    """Owner summary cached in the store and refreshed at most once a week."""

    def __init__(
        self,
        store: KeyValueStore,
        completer: Completer,
        clock: Callable[[], datetime] = utc_now,
        refresh_interval: timedelta = PROFILE_REFRESH_INTERVAL,
    ) -> None:
        self.store = store
        self.completer = completer
        self.clock = clock
        self.refresh_interval = refresh_interval

    def cached(self) -> OwnerProfile | None:
        summary = self.store.get(PROFILE_KEY)
        if not isinstance(summary, str) or not summary.strip():
            return None
        raw_updated = self.store.get(PROFILE_UPDATED_KEY)
        try:
            updated_at = parse_ts(raw_updated) if isinstance(raw_updated, str) else None
        except ValueError:
            updated_at = None
        if updated_at is None:
            # Unknown age counts as stale.
            updated_at = datetime.min.replace(tzinfo=self.clock().tzinfo)
        return OwnerProfile(summary=summary, updated_at=updated_at)

    def is_fresh(self, profile: OwnerProfile) -> bool:
        return profile.age_seconds(self.clock()) < self.refresh_interval.total_seconds()

    def get(self) -> OwnerProfile | None:
        cached = self.cached()
        if cached is not None and self.is_fresh(cached):
            return cached
        LOGGER.info("owner_profile_refresh cached=%s", cached is not None)
        try:
            summary = self.completer.complete(
                prompt=PROFILE_PROMPT,
                system=PROFILE_SYSTEM,
                max_tokens=400,
                temperature=0.5,
            )
        except Exception as exc:
            LOGGER.warning("owner_profile_refresh_failed stale_cache=%s error=%s", cached is not None, exc)
            return cached
        summary = summary.strip()
        if not summary:
            LOGGER.warning("owner_profile_refresh_empty stale_cache=%s", cached is not None)
            return cached
        now = self.clock()
        self.store.set(PROFILE_KEY, summary)
        self.store.set(PROFILE_UPDATED_KEY, now.isoformat())
        LOGGER.info("owner_profile_updated chars=%s", len(summary))
        return OwnerProfile(summary=summary, updated_at=now)


def effective_category(item: WorkItem, issue_config: IssueConfig) -> str:
    if issue_config.category:
        return issue_config.category
    if item.labels:
        return item.labels[0]
    return DEFAULT_CATEGORY


class MatchEngine:
    def __init__(self, preferences: Preferences, completer: Completer) -> None:
        self.preferences = preferences
        self.completer = completer

    def allowed_categories(self, kind: ItemKind) -> tuple[str, ...]:
        if kind == ItemKind.BATTLE:
            return self.preferences.arena.categories
        return self.preferences.for_good.categories

    def matches(
        self,
        item: WorkItem,
        issue_config: IssueConfig,
        profile: OwnerProfile | None,
    ) -> GateDecision:
        if profile is not None:
            return self._matches_profile(item, issue_config, profile)
        return self._matches_categories(item)

    def _matches_profile(self, item: WorkItem, issue_config: IssueConfig, profile: OwnerProfile) -> GateDecision:
        kind = item.kind.value
        answer = self.completer.complete(
            prompt=f"Should I claim this {kind} for you?\n\n{issue_config.prompt[:MATCH_PROMPT_CHARS]}",
            system=MATCH_SYSTEM_TEMPLATE.format(kind=kind, profile=profile.summary),
            max_tokens=10,
            temperature=0.3,
        )
        if "YES" in answer.strip().upper():
            return GateDecision(True)
        return GateDecision(False, "not a good fit for owner profile")

    def _matches_categories(self, item: WorkItem) -> GateDecision:
        allowed = set(self.allowed_categories(item.kind))
        if any(label in allowed for label in item.labels):
            return GateDecision(True)
        return GateDecision(False, "category not in preferences")
