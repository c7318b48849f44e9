from __future__ import annotations

from datetime import datetime
from http.client import HTTPException
import logging
import sqlite3
import time
from typing import Any, Callable, Protocol

from clawclub_agent.budget import BudgetLedger
from clawclub_agent.clients_llm import Completer
from clawclub_agent.config import AgentConfig
from clawclub_agent.estimator import CostEstimator
from clawclub_agent.issue_config import IssueConfig
from clawclub_agent.matching import MatchEngine, OwnerProfileCache, effective_category
from clawclub_agent.models import ExecutionResult, ItemKind, OwnerProfile, WorkItem, utc_now
from clawclub_agent.rate_limit import RateLimiter
from clawclub_agent.registry import ClaimRegistry
from clawclub_agent.storage import KeyValueStore

LOGGER = logging.getLogger("clawclub_agent")

# Failures of a single remote call or store write; they skip a pool or a
# candidate, never the run.
TRANSIENT_ERRORS = (OSError, RuntimeError, ValueError, HTTPException, sqlite3.Error)

BATTLE_SYSTEM = (
    "You are competing in Claw Club arena. Category: {category}. "
    "Generate a creative, competitive response."
)
TASK_SYSTEM = (
    "You are completing a volunteer task for Claw Club For Good. Category: {category}. "
    "Be thorough and accurate."
)
REPO_RESULT_TEMPLATE = (
    "**Repository:** {url}\n\n"
    "**Notes:** Ready for review. After NGO approval, this repo can be transferred to the "
    "ClawClub org for handoff."
)


class IssueTracker(Protocol):
    def list_items(self, repo: str, kind: ItemKind, state: str = "open") -> list[WorkItem]: ...

    def claim(self, repo: str, number: int, agent_id: str, kind: ItemKind) -> bool: ...

    def submit(self, repo: str, number: int, agent_id: str, result: str, metadata: dict[str, Any]) -> bool: ...

    def create_workspace(self, name: str, description: str, template: str | None = None) -> str | None: ...


class ClaimArbiter:
    """Claims and works at most one issue per invocation.

    Candidates are walked in source order through the budget, match and rate
    gates. The first successful claim is committed to the registry before any
    work starts and ends the invocation, whether or not the work and the
    submission then succeed. Spend and counters are recorded only after a
    successful submission.
    """

    def __init__(
        self,
        config: AgentConfig,
        store: KeyValueStore,
        tracker: IssueTracker,
        completer: Completer,
        clock: Callable[[], datetime] = utc_now,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.store = store
        self.tracker = tracker
        self.completer = completer
        self.clock = clock
        self.timer = timer
        self.estimator = CostEstimator(config.budget)
        self.rate_limiter = RateLimiter()
        self.match_engine = MatchEngine(config.preferences, completer)
        self.profile_cache = OwnerProfileCache(store, completer, clock=clock)
        self._profile: OwnerProfile | None = None
        self._profile_resolved = False

    def run(self) -> None:
        if not self.config.has_credentials:
            LOGGER.error("missing agent_id or github_token; aborting run")
            return
        self._profile = None
        self._profile_resolved = False

        try:
            ledger = BudgetLedger(self.store, self.config.budget, clock=self.clock)
            registry = ClaimRegistry(
                self.store,
                clock=self.clock,
                legacy_pools=(self.config.arena_repo, self.config.for_good_repo),
            )
        except TRANSIENT_ERRORS as exc:
            LOGGER.error("state_unavailable error=%s", exc)
            return
        candidates = self._fetch_candidates()
        unclaimed = registry.unclaimed(candidates)
        LOGGER.info(
            "poll candidates=%s unclaimed=%s available=%s battles=%s tasks=%s",
            len(candidates),
            len(unclaimed),
            ledger.available(),
            ledger.stats.battles_joined,
            ledger.stats.tasks_completed,
        )

        for item in unclaimed:
            if self._attempt(item, ledger, registry):
                return
        LOGGER.info("no_claim candidates=%s", len(unclaimed))

    def _fetch_candidates(self) -> list[WorkItem]:
        pools: list[tuple[str, ItemKind]] = []
        if self.config.preferences.arena.enabled:
            pools.append((self.config.arena_repo, ItemKind.BATTLE))
        if self.config.preferences.for_good.enabled:
            pools.append((self.config.for_good_repo, ItemKind.TASK))

        items: list[WorkItem] = []
        for repo, kind in pools:
            try:
                items.extend(self.tracker.list_items(repo, kind, state="open"))
            except TRANSIENT_ERRORS as exc:
                LOGGER.warning("fetch_failed repo=%s kind=%s error=%s", repo, kind.value, exc)
        return items

    def _owner_profile(self) -> OwnerProfile | None:
        if not self._profile_resolved:
            self._profile = self.profile_cache.get()
            self._profile_resolved = True
        return self._profile

    def _skip(self, item: WorkItem, gate: str, reason: str) -> bool:
        LOGGER.info("skip item=%s gate=%s reason=%s", item.item_id, gate, reason)
        return False

    def _attempt(self, item: WorkItem, ledger: BudgetLedger, registry: ClaimRegistry) -> bool:
        """Run one candidate through the gates; True once it has been claimed."""
        if registry.contains(item.item_id):
            return self._skip(item, "dedup", "already claimed")

        issue_config = IssueConfig.from_body(item.body)
        estimate = self.estimator.estimate(item, issue_config)
        available = ledger.available()
        if estimate > available:
            return self._skip(item, "budget", f"insufficient budget need={estimate} available={available}")

        try:
            match = self.match_engine.matches(item, issue_config, self._owner_profile())
        except TRANSIENT_ERRORS as exc:
            LOGGER.warning("match_failed item=%s error=%s", item.item_id, exc)
            return False
        if not match.allowed:
            return self._skip(item, "match", match.reason)

        limit = self.rate_limiter.can_claim(item.kind, ledger.stats, self.config.preferences)
        if not limit.allowed:
            return self._skip(item, "rate_limit", limit.reason)

        LOGGER.info("claiming kind=%s item=%s title=%r", item.kind.value, item.item_id, item.title)
        try:
            claimed = self.tracker.claim(item.pool, item.number, self.config.agent_id, item.kind)
        except TRANSIENT_ERRORS as exc:
            LOGGER.warning("claim_failed item=%s error=%s", item.item_id, exc)
            return False
        if not claimed:
            LOGGER.warning("claim_failed item=%s error=claim comment rejected", item.item_id)
            return False

        try:
            registry.add(item.item_id)
        except TRANSIENT_ERRORS as exc:
            # Claimed publicly but not committed: no work for this run.
            LOGGER.warning("orphan_claim item=%s stage=commit error=%s", item.item_id, exc)
            return True
        self._complete(item, issue_config, estimate, ledger)
        return True

    def _complete(self, item: WorkItem, issue_config: IssueConfig, estimate: int, ledger: BudgetLedger) -> None:
        started = self.timer()
        try:
            result = self._execute(item, issue_config)
            if result is None:
                LOGGER.warning("orphan_claim item=%s stage=execute error=no workspace", item.item_id)
                return
            metadata: dict[str, Any] = {
                "execution_time_ms": int((self.timer() - started) * 1000),
                "estimated_tokens": estimate,
                "requires_repo": result.requires_repo,
                "repo_url": result.repo_url,
            }
            submitted = self.tracker.submit(item.pool, item.number, self.config.agent_id, result.text, metadata)
        except Exception as exc:
            LOGGER.warning("orphan_claim item=%s stage=execute error=%s", item.item_id, exc)
            return
        if not submitted:
            LOGGER.warning("orphan_claim item=%s stage=submit error=submission rejected", item.item_id)
            return

        try:
            ledger.record_completion(item.kind, estimate)
        except TRANSIENT_ERRORS as exc:
            LOGGER.warning("record_failed item=%s estimated_tokens=%s error=%s", item.item_id, estimate, exc)
            return
        LOGGER.info(
            "completed kind=%s item=%s estimated_tokens=%s tokens_used=%s%s",
            item.kind.value,
            item.item_id,
            estimate,
            ledger.stats.tokens_used,
            f" repo={result.repo_url}" if result.repo_url else "",
        )

    def _execute(self, item: WorkItem, issue_config: IssueConfig) -> ExecutionResult | None:
        category = effective_category(item, issue_config)
        budget = self.config.budget
        if item.kind == ItemKind.BATTLE:
            text = self.completer.complete(
                prompt=issue_config.prompt,
                system=BATTLE_SYSTEM.format(category=category),
                max_tokens=budget.max_per_battle,
            )
            return ExecutionResult(text=text)

        if issue_config.requires_repo:
            LOGGER.info("workspace_create item=%s template=%s", item.item_id, issue_config.repo_template or "-")
            name = f"clawclub-task-{item.number}-{int(self.clock().timestamp() * 1000)}"
            repo_url = self.tracker.create_workspace(
                name,
                f"Task #{item.number} - {item.title}",
                issue_config.repo_template,
            )
            if not repo_url:
                return None
            LOGGER.info("workspace_ready item=%s repo=%s", item.item_id, repo_url)
            return ExecutionResult(
                text=REPO_RESULT_TEMPLATE.format(url=repo_url),
                requires_repo=True,
                repo_url=repo_url,
            )

        text = self.completer.complete(
            prompt=issue_config.prompt,
            system=TASK_SYSTEM.format(category=category),
            max_tokens=budget.max_per_task,
        )
        return ExecutionResult(text=text)
