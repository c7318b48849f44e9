from __future__ import annotations

import argparse
from dataclasses import replace
from datetime import timedelta
import json
import logging
import signal
import sqlite3
import sys
import time
from pathlib import Path
from typing import Any, Iterable

from clawclub_agent.arbiter import ClaimArbiter
from clawclub_agent.budget import BudgetLedger
from clawclub_agent.clients_github import GitHubClient
from clawclub_agent.clients_llm import CompletionClient
from clawclub_agent.config import AgentConfig, ConfigError, load_config
from clawclub_agent.registry import ClaimRegistry
from clawclub_agent.storage import SqliteStore
from clawclub_agent.updates import AGENT_VERSION, check_for_update

LOGGER = logging.getLogger("clawclub_agent")


class AgentRuntime:
    def __init__(self, config: AgentConfig) -> None:
        self.config = config
        self.store = SqliteStore(config.database_path, namespace=config.namespace)
        self.github = GitHubClient(
            token=config.github_token,
            base_url=config.github_api_url,
            timeout_seconds=config.api_timeout_seconds,
        )
        self.completer = CompletionClient(
            base_url=config.llm_url,
            model=config.llm_model,
            api_key=config.llm_api_key,
        )
        self.arbiter = ClaimArbiter(config, self.store, self.github, self.completer)
        self._keep_running = True

    def run_once(self) -> None:
        try:
            check_for_update(self.store, self.config.version_url)
        except sqlite3.Error as exc:
            LOGGER.warning("version_check_failed error=%s", exc)
        self.arbiter.run()

    def run(self) -> None:
        while self._keep_running:
            started = time.time()
            try:
                self.run_once()
            except Exception as exc:
                LOGGER.error("cycle_failed error=%s", exc)
            elapsed = time.time() - started
            deadline = time.time() + max(0.0, self.config.poll_interval_seconds - elapsed)
            while self._keep_running and time.time() < deadline:
                time.sleep(min(1.0, max(0.0, deadline - time.time())))

    def stop(self) -> None:
        self._keep_running = False

    def close(self) -> None:
        self.store.close()


def should_trigger(event: str, payload: Any) -> bool:
    """Only a newly opened issue warrants an immediate run."""
    if event != "issues" or not isinstance(payload, dict):
        return False
    return payload.get("action") == "opened"


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load() -> AgentConfig | None:
    try:
        config = load_config()
    except ConfigError as exc:
        _setup_logging("INFO")
        LOGGER.error("invalid configuration: %s", exc)
        return None
    _setup_logging(config.log_level)
    return config


def _run_command(args: argparse.Namespace) -> int:
    config = _load()
    if config is None:
        return 2
    runtime = AgentRuntime(config)
    try:
        runtime.run_once()
        return 0
    except Exception as exc:
        LOGGER.error("Fatal runtime error: %s", exc)
        return 2
    finally:
        runtime.close()


def _loop_command(args: argparse.Namespace) -> int:
    config = _load()
    if config is None:
        return 2
    if args.interval is not None:
        if args.interval <= 0:
            LOGGER.error("--interval must be > 0")
            return 2
        config = replace(config, poll_interval_seconds=float(args.interval))

    runtime = AgentRuntime(config)
    LOGGER.info(
        "Starting agent version=%s agent_id=%s interval=%.0fs",
        AGENT_VERSION,
        config.agent_id or "-",
        config.poll_interval_seconds,
    )
    signal_count = {"count": 0}

    def _handle_signal(signum: int, _frame: object) -> None:
        signal_count["count"] += 1
        if signal_count["count"] >= 2:
            LOGGER.error("Received signal %s again, forcing exit now", signum)
            raise SystemExit(130)
        LOGGER.warning(
            "Received signal %s, stopping loop (press Ctrl+C again to force-exit)",
            signum,
        )
        runtime.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)
    try:
        runtime.run()
        return 0
    except Exception as exc:
        LOGGER.error("Fatal runtime error: %s", exc)
        return 2
    finally:
        runtime.close()


def _read_payload(path: str | None) -> Any:
    if path is None or path == "-":
        raw = sys.stdin.read()
    else:
        raw = Path(path).read_text(encoding="utf-8")
    return json.loads(raw) if raw.strip() else {}


def _webhook_command(args: argparse.Namespace) -> int:
    config = _load()
    if config is None:
        return 2
    try:
        payload = _read_payload(args.payload)
    except (OSError, json.JSONDecodeError) as exc:
        LOGGER.error("webhook payload unreadable: %s", exc)
        return 2
    if not should_trigger(args.event, payload):
        action = payload.get("action") if isinstance(payload, dict) else None
        LOGGER.info("webhook_ignored event=%s action=%s", args.event, action or "-")
        return 0
    issue = payload.get("issue")
    number = issue.get("number") if isinstance(issue, dict) else None
    LOGGER.info("webhook_trigger event=%s issue=%s", args.event, number or "-")
    return _run_command(args)


def _report_command(args: argparse.Namespace) -> int:
    config = _load()
    if config is None:
        return 2
    store = SqliteStore(config.database_path, namespace=config.namespace)
    try:
        ledger = BudgetLedger(store, config.budget)
        registry = ClaimRegistry(store, legacy_pools=(config.arena_repo, config.for_good_repo))
        report = {
            "agent_id": config.agent_id,
            "version": AGENT_VERSION,
            "daily": ledger.stats.to_dict(),
            "available_tokens": ledger.available(),
            "reserve_tokens": ledger.reserve(),
            "claimed_count": len(registry),
            "keys": store.keys(),
        }
        print(json.dumps(report, indent=2, default=str))
    finally:
        store.close()
    return 0


def _prune_claims_command(args: argparse.Namespace) -> int:
    config = _load()
    if config is None:
        return 2
    if args.older_than_days <= 0:
        LOGGER.error("--older-than-days must be > 0")
        return 2
    store = SqliteStore(config.database_path, namespace=config.namespace)
    try:
        registry = ClaimRegistry(store, legacy_pools=(config.arena_repo, config.for_good_repo))
        removed = registry.prune(timedelta(days=args.older_than_days))
        print(json.dumps({"removed": removed, "remaining": len(registry)}, indent=2))
    finally:
        store.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clawclub_agent", description="Claw Club arena battle and volunteer task agent"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Poll once and claim at most one issue")
    run.set_defaults(func=_run_command)

    loop = sub.add_parser("loop", help="Poll periodically until interrupted")
    loop.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between polls (overrides CLAWCLUB_POLL_INTERVAL_SECONDS)",
    )
    loop.set_defaults(func=_loop_command)

    webhook = sub.add_parser("webhook", help="Handle a GitHub webhook delivery")
    webhook.add_argument("--event", required=True, help="Value of the X-GitHub-Event header")
    webhook.add_argument(
        "--payload",
        default=None,
        help="Path to the JSON payload (default: read stdin)",
    )
    webhook.set_defaults(func=_webhook_command)

    report = sub.add_parser("report", help="Print today's budget and claim summary")
    report.set_defaults(func=_report_command)

    prune = sub.add_parser(
        "prune-claims",
        help="Forget claimed issues older than a number of days",
    )
    prune.add_argument("--older-than-days", type=int, required=True)
    prune.set_defaults(func=_prune_claims_command)
    return parser


def cli(argv: Iterable[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    return int(args.func(args))


def main() -> None:
    raise SystemExit(cli())


if __name__ == "__main__":
    main()
