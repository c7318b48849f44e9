from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ItemKind(str, Enum):
    BATTLE = "battle"
    TASK = "task"


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def parse_ts(value: str | None) -> datetime | None:
    if value is None or value == "":
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_int(raw: Any, default: int = 0) -> int:
    if raw is None or isinstance(raw, bool):
        return default
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip() == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _label_names(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, list):
        return ()
    out: list[str] = []
    for item in raw:
        name = item.get("name") if isinstance(item, dict) else item
        if not isinstance(name, str):
            continue
        text = name.strip()
        if text:
            out.append(text)
    return tuple(out)


@dataclass(frozen=True)
class WorkItem:
    item_id: str
    number: int
    title: str
    body: str
    labels: tuple[str, ...]
    kind: ItemKind
    pool: str
    url: str = ""

    @staticmethod
    def make_id(pool: str, number: int) -> str:
        return f"{pool}#{number}"

    @classmethod
    def from_issue(cls, payload: dict[str, Any], pool: str, kind: ItemKind) -> "WorkItem":
        number = parse_int(payload.get("number"), 0)
        if number <= 0:
            raise ValueError(f"issue payload without a valid number: {payload.get('number')!r}")
        title_raw = payload.get("title")
        body_raw = payload.get("body")
        url_raw = payload.get("html_url")
        return cls(
            item_id=cls.make_id(pool, number),
            number=number,
            title=title_raw.strip() if isinstance(title_raw, str) else "",
            body=body_raw if isinstance(body_raw, str) else "",
            labels=_label_names(payload.get("labels")),
            kind=kind,
            pool=pool,
            url=url_raw if isinstance(url_raw, str) else "",
        )


@dataclass
class DailyStats:
    date: str
    tokens_used: int = 0
    battles_joined: int = 0
    tasks_completed: int = 0

    @classmethod
    def from_dict(cls, raw: Any, today: str) -> "DailyStats":
        if not isinstance(raw, dict):
            return cls(date=today)
        date_raw = raw.get("date")
        return cls(
            date=date_raw if isinstance(date_raw, str) else "",
            tokens_used=max(0, parse_int(raw.get("tokens_used"))),
            battles_joined=max(0, parse_int(raw.get("battles_joined"))),
            tasks_completed=max(0, parse_int(raw.get("tasks_completed"))),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "tokens_used": self.tokens_used,
            "battles_joined": self.battles_joined,
            "tasks_completed": self.tasks_completed,
        }


@dataclass
class OwnerProfile:
    summary: str
    updated_at: datetime

    def age_seconds(self, now: datetime) -> float:
        return (now - self.updated_at).total_seconds()


@dataclass
class GateDecision:
    allowed: bool
    reason: str = ""


@dataclass
class ExecutionResult:
    text: str
    requires_repo: bool = False
    repo_url: str | None = None
