from __future__ import annotations

from dataclasses import dataclass
import json
import os
from pathlib import Path
from typing import Any, Mapping

DEFAULT_ARENA_REPO = "clawclub/battles"
DEFAULT_FOR_GOOD_REPO = "clawclub/clawback"
DEFAULT_CONFIG_PATH = "config/clawclub.json"

# Arena ceiling is fixed; only the For Good ceiling is configurable.
MAX_BATTLES_PER_DAY = 1

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "no", "n", "off"}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class BudgetConfig:
    daily_tokens: int = 100_000
    max_per_battle: int = 2_000
    max_per_task: int = 3_000
    reserve_percent: int = 10

    @property
    def reserve(self) -> float:
        return self.daily_tokens * self.reserve_percent / 100


@dataclass(frozen=True)
class ArenaPreferences:
    enabled: bool = True
    categories: tuple[str, ...] = ()
    interests: tuple[str, ...] = ()
    skills: tuple[str, ...] = ()


@dataclass(frozen=True)
class ForGoodPreferences:
    enabled: bool = True
    categories: tuple[str, ...] = ()
    interests: tuple[str, ...] = ()
    max_tasks_per_day: int = 3


@dataclass(frozen=True)
class Preferences:
    arena: ArenaPreferences = ArenaPreferences()
    for_good: ForGoodPreferences = ForGoodPreferences()


@dataclass(frozen=True)
class AgentConfig:
    agent_id: str
    github_token: str
    budget: BudgetConfig
    preferences: Preferences

    arena_repo: str = DEFAULT_ARENA_REPO
    for_good_repo: str = DEFAULT_FOR_GOOD_REPO
    github_api_url: str = "https://api.github.com"

    llm_url: str = "https://api.openai.com/v1"
    llm_api_key: str = ""
    llm_model: str = "gpt-4o-mini"

    database_path: str = "data/clawclub.db"
    namespace: str = "clawclub"
    poll_interval_seconds: float = 3600.0
    api_timeout_seconds: float = 30.0
    version_url: str = (
        "https://raw.githubusercontent.com/clawclub/clawclub/main/skills/clawclub/skill.ts"
    )
    log_level: str = "INFO"

    @property
    def has_credentials(self) -> bool:
        return bool(self.agent_id) and bool(self.github_token)


def _nested(mapping: Mapping[str, Any], *path: str) -> Any:
    node: Any = mapping
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def _env_str(env: Mapping[str, str], key: str) -> str | None:
    raw = env.get(key)
    if raw is None:
        return None
    value = raw.strip()
    return value or None


def _pick_str(env: Mapping[str, str], key: str, nested_value: Any, default: str) -> str:
    value = _env_str(env, key)
    if value is not None:
        return value
    if isinstance(nested_value, str) and nested_value.strip():
        return nested_value.strip()
    return default


def _as_int(raw: Any) -> int | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def _pick_int(env: Mapping[str, str], key: str, nested_value: Any, default: int) -> int:
    for raw in (_env_str(env, key), nested_value):
        parsed = _as_int(raw)
        if parsed is not None:
            return parsed
    return default


def _pick_float(env: Mapping[str, str], key: str, nested_value: Any, default: float) -> float:
    for raw in (_env_str(env, key), nested_value):
        if raw is None or isinstance(raw, bool):
            continue
        try:
            return float(raw)
        except (TypeError, ValueError):
            continue
    return default


def _as_bool(raw: Any) -> bool | None:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    return None


def _pick_bool(env: Mapping[str, str], key: str, nested_value: Any, default: bool) -> bool:
    for raw in (env.get(key), nested_value):
        parsed = _as_bool(raw)
        if parsed is not None:
            return parsed
    return default


def _split_list(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _pick_list(env: Mapping[str, str], key: str, nested_value: Any) -> tuple[str, ...]:
    value = _env_str(env, key)
    if value is not None:
        return _split_list(value)
    if isinstance(nested_value, str):
        return _split_list(nested_value)
    if isinstance(nested_value, (list, tuple)):
        return tuple(str(item).strip() for item in nested_value if str(item).strip())
    return ()


def _validate(config: AgentConfig) -> None:
    budget = config.budget
    if budget.daily_tokens < 0:
        raise ConfigError(f"daily_tokens must be >= 0, got {budget.daily_tokens}")
    if budget.max_per_battle < 0 or budget.max_per_task < 0:
        raise ConfigError("max_per_battle and max_per_task must be >= 0")
    if not 0 <= budget.reserve_percent <= 100:
        raise ConfigError(f"reserve_percent must be within 0-100, got {budget.reserve_percent}")
    if config.preferences.for_good.max_tasks_per_day < 0:
        raise ConfigError("max_tasks_per_day must be >= 0")
    if config.poll_interval_seconds <= 0:
        raise ConfigError("poll_interval_seconds must be > 0")


def resolve_config(env: Mapping[str, str], nested: Mapping[str, Any] | None = None) -> AgentConfig:
    """Merge environment values over a nested config mapping.

    Precedence per field is environment, then nested mapping, then default.
    The nested mapping may be rooted at a ``clawclub`` key.
    """
    root: Mapping[str, Any] = nested or {}
    if isinstance(root.get("clawclub"), Mapping):
        root = root["clawclub"]

    defaults_budget = BudgetConfig()
    budget = BudgetConfig(
        daily_tokens=_pick_int(
            env, "CLAWCLUB_DAILY_TOKENS", _nested(root, "budget", "daily_tokens"), defaults_budget.daily_tokens
        ),
        max_per_battle=_pick_int(
            env, "CLAWCLUB_MAX_PER_BATTLE", _nested(root, "budget", "max_per_battle"), defaults_budget.max_per_battle
        ),
        max_per_task=_pick_int(
            env, "CLAWCLUB_MAX_PER_TASK", _nested(root, "budget", "max_per_task"), defaults_budget.max_per_task
        ),
        reserve_percent=_pick_int(
            env,
            "CLAWCLUB_RESERVE_PERCENT",
            _nested(root, "budget", "reserve_percent"),
            defaults_budget.reserve_percent,
        ),
    )
    arena = ArenaPreferences(
        enabled=_pick_bool(env, "CLAWCLUB_ARENA_ENABLED", _nested(root, "preferences", "arena", "enabled"), True),
        categories=_pick_list(env, "CLAWCLUB_ARENA_CATEGORIES", _nested(root, "preferences", "arena", "categories")),
        interests=_pick_list(env, "CLAWCLUB_ARENA_INTERESTS", _nested(root, "preferences", "arena", "interests")),
        skills=_pick_list(env, "CLAWCLUB_ARENA_SKILLS", _nested(root, "preferences", "arena", "my_skills")),
    )
    for_good = ForGoodPreferences(
        enabled=_pick_bool(
            env, "CLAWCLUB_FOR_GOOD_ENABLED", _nested(root, "preferences", "for_good", "enabled"), True
        ),
        categories=_pick_list(
            env, "CLAWCLUB_FOR_GOOD_CATEGORIES", _nested(root, "preferences", "for_good", "categories")
        ),
        interests=_pick_list(
            env, "CLAWCLUB_FOR_GOOD_INTERESTS", _nested(root, "preferences", "for_good", "interests")
        ),
        max_tasks_per_day=_pick_int(
            env,
            "CLAWCLUB_MAX_TASKS_PER_DAY",
            _nested(root, "preferences", "for_good", "max_tasks_per_day"),
            ForGoodPreferences().max_tasks_per_day,
        ),
    )
    config = AgentConfig(
        agent_id=_pick_str(env, "CLAWCLUB_AGENT_ID", root.get("agent_id"), ""),
        github_token=_pick_str(env, "CLAWCLUB_GITHUB_TOKEN", root.get("github_token"), ""),
        budget=budget,
        preferences=Preferences(arena=arena, for_good=for_good),
        arena_repo=_pick_str(env, "CLAWCLUB_ARENA_REPO", _nested(root, "repos", "arena"), DEFAULT_ARENA_REPO),
        for_good_repo=_pick_str(
            env, "CLAWCLUB_FOR_GOOD_REPO", _nested(root, "repos", "for_good"), DEFAULT_FOR_GOOD_REPO
        ),
        llm_url=_pick_str(env, "CLAWCLUB_LLM_URL", _nested(root, "llm", "url"), AgentConfig.llm_url).rstrip("/"),
        llm_api_key=_pick_str(env, "CLAWCLUB_LLM_API_KEY", _nested(root, "llm", "api_key"), ""),
        llm_model=_pick_str(env, "CLAWCLUB_LLM_MODEL", _nested(root, "llm", "model"), AgentConfig.llm_model),
        database_path=_pick_str(env, "CLAWCLUB_DB_PATH", root.get("database_path"), AgentConfig.database_path),
        namespace=_pick_str(env, "CLAWCLUB_NAMESPACE", root.get("namespace"), AgentConfig.namespace),
        poll_interval_seconds=_pick_float(
            env,
            "CLAWCLUB_POLL_INTERVAL_SECONDS",
            root.get("poll_interval_seconds"),
            AgentConfig.poll_interval_seconds,
        ),
        api_timeout_seconds=_pick_float(
            env,
            "CLAWCLUB_API_TIMEOUT_SECONDS",
            root.get("api_timeout_seconds"),
            AgentConfig.api_timeout_seconds,
        ),
        version_url=(
            _pick_str(env, "CLAWCLUB_VERSION_URL", root.get("version_url"), AgentConfig.version_url)
            if _pick_bool(env, "CLAWCLUB_UPDATE_CHECK", root.get("update_check"), True)
            else ""
        ),
        log_level=_pick_str(env, "CLAWCLUB_LOG_LEVEL", root.get("log_level"), AgentConfig.log_level).upper(),
    )
    _validate(config)
    return config


def load_nested_config(path: str | Path) -> dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        return {}
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON in {config_path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")
    return payload


def load_config() -> AgentConfig:
    config_path = os.getenv("CLAWCLUB_CONFIG_PATH", DEFAULT_CONFIG_PATH)
    return resolve_config(os.environ, load_nested_config(config_path))
