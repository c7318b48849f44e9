from __future__ import annotations

import json
from pathlib import Path
import tempfile
import unittest

from tests.helpers import make_config

from clawclub_agent.config import (
    DEFAULT_ARENA_REPO,
    BudgetConfig,
    ConfigError,
    load_nested_config,
    resolve_config,
)


class ResolveConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = resolve_config({})
        self.assertEqual(config.budget, BudgetConfig(100_000, 2_000, 3_000, 10))
        self.assertEqual(config.budget.reserve, 10_000)
        self.assertEqual(config.arena_repo, DEFAULT_ARENA_REPO)
        self.assertEqual(config.preferences.for_good.max_tasks_per_day, 3)
        self.assertTrue(config.preferences.arena.enabled)
        self.assertFalse(config.has_credentials)

    def test_env_wins_over_nested(self) -> None:
        nested = {"budget": {"daily_tokens": 50_000, "max_per_task": 4_000}, "agent_id": "file-agent"}
        env = {"CLAWCLUB_DAILY_TOKENS": "20000", "CLAWCLUB_AGENT_ID": "env-agent"}
        config = resolve_config(env, nested)
        self.assertEqual(config.budget.daily_tokens, 20_000)
        self.assertEqual(config.budget.max_per_task, 4_000)
        self.assertEqual(config.agent_id, "env-agent")

    def test_nested_may_be_rooted_at_clawclub(self) -> None:
        nested = {
            "clawclub": {
                "preferences": {
                    "arena": {"categories": ["poetry", "humor"], "my_skills": ["rhyme"]},
                    "for_good": {"categories": "docs, translation", "max_tasks_per_day": 5},
                },
                "repos": {"for_good": "ngo/tasks"},
            }
        }
        config = resolve_config({}, nested)
        self.assertEqual(config.preferences.arena.categories, ("poetry", "humor"))
        self.assertEqual(config.preferences.arena.skills, ("rhyme",))
        self.assertEqual(config.preferences.for_good.categories, ("docs", "translation"))
        self.assertEqual(config.preferences.for_good.max_tasks_per_day, 5)
        self.assertEqual(config.for_good_repo, "ngo/tasks")

    def test_env_false_overrides_nested_true(self) -> None:
        nested = {"preferences": {"arena": {"enabled": True}, "for_good": {"enabled": True}}}
        config = resolve_config({"CLAWCLUB_ARENA_ENABLED": "false"}, nested)
        self.assertFalse(config.preferences.arena.enabled)
        self.assertTrue(config.preferences.for_good.enabled)

    def test_nested_false_respected_without_env(self) -> None:
        nested = {"preferences": {"for_good": {"enabled": False}}}
        self.assertFalse(resolve_config({}, nested).preferences.for_good.enabled)

    def test_unparseable_env_values_fall_through(self) -> None:
        nested = {"budget": {"daily_tokens": 7_000}}
        config = resolve_config({"CLAWCLUB_DAILY_TOKENS": "lots", "CLAWCLUB_ARENA_ENABLED": "maybe"}, nested)
        self.assertEqual(config.budget.daily_tokens, 7_000)
        self.assertTrue(config.preferences.arena.enabled)

    def test_env_list_split_on_commas(self) -> None:
        config = resolve_config({"CLAWCLUB_FOR_GOOD_CATEGORIES": " docs ,,research "})
        self.assertEqual(config.preferences.for_good.categories, ("docs", "research"))

    def test_llm_url_trailing_slash_trimmed(self) -> None:
        config = resolve_config({"CLAWCLUB_LLM_URL": "http://localhost:11434/v1/"})
        self.assertEqual(config.llm_url, "http://localhost:11434/v1")

    def test_invalid_reserve_rejected(self) -> None:
        with self.assertRaises(ConfigError):
            resolve_config({"CLAWCLUB_RESERVE_PERCENT": "150"})

    def test_negative_budget_rejected(self) -> None:
        with self.assertRaises(ConfigError):
            resolve_config({"CLAWCLUB_MAX_PER_BATTLE": "-1"})

    def test_non_positive_poll_interval_rejected(self) -> None:
        with self.assertRaises(ConfigError):
            resolve_config({"CLAWCLUB_POLL_INTERVAL_SECONDS": "0"})

    def test_update_check_defaults_to_published_skill(self) -> None:
        self.assertTrue(resolve_config({}).version_url.endswith("/clawclub/clawclub/main/skills/clawclub/skill.ts"))

    def test_update_check_can_be_disabled(self) -> None:
        self.assertEqual(resolve_config({"CLAWCLUB_UPDATE_CHECK": "false"}).version_url, "")
        self.assertEqual(resolve_config({}, {"update_check": False}).version_url, "")

    def test_credentials_flag(self) -> None:
        self.assertTrue(make_config().has_credentials)
        self.assertFalse(make_config(agent_id="").has_credentials)


class LoadNestedConfigTests(unittest.TestCase):
    def test_missing_file_is_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            self.assertEqual(load_nested_config(Path(tmp) / "absent.json"), {})

    def test_reads_json_object(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "clawclub.json"
            path.write_text(json.dumps({"clawclub": {"agent_id": "lobster"}}), encoding="utf-8")
            self.assertEqual(resolve_config({}, load_nested_config(path)).agent_id, "lobster")

    def test_invalid_json_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "broken.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaises(ConfigError):
                load_nested_config(path)

    def test_non_object_raises(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "list.json"
            path.write_text("[1, 2]", encoding="utf-8")
            with self.assertRaises(ConfigError):
                load_nested_config(path)


if __name__ == "__main__":
    unittest.main()
