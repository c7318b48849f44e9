"""Parser for the configuration block embedded in issue bodies.

An issue body may carry a ```yaml fenced block, or a block between two ``---``
lines, holding ``key: value`` pairs::

    ---
    category: writing
    requires_repo: true
    ---
    Write a haiku about lobsters.

Only the first block is read. Values are kept as plain strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re

_FENCED_YAML = re.compile(r"```ya?ml[ \t]*\r?\n(.*?)\r?\n```", re.DOTALL)
_DASHED = re.compile(r"---[ \t]*\r?\n(.*?)\r?\n---", re.DOTALL)
_ANY_FENCE = re.compile(r"```.*?```", re.DOTALL)
_ANY_DASHED = re.compile(r"---.*?---", re.DOTALL)

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}


def parse_config_block(body: str) -> dict[str, str]:
    match = _FENCED_YAML.search(body) or _DASHED.search(body)
    if match is None:
        return {}
    out: dict[str, str] = {}
    for line in match.group(1).splitlines():
        key, sep, value = line.partition(":")
        key = key.strip()
        if not sep or not key:
            continue
        out[key] = value.strip()
    return out


def strip_config_blocks(body: str) -> str:
    text = _ANY_FENCE.sub("", body)
    text = _ANY_DASHED.sub("", text)
    return text.strip()


@dataclass(frozen=True)
class IssueConfig:
    values: dict[str, str] = field(default_factory=dict)
    stripped_body: str = ""
    raw_body: str = ""

    @classmethod
    def from_body(cls, body: str) -> "IssueConfig":
        return cls(
            values=parse_config_block(body),
            stripped_body=strip_config_blocks(body),
            raw_body=body,
        )

    @property
    def explicit_prompt(self) -> str | None:
        prompt = self.values.get("prompt", "")
        return prompt or None

    @property
    def prompt(self) -> str:
        return self.explicit_prompt or self.stripped_body or self.raw_body

    @property
    def category(self) -> str | None:
        return self.values.get("category") or None

    @property
    def requires_repo(self) -> bool:
        return self.values.get("requires_repo", "").strip().lower() in _TRUE_VALUES

    @property
    def repo_template(self) -> str | None:
        return self.values.get("repo_template") or None
