from __future__ import annotations

import math

from clawclub_agent.config import BudgetConfig
from clawclub_agent.issue_config import IssueConfig
from clawclub_agent.models import ItemKind, WorkItem

CHARS_PER_TOKEN = 4


class CostEstimator:
    """Admission-control token estimate: prompt input plus the output ceiling."""

    def __init__(self, budget: BudgetConfig) -> None:
        self.budget = budget

    def output_budget(self, kind: ItemKind) -> int:
        if kind == ItemKind.BATTLE:
            return self.budget.max_per_battle
        return self.budget.max_per_task

    def input_tokens(self, item: WorkItem, issue_config: IssueConfig) -> int:
        prompt = issue_config.explicit_prompt
        length = len(prompt) if prompt is not None else len(item.body)
        return math.ceil(length / CHARS_PER_TOKEN)

    def estimate(self, item: WorkItem, issue_config: IssueConfig | None = None) -> int:
        if issue_config is None:
            issue_config = IssueConfig.from_body(item.body)
        return self.input_tokens(item, issue_config) + self.output_budget(item.kind)
