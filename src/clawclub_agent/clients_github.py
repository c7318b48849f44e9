from __future__ import annotations

from dataclasses import dataclass
from http.client import HTTPException
import logging
from typing import Any, TypedDict, cast
from urllib.error import HTTPError, URLError

from clawclub_agent.http_utils import request_json
from clawclub_agent.models import ItemKind, WorkItem

LOGGER = logging.getLogger("clawclub_agent")

TRANSFER_ORG = "clawclub"


class GitHubIssuePayload(TypedDict, total=False):
    number: int
    title: str
    body: str | None
    labels: list[dict[str, Any]]
    state: str
    html_url: str
    pull_request: dict[str, Any]


def format_claim_comment(agent_id: str, kind: ItemKind) -> str:
    return (
        "\N{LOBSTER} **Claw Club Claim**\n\n"
        f"Agent `{agent_id}` is claiming this {kind.value}. Working on it now..."
    )


def _format_meta_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def format_submission_comment(agent_id: str, result: str, metadata: dict[str, Any]) -> str:
    repo_url = metadata.get("repo_url")
    repo_section = ""
    if metadata.get("requires_repo") and repo_url:
        repo_section = (
            f"\n\n\N{FILE FOLDER} **Repository:** [{repo_url}]({repo_url})\n\n"
            "> This repo is in the agent's workspace. After NGO approval, it can be transferred "
            f"to the ClawClub org via: Settings \N{RIGHTWARDS ARROW} Transfer ownership "
            f"\N{RIGHTWARDS ARROW} {TRANSFER_ORG}\n"
        )
    meta_rows = "\n".join(
        f"| {key} | {_format_meta_value(value)} |" for key, value in metadata.items() if key != "repo_url"
    )
    return (
        f"\N{LOBSTER} **Claw Club Submission**{repo_section}\n\n"
        f"**Agent:** `{agent_id}`\n\n"
        f"**Result:**\n\n{result}\n\n---\n\n"
        "**Metadata:**\n\n| Field | Value |\n|-------|-------|\n"
        f"{meta_rows}"
    )


@dataclass
class GitHubClient:
    token: str
    base_url: str = "https://api.github.com"
    timeout_seconds: float = 30.0
    page_size: int = 100
    max_pages: int = 10

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github.v3+json",
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        data: Any = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        return request_json(
            method,
            url,
            params=params,
            data=data,
            headers=self._headers(),
            timeout=self.timeout_seconds,
        )

    def fetch_issues(self, repo: str, state: str = "open") -> list[GitHubIssuePayload]:
        out: list[GitHubIssuePayload] = []
        for page in range(1, self.max_pages + 1):
            payload = self._request(
                "GET",
                f"/repos/{repo}/issues",
                params={"state": state, "per_page": str(self.page_size), "page": str(page)},
            )
            if not isinstance(payload, list):
                raise RuntimeError(f"GitHub /repos/{repo}/issues response must be a JSON array")
            for item in payload:
                if isinstance(item, dict):
                    out.append(cast(GitHubIssuePayload, item))
            if len(payload) < self.page_size:
                break
        return out

    def list_items(self, repo: str, kind: ItemKind, state: str = "open") -> list[WorkItem]:
        items: list[WorkItem] = []
        for payload in self.fetch_issues(repo, state=state):
            if payload.get("pull_request"):
                continue
            try:
                items.append(WorkItem.from_issue(cast(dict[str, Any], payload), pool=repo, kind=kind))
            except ValueError as exc:
                LOGGER.warning("issue_payload_rejected repo=%s error=%s", repo, exc)
        return items

    def post_comment(self, repo: str, number: int, body: str) -> bool:
        try:
            self._request("POST", f"/repos/{repo}/issues/{number}/comments", data={"body": body})
        except (HTTPError, URLError, TimeoutError, HTTPException) as exc:
            LOGGER.warning("comment_failed repo=%s issue=%s error=%s", repo, number, exc)
            return False
        return True

    def claim(self, repo: str, number: int, agent_id: str, kind: ItemKind) -> bool:
        return self.post_comment(repo, number, format_claim_comment(agent_id, kind))

    def submit(self, repo: str, number: int, agent_id: str, result: str, metadata: dict[str, Any]) -> bool:
        return self.post_comment(repo, number, format_submission_comment(agent_id, result, metadata))

    def create_workspace(self, name: str, description: str, template: str | None = None) -> str | None:
        """Create a public repository in the token owner's account.

        With ``template`` (``owner/name``) the repository is generated from
        that template repository instead of being auto-initialised empty.
        Returns the repository's web URL, or ``None`` on any API failure.
        """
        try:
            user = self._request("GET", "/user")
            login = user.get("login") if isinstance(user, dict) else None
            if not login:
                LOGGER.warning("workspace_failed name=%s error=no authenticated user", name)
                return None
            if template:
                repo = self._request(
                    "POST",
                    f"/repos/{template}/generate",
                    data={
                        "owner": login,
                        "name": name,
                        "description": description,
                        "private": False,
                    },
                )
            else:
                repo = self._request(
                    "POST",
                    "/user/repos",
                    data={
                        "name": name,
                        "description": description,
                        "private": False,
                        "auto_init": True,
                    },
                )
        except (HTTPError, URLError, TimeoutError, HTTPException) as exc:
            LOGGER.warning("workspace_failed name=%s template=%s error=%s", name, template or "-", exc)
            return None
        if not isinstance(repo, dict):
            return None
        html_url = repo.get("html_url")
        return html_url if isinstance(html_url, str) and html_url else None
