"""Pull-request service: push the fix branch and open a PR on GitHub."""

import re
from typing import List, Optional, Tuple

from github import Github, GithubException, RateLimitExceededException

from warden.config import Context
from warden.errors import PRError
from warden.git import GitDriver
from warden.models import Diagnosis, Severity
from warden.runner import CommandError

GITHUB_REMOTE = re.compile(r"github\.com[:/]([^/]+)/(.+?)(?:\.git)?/?$")

ERROR_HINTS = {
    422: "Branch '{branch}' may not exist on remote, or a PR already exists.",
    401: "GITHUB_TOKEN may be invalid or expired.",
    404: "Repository not found. Check git remote configuration.",
}

SEVERITY_ICONS = {
    Severity.CRITICAL: "🔴",
    Severity.HIGH: "🟠",
    Severity.MEDIUM: "🟡",
    Severity.LOW: "🔵",
}


def parse_remote_url(url: str) -> Optional[Tuple[str, str]]:
    """Owner and repo from an HTTPS or SSH GitHub remote."""
    match = GITHUB_REMOTE.search(url.strip())
    if not match:
        return None
    return match.group(1), match.group(2)


def build_pr_title(diagnosis: Diagnosis) -> str:
    return f"[SECURITY] Fix for {diagnosis.vulnerability_id}"


def build_pr_body(diagnosis: Diagnosis) -> str:
    icon = SEVERITY_ICONS.get(diagnosis.severity, "")
    lines = [
        "## 🛡️ Automated Security Fix",
        "",
        "This PR was automatically generated by **Warden** to address a security vulnerability.",
        "",
        "### Vulnerability Details",
        f"- **ID:** {diagnosis.vulnerability_id}",
        f"- **Severity:** {icon} {diagnosis.severity.value.upper()}",
        f"- **Description:** {diagnosis.description}",
        "",
        "### Remediation",
        diagnosis.suggested_fix,
        "",
        f"**Files:** {', '.join(f'`{f}`' for f in diagnosis.files_to_modify)}",
        "",
        "### Review Checklist",
        "- [ ] Verify the fix addresses the vulnerability",
        "- [ ] Check for any breaking changes",
        "",
        "---",
        "*Verified by the Warden patching engine: tests passed before commit.*",
    ]
    return "\n".join(lines)


class PullRequestService:
    def __init__(self, ctx: Context, git: GitDriver, github: Optional[Github] = None):
        self.config = ctx.config
        self.logger = ctx.child("diplomat")
        self.git = git
        if github is None and self.config.github_token:
            github = Github(self.config.github_token)
        self.github = github

    def repo_info(self) -> Tuple[str, str]:
        try:
            parsed = parse_remote_url(self.git.remote_url())
        except CommandError as e:
            self.logger.debug("No origin remote: %s", e)
            parsed = None

        if parsed:
            return parsed
        self.logger.info("Falling back to GITHUB_OWNER / GITHUB_REPO...")
        if not (self.config.github_owner and self.config.github_repo):
            raise PRError("Could not determine GitHub repository: set GITHUB_OWNER and GITHUB_REPO")
        return self.config.github_owner, self.config.github_repo

    def create_pull_request(
        self,
        branch: str,
        title: str,
        body: str,
        severity: Optional[str] = None,
        labels: Optional[List[str]] = None,
    ) -> str:
        """Open a PR for ``branch`` and return its URL."""
        self.logger.info("Preparing to open PR for %s", branch)
        if self.github is None:
            raise PRError("No GITHUB_TOKEN found. Creating pull requests requires a token.", branch,
                          hint="Export GITHUB_TOKEN or add it to .env")

        owner, repo = self.repo_info()

        try:
            self.git.push(branch)
        except CommandError as e:
            raise PRError(f"Failed to push branch {branch}: {e.reason}", branch) from e

        self.logger.info("Opening PR on %s/%s...", owner, repo)
        try:
            gh_repo = self.github.get_repo(f"{owner}/{repo}")
            pr = gh_repo.create_pull(
                title=title,
                body=body,
                head=branch,
                base=self.config.base_branch,
            )
        except RateLimitExceededException as e:
            raise PRError("GitHub API rate limit exceeded", branch, e.status, rate_limited=True,
                          hint="Wait for the rate limit to reset and re-run.") from e
        except GithubException as e:
            hint = ERROR_HINTS.get(e.status, "").format(branch=branch)
            raise PRError(f"Failed to create PR: {_github_message(e)}", branch, e.status,
                          hint=hint) from e

        self.logger.info("PR created: %s (#%s)", pr.html_url, pr.number)

        all_labels = list(self.config.labels)
        if severity:
            all_labels.append(f"severity:{severity.lower()}")
        for label in labels or []:
            if label not in all_labels:
                all_labels.append(label)
        self._add_labels(pr, all_labels)
        self._add_assignee(pr, self.config.assignee or owner)

        return pr.html_url

    def _add_labels(self, pr, labels: List[str]) -> None:
        if not labels:
            return
        try:
            pr.add_to_labels(*labels)
            self.logger.info("Added labels: %s", ", ".join(labels))
        except GithubException as e:
            self.logger.warning("Failed to add labels: %s", _github_message(e))

    def _add_assignee(self, pr, assignee: str) -> None:
        try:
            pr.add_to_assignees(assignee)
            self.logger.info("Assigned PR to %s", assignee)
        except GithubException as e:
            self.logger.warning("Failed to assign PR: %s", _github_message(e))


def _github_message(e: GithubException) -> str:
    data = e.data if isinstance(e.data, dict) else {}
    return str(data.get("message") or e)
