"""Tests for warden.diplomat — PR creation through PyGithub."""

from unittest.mock import MagicMock

import pytest
from github import GithubException, RateLimitExceededException

from warden.diplomat import PullRequestService, build_pr_body, build_pr_title, parse_remote_url
from warden.errors import PRError
from warden.git import GitDriver


@pytest.fixture
def github():
    gh = MagicMock()
    pr = MagicMock()
    pr.html_url = "https://github.com/acme/shop/pull/7"
    pr.number = 7
    gh.get_repo.return_value.create_pull.return_value = pr
    return gh


@pytest.fixture
def service(ctx, runner, github):
    runner.script("git config --get remote.origin.url", (0, "git@github.com:acme/shop.git\n", ""))
    return PullRequestService(ctx, GitDriver(runner, "/repo"), github=github)


class TestParseRemoteUrl:
    @pytest.mark.parametrize("url", [
        "https://github.com/acme/shop.git",
        "https://github.com/acme/shop",
        "git@github.com:acme/shop.git",
    ])
    def test_parses(self, url):
        assert parse_remote_url(url) == ("acme", "shop")

    def test_non_github(self):
        assert parse_remote_url("https://gitlab.com/acme/shop.git") is None


class TestFormatting:
    def test_title(self, lodash_diagnosis):
        assert build_pr_title(lodash_diagnosis) == "[SECURITY] Fix for SNYK-JS-LODASH-1040724"

    def test_body(self, lodash_diagnosis):
        body = build_pr_body(lodash_diagnosis)
        assert "SNYK-JS-LODASH-1040724" in body
        assert "🟠 HIGH" in body
        assert "Update lodash from 4.17.0 to 4.17.21" in body
        assert "`package.json`" in body


class TestCreatePullRequest:
    def test_pushes_and_opens_pr(self, service, runner, github):
        url = service.create_pull_request("warden/fix-lodash", "title", "body", severity="HIGH")

        assert url == "https://github.com/acme/shop/pull/7"
        assert "git push -u origin warden/fix-lodash" in runner.commands()
        github.get_repo.assert_called_once_with("acme/shop")
        kwargs = github.get_repo.return_value.create_pull.call_args[1]
        assert kwargs == {"title": "title", "body": "body", "head": "warden/fix-lodash", "base": "main"}

    def test_labels_and_assignee(self, service, github):
        service.create_pull_request("warden/fix-lodash", "t", "b", severity="HIGH", labels=["deps"])
        pr = github.get_repo.return_value.create_pull.return_value
        pr.add_to_labels.assert_called_once_with("security", "automated", "severity:high", "deps")
        pr.add_to_assignees.assert_called_once_with("acme")

    def test_configured_assignee(self, ctx, service, github):
        ctx.config.assignee = "octocat"
        service.create_pull_request("warden/fix-lodash", "t", "b")
        pr = github.get_repo.return_value.create_pull.return_value
        pr.add_to_assignees.assert_called_once_with("octocat")

    def test_label_failure_is_not_fatal(self, service, github):
        pr = github.get_repo.return_value.create_pull.return_value
        pr.add_to_labels.side_effect = GithubException(403, {"message": "forbidden"}, None)
        assert service.create_pull_request("warden/fix-lodash", "t", "b") == pr.html_url

    @pytest.mark.parametrize("status,hint", [
        (422, "may not exist on remote"),
        (401, "invalid or expired"),
        (404, "Repository not found"),
    ])
    def test_failures_carry_hints(self, service, github, status, hint):
        github.get_repo.return_value.create_pull.side_effect = GithubException(
            status, {"message": "nope"}, None
        )
        with pytest.raises(PRError) as exc:
            service.create_pull_request("warden/fix-lodash", "t", "b")
        assert exc.value.http_status == status
        assert hint in exc.value.hint
        assert exc.value.recoverable is True

    def test_rate_limited(self, service, github):
        github.get_repo.return_value.create_pull.side_effect = RateLimitExceededException(
            403, {"message": "API rate limit exceeded"}, None
        )
        with pytest.raises(PRError) as exc:
            service.create_pull_request("warden/fix-lodash", "t", "b")
        assert exc.value.rate_limited is True

    def test_push_failure(self, service, runner, github):
        runner.script("git push -u origin warden/fix-lodash", (1, "", "remote: Permission denied"))
        with pytest.raises(PRError) as exc:
            service.create_pull_request("warden/fix-lodash", "t", "b")
        assert "Permission denied" in str(exc.value)
        github.get_repo.assert_not_called()

    def test_no_token(self, ctx, runner):
        ctx.config.github_token = ""
        svc = PullRequestService(ctx, GitDriver(runner, "/repo"))
        with pytest.raises(PRError) as exc:
            svc.create_pull_request("warden/fix-lodash", "t", "b")
        assert "GITHUB_TOKEN" in str(exc.value)


class TestRepoInfo:
    def test_env_fallback(self, ctx, runner, github):
        runner.script("git config --get remote.origin.url", (1, "", ""))
        ctx.config.github_owner = "acme"
        ctx.config.github_repo = "api"
        svc = PullRequestService(ctx, GitDriver(runner, "/repo"), github=github)
        assert svc.repo_info() == ("acme", "api")

    def test_no_source_raises(self, ctx, runner, github):
        runner.script("git config --get remote.origin.url", (0, "https://gitlab.com/a/b.git", ""))
        svc = PullRequestService(ctx, GitDriver(runner, "/repo"), github=github)
        with pytest.raises(PRError):
            svc.repo_info()
