"""Git driver. Every failure surfaces as a CommandError; nothing is retried."""

import logging
from typing import Optional

from warden.runner import CommandError, CommandRunner


class GitDriver:
    def __init__(self, runner: CommandRunner, cwd: str, logger: Optional[logging.Logger] = None):
        self.runner = runner
        self.cwd = cwd
        self.logger = logger or logging.getLogger("warden.git")

    def _git(self, *args: str) -> str:
        # git writes progress ("Switched to branch ...") to stderr; only the exit code counts.
        return self.runner.run(["git", *args], self.cwd).stdout.strip()

    def current_branch(self) -> str:
        return self._git("rev-parse", "--abbrev-ref", "HEAD")

    def branch_exists(self, branch: str) -> bool:
        try:
            self._git("rev-parse", "--verify", "--quiet", f"refs/heads/{branch}")
            return True
        except CommandError:
            return False

    def checkout_branch(self, branch: str) -> None:
        """Switch to ``branch``, creating it if needed. No-op when already there."""
        if self.current_branch() == branch:
            self.logger.debug("Already on branch: %s", branch)
            return
        if self.branch_exists(branch):
            self.logger.debug("Switching to existing branch: %s", branch)
            self._git("checkout", branch)
        else:
            self.logger.debug("Creating new branch: %s", branch)
            self._git("checkout", "-b", branch)

    def stage_all(self) -> None:
        self.logger.debug("Staging changes...")
        self._git("add", "-A")

    def commit(self, message: str) -> None:
        self.logger.debug('Committing changes: "%s"', message)
        self._git("commit", "-m", message)

    def revert_changes(self) -> None:
        """Discard ALL working-tree changes, untracked files included.

        Destructive: anything not committed in ``cwd`` is lost.
        """
        self.logger.info("Reverting changes...")
        self._git("checkout", "--", ".")
        self._git("clean", "-fd")

    def checkout_main(self) -> None:
        try:
            self._git("checkout", "main")
        except CommandError:
            self._git("checkout", "master")

    def push(self, branch: str, remote: str = "origin") -> None:
        self.logger.info("Pushing %s to %s...", branch, remote)
        self._git("push", "-u", remote, branch)

    def remote_url(self, remote: str = "origin") -> str:
        return self._git("config", "--get", f"remote.{remote}.url")

    def has_remotes(self) -> bool:
        return bool(self._git("remote", "-v"))

    def is_clean(self) -> bool:
        return not self._git("status", "--porcelain")

    def pull(self) -> None:
        self._git("pull")

    def clone(self, url: str, destination: str) -> None:
        self.logger.debug("Cloning %s into %s...", url, destination)
        self._git("clone", url, destination)
