"""Patch engine: bump one direct dependency, verify, and commit or roll back.

A fix attempt runs branch -> read manifest -> mutate -> write manifest ->
regenerate lockfile -> test -> commit. A failing test run reverts the working
tree so the branch is left untouched. Only manifest read/write failures and a
failed lockfile regeneration escape, as FixError; every other failure,
including a failed revert, is reported through the returned FixOutcome.
"""

import json
import os
import re
from typing import Optional, Tuple

from warden.config import Context
from warden.errors import FixError
from warden.git import GitDriver
from warden.models import Diagnosis, FixOutcome
from warden.runner import CommandError, CommandRunner

FIX_PATTERN = re.compile(r"Update\s+(\S+)\s+from\s+(\S+)\s+to\s+(\S+)")
DEPENDENCY_SECTIONS = ("dependencies", "devDependencies")


def parse_fix(suggested_fix: str) -> Optional[Tuple[str, str, str]]:
    """Return (package, old_version, new_version) or None."""
    match = FIX_PATTERN.search(suggested_fix or "")
    if not match:
        return None
    return match.group(1), match.group(2), match.group(3)


def branch_name(prefix: str, package_name: str) -> str:
    return f"{prefix}/fix-{package_name}"


def commit_message(package_name: str, vulnerability_id: str) -> str:
    return f"fix({package_name}): resolve {vulnerability_id}"


def update_dependency(manifest: dict, package_name: str, version: str) -> list:
    """Set ``package_name`` to ``version`` wherever it is declared; return touched sections."""
    touched = []
    for section in DEPENDENCY_SECTIONS:
        deps = manifest.get(section)
        if isinstance(deps, dict) and package_name in deps:
            deps[package_name] = version
            touched.append(section)
    return touched


class PatchEngine:
    def __init__(self, ctx: Context, runner: CommandRunner, git: GitDriver, cwd: str):
        self.config = ctx.config
        self.logger = ctx.child("engineer")
        self.runner = runner
        self.git = git
        self.cwd = cwd

    @property
    def manifest_path(self) -> str:
        return os.path.join(self.cwd, self.config.manifest)

    def apply_fix(self, diagnosis: Diagnosis) -> bool:
        return self.apply(diagnosis).success

    def apply(self, diagnosis: Diagnosis) -> FixOutcome:
        self.logger.info("Applying fix for %s...", diagnosis.vulnerability_id)

        parsed = parse_fix(diagnosis.suggested_fix)
        if parsed is None:
            self.logger.error("Could not parse fix suggestion: %r", diagnosis.suggested_fix)
            return FixOutcome(False, reason="unparseable fix directive")

        package_name, old_version, new_version = parsed
        branch = branch_name(self.config.branch_prefix, package_name)

        try:
            self.git.checkout_branch(branch)
        except CommandError as e:
            self.logger.error("Failed to checkout branch %s: %s", branch, e)
            return FixOutcome(False, branch, f"checkout failed: {e.reason}")

        manifest = self._read_manifest(diagnosis, package_name)
        touched = update_dependency(manifest, package_name, new_version)
        if not touched:
            self.logger.error(
                "Package %s is not a direct dependency in %s. "
                "Transitive dependencies are not remediated.",
                package_name, self.config.manifest,
            )
            return FixOutcome(False, branch, "not a direct dependency")
        for section in touched:
            self.logger.info("Updating %s: %s %s -> %s", section, package_name, old_version, new_version)

        self._write_manifest(manifest, diagnosis, package_name)

        self.logger.info("Running %s to update lockfile...", " ".join(self.config.install_command))
        try:
            self.runner.run(self.config.install_command, self.cwd)
        except CommandError as e:
            self.logger.error("Lockfile regeneration failed. Reverting changes...")
            message = f"Lockfile regeneration failed: {e}"
            revert_error = self._revert()
            if revert_error:
                message = f"{message}\nRevert failed: {revert_error}"
            raise FixError(
                message,
                diagnosis.vulnerability_id, package_name, diagnosis.suggested_fix,
            ) from e

        self.logger.info("Running verification (%s)...", " ".join(self.config.test_command))
        try:
            self.runner.run(self.config.test_command, self.cwd)
        except CommandError as e:
            self.logger.error("Verification failed! Reverting changes...")
            self.logger.debug("%s", e)
            revert_error = self._revert()
            if revert_error:
                reason = f"verification failed; revert failed: {revert_error.reason}"
                return FixOutcome(False, branch, reason)
            return FixOutcome(False, branch, "verification failed")
        self.logger.info("Verification passed")

        try:
            self.git.stage_all()
            self.git.commit(commit_message(package_name, diagnosis.vulnerability_id))
        except CommandError as e:
            self.logger.error("Failed to commit fix: %s", e)
            return FixOutcome(False, branch, f"commit failed: {e.reason}")

        self.logger.info("Fix applied successfully on branch %s", branch)
        return FixOutcome(True, branch)

    def _revert(self) -> Optional[CommandError]:
        """Revert the working tree; return the failure instead of raising it."""
        try:
            self.git.revert_changes()
        except CommandError as e:
            self.logger.error("Failed to revert changes in %s: %s", self.cwd, e)
            return e
        return None

    def _read_manifest(self, diagnosis: Diagnosis, package_name: str) -> dict:
        if not os.path.isfile(self.manifest_path):
            raise FixError(
                f"{self.config.manifest} not found in {self.cwd}",
                diagnosis.vulnerability_id, package_name, diagnosis.suggested_fix,
            )
        try:
            with open(self.manifest_path, "r", encoding="utf-8") as f:
                manifest = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise FixError(
                f"Could not read {self.config.manifest}: {e}",
                diagnosis.vulnerability_id, package_name, diagnosis.suggested_fix,
            ) from e
        if not isinstance(manifest, dict):
            raise FixError(
                f"{self.config.manifest} must contain a JSON object",
                diagnosis.vulnerability_id, package_name, diagnosis.suggested_fix,
            )
        return manifest

    def _write_manifest(self, manifest: dict, diagnosis: Diagnosis, package_name: str) -> None:
        try:
            with open(self.manifest_path, "w", encoding="utf-8") as f:
                f.write(json.dumps(manifest, indent=2) + "\n")
        except OSError as e:
            self._revert()
            raise FixError(
                f"Could not write {self.config.manifest}: {e}",
                diagnosis.vulnerability_id, package_name, diagnosis.suggested_fix,
            ) from e
