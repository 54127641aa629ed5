"""Pre-flight checks run before a scan (and by `warden validate`)."""

import json
import os
import shutil
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from warden.config import WardenConfig
from warden.git import GitDriver
from warden.runner import CommandError, CommandRunner


@dataclass
class ValidationResult:
    valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def error(self, message: str) -> None:
        self.errors.append(message)
        self.valid = False

    def merge(self, other: "ValidationResult") -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.valid = self.valid and other.valid


def validate_environment(config: WardenConfig, target_path: str) -> ValidationResult:
    result = ValidationResult()
    if not os.path.isfile(os.path.join(target_path, ".env")) and not os.path.isfile(".env"):
        result.warnings.append(".env file not found. Using system environment variables.")
    if not config.github_token:
        if config.dry_run:
            result.warnings.append("GITHUB_TOKEN not set. Pull requests cannot be opened.")
        else:
            result.error("GITHUB_TOKEN is required for creating pull requests")
    if not config.snyk_token:
        result.warnings.append("SNYK_TOKEN not set. Snyk may require authentication for some features.")
    if not config.github_owner:
        result.warnings.append("GITHUB_OWNER not set. Will attempt to detect from git remote.")
    if not config.github_repo:
        result.warnings.append("GITHUB_REPO not set. Will attempt to detect from git remote.")
    return result


def validate_dependencies(which: Callable[[str], Optional[str]] = shutil.which) -> ValidationResult:
    result = ValidationResult()
    for tool in ("git", "npm"):
        if not which(tool):
            result.error(f"{tool} is not installed or not in PATH")
    if not which("snyk"):
        result.warnings.append("Snyk CLI is not installed. Install with: npm install -g snyk")
        result.warnings.append("Fallback to npm audit will be used if Snyk is unavailable.")
    return result


def validate_git_repository(runner: CommandRunner, target_path: str) -> ValidationResult:
    result = ValidationResult()
    if not os.path.isdir(os.path.join(target_path, ".git")):
        result.error(f"Not a git repository: {target_path}")
        return result

    git = GitDriver(runner, target_path)
    try:
        if not git.has_remotes():
            result.warnings.append("No git remotes configured. PR creation may fail.")
        if not git.is_clean():
            result.warnings.append(
                "Repository has uncommitted changes. These will not be included in automated fixes."
            )
    except CommandError as e:
        result.error(f"Git validation failed: {e.reason}")
    return result


def validate_manifest(target_path: str, manifest: str = "package.json") -> ValidationResult:
    result = ValidationResult()
    path = os.path.join(target_path, manifest)
    if not os.path.isfile(path):
        result.error(f"{manifest} not found. This tool requires a Node.js project.")
        return result
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        result.error(f"Invalid {manifest}: {e}")
        return result
    if not isinstance(data, dict):
        result.error(f"Invalid {manifest}: top level must be a JSON object")
        return result

    if not data.get("dependencies") and not data.get("devDependencies"):
        result.warnings.append(f"No dependencies found in {manifest}")
    if not (data.get("scripts") or {}).get("test"):
        result.warnings.append(f"No test script found in {manifest}. Verification will fail.")
    return result


def validate_all(config: WardenConfig, runner: CommandRunner, target_path: str,
                 which: Callable[[str], Optional[str]] = shutil.which) -> ValidationResult:
    result = ValidationResult()
    for check in (
        validate_environment(config, target_path),
        validate_dependencies(which),
        validate_git_repository(runner, target_path),
        validate_manifest(target_path, config.manifest),
    ):
        result.merge(check)
    return result


def print_validation_results(result: ValidationResult) -> None:
    for message in result.errors:
        print(f"  ❌ {message}")
    for message in result.warnings:
        print(f"  ⚠️ {message}")
    if result.valid and not result.warnings:
        print("  ✅ All checks passed")
