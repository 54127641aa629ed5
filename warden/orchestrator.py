"""Workflow orchestrator: scan -> prioritize -> diagnose -> patch -> publish.

The target directory is carried as an explicit ``Workspace`` and handed to
every command as its working directory, so the process-wide current directory
is never changed.
"""

import os
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional

from warden.config import Context, ensure_outside, resolve_results_dir
from warden.demo import generate_demo_scan_result
from warden.diplomat import PullRequestService, build_pr_body, build_pr_title
from warden.engineer import PatchEngine
from warden.errors import PRError, ScanError
from warden.git import GitDriver
from warden.models import Diagnosis, RunReport, ScanResult
from warden.prioritizer import diagnose_all, filter_high_priority
from warden.runner import CommandRunner
from warden.storage import ResultStore
from warden.watchman import ScannerAdapter, print_summary


@dataclass
class Workspace:
    path: str
    remote_url: str = ""

    @property
    def is_remote(self) -> bool:
        return bool(self.remote_url)


@dataclass
class RunOptions:
    target_path: str
    repository: str = ""
    dry_run: bool = False


REMOTE_URL = re.compile(r"^(?:[a-z][a-z0-9+.-]*://|[\w.-]+@[\w.-]+:)", re.IGNORECASE)


def is_remote_target(target: str) -> bool:
    """URL (``scheme://...``) or scp-style (``user@host:path``) clone source."""
    return bool(REMOTE_URL.match(target))


def workspace_name(repo_url: str) -> str:
    name = repo_url.rstrip("/").split("/")[-1].split(":")[-1]
    if name.endswith(".git"):
        name = name[:-4]
    return name or "target-repo"


def prepare_workspace(ctx: Context, runner: CommandRunner, repo_url: str, base_dir: str) -> Workspace:
    """Clone ``repo_url`` under ``base_dir``, or pull if the clone already exists."""
    logger = ctx.child("workspace")
    path = os.path.join(base_dir, workspace_name(repo_url))

    if os.path.isdir(os.path.join(path, ".git")):
        logger.info("Workspace for %s already exists. Pulling latest changes...", repo_url)
        GitDriver(runner, path, logger).pull()
    else:
        logger.info("Cloning %s into %s...", repo_url, path)
        os.makedirs(base_dir, exist_ok=True)
        GitDriver(runner, base_dir, logger).clone(repo_url, path)

    logger.info("Workspace ready: %s", path)
    return Workspace(path=path, remote_url=repo_url)


def _resolve(base: str, path: str) -> str:
    return path if os.path.isabs(path) else os.path.join(base, path)


def run_warden(
    ctx: Context,
    options: RunOptions,
    runner: Optional[CommandRunner] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RunReport:
    config = ctx.config
    logger = ctx.logger
    runner = runner or CommandRunner(logger=ctx.child("runner"))
    report = RunReport(dry_run=options.dry_run)

    if options.repository:
        workspace = prepare_workspace(ctx, runner, options.repository,
                                      _resolve(os.getcwd(), config.workspaces_dir))
    else:
        workspace = Workspace(path=os.path.abspath(options.target_path))
    logger.info("Working directory: %s", workspace.path)

    results_dir = resolve_results_dir(config)
    ensure_outside(results_dir, workspace.path)
    store = ResultStore(results_dir, ctx.child("storage"))

    adapter = ScannerAdapter(ctx, runner, store, sleep=sleep)
    try:
        scan_result = adapter.scan(workspace.path)
    except ScanError as e:
        logger.error("Security scan failed: %s", e)
        if workspace.is_remote:
            raise
        logger.warning("Falling back to DEMO MODE with mock data...")
        scan_result = generate_demo_scan_result()
        store.save(scan_result)
        report.demo_mode = True
        report.errors.append(str(e))

    report.scan = scan_result
    print_summary(scan_result)

    _orchestrate_fix(ctx, runner, workspace, scan_result, options, report)

    if report.demo_mode:
        print("\n✅ Session completed (demo mode)")
    else:
        print("\n✅ Patrol session completed")
    return report


def _orchestrate_fix(
    ctx: Context,
    runner: CommandRunner,
    workspace: Workspace,
    scan_result: ScanResult,
    options: RunOptions,
    report: RunReport,
) -> None:
    config = ctx.config
    logger = ctx.logger

    high_priority = filter_high_priority(scan_result)
    if not high_priority:
        print("\n✅ Clean Audit: no high-priority vulnerabilities identified.")
        return
    logger.warning("Identified %d high-priority vulnerabilities.", len(high_priority))

    diagnoses = diagnose_all(
        scan_result.vulnerabilities,
        min_severity=config.min_severity,
        ignored=config.ignored_vulnerabilities,
    )
    if not diagnoses:
        logger.warning("No actionable diagnoses generated.")
        return

    # One fix per run; max_fixes only caps intent.
    if config.max_fixes > 1:
        logger.info("max_fixes=%d requested; applying the top-priority fix only.", config.max_fixes)
    top = diagnoses[0]
    report.diagnosis = top

    if options.dry_run:
        _print_dry_run(top)
        return

    git = GitDriver(runner, workspace.path, ctx.child("git"))
    engine = PatchEngine(ctx, runner, git, workspace.path)
    outcome = engine.apply(top)
    report.outcome = outcome
    if not outcome.success:
        logger.error("Failed to apply fix (%s). Aborting PR creation.", outcome.reason)
        return

    service = PullRequestService(ctx, git)
    try:
        report.pr_url = service.create_pull_request(
            branch=outcome.branch,
            title=build_pr_title(top),
            body=build_pr_body(top),
            severity=top.severity.value,
        )
    except PRError as e:
        # The committed branch stays; only publishing failed.
        logger.error("Failed to create pull request: %s", e)
        if e.hint:
            logger.error("Hint: %s", e.hint)
        report.errors.append(str(e))
        return

    print(f"\n🔗 Pull request created: {report.pr_url}")


def _print_dry_run(diagnosis: Diagnosis) -> None:
    print("\n📝 DRY RUN: would apply the following fix:")
    print(f"  Vulnerability: {diagnosis.vulnerability_id}")
    print(f"  Description:   {diagnosis.description}")
    print(f"  Fix:           {diagnosis.suggested_fix}")
    print(f"  Files:         {', '.join(diagnosis.files_to_modify)}")
