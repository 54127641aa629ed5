"""Warden command line: scan, validate, status, clean."""

import argparse
import json
import os
import shutil
import sys
from dataclasses import asdict
from typing import List, Optional

from dotenv import load_dotenv

from warden.config import (
    SCANNER_ALIASES,
    SCANNER_CHOICES,
    SEVERITY_CHOICES,
    build_context,
    find_config_file,
    load_config,
    resolve_results_dir,
    setup_logging,
)
from warden.errors import WardenError
from warden.orchestrator import RunOptions, is_remote_target, run_warden
from warden.runner import CommandError, CommandRunner
from warden.storage import ResultStore
from warden.validator import print_validation_results, validate_all


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="warden",
        description="Warden - automated dependency vulnerability remediation.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Scan a repository and fix the top vulnerability.")
    scan.add_argument("repository", nargs="?", default="",
                      help="GitHub repository URL or local path (default: current directory).")
    scan.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    scan.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors.")
    scan.add_argument("--json", action="store_true", help="Print the run report as JSON.")
    scan.add_argument("--dry-run", action="store_true",
                      help="Report the planned fix without creating branches, commits or PRs.")
    scan.add_argument("--skip-validation", action="store_true", help="Skip pre-flight checks.")
    scan.add_argument("--scanner", choices=list(SCANNER_CHOICES) + list(SCANNER_ALIASES),
                      help="primary (snyk), secondary (npm-audit) or auto (default: auto).")
    scan.add_argument("--severity", choices=SEVERITY_CHOICES,
                      help="Minimum severity eligible for a fix (default: high).")
    scan.add_argument("--max-fixes", type=int, help="Maximum number of fixes to apply (default: 1).")
    scan.add_argument("--config", help="Path to a .wardenrc.json file.")

    validate = sub.add_parser("validate", help="Check environment and dependencies.")
    validate.add_argument("path", nargs="?", default=".", help="Repository to validate.")
    validate.add_argument("-v", "--verbose", action="store_true")
    validate.add_argument("--config", help="Path to a .wardenrc.json file.")

    status = sub.add_parser("status", help="Show recent scan history.")
    status.add_argument("--config", help="Path to a .wardenrc.json file.")

    clean = sub.add_parser("clean", help="Remove generated scan results and logs.")
    clean.add_argument("--all", action="store_true", help="Also remove .wardenrc.json.")
    clean.add_argument("--dry-run", action="store_true", help="List what would be deleted.")
    clean.add_argument("--config", help="Path to a .wardenrc.json file.")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)

    handlers = {
        "scan": _cmd_scan,
        "validate": _cmd_validate,
        "status": _cmd_status,
        "clean": _cmd_clean,
    }
    try:
        return handlers[args.command](args)
    except (WardenError, CommandError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1


def _cmd_scan(args: argparse.Namespace) -> int:
    logger = setup_logging(verbose=args.verbose, quiet=args.quiet)

    target = args.repository or os.getcwd()
    remote = is_remote_target(target)
    target_path = os.getcwd() if remote else os.path.abspath(target)

    config = load_config(
        search_dir=target_path,
        config_path=args.config,
        overrides={
            "scanner": args.scanner,
            "min_severity": args.severity,
            "max_fixes": args.max_fixes,
            "dry_run": args.dry_run or None,
        },
    )
    ctx = build_context(config, logger)

    if not args.json:
        print("🛡️  WARDEN | Automated Security Remediation")
        print(f"🎯 Target: {target if remote else target_path}")

    if not args.skip_validation and not remote:
        print("\n🔍 Pre-flight validation")
        result = validate_all(config, CommandRunner(logger=ctx.child("runner")), target_path)
        print_validation_results(result)
        if not result.valid:
            logger.error("Validation failed. Fix the errors above or use --skip-validation.")
            return 1

    report = run_warden(ctx, RunOptions(
        target_path=target_path,
        repository=target if remote else "",
        dry_run=config.dry_run,
    ))

    if args.json:
        print(json.dumps({
            "scan": report.scan.to_dict() if report.scan else None,
            "diagnosis": _diagnosis_dict(report.diagnosis),
            "outcome": asdict(report.outcome) if report.outcome else None,
            "prUrl": report.pr_url,
            "demoMode": report.demo_mode,
            "dryRun": report.dry_run,
            "errors": report.errors,
        }, indent=2))
    return 0


def _diagnosis_dict(diagnosis) -> Optional[dict]:
    if diagnosis is None:
        return None
    return {
        "vulnerabilityId": diagnosis.vulnerability_id,
        "description": diagnosis.description,
        "suggestedFix": diagnosis.suggested_fix,
        "filesToModify": list(diagnosis.files_to_modify),
    }


def _cmd_validate(args: argparse.Namespace) -> int:
    logger = setup_logging(verbose=args.verbose)
    path = os.path.abspath(args.path)
    config = load_config(search_dir=path, config_path=args.config)

    print("🔍 Validation check")
    result = validate_all(config, CommandRunner(logger=logger.getChild("runner")), path)
    print_validation_results(result)
    if result.valid:
        print("\n✅ Environment is ready for Warden!")
        return 0
    print("\n❌ Environment validation failed. Please fix the errors above.")
    return 1


def _cmd_status(args: argparse.Namespace) -> int:
    setup_logging()
    cwd = os.getcwd()
    config = load_config(search_dir=cwd, config_path=args.config)
    store = ResultStore(resolve_results_dir(config))

    print("📊 Warden status")
    entries = store.history(limit=5)
    if not entries:
        print("  No scan history found. Run \"warden scan\" first.")
    for name, data in entries:
        if data is None:
            print(f"  {name}: unable to parse")
            continue
        summary = data.get("summary") or {}
        total = summary.get("total", len(data.get("vulnerabilities") or []))
        print(f"  {name}: {total} vulnerabilities ({data.get('timestamp', '?')})")

    print("\n⚙️  Configuration")
    rc = find_config_file(cwd)
    print(f"  {rc} found" if rc else "  No .wardenrc.json (using defaults)")

    print("\n🔑 Environment")
    print(f"  GITHUB_TOKEN: {'✓ Set' if config.github_token else '✗ Not set'}")
    print(f"  SNYK_TOKEN: {'✓ Set' if config.snyk_token else '✗ Not set'}")
    return 0


def _cmd_clean(args: argparse.Namespace) -> int:
    cwd = os.getcwd()
    config = load_config(search_dir=cwd, config_path=args.config)
    targets = [resolve_results_dir(config), os.path.join(cwd, "logs")]
    if args.all:
        targets.append(os.path.join(cwd, ".wardenrc.json"))

    cleaned = 0
    for path in targets:
        if not os.path.exists(path):
            continue
        name = _display_path(path, cwd)
        if args.dry_run:
            print(f"Would delete: {name}")
        elif os.path.isdir(path):
            shutil.rmtree(path)
            print(f"🧹 Deleted: {name}/")
        else:
            os.remove(path)
            print(f"🧹 Deleted: {name}")
        cleaned += 1

    if cleaned == 0:
        print("Nothing to clean.")
    elif args.dry_run:
        print(f"Would delete {cleaned} item(s). Run without --dry-run to delete.")
    return 0


def _display_path(path: str, cwd: str) -> str:
    if os.path.commonpath([path, cwd]) == cwd:
        return os.path.relpath(path, cwd)
    return path


if __name__ == "__main__":
    sys.exit(main())
