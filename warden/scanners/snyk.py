"""Primary scanner: Snyk CLI (`snyk test --json`)."""

from typing import List

from warden.errors import ScanError
from warden.models import Vulnerability
from warden.runner import CommandError, CommandRunner, CommandTimeout
from warden.scanners.base import is_transient_text, load_json, normalize_severity, parse_cvss

NAME = "snyk"
LABEL = "Snyk"


def probe(runner: CommandRunner, cwd: str, timeout: float) -> str:
    """Check the CLI answers before committing to a full scan."""
    try:
        result = runner.run_with_timeout(["snyk", "--version"], cwd, timeout)
    except CommandTimeout as e:
        raise ScanError(
            f"Snyk CLI did not respond within {timeout:g}s", NAME, str(e), transient=True,
        ) from e
    except CommandError as e:
        raise ScanError(
            "Snyk CLI not found or not responding. Please install: npm install -g snyk",
            NAME,
            str(e),
            transient=is_transient_text(f"{e.reason}\n{e.stderr}"),
        ) from e
    return result.stdout.strip()


def scan(runner: CommandRunner, cwd: str, timeout: float) -> List[Vulnerability]:
    try:
        result = runner.run_capturing_output(["snyk", "test", "--json"], cwd, timeout=timeout)
    except CommandTimeout as e:
        raise ScanError(f"Snyk scan timed out after {timeout:g}s", NAME, str(e), transient=True) from e
    except CommandError as e:
        raise ScanError(
            f"Snyk scan failed: {e.reason}", NAME, str(e),
            transient=is_transient_text(f"{e.reason}\n{e.stderr}"),
        ) from e

    # Exit code 1 means "vulnerabilities found"; structured stdout is what matters.
    if not result.stdout.strip():
        detail = result.stderr.strip() or f"exit code {result.returncode}"
        raise ScanError(
            f"Snyk scan produced no output: {detail}", NAME, detail,
            transient=is_transient_text(detail),
        )
    return parse(result.stdout)


def parse(output: str) -> List[Vulnerability]:
    data = load_json(output, NAME)

    if isinstance(data, dict) and "error" in data and "vulnerabilities" not in data:
        message = str(data.get("error"))
        raise ScanError(f"Snyk reported an error: {message}", NAME, message,
                        transient=is_transient_text(message))

    # --all-projects emits one report per project.
    projects = data if isinstance(data, list) else [data]
    vulnerabilities: List[Vulnerability] = []
    for project in projects:
        if not isinstance(project, dict) or not isinstance(project.get("vulnerabilities"), list):
            raise ScanError("Unrecognised Snyk output shape", NAME, type(project).__name__)
        for raw in project["vulnerabilities"]:
            if isinstance(raw, dict):
                vulnerabilities.append(_normalize(raw))
    return vulnerabilities


def _normalize(raw: dict) -> Vulnerability:
    fixed_in = raw.get("fixedIn") or []
    if not isinstance(fixed_in, list):
        fixed_in = [fixed_in]
    return Vulnerability(
        id=str(raw.get("id") or "unknown"),
        title=str(raw.get("title") or "Unknown vulnerability"),
        severity=normalize_severity(raw.get("severity")),
        package_name=str(raw.get("packageName") or raw.get("name") or "unknown"),
        version=str(raw.get("version") or "unknown"),
        fixed_in=tuple(str(v) for v in fixed_in),
        description=str(raw.get("description") or ""),
        cvss_score=parse_cvss(raw.get("cvssScore")),
    )
