"""Secondary scanner: `npm audit --json` (v7+ keyed-map report)."""

import re
from typing import List

from packaging.version import InvalidVersion, Version

from warden.errors import ScanError
from warden.models import Vulnerability
from warden.runner import CommandError, CommandRunner, CommandTimeout
from warden.scanners.base import is_transient_text, load_json, normalize_severity, parse_cvss

NAME = "npm-audit"
LABEL = "npm audit"

# "<4.17.21" and ">=1.0.0 <4.17.21" both name 4.17.21 as the first safe release.
UPPER_BOUND = re.compile(r"(?:^|\s)<\s*v?(\d[\w.+-]*)\s*$")


def scan(runner: CommandRunner, cwd: str, timeout: float) -> List[Vulnerability]:
    try:
        result = runner.run_capturing_output(["npm", "audit", "--json"], cwd, timeout=timeout)
    except CommandTimeout as e:
        raise ScanError(f"npm audit timed out after {timeout:g}s", NAME, str(e), transient=True) from e
    except CommandError as e:
        raise ScanError(
            f"npm audit scan failed: {e.reason}", NAME, str(e),
            transient=is_transient_text(f"{e.reason}\n{e.stderr}"),
        ) from e

    if not result.stdout.strip():
        detail = result.stderr.strip() or f"exit code {result.returncode}"
        raise ScanError(
            f"npm audit produced no output: {detail}", NAME, detail,
            transient=is_transient_text(detail),
        )
    return parse(result.stdout)


def parse(output: str) -> List[Vulnerability]:
    data = load_json(output, NAME)
    if not isinstance(data, dict):
        raise ScanError("Unrecognised npm audit output shape", NAME, type(data).__name__)

    error = data.get("error")
    if error and "vulnerabilities" not in data:
        if isinstance(error, dict):
            message = str(error.get("summary") or error.get("code"))
        else:
            message = str(error)
        raise ScanError(f"npm audit reported an error: {message}", NAME, message,
                        transient=is_transient_text(message))

    entries = data.get("vulnerabilities")
    if not isinstance(entries, dict):
        # npm 6 "advisories" reports and anything else we do not know.
        raise ScanError("Unrecognised npm audit output shape", NAME, ", ".join(sorted(data)))

    vulnerabilities: List[Vulnerability] = []
    for key, entry in entries.items():
        if isinstance(entry, dict):
            vulnerabilities.append(_normalize(key, entry))
    return vulnerabilities


def _normalize(key: str, entry: dict) -> Vulnerability:
    package_name = str(entry.get("name") or key)
    advisories = [v for v in entry.get("via") or [] if isinstance(v, dict)]
    first = advisories[0] if advisories else {}

    description_parts = []
    for advisory in advisories:
        if advisory.get("title"):
            description_parts.append(advisory["title"])
        if advisory.get("url"):
            description_parts.append(advisory["url"])

    scores = [parse_cvss((a.get("cvss") or {}).get("score")) for a in advisories
              if isinstance(a.get("cvss"), dict)]
    scores = [s for s in scores if s is not None]

    return Vulnerability(
        id=f"NPM-{key}-{first.get('source') or 'audit'}",
        title=str(first.get("title") or "Vulnerability found via npm audit"),
        severity=normalize_severity(entry.get("severity")),
        package_name=package_name,
        version="".join(str(entry.get("range") or "unknown").split()),
        fixed_in=tuple(_fix_versions(package_name, entry, advisories)),
        description="; ".join(description_parts) or f"Dependency path: {key}",
        cvss_score=max(scores) if scores else None,
    )


def _fix_versions(package_name: str, entry: dict, advisories: List[dict]) -> List[str]:
    candidates = set()
    fix = entry.get("fixAvailable")
    if isinstance(fix, dict) and fix.get("name") == package_name and fix.get("version"):
        candidates.add(str(fix["version"]))
    for advisory in advisories:
        if advisory.get("name", package_name) != package_name:
            continue
        match = UPPER_BOUND.search(str(advisory.get("range") or ""))
        if match:
            candidates.add(match.group(1))
    return sort_versions(candidates)


def sort_versions(versions) -> List[str]:
    """Ascending by version order; unparseable strings are dropped."""
    parsed = []
    for raw in versions:
        try:
            parsed.append((Version(raw), raw))
        except InvalidVersion:
            continue
    return [raw for _, raw in sorted(parsed)]
