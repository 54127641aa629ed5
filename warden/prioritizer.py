"""Vulnerability ordering and diagnosis derivation."""

from typing import Iterable, List, Optional

from warden.models import Diagnosis, ScanResult, Severity, Vulnerability

MANIFEST_FILES = ("package.json",)


def _sort_key(vuln: Vulnerability):
    # Missing scores sort after any real score of the same severity.
    score = vuln.cvss_score if vuln.cvss_score is not None else -1.0
    return (-vuln.severity.rank, -score)


def prioritize(vulnerabilities: Iterable[Vulnerability]) -> List[Vulnerability]:
    """Severity descending, then CVSS descending; ties keep input order."""
    return sorted(vulnerabilities, key=_sort_key)


def filter_high_priority(result: ScanResult) -> List[Vulnerability]:
    return [
        v for v in result.vulnerabilities
        if v.severity in (Severity.CRITICAL, Severity.HIGH)
    ]


def can_attempt_fix(vuln: Vulnerability) -> bool:
    return len(vuln.fixed_in) > 0


def get_fix_version(vuln: Vulnerability) -> Optional[str]:
    if not vuln.fixed_in:
        return None
    return vuln.fixed_in[-1]


def meets_min_severity(vuln: Vulnerability, min_severity: str) -> bool:
    return vuln.severity.rank >= Severity(min_severity).rank


def diagnose(vuln: Vulnerability) -> Diagnosis:
    """Build the remediation proposal for a fixable vulnerability."""
    fix_version = get_fix_version(vuln)
    if fix_version is None:
        raise ValueError(f"{vuln.id} has no known fixed version")
    return Diagnosis(
        vulnerability_id=vuln.id,
        description=f"{vuln.title} in {vuln.package_name}@{vuln.version} ({vuln.severity.value.upper()})",
        suggested_fix=f"Update {vuln.package_name} from {vuln.version} to {fix_version}",
        files_to_modify=MANIFEST_FILES,
        severity=vuln.severity,
        package_name=vuln.package_name,
    )


def diagnose_all(
    vulnerabilities: Iterable[Vulnerability],
    min_severity: str = "low",
    ignored: Iterable[str] = (),
) -> List[Diagnosis]:
    """Diagnoses for every eligible, fixable vulnerability, highest priority first."""
    ignored = set(ignored)
    eligible = [
        v for v in vulnerabilities
        if v.id not in ignored and meets_min_severity(v, min_severity) and can_attempt_fix(v)
    ]
    return [diagnose(v) for v in prioritize(eligible)]
