"""Canned scan result used when no scanner is available for a local target."""

from warden.models import ScanMetadata, ScanResult, Severity, Vulnerability
from warden.watchman import utc_timestamp

DEMO_VULNERABILITIES = (
    Vulnerability(
        id="SNYK-JS-LODASH-567746",
        title="Prototype Pollution",
        severity=Severity.HIGH,
        package_name="lodash",
        version="4.17.15",
        fixed_in=("4.17.19", "4.17.21"),
        description="lodash before 4.17.21 is vulnerable to prototype pollution via zipObjectDeep.",
        cvss_score=7.4,
    ),
    Vulnerability(
        id="SNYK-JS-MINIMIST-559764",
        title="Prototype Pollution",
        severity=Severity.MEDIUM,
        package_name="minimist",
        version="1.2.0",
        fixed_in=("1.2.3",),
        description="minimist allows prototype pollution through crafted arguments.",
        cvss_score=5.6,
    ),
    Vulnerability(
        id="SNYK-JS-AXIOS-1038255",
        title="Server-Side Request Forgery",
        severity=Severity.CRITICAL,
        package_name="axios",
        version="0.21.0",
        fixed_in=("0.21.1",),
        description="axios follows redirects to attacker-controlled hosts.",
        cvss_score=9.1,
    ),
    Vulnerability(
        id="SNYK-JS-DEBUG-3227433",
        title="Regular Expression Denial of Service (ReDoS)",
        severity=Severity.LOW,
        package_name="debug",
        version="2.6.8",
        fixed_in=(),
        description="debug is vulnerable to ReDoS in the format parser.",
        cvss_score=3.7,
    ),
)


def generate_demo_scan_result() -> ScanResult:
    return ScanResult(
        timestamp=utc_timestamp(),
        vulnerabilities=list(DEMO_VULNERABILITIES),
        metadata=ScanMetadata(scanner="demo"),
    )
