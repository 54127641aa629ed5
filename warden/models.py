from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class Severity(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


@dataclass(frozen=True)
class Vulnerability:
    id: str
    title: str
    severity: Severity
    package_name: str
    version: str
    fixed_in: tuple = ()
    description: str = ""
    cvss_score: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "severity": self.severity.value,
            "packageName": self.package_name,
            "version": self.version,
            "fixedIn": list(self.fixed_in),
            "description": self.description,
            "cvssScore": self.cvss_score,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Vulnerability":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            severity=Severity(data["severity"]),
            package_name=data["packageName"],
            version=data.get("version", "unknown"),
            fixed_in=tuple(data.get("fixedIn") or ()),
            description=data.get("description") or "",
            cvss_score=data.get("cvssScore"),
        )


@dataclass
class ScanSummary:
    total: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0

    @classmethod
    def from_vulnerabilities(cls, vulnerabilities: List[Vulnerability]) -> "ScanSummary":
        summary = cls(total=len(vulnerabilities))
        for vuln in vulnerabilities:
            name = vuln.severity.value
            setattr(summary, name, getattr(summary, name) + 1)
        return summary


@dataclass
class ScanMetadata:
    scanner: str = ""
    scan_duration: float = 0.0
    retry_count: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "scanner": self.scanner,
            "scanDuration": self.scan_duration,
            "retryCount": self.retry_count,
            "errors": list(self.errors),
        }


@dataclass
class ScanResult:
    """One scan snapshot. The summary is always derived from the list."""

    timestamp: str
    vulnerabilities: List[Vulnerability] = field(default_factory=list)
    metadata: Optional[ScanMetadata] = None

    @property
    def summary(self) -> ScanSummary:
        return ScanSummary.from_vulnerabilities(self.vulnerabilities)

    def to_dict(self) -> dict:
        data = {
            "timestamp": self.timestamp,
            "vulnerabilities": [v.to_dict() for v in self.vulnerabilities],
            "summary": asdict(self.summary),
        }
        if self.metadata is not None:
            data["metadata"] = self.metadata.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ScanResult":
        metadata = None
        raw_meta = data.get("metadata")
        if isinstance(raw_meta, dict):
            metadata = ScanMetadata(
                scanner=raw_meta.get("scanner", ""),
                scan_duration=raw_meta.get("scanDuration", 0.0),
                retry_count=raw_meta.get("retryCount", 0),
                errors=list(raw_meta.get("errors") or []),
            )
        return cls(
            timestamp=data["timestamp"],
            vulnerabilities=[Vulnerability.from_dict(v) for v in data.get("vulnerabilities", [])],
            metadata=metadata,
        )


@dataclass(frozen=True)
class Diagnosis:
    vulnerability_id: str
    description: str
    suggested_fix: str  # "Update <pkg> from <old> to <new>"
    files_to_modify: tuple = ("package.json",)
    severity: Severity = Severity.LOW
    package_name: str = ""


@dataclass
class FixOutcome:
    success: bool
    branch: str = ""
    reason: str = ""


@dataclass
class RunReport:
    scan: Optional[ScanResult] = None
    diagnosis: Optional[Diagnosis] = None
    outcome: Optional[FixOutcome] = None
    pr_url: str = ""
    demo_mode: bool = False
    dry_run: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def counts(self) -> Dict[str, int]:
        if self.scan is None:
            return {}
        return asdict(self.scan.summary)
