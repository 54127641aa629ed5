"""Helpers shared by the scanner normalizers."""

import json
from typing import Optional

from warden.errors import ScanError
from warden.models import Severity

SEVERITY_MAP = {
    "critical": Severity.CRITICAL,
    "high": Severity.HIGH,
    "moderate": Severity.MEDIUM,
    "medium": Severity.MEDIUM,
    "low": Severity.LOW,
    "info": Severity.LOW,
}

TRANSIENT_MARKERS = (
    "enotfound",
    "econnrefused",
    "econnreset",
    "enetunreach",
    "eai_again",
    "etimedout",
    "network is unreachable",
    "connection refused",
    "could not resolve host",
    "getaddrinfo",
)


def normalize_severity(raw: Optional[str]) -> Severity:
    """Map an upstream severity string onto the four-level enum.

    Anything unrecognised lands in the least severe bucket.
    """
    if not isinstance(raw, str):
        return Severity.LOW
    return SEVERITY_MAP.get(raw.strip().lower(), Severity.LOW)


def is_transient_text(text: str) -> bool:
    lowered = (text or "").lower()
    return any(marker in lowered for marker in TRANSIENT_MARKERS)


def load_json(output: str, scanner: str):
    try:
        return json.loads(output)
    except (json.JSONDecodeError, TypeError) as e:
        raise ScanError(f"Failed to parse {scanner} JSON output", scanner, str(e)) from e


def parse_cvss(raw) -> Optional[float]:
    if isinstance(raw, bool):
        return None
    try:
        score = float(raw)
    except (TypeError, ValueError):
        return None
    if 0.0 <= score <= 10.0:
        return score
    return None
