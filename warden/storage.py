"""Durable scan results: a timestamped archive file plus a "latest" pointer."""

import json
import logging
import os
import tempfile
from typing import List, Optional, Tuple

from warden.models import ScanResult

LATEST_FILENAME = "scan-results.json"


def validate_scan_result(data: dict) -> None:
    """Reject structurally invalid results before anything touches disk."""
    if not isinstance(data, dict):
        raise ValueError("Scan result is null or not an object")
    timestamp = data.get("timestamp")
    if not timestamp or not isinstance(timestamp, str):
        raise ValueError("Invalid timestamp")
    if not isinstance(data.get("vulnerabilities"), list):
        raise ValueError("Vulnerabilities must be a list")
    if not isinstance(data.get("summary"), dict):
        raise ValueError("Invalid summary")


def archive_filename(timestamp: str) -> str:
    return f"scan-{timestamp.replace(':', '-')}.json"


class ResultStore:
    def __init__(self, results_dir: str, logger: Optional[logging.Logger] = None):
        self.results_dir = results_dir
        self.logger = logger or logging.getLogger("warden.storage")

    @property
    def latest_path(self) -> str:
        return os.path.join(self.results_dir, LATEST_FILENAME)

    def save(self, result: ScanResult) -> str:
        """Write the archive copy and the latest pointer; return the archive path."""
        data = result.to_dict()
        validate_scan_result(data)

        os.makedirs(self.results_dir, exist_ok=True)
        content = json.dumps(data, indent=2)
        archive_path = os.path.join(self.results_dir, archive_filename(result.timestamp))

        try:
            _atomic_write(archive_path, content)
            _atomic_write(self.latest_path, content)
        except OSError as e:
            self.logger.error("Failed to save scan results: %s", e)
            raise

        self.logger.info("Scan results saved to: %s", archive_path)
        self.logger.debug("Latest results: %s", self.latest_path)
        return archive_path

    def load(self, path: str) -> ScanResult:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        validate_scan_result(data)
        return ScanResult.from_dict(data)

    def load_latest(self) -> Optional[ScanResult]:
        if not os.path.isfile(self.latest_path):
            return None
        return self.load(self.latest_path)

    def history(self, limit: int = 5) -> List[Tuple[str, Optional[dict]]]:
        """Most recent archive files first, each with its parsed content or None."""
        if not os.path.isdir(self.results_dir):
            return []
        files = sorted(
            (f for f in os.listdir(self.results_dir)
             if f.startswith("scan-") and f.endswith(".json") and f != LATEST_FILENAME),
            reverse=True,
        )[:limit]

        entries = []
        for name in files:
            try:
                with open(os.path.join(self.results_dir, name), "r", encoding="utf-8") as f:
                    entries.append((name, json.load(f)))
            except (OSError, json.JSONDecodeError):
                entries.append((name, None))
        return entries


def _atomic_write(path: str, content: str) -> None:
    directory = os.path.dirname(path) or "."
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=os.path.basename(path), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
