"""Scanner adapter.

Runs the primary scanner (Snyk) and, in ``auto`` mode, falls back to the
secondary one (npm audit). Transient failures (network errors, timeouts) are
retried with exponential backoff; everything else fails fast. Every scanner
invocation is persisted, failed ones as an empty result carrying the errors.
"""

import time
from datetime import datetime, timezone
from typing import Callable, List

from warden.config import Context
from warden.errors import ScanError
from warden.models import ScanMetadata, ScanResult, Severity
from warden.prioritizer import filter_high_priority
from warden.runner import CommandRunner
from warden.scanners import npm_audit, snyk
from warden.storage import ResultStore

SCANNERS = {
    "primary": snyk,
    "secondary": npm_audit,
}

SCAN_ORDER = {
    "primary": ["primary"],
    "secondary": ["secondary"],
    "auto": ["primary", "secondary"],
}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class _Attempt:
    def __init__(self):
        self.retries = 0
        self.errors: List[str] = []


class ScannerAdapter:
    def __init__(
        self,
        ctx: Context,
        runner: CommandRunner,
        store: ResultStore,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = ctx.config
        self.logger = ctx.child("watchman")
        self.runner = runner
        self.store = store
        self.sleep = sleep
        self.clock = clock

    def scan(self, cwd: str) -> ScanResult:
        """Scan ``cwd`` with the configured selector; raise ScanError if nothing worked."""
        order = SCAN_ORDER.get(self.config.scanner)
        if order is None:
            raise ScanError(f"Unknown scanner selector: {self.config.scanner}", self.config.scanner,
                            recoverable=False)

        failures: List[ScanError] = []
        for index, key in enumerate(order):
            try:
                return self._scan_with(key, cwd)
            except ScanError as e:
                failures.append(e)
                if index + 1 < len(order):
                    self.logger.warning("%s failed: %s. Falling back to %s...",
                                        SCANNERS[key].LABEL, e, SCANNERS[order[index + 1]].LABEL)

        if len(failures) == 1:
            raise failures[0]
        raise ScanError(
            "All scanners failed: " + "; ".join(str(e) for e in failures),
            ",".join(e.scanner for e in failures),
            "\n".join(e.details for e in failures if e.details),
        )

    def _scan_with(self, key: str, cwd: str) -> ScanResult:
        module = SCANNERS[key]
        attempt = _Attempt()
        started = self.clock()
        self.logger.info("Running %s security scan...", module.LABEL)

        try:
            probe = getattr(module, "probe", None)
            if probe is not None:
                if not self.config.snyk_token:
                    self.logger.warning("SNYK_TOKEN not found. Scanner may fail or require CLI login.")
                self._retry(lambda: probe(self.runner, cwd, self.config.probe_timeout),
                            f"{module.LABEL} CLI version check", attempt)

            self.logger.info("Executing %s scan (timeout: %gs)...", module.LABEL, self.config.scan_timeout)
            vulnerabilities = self._retry(
                lambda: module.scan(self.runner, cwd, self.config.scan_timeout),
                f"{module.LABEL} security scan",
                attempt,
            )
        except ScanError as e:
            attempt.errors.append(str(e))
            failed = ScanResult(
                timestamp=utc_timestamp(),
                metadata=ScanMetadata(
                    scanner=module.NAME,
                    scan_duration=self.clock() - started,
                    retry_count=attempt.retries,
                    errors=attempt.errors,
                ),
            )
            try:
                self.store.save(failed)
            except OSError as save_error:
                self.logger.error("Could not persist failed %s scan: %s", module.LABEL, save_error)
            raise

        duration = self.clock() - started
        result = ScanResult(
            timestamp=utc_timestamp(),
            vulnerabilities=vulnerabilities,
            metadata=ScanMetadata(
                scanner=module.NAME,
                scan_duration=duration,
                retry_count=attempt.retries,
                errors=attempt.errors,
            ),
        )
        self.store.save(result)
        self.logger.info("Scan completed in %.2fs", duration)
        return result

    def _retry(self, fn, operation: str, attempt: _Attempt):
        tries = 1
        while True:
            try:
                return fn()
            except ScanError as e:
                if not e.transient or tries >= self.config.max_retries:
                    raise
                delay = self.config.retry_delay * 2 ** (tries - 1)
                self.logger.warning(
                    "%s failed (attempt %d/%d). Retrying in %gs... Reason: %s",
                    operation, tries, self.config.max_retries, delay, e,
                )
                attempt.retries += 1
                attempt.errors.append(str(e))
                self.sleep(delay)
                tries += 1


def print_summary(result: ScanResult) -> None:
    summary = result.summary
    print(f"\n{'='*50}")
    print("📊 Security Scan Summary")
    print(f"{'='*50}")
    print(f"  🕒 Timestamp: {result.timestamp}")
    if result.metadata and result.metadata.scanner:
        print(f"  🔎 Scanner:   {result.metadata.scanner}")
    print(f"  🔴 Critical: {summary.critical}")
    print(f"  🟠 High:     {summary.high}")
    print(f"  🟡 Medium:   {summary.medium}")
    print(f"  🔵 Low:      {summary.low}")
    print(f"  Total:       {summary.total}")
    if result.metadata and result.metadata.errors:
        print(f"  ⚠️  Errors:   {len(result.metadata.errors)}")
    print(f"{'='*50}")

    high_priority = filter_high_priority(result)
    if high_priority:
        print("\n⚠️ High priority vulnerabilities:")
        for i, vuln in enumerate(high_priority, 1):
            icon = "🔴" if vuln.severity == Severity.CRITICAL else "🟠"
            print(f"  {i}. {icon} [{vuln.severity.value.upper()}] {vuln.title}")
            print(f"     Package: {vuln.package_name}@{vuln.version}")
            print(f"     ID: {vuln.id}")
