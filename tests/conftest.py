"""Shared fixtures for the Warden test suite."""

import json
import logging

import pytest

from warden.config import Context, WardenConfig
from warden.models import Diagnosis, ScanResult, Severity, Vulnerability
from warden.runner import CommandResult, CommandRunner
from warden.storage import ResultStore


# ---------------------------------------------------------------------------
# Fake command runner
# ---------------------------------------------------------------------------

class FakeRunner(CommandRunner):
    """Records every command and replays scripted outcomes.

    Outcomes are (returncode, stdout, stderr) tuples, CommandResult objects or
    exceptions to raise. A command's outcomes are consumed in order; the last
    one repeats. Unscripted commands succeed with empty output.
    """

    def __init__(self):
        super().__init__()
        self.calls = []
        self.scripts = {}
        self.hooks = {}

    def script(self, command, *outcomes):
        self.scripts[command] = list(outcomes)

    def hook(self, command, fn):
        self.hooks[command] = fn

    def commands(self):
        return [c[0] for c in self.calls]

    def _spawn(self, args, cwd, timeout):
        argv = list(args)
        key = " ".join(argv)
        self.calls.append((key, cwd, timeout))
        if key in self.hooks:
            self.hooks[key](cwd)

        outcomes = self.scripts.get(key)
        if not outcomes:
            return CommandResult(argv, 0)
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, CommandResult):
            return outcome
        returncode, stdout, stderr = outcome
        return CommandResult(argv, returncode, stdout, stderr)


@pytest.fixture
def runner():
    return FakeRunner()


# ---------------------------------------------------------------------------
# Context / storage
# ---------------------------------------------------------------------------

@pytest.fixture
def config(tmp_path):
    return WardenConfig(retry_delay=0.5, github_token="ghp_fake", home_dir=str(tmp_path / "warden-home"))


@pytest.fixture
def ctx(config):
    return Context(config=config, logger=logging.getLogger("warden.test"))


@pytest.fixture
def store(tmp_path):
    return ResultStore(str(tmp_path / "scan-results"))


# ---------------------------------------------------------------------------
# Scanner outputs
# ---------------------------------------------------------------------------

SNYK_OUTPUT = json.dumps({
    "ok": False,
    "vulnerabilities": [
        {
            "id": "SNYK-JS-LODASH-1040724",
            "title": "Command Injection",
            "severity": "high",
            "packageName": "lodash",
            "version": "4.17.0",
            "fixedIn": ["4.17.21"],
            "description": "lodash template is vulnerable to command injection.",
            "cvssScore": 7.2,
        },
        {
            "id": "SNYK-JS-MINIMIST-2429795",
            "title": "Prototype Pollution",
            "severity": "critical",
            "packageName": "minimist",
            "version": "1.2.5",
            "fixedIn": ["1.2.6"],
            "cvssScore": 9.8,
        },
    ],
})

NPM_AUDIT_OUTPUT = json.dumps({
    "auditReportVersion": 2,
    "vulnerabilities": {
        "lodash": {
            "name": "lodash",
            "severity": "high",
            "via": [
                {
                    "source": 1523,
                    "name": "lodash",
                    "title": "Prototype Pollution in lodash",
                    "url": "https://github.com/advisories/GHSA-p6mc-m468-83gw",
                    "severity": "high",
                    "cvss": {"score": 7.4},
                    "range": "<4.17.19",
                },
                {
                    "source": 1673,
                    "name": "lodash",
                    "title": "Command Injection in lodash",
                    "url": "https://github.com/advisories/GHSA-35jh-r3h4-6jhm",
                    "severity": "high",
                    "cvss": {"score": 7.2},
                    "range": "<4.17.21",
                },
            ],
            "range": "<=4.17.20",
            "fixAvailable": True,
        },
        "minimist": {
            "name": "minimist",
            "severity": "moderate",
            "via": [
                {
                    "source": 1179,
                    "name": "minimist",
                    "title": "Prototype Pollution in minimist",
                    "url": "https://github.com/advisories/GHSA-vh95-rmgr-6w4m",
                    "range": ">=1.0.0 <1.2.6",
                },
            ],
            "range": "1.0.0 - 1.2.5",
            "fixAvailable": {"name": "minimist", "version": "1.2.8", "isSemVerMajor": False},
        },
        "mkdirp": {
            "name": "mkdirp",
            "severity": "info",
            "via": ["minimist"],
            "range": "0.4.1 - 0.5.1",
            "fixAvailable": True,
        },
    },
})


@pytest.fixture
def snyk_output():
    return SNYK_OUTPUT


@pytest.fixture
def npm_audit_output():
    return NPM_AUDIT_OUTPUT


# ---------------------------------------------------------------------------
# Domain objects
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_vulnerabilities():
    return [
        Vulnerability("V-LOW", "Low thing", Severity.LOW, "debug", "2.6.8", (), "", 3.1),
        Vulnerability("V-HIGH", "Command Injection", Severity.HIGH, "lodash", "4.17.0",
                      ("4.17.19", "4.17.21"), "", 7.2),
        Vulnerability("V-CRIT", "Prototype Pollution", Severity.CRITICAL, "minimist", "1.2.5",
                      ("1.2.6",), "", 9.8),
        Vulnerability("V-MED", "ReDoS", Severity.MEDIUM, "ms", "0.7.0", ("2.0.0",), "", 5.3),
    ]


@pytest.fixture
def sample_scan_result(sample_vulnerabilities):
    return ScanResult(timestamp="2026-10-19T10:00:00+00:00", vulnerabilities=sample_vulnerabilities)


@pytest.fixture
def lodash_diagnosis():
    return Diagnosis(
        vulnerability_id="SNYK-JS-LODASH-1040724",
        description="Command Injection in lodash@4.17.0 (HIGH)",
        suggested_fix="Update lodash from 4.17.0 to 4.17.21",
        severity=Severity.HIGH,
        package_name="lodash",
    )


PACKAGE_JSON = {
    "name": "demo-app",
    "version": "1.0.0",
    "scripts": {"test": "jest"},
    "dependencies": {"express": "^4.17.1", "lodash": "4.17.0"},
    "devDependencies": {"jest": "^29.0.0"},
}


@pytest.fixture
def project(tmp_path):
    """A directory holding a package.json and a .git marker."""
    path = tmp_path / "project"
    path.mkdir()
    (path / ".git").mkdir()
    (path / "package.json").write_text(json.dumps(PACKAGE_JSON, indent=2) + "\n")
    return path
