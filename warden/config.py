"""Run configuration and the context object handed to every component."""

import json
import logging
import os
import sys
from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional

from warden.errors import ConfigError

SCANNER_CHOICES = ("primary", "secondary", "auto")
SCANNER_ALIASES = {"snyk": "primary", "npm-audit": "secondary", "all": "auto"}
SEVERITY_CHOICES = ("low", "medium", "high", "critical")

CONFIG_FILENAMES = (".wardenrc.json", ".wardenrc", "warden.config.json")

ENV_OVERRIDES = {
    "WARDEN_SCANNER": "scanner",
    "WARDEN_MIN_SEVERITY": "min_severity",
    "WARDEN_MAX_FIXES": "max_fixes",
    "WARDEN_MAX_RETRIES": "max_retries",
    "WARDEN_SCAN_TIMEOUT": "scan_timeout",
    "WARDEN_BRANCH_PREFIX": "branch_prefix",
    "WARDEN_BASE_BRANCH": "base_branch",
    "WARDEN_RESULTS_DIR": "results_dir",
    "WARDEN_HOME": "home_dir",
    "GITHUB_ASSIGNEE": "assignee",
}


@dataclass
class WardenConfig:
    scanner: str = "auto"
    scan_timeout: float = 300.0
    probe_timeout: float = 10.0
    max_retries: int = 3
    retry_delay: float = 2.0
    min_severity: str = "high"
    max_fixes: int = 1
    branch_prefix: str = "warden"
    base_branch: str = "main"
    home_dir: str = ""
    results_dir: str = "scan-results"
    workspaces_dir: str = "workspaces"
    manifest: str = "package.json"
    install_command: List[str] = field(default_factory=lambda: ["npm", "install"])
    test_command: List[str] = field(default_factory=lambda: ["npm", "test"])
    labels: List[str] = field(default_factory=lambda: ["security", "automated"])
    assignee: str = ""
    ignored_vulnerabilities: List[str] = field(default_factory=list)
    dry_run: bool = False
    github_token: str = ""
    snyk_token: str = ""
    github_owner: str = ""
    github_repo: str = ""
    config_path: str = ""

    def validate(self) -> None:
        """Raise ConfigError on the first invalid field."""
        if self.scanner not in SCANNER_CHOICES:
            raise ConfigError(
                f"Unknown scanner '{self.scanner}' (expected one of {', '.join(SCANNER_CHOICES)})",
                self.config_path, "scanner",
            )
        if self.min_severity not in SEVERITY_CHOICES:
            raise ConfigError(
                f"Unknown severity '{self.min_severity}'", self.config_path, "min_severity",
            )
        for name in ("max_fixes", "max_retries"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be at least 1", self.config_path, name)
        if self.scan_timeout <= 0:
            raise ConfigError("scan_timeout must be positive", self.config_path, "scan_timeout")


@dataclass
class Context:
    """Config plus logger, built once at process start."""

    config: WardenConfig
    logger: logging.Logger

    def child(self, name: str) -> logging.Logger:
        return self.logger.getChild(name)


def find_config_file(search_dir: str) -> Optional[str]:
    candidates = [os.path.join(search_dir, name) for name in CONFIG_FILENAMES]
    candidates.append(os.path.join(os.path.expanduser("~"), ".wardenrc.json"))
    for path in candidates:
        if os.path.isfile(path):
            return path
    return None


def load_config(
    search_dir: str,
    config_path: Optional[str] = None,
    overrides: Optional[Dict[str, object]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> WardenConfig:
    """Defaults, then rc file, then environment, then explicit overrides."""
    env = os.environ if environ is None else environ
    config = WardenConfig()

    path = config_path or find_config_file(search_dir)
    if path:
        if not os.path.isfile(path):
            raise ConfigError(f"Config file not found: {path}", path)
        _apply_file(config, path)
        config.config_path = path

    for var, name in ENV_OVERRIDES.items():
        if env.get(var):
            _set_field(config, name, env[var])

    config.github_token = env.get("GITHUB_TOKEN", "")
    config.snyk_token = env.get("SNYK_TOKEN", "")
    config.github_owner = env.get("GITHUB_OWNER", "")
    config.github_repo = env.get("GITHUB_REPO", "")

    for name, value in (overrides or {}).items():
        if value is not None:
            _set_field(config, name, value)

    config.scanner = SCANNER_ALIASES.get(config.scanner, config.scanner)
    config.validate()
    return config


def _apply_file(config: WardenConfig, path: str) -> None:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read config file {path}: {e}", path) from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object", path)

    # Accept the nested layout ({"scanner": {"timeout": ...}, "fixes": {...}}) too.
    flat = dict(data)
    scanner = flat.pop("scanner", None)
    if isinstance(scanner, dict):
        for key, name in (("primary", "scanner"), ("timeout", "scan_timeout"), ("retries", "max_retries")):
            if key in scanner:
                flat[name] = scanner[key]
    elif scanner is not None:
        flat["scanner"] = scanner
    fixes = flat.pop("fixes", None)
    if isinstance(fixes, dict):
        for key, name in (("maxPerRun", "max_fixes"), ("minSeverity", "min_severity"),
                          ("branchPrefix", "branch_prefix")):
            if key in fixes:
                flat[name] = fixes[key]
    github = flat.pop("github", None)
    if isinstance(github, dict):
        if "labels" in github:
            flat["labels"] = github["labels"]
        if github.get("assignees"):
            flat["assignee"] = github["assignees"][0]
    exclude = flat.pop("exclude", None)
    if isinstance(exclude, dict) and "vulnerabilities" in exclude:
        flat["ignored_vulnerabilities"] = exclude["vulnerabilities"]

    known = {f.name for f in fields(WardenConfig)}
    for key, value in flat.items():
        if key not in known:
            raise ConfigError(f"Unknown config key '{key}'", path, key)
        try:
            _set_field(config, key, value)
        except ConfigError as e:
            e.config_path = path
            raise


def _set_field(config: WardenConfig, name: str, value) -> None:
    current = getattr(config, name)
    try:
        if isinstance(current, bool):
            if isinstance(value, str):
                value = value.lower() in ("1", "true", "yes")
            else:
                value = bool(value)
        elif isinstance(current, int):
            value = int(value)
        elif isinstance(current, float):
            value = float(value)
        elif isinstance(current, list):
            if isinstance(value, str):
                value = [v for v in value.split() if v] if name.endswith("_command") else \
                    [v.strip() for v in value.split(",") if v.strip()]
            else:
                value = list(value)
        else:
            value = str(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {value!r}", invalid_field=name) from e
    setattr(config, name, value)


def setup_logging(verbose: bool = False, quiet: bool = False) -> logging.Logger:
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING

    logger = logging.getLogger("warden")
    logger.setLevel(level)
    logger.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def warden_home(config: WardenConfig) -> str:
    return os.path.abspath(os.path.expanduser(config.home_dir or os.path.join("~", ".warden")))


def resolve_results_dir(config: WardenConfig) -> str:
    """Absolute results directory; relative paths resolve under the Warden home."""
    return os.path.realpath(os.path.join(warden_home(config), os.path.expanduser(config.results_dir)))


def ensure_outside(path: str, target_path: str, field_name: str = "results_dir") -> None:
    """Raise ConfigError if ``path`` lies inside the ``target_path`` working tree.

    The patch engine stages and cleans that whole tree.
    """
    path = os.path.realpath(path)
    target = os.path.realpath(target_path)
    if os.path.commonpath([path, target]) == target:
        raise ConfigError(
            f"{field_name} {path} is inside the target repository {target}; set WARDEN_HOME elsewhere",
            invalid_field=field_name,
        )


def build_context(config: WardenConfig, logger: Optional[logging.Logger] = None) -> Context:
    return Context(config=config, logger=logger or logging.getLogger("warden"))
