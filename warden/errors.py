"""Error taxonomy for the remediation pipeline."""

from datetime import datetime, timezone
from typing import Optional


class WardenError(Exception):
    code = "WARDEN_ERROR"

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict:
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
        }


class ScanError(WardenError):
    """No scanner produced parseable output."""

    code = "SCAN_ERROR"

    def __init__(self, message: str, scanner: str = "", details: str = "",
                 recoverable: bool = True, transient: bool = False):
        super().__init__(message, recoverable)
        self.scanner = scanner
        self.details = details
        self.transient = transient

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(scanner=self.scanner, details=self.details)
        return data


class FixError(WardenError):
    code = "FIX_ERROR"

    def __init__(self, message: str, vulnerability_id: str = "", package_name: str = "",
                 attempted_fix: str = "", recoverable: bool = False):
        super().__init__(message, recoverable)
        self.vulnerability_id = vulnerability_id
        self.package_name = package_name
        self.attempted_fix = attempted_fix

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            vulnerabilityId=self.vulnerability_id,
            packageName=self.package_name,
            attemptedFix=self.attempted_fix,
        )
        return data


class PRError(WardenError):
    code = "PR_ERROR"

    def __init__(self, message: str, branch: str = "", http_status: Optional[int] = None,
                 rate_limited: bool = False, hint: str = ""):
        super().__init__(message, recoverable=not rate_limited)
        self.branch = branch
        self.http_status = http_status
        self.rate_limited = rate_limited
        self.hint = hint

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            branch=self.branch,
            httpStatus=self.http_status,
            rateLimited=self.rate_limited,
            hint=self.hint,
        )
        return data


class ConfigError(WardenError):
    code = "CONFIG_ERROR"

    def __init__(self, message: str, config_path: str = "", invalid_field: str = ""):
        super().__init__(message, recoverable=True)
        self.config_path = config_path
        self.invalid_field = invalid_field

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(configPath=self.config_path, invalidField=self.invalid_field)
        return data
