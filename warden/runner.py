"""Subprocess execution shared by the scanner, package-manager and git drivers.

Every external command in the pipeline goes through a ``CommandRunner`` with an
explicit working directory. Tests substitute a fake runner at this seam.
"""

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Sequence

MAX_OUTPUT_BYTES = 10 * 1024 * 1024


@dataclass
class CommandResult:
    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandError(Exception):
    """A command could not be started or exited unsuccessfully."""

    def __init__(self, args: Sequence[str], message: str, returncode: Optional[int] = None,
                 stdout: str = "", stderr: str = ""):
        self.args_list = list(args)
        self.command = shlex.join(self.args_list)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.reason = message
        super().__init__(f"Command failed: {self.command}\n{message}")


class CommandTimeout(CommandError):
    """The process was killed after exceeding its time limit."""

    def __init__(self, args: Sequence[str], timeout: float, stdout: str = "", stderr: str = ""):
        self.timeout = timeout
        super().__init__(args, f"timed out after {timeout:g}s", stdout=stdout, stderr=stderr)


class CommandRunner:
    def __init__(self, max_output: int = MAX_OUTPUT_BYTES, logger: Optional[logging.Logger] = None):
        self.max_output = max_output
        self.logger = logger or logging.getLogger("warden.runner")

    def run(self, args: Sequence[str], cwd: str) -> CommandResult:
        """Run to completion; non-zero exit raises CommandError."""
        result = self._spawn(args, cwd, timeout=None)
        if not result.ok:
            raise CommandError(
                args,
                (result.stderr or result.stdout).strip() or f"exit code {result.returncode}",
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    def run_with_timeout(self, args: Sequence[str], cwd: str, timeout: float) -> CommandResult:
        """Like run(), but kill the process after ``timeout`` seconds."""
        result = self._spawn(args, cwd, timeout=timeout)
        if not result.ok:
            raise CommandError(
                args,
                (result.stderr or result.stdout).strip() or f"exit code {result.returncode}",
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    def run_capturing_output(self, args: Sequence[str], cwd: str,
                             timeout: Optional[float] = None) -> CommandResult:
        """Return the result whatever the exit code.

        Scanners exit non-zero to report findings, so the caller decides what
        counts as failure. Timeouts and oversized output still raise.
        """
        return self._spawn(args, cwd, timeout=timeout)

    def _spawn(self, args: Sequence[str], cwd: str, timeout: Optional[float]) -> CommandResult:
        argv = list(args)
        self.logger.debug("exec: %s (cwd=%s)", shlex.join(argv), cwd)
        try:
            proc = subprocess.run(
                argv,
                cwd=cwd,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandTimeout(argv, timeout, stdout=_decode(e.stdout), stderr=_decode(e.stderr)) from e
        except OSError as e:
            raise CommandError(argv, str(e)) from e

        stdout = proc.stdout or ""
        if len(stdout.encode("utf-8", errors="ignore")) > self.max_output:
            raise CommandError(
                argv,
                f"output exceeded {self.max_output} bytes",
                returncode=proc.returncode,
                stderr=proc.stderr or "",
            )
        return CommandResult(argv, proc.returncode, stdout, proc.stderr or "")


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
