from __future__ import annotations

import os
import platform
import shutil
import stat
from dataclasses import dataclass, field
from pathlib import Path

from .config import get_or_create_gpg_homedir, probe_version
from .errors import GPGError, GPGErrorType
from .types import Result
from .version import LOOPBACK_MIN_VERSION


@dataclass
class CheckResult:
    """Result of an environment check."""

    name: str
    passed: bool
    message: str
    critical: bool = True
    fix_hint: str | None = None


@dataclass
class EnvironmentReport:
    """Complete environment verification report."""

    system: str
    checks: list[CheckResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return all(c.passed for c in self.checks if c.critical)

    @property
    def critical_failures(self) -> list[CheckResult]:
        return [c for c in self.checks if c.critical and not c.passed]

    @property
    def non_critical_failures(self) -> list[CheckResult]:
        return [c for c in self.checks if not c.critical and not c.passed]


def check_gpg_installed(gpg_binary: str = "gpg") -> CheckResult:
    """Check if GnuPG is installed and accessible."""
    gpg_path = shutil.which(gpg_binary)
    if gpg_path:
        return CheckResult(name="GnuPG", passed=True, message=f"Found: {gpg_path}")

    return CheckResult(
        name="GnuPG",
        passed=False,
        message=f"{gpg_binary} not found in PATH",
        fix_hint="Install GnuPG: brew install gnupg (macOS) or apt install gnupg (Debian/Ubuntu)",
    )


def check_gpg_version(gpg_binary: str = "gpg", homedir: Path | None = None) -> CheckResult:
    """Check GnuPG is new enough for loopback pinentry (>= 2.1).

    Older versions still work for operations that need no passphrase, so a
    too-old gpg is reported but not fatal.
    """
    minimum = ".".join(str(part) for part in LOOPBACK_MIN_VERSION)
    probe = probe_version(gpg_binary, homedir or get_or_create_gpg_homedir())
    if probe.is_err():
        return CheckResult(
            name="GnuPG Version",
            passed=False,
            message=f"Could not determine GnuPG version: {probe.unwrap_err()}",
            fix_hint="Ensure gpg is installed correctly",
        )

    version = probe.unwrap()
    if version.at_least(*LOOPBACK_MIN_VERSION):
        return CheckResult(
            name="GnuPG Version",
            passed=True,
            message=f"Version {version} (>= {minimum} for passphrase support)",
        )
    return CheckResult(
        name="GnuPG Version",
        passed=False,
        message=f"Version {version} cannot take passphrases in batch mode (>= {minimum} needed)",
        fix_hint=f"Upgrade GnuPG to version {minimum} or later",
        critical=False,
    )


def check_homedir(homedir: Path) -> CheckResult:
    """Check the GnuPG home exists and is private to its owner."""
    if not homedir.is_dir():
        return CheckResult(
            name="GnuPG Home",
            passed=False,
            message=f"{homedir} is not a directory",
            fix_hint=f"mkdir -m 700 {homedir}",
        )

    mode = stat.S_IMODE(homedir.stat().st_mode)
    if mode & 0o077:
        return CheckResult(
            name="GnuPG Home",
            passed=False,
            message=f"{homedir} has permissions {oct(mode)}, gpg will warn about unsafe permissions",
            fix_hint=f"chmod 700 {homedir}",
            critical=False,
        )
    return CheckResult(name="GnuPG Home", passed=True, message=f"{homedir} ({oct(mode)})")


def check_output_dir(output_dir: Path) -> CheckResult:
    if output_dir.is_dir() and os.access(output_dir, os.W_OK):
        return CheckResult(name="Output Directory", passed=True, message=f"{output_dir} is writable")
    return CheckResult(
        name="Output Directory",
        passed=False,
        message=f"{output_dir} is missing or not writable",
        fix_hint="Pass --output-dir with a writable directory",
    )


def check_gpg_agent() -> CheckResult:
    """Check gpgconf is around to manage gpg-agent (needed for secret keys on 2.1+)."""
    if shutil.which("gpgconf"):
        return CheckResult(
            name="gpg-agent",
            passed=True,
            message="gpgconf found",
            critical=False,
        )
    return CheckResult(
        name="gpg-agent",
        passed=False,
        message="gpgconf not found; secret key operations may fail to reach the agent",
        fix_hint="Install the full GnuPG suite (gnupg2 / gnupg-agent)",
        critical=False,
    )


def verify_environment(
    gpg_binary: str = "gpg",
    homedir: Path | None = None,
    output_dir: Path | None = None,
) -> EnvironmentReport:
    """Run all environment checks and return a report."""
    report = EnvironmentReport(system=platform.system())

    installed = check_gpg_installed(gpg_binary)
    report.checks.append(installed)
    if installed.passed:
        report.checks.append(check_gpg_version(gpg_binary, homedir))
    if homedir is not None:
        report.checks.append(check_homedir(homedir))
    if output_dir is not None:
        report.checks.append(check_output_dir(output_dir))
    report.checks.append(check_gpg_agent())

    if not report.all_passed:
        report.warnings.append("Some critical checks failed. Fix these before proceeding.")

    return report


def verify_environment_result(
    gpg_binary: str = "gpg",
    homedir: Path | None = None,
    output_dir: Path | None = None,
) -> Result[EnvironmentReport]:
    """Run environment verification and return as a Result."""
    report = verify_environment(gpg_binary, homedir, output_dir)

    if report.all_passed:
        return Result.ok(report)
    failures = ", ".join(c.name for c in report.critical_failures)
    return Result.err(GPGError(GPGErrorType.GPG_INIT_ERROR, f"Critical checks failed: {failures}"))
