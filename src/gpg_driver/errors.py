"""Structured error types with recovery hints for gpg invocations.

Errors are never raised out of the public operations; they travel inside
``Result.err`` so callers decide what to do with them. Each error carries:
- a kind (``GPGErrorType``) and the category that kind belongs to
- the ``CmdResult`` of the invocation, when one ran
- recovery hints derived from the kind and from the captured tool output
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, auto
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import CmdResult


class ErrorCategory(Enum):
    """When in the life of an invocation an error can happen."""

    SETUP = auto()  # Configuration construction: directories, binary, version probe
    ARGUMENT = auto()  # Caught before any process is spawned
    TRANSPORT = auto()  # Spawning and talking to the child process
    OUTCOME = auto()  # Derived from exit status and status tokens


class GPGErrorType(Enum):
    HOMEDIR_ERROR = ("HomedirError", ErrorCategory.SETUP)
    OUTPUT_DIR_ERROR = ("OutputDirError", ErrorCategory.SETUP)
    GPG_INIT_ERROR = ("GPGInitError", ErrorCategory.SETUP)
    GPG_NOT_FOUND_ERROR = ("GPGNotFoundError", ErrorCategory.SETUP)

    INVALID_ARGUMENT_ERROR = ("InvalidArgumentError", ErrorCategory.ARGUMENT)
    PASSPHRASE_ERROR = ("PassphraseError", ErrorCategory.ARGUMENT)
    FILE_NOT_FOUND_ERROR = ("FileNotFoundError", ErrorCategory.ARGUMENT)
    FILE_NOT_PROVIDED_ERROR = ("FileNotProvidedError", ErrorCategory.ARGUMENT)
    KEY_NOT_SUBKEY = ("KeyNotSubkey", ErrorCategory.ARGUMENT)
    INVALID_REASON_CODE = ("InvalidReasonCode", ErrorCategory.ARGUMENT)

    FAILED_TO_START_PROCESS = ("FailedToStartProcess", ErrorCategory.TRANSPORT)
    FAILED_TO_RETRIEVE_CHILD_PROCESS = ("FailedToRetrieveChildProcess", ErrorCategory.TRANSPORT)
    WRITE_FAIL_ERROR = ("WriteFailError", ErrorCategory.TRANSPORT)
    READ_FAIL_ERROR = ("ReadFailError", ErrorCategory.TRANSPORT)
    TIMEOUT_ERROR = ("TimeoutError", ErrorCategory.TRANSPORT)

    GPG_PROCESS_ERROR = ("GPGProcessError", ErrorCategory.OUTCOME)
    KEY_NOT_FOUND_ERROR = ("KeyNotFoundError", ErrorCategory.OUTCOME)
    INVALID_RECIPIENT_ERROR = ("InvalidRecipientError", ErrorCategory.OUTCOME)
    DECRYPTION_FAILED_ERROR = ("DecryptionFailedError", ErrorCategory.OUTCOME)
    KEY_NOT_CREATED_ERROR = ("KeyNotCreatedError", ErrorCategory.OUTCOME)
    NO_DATA_ERROR = ("NoDataError", ErrorCategory.OUTCOME)

    @property
    def label(self) -> str:
        return self.value[0]

    @property
    def category(self) -> ErrorCategory:
        return self.value[1]


@dataclass
class RecoveryHint:
    """A suggested recovery action for an error."""

    action: str
    command: str | None = None
    documentation_url: str | None = None

    def __str__(self) -> str:
        result = self.action
        if self.command:
            result += f"\n  Command: {self.command}"
        if self.documentation_url:
            result += f"\n  See: {self.documentation_url}"
        return result


@dataclass
class GPGError(Exception):
    """Error returned by every failing operation."""

    error_type: GPGErrorType
    message: str
    cmd_result: CmdResult | None = None
    recovery_hints: list[RecoveryHint] = field(default_factory=list)
    cause: Exception | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if not self.recovery_hints:
            self.recovery_hints = hints_for(self.error_type, self.cmd_result)

    def __str__(self) -> str:
        return f"[{self.error_type.label}] {self.message}"

    @property
    def category(self) -> ErrorCategory:
        return self.error_type.category

    def format_full(self) -> str:
        """Format error with the tool output tail and all recovery hints."""
        lines = [f"Error: {self}"]

        if self.cause:
            lines.append(f"Caused by: {self.cause}")

        if self.cmd_result is not None and self.cmd_result.status_lines:
            lines.append("\nGPG output:")
            for line in self.cmd_result.status_lines[-10:]:
                lines.append(f"  {line}")

        if self.recovery_hints:
            lines.append("\nRecovery options:")
            for i, hint in enumerate(self.recovery_hints, 1):
                lines.append(f"  {i}. {hint}")

        return "\n".join(lines)


_TYPE_HINTS: dict[GPGErrorType, list[RecoveryHint]] = {
    GPGErrorType.GPG_NOT_FOUND_ERROR: [
        RecoveryHint(
            "Install GnuPG",
            command="brew install gnupg" if sys.platform == "darwin" else "apt install gnupg2",
        ),
        RecoveryHint("Pass the full path of the gpg binary"),
    ],
    GPGErrorType.HOMEDIR_ERROR: [
        RecoveryHint("Check the GnuPG home directory exists and has mode 0700"),
    ],
    GPGErrorType.OUTPUT_DIR_ERROR: [
        RecoveryHint("Check the output directory exists and is writable"),
    ],
    GPGErrorType.GPG_INIT_ERROR: [
        RecoveryHint("Check gpg runs", command="gpg --list-config --with-colons"),
    ],
    GPGErrorType.PASSPHRASE_ERROR: [
        RecoveryHint("Check the passphrase; it cannot contain newlines or control characters"),
    ],
    GPGErrorType.KEY_NOT_FOUND_ERROR: [
        RecoveryHint("Check the key is in the keyring", command="gpg --list-keys"),
    ],
    GPGErrorType.INVALID_RECIPIENT_ERROR: [
        RecoveryHint("Check the recipient key exists and is not expired or revoked"),
    ],
    GPGErrorType.TIMEOUT_ERROR: [
        RecoveryHint("Increase the timeout or check gpg-agent is responsive"),
    ],
}


# Common gpg output patterns and their solutions

COMMON_ERROR_PATTERNS: dict[str, list[RecoveryHint]] = {
    "permission denied": [
        RecoveryHint("Check GNUPGHOME directory permissions"),
    ],
    "unsafe permissions": [
        RecoveryHint("Restrict the home directory", command="chmod 700 ~/.gnupg"),
    ],
    "agent": [
        RecoveryHint(
            "Restart GPG agent",
            command="gpgconf --kill gpg-agent && gpg-agent --daemon",
        ),
    ],
    "pinentry": [
        RecoveryHint("Allow loopback pinentry in gpg-agent.conf (allow-loopback-pinentry)"),
    ],
    "no such file": [
        RecoveryHint("Ensure the input file exists"),
    ],
}


def get_recovery_hints_for_message(error_message: str) -> list[RecoveryHint]:
    """Get recovery hints based on gpg output patterns."""
    hints = []
    lower_message = error_message.lower()

    for pattern, pattern_hints in COMMON_ERROR_PATTERNS.items():
        if pattern in lower_message:
            hints.extend(pattern_hints)

    return hints


def hints_for(error_type: GPGErrorType, cmd_result: CmdResult | None = None) -> list[RecoveryHint]:
    hints = list(_TYPE_HINTS.get(error_type, []))
    if cmd_result is not None:
        hints.extend(get_recovery_hints_for_message(cmd_result.stderr))
    return hints


# Error logging


class ErrorLogger:
    """Logger for structured error tracking."""

    def __init__(self, log_path: Path | None = None) -> None:
        self._log_path = log_path or Path.home() / ".gpg-driver" / "errors.log"
        self._logger = logging.getLogger("gpg-driver.errors")
        self._setup_logging()

    def _setup_logging(self) -> None:
        """Configure file logging, once per log file."""
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._logger.setLevel(logging.WARNING)

        target = str(self._log_path.absolute())
        for existing in self._logger.handlers:
            if isinstance(existing, logging.FileHandler) and existing.baseFilename == target:
                return

        handler = logging.FileHandler(self._log_path)
        handler.setLevel(logging.WARNING)
        formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")
        handler.setFormatter(formatter)

        self._logger.addHandler(handler)
        self._logger.setLevel(logging.WARNING)

    def log_error(self, error: GPGError) -> None:
        """Log an error with full context."""
        context = {
            "category": error.category.name,
            "error_type": error.error_type.label,
            "error_message": error.message,
            "timestamp": error.timestamp.isoformat(),
        }
        if error.cmd_result is not None:
            context["operation"] = str(error.cmd_result.operation)
            context["returncode"] = str(error.cmd_result.returncode)
        if error.cause:
            context["cause"] = str(error.cause)

        self._logger.error(
            f"[{error.category.name}] {error}",
            extra=context,
        )

    def log_warning(self, message: str, category: ErrorCategory) -> None:
        """Log a warning."""
        self._logger.warning(f"[{category.name}] {message}")

    def get_recent_errors(self, count: int = 10) -> list[str]:
        """Get recent error log entries."""
        if not self._log_path.exists():
            return []

        with open(self._log_path) as f:
            lines = f.readlines()

        return lines[-count:]
