"""Non-interactive driver for the GnuPG command line tool.

Every call spawns one ``gpg`` process in batch mode, feeds it input and a
passphrase over separate pipes, and turns its exit status and status-fd
output into a typed result.
"""

from .classifier import FAILURE_MESSAGES, classify
from .colons import ColonRecordParser, ParserState, decode_list_key_output
from .config import GPGConfig, create_config
from .environment import (
    CheckResult,
    EnvironmentReport,
    verify_environment,
    verify_environment_result,
)
from .errors import (
    ErrorCategory,
    ErrorLogger,
    GPGError,
    GPGErrorType,
    RecoveryHint,
    get_recovery_hints_for_message,
)
from .gpg_ops import GPGOperations
from .options import DecryptOption, EncryptOption
from .process import ProcessDriver
from .prompts import MockPrompts, Prompts, is_passphrase_valid
from .status import StatusRecord, decode_status, find_failure
from .types import (
    CmdResult,
    InvocationRequest,
    ListKeyResult,
    Operation,
    Result,
    SecureString,
    SubkeyRecord,
    TrustLevel,
)
from .version import Version, parse_version_output

__version__ = "0.1.0"

__all__ = [
    # Types
    "CmdResult",
    "InvocationRequest",
    "ListKeyResult",
    "Operation",
    "Result",
    "SecureString",
    "SubkeyRecord",
    "TrustLevel",
    # Operations
    "GPGOperations",
    "GPGConfig",
    "create_config",
    "EncryptOption",
    "DecryptOption",
    # Process and decoding
    "ProcessDriver",
    "StatusRecord",
    "decode_status",
    "find_failure",
    "ColonRecordParser",
    "ParserState",
    "decode_list_key_output",
    "Version",
    "parse_version_output",
    "FAILURE_MESSAGES",
    "classify",
    # Errors
    "ErrorCategory",
    "ErrorLogger",
    "GPGError",
    "GPGErrorType",
    "RecoveryHint",
    "get_recovery_hints_for_message",
    # Environment
    "CheckResult",
    "EnvironmentReport",
    "verify_environment",
    "verify_environment_result",
    # Prompts
    "Prompts",
    "MockPrompts",
    "is_passphrase_valid",
]
