from __future__ import annotations

import logging

from .errors import GPGError, GPGErrorType
from .status import describe, find_failure
from .types import CmdResult, Operation, Result

logger = logging.getLogger(__name__)

# One entry per Operation; test_classifier checks the mapping stays exhaustive.
FAILURE_MESSAGES: dict[Operation, str] = {
    Operation.NOT_SET: "gpg command failed",
    Operation.VERIFY: "gpg could not be verified",
    Operation.GENERATE_KEY: "Key generation failed",
    Operation.LIST_KEY: "Listing keys failed",
    Operation.SEARCH_KEY: "Key search failed",
    Operation.IMPORT_KEY: "Key import failed",
    Operation.TRUST_KEY: "Setting key trust failed",
    Operation.EXPORT_PUBLIC_KEY: "Public key export failed",
    Operation.EXPORT_SECRET_KEY: "Secret key export failed",
    Operation.ENCRYPT: "Encryption failed",
    Operation.DECRYPT: "Decryption failed",
    Operation.SIGN: "Signing failed",
    Operation.VERIFY_FILE: "Signature verification failed",
}


def classify(cmd_result: CmdResult) -> Result[CmdResult]:
    """Turn a finished invocation into success or a typed error."""
    if cmd_result.ok:
        return Result.ok(cmd_result)

    message = FAILURE_MESSAGES[cmd_result.operation]
    failure = find_failure(cmd_result.status_records)
    if failure is not None:
        error_type, record = failure
        message = f"{message}: {describe(record)}"
    else:
        error_type = GPGErrorType.GPG_PROCESS_ERROR
        message = f"{message} (exit status {cmd_result.returncode})"

    logger.debug("Classified %s failure as %s", cmd_result.operation, error_type.label)
    return Result.err(GPGError(error_type, message, cmd_result=cmd_result))
