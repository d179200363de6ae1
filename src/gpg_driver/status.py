"""Decoding of the gpg status channel.

gpg is started with ``--status-fd 2`` so its stderr carries both the
machine-readable status protocol (``[GNUPG:] KEYWORD args...``) and the
human-readable log messages. Both kinds are kept, in order; only status
keywords can classify a failure.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .errors import GPGErrorType

STATUS_PREFIX = "[GNUPG:] "

# Keywords that name a terminal failure. Anything else is informational.
FAILURE_TOKENS: dict[str, GPGErrorType] = {
    "BAD_PASSPHRASE": GPGErrorType.PASSPHRASE_ERROR,
    "MISSING_PASSPHRASE": GPGErrorType.PASSPHRASE_ERROR,
    "NO_SECKEY": GPGErrorType.KEY_NOT_FOUND_ERROR,
    "NO_PUBKEY": GPGErrorType.KEY_NOT_FOUND_ERROR,
    "INV_SGNR": GPGErrorType.KEY_NOT_FOUND_ERROR,
    "INV_RECP": GPGErrorType.INVALID_RECIPIENT_ERROR,
    "DECRYPTION_FAILED": GPGErrorType.DECRYPTION_FAILED_ERROR,
    "KEY_NOT_CREATED": GPGErrorType.KEY_NOT_CREATED_ERROR,
    "NODATA": GPGErrorType.NO_DATA_ERROR,
}


@dataclass(frozen=True)
class StatusRecord:
    keyword: str | None
    args: tuple[str, ...]
    raw: str

    @property
    def is_status(self) -> bool:
        return self.keyword is not None

    @property
    def value(self) -> str:
        return " ".join(self.args)


def parse_status_line(line: str) -> StatusRecord:
    line = line.rstrip("\r\n")
    if not line.startswith(STATUS_PREFIX):
        return StatusRecord(keyword=None, args=(), raw=line)

    fields = line[len(STATUS_PREFIX) :].split()
    if not fields:
        return StatusRecord(keyword=None, args=(), raw=line)
    return StatusRecord(keyword=fields[0], args=tuple(fields[1:]), raw=line)


def decode_status(lines: Iterable[str]) -> list[StatusRecord]:
    return [parse_status_line(line) for line in lines]


def find_failure(records: Iterable[StatusRecord]) -> tuple[GPGErrorType, StatusRecord] | None:
    """Return the first recognized failure token in emission order.

    gpg reports the specific cause (``BAD_PASSPHRASE``, ``NO_SECKEY``) before
    the generic consequence (``DECRYPTION_FAILED``), so the first hit is the
    most specific one.
    """
    for record in records:
        if record.keyword is not None and record.keyword in FAILURE_TOKENS:
            return FAILURE_TOKENS[record.keyword], record
    return None


def describe(record: StatusRecord) -> str:
    """Human-readable rendering of a failure token."""
    if record.keyword is None:
        return record.raw
    text = record.keyword.replace("_", " ").lower()
    if record.args:
        text += f" ({record.value})"
    return text
