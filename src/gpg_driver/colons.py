"""Parser for gpg's ``--with-colons`` key listing.

The listing emits a ``fpr`` (and, with ``--with-keygrip``, a ``grp``) line
right after the key or subkey it belongs to, without naming its owner. The
parser therefore keeps an explicit state saying which entity is open:

    NO_KEY --pub/sec--> IN_KEY --sub/ssb--> IN_SUBKEY
      ^                   ^                    |
      |                   +-----pub/sec--------+
    (start)

Field layout (1-based, from doc/DETAILS in the GnuPG sources):
    1 record type, 2 validity, 3 key length, 4 algorithm, 5 key id,
    6 creation date, 7 expiration date, 9 ownertrust, 10 user id or
    fingerprint/keygrip, 12 capabilities.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from enum import Enum, auto

from .types import CmdResult, ListKeyResult, SubkeyRecord, TrustLevel

logger = logging.getLogger(__name__)

TRUST_CODES: dict[str, TrustLevel] = {
    "e": TrustLevel.EXPIRED,
    "n": TrustLevel.NEVER,
    "m": TrustLevel.MARGINAL,
    "f": TrustLevel.FULLY,
    "u": TrustLevel.ULTIMATE,
}

PRIMARY_RECORDS = ("pub", "sec")
SUBKEY_RECORDS = ("sub", "ssb")


class ParserState(Enum):
    NO_KEY = auto()
    IN_KEY = auto()
    IN_SUBKEY = auto()


def trust_from_code(code: str) -> TrustLevel:
    return TRUST_CODES.get(code[:1], TrustLevel.UNDEFINED)


def parse_timestamp(value: str) -> datetime | None:
    if not value:
        return None
    if value.isdigit():
        return datetime.fromtimestamp(int(value), tz=UTC)
    try:
        return datetime.strptime(value, "%Y%m%dT%H%M%S").replace(tzinfo=UTC)
    except ValueError:
        logger.debug("Unrecognized timestamp in listing: %r", value)
        return None


def _field(fields: list[str], index: int) -> str:
    return fields[index] if len(fields) > index else ""


class ColonRecordParser:
    def __init__(self) -> None:
        self.state = ParserState.NO_KEY
        self.keys: list[ListKeyResult] = []

    @property
    def current_key(self) -> ListKeyResult | None:
        return self.keys[-1] if self.state is not ParserState.NO_KEY else None

    @property
    def current_subkey(self) -> SubkeyRecord | None:
        if self.state is ParserState.IN_SUBKEY:
            return self.keys[-1].subkeys[-1]
        return None

    def feed(self, line: str) -> None:
        line = line.rstrip("\r\n")
        if not line:
            return
        fields = line.split(":")
        record_type = fields[0]

        if record_type in PRIMARY_RECORDS:
            self._start_key(fields)
        elif record_type in SUBKEY_RECORDS:
            self._start_subkey(fields)
        elif record_type == "fpr":
            self._attach(fields, "fingerprint")
        elif record_type == "grp":
            self._attach(fields, "keygrip")
        elif record_type == "uid":
            self._add_uid(fields)

    def feed_all(self, lines: Iterable[str]) -> list[ListKeyResult]:
        for line in lines:
            self.feed(line)
        return self.keys

    def _start_key(self, fields: list[str]) -> None:
        length = _field(fields, 2)
        self.keys.append(
            ListKeyResult(
                record_type=fields[0],
                key_id=_field(fields, 4),
                creation_date=parse_timestamp(_field(fields, 5)),
                expiry_date=parse_timestamp(_field(fields, 6)),
                trust=trust_from_code(_field(fields, 1)),
                ownertrust=_field(fields, 8),
                length=int(length) if length.isdigit() else None,
                algorithm=_field(fields, 3),
                capabilities=_field(fields, 11),
            )
        )
        self.state = ParserState.IN_KEY

    def _start_subkey(self, fields: list[str]) -> None:
        if self.state is ParserState.NO_KEY:
            logger.debug("Subkey record without a primary key: %s", fields[4:5])
            return
        self.keys[-1].subkeys.append(
            SubkeyRecord(
                key_id=_field(fields, 4),
                capabilities=_field(fields, 11),
                creation_date=parse_timestamp(_field(fields, 5)),
                expiry_date=parse_timestamp(_field(fields, 6)),
            )
        )
        self.state = ParserState.IN_SUBKEY

    def _attach(self, fields: list[str], attribute: str) -> None:
        value = _field(fields, 9)
        if self.state is ParserState.IN_SUBKEY:
            setattr(self.keys[-1].subkeys[-1], attribute, value)
        elif self.state is ParserState.IN_KEY:
            setattr(self.keys[-1], attribute, value)
        else:
            logger.debug("Dropping %s record with no open key", fields[0])

    def _add_uid(self, fields: list[str]) -> None:
        if self.state is ParserState.NO_KEY:
            return
        self.keys[-1].uids.append(_field(fields, 9))


def decode_list_key_output(output: str) -> list[ListKeyResult]:
    return ColonRecordParser().feed_all(output.splitlines())


def decode_list_key_result(cmd_result: CmdResult) -> list[ListKeyResult]:
    return decode_list_key_output(cmd_result.text)
