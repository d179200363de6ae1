from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Generic, TypeVar

if TYPE_CHECKING:
    from .status import StatusRecord

T = TypeVar("T")
U = TypeVar("U")


class Operation(Enum):
    NOT_SET = "NotSet"
    VERIFY = "Verify"  # startup probe, not file signature verification
    GENERATE_KEY = "GenerateKey"
    LIST_KEY = "ListKey"
    SEARCH_KEY = "SearchKey"
    IMPORT_KEY = "ImportKey"
    TRUST_KEY = "TrustKey"
    EXPORT_PUBLIC_KEY = "ExportPublicKey"
    EXPORT_SECRET_KEY = "ExportSecretKey"
    ENCRYPT = "Encrypt"
    DECRYPT = "Decrypt"
    SIGN = "Sign"
    VERIFY_FILE = "VerifyFile"

    def __str__(self) -> str:
        return self.value


class TrustLevel(IntEnum):
    EXPIRED = 1
    UNDEFINED = 2
    NEVER = 3
    MARGINAL = 4
    FULLY = 5
    ULTIMATE = 6


class SecureString:
    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        self._value = value

    def get(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return "SecureString(****)"

    def __str__(self) -> str:
        return "****"

    def __len__(self) -> int:
        return len(self._value)

    def __bool__(self) -> bool:
        return bool(self._value)

    def clear(self) -> None:
        self._value = "\x00" * len(self._value)
        self._value = ""


@dataclass(frozen=True)
class InvocationRequest:
    """Everything one gpg invocation needs.

    At most one input source is used, in the order ``data``, ``file``,
    ``file_path``. The passphrase is cleared once it has been written to the
    passphrase pipe, so a request must not be run twice.
    """

    operation: Operation
    args: tuple[str, ...]
    homedir: Path
    data: bytes | None = None
    file: BinaryIO | None = None
    file_path: Path | None = None
    passphrase: SecureString | None = None
    env: Mapping[str, str] | None = None
    extra_args: tuple[str, ...] = ()

    def __repr__(self) -> str:
        return (
            f"InvocationRequest(operation={self.operation}, args={self.args!r}, "
            f"homedir={str(self.homedir)!r}, input={self.input_kind}, "
            f"passphrase={'****' if self.passphrase is not None else None})"
        )

    @property
    def input_kind(self) -> str:
        if self.data is not None:
            return "data"
        if self.file is not None:
            return "file"
        if self.file_path is not None:
            return "file_path"
        return "none"


@dataclass(frozen=True)
class CmdResult:
    ok: bool
    returncode: int | None
    stdout: bytes
    status_lines: tuple[str, ...]
    operation: Operation

    @property
    def text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr(self) -> str:
        return "\n".join(self.status_lines)

    @property
    def status_records(self) -> list[StatusRecord]:
        from .status import decode_status

        return decode_status(self.status_lines)


@dataclass
class SubkeyRecord:
    key_id: str
    fingerprint: str = ""
    capabilities: str = ""
    keygrip: str | None = None
    creation_date: datetime | None = None
    expiry_date: datetime | None = None


@dataclass
class ListKeyResult:
    """One primary key from a ``--with-colons`` listing."""

    record_type: str
    key_id: str
    fingerprint: str = ""
    creation_date: datetime | None = None
    expiry_date: datetime | None = None
    trust: TrustLevel = TrustLevel.UNDEFINED
    ownertrust: str = ""
    length: int | None = None
    algorithm: str = ""
    capabilities: str = ""
    uids: list[str] = field(default_factory=list)
    subkeys: list[SubkeyRecord] = field(default_factory=list)
    keygrip: str | None = None

    @property
    def is_secret(self) -> bool:
        return self.record_type == "sec"


class Result(Generic[T]):
    __slots__ = ("_value", "_error", "_is_ok")

    def __init__(self, value: T | None, error: Exception | None, is_ok: bool) -> None:
        self._value = value
        self._error = error
        self._is_ok = is_ok

    @staticmethod
    def ok(value: T) -> Result[T]:
        return Result(value, None, True)

    @staticmethod
    def err(error: Exception) -> Result[T]:
        return Result(None, error, False)

    def is_ok(self) -> bool:
        return self._is_ok

    def is_err(self) -> bool:
        return not self._is_ok

    def unwrap(self) -> T:
        if not self._is_ok:
            raise self._error if self._error else RuntimeError("Result is error but no error set")
        return self._value  # type: ignore

    def unwrap_err(self) -> Exception:
        if self._is_ok:
            raise RuntimeError("Called unwrap_err on Ok result")
        return self._error  # type: ignore

    def unwrap_or(self, default: T) -> T:
        return self._value if self._is_ok else default  # type: ignore

    def map(self, fn: Callable[[T], U]) -> Result[U]:
        if self._is_ok:
            try:
                return Result.ok(fn(self._value))  # type: ignore
            except Exception as e:
                return Result.err(e)
        return Result.err(self._error)  # type: ignore

    def and_then(self, fn: Callable[[T], Result[U]]) -> Result[U]:
        if self._is_ok:
            return fn(self._value)  # type: ignore
        return Result.err(self._error)  # type: ignore
