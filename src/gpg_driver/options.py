"""Option presets for encryption and decryption and the argv they produce.

Everything here runs before a process is spawned, so argument errors come
back without paying for a gpg launch.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import BinaryIO

from .errors import GPGError, GPGErrorType
from .prompts import is_passphrase_valid
from .types import Result, SecureString

DEFAULT_EXTENSION = "gpg"
TIMESTAMP_FORMAT = "%Y%m%d-%H:%M:%S:%f"


def _secret(value: str | SecureString | None) -> SecureString | None:
    if value is None or isinstance(value, SecureString):
        return value
    return SecureString(value)


def get_file_extension(file_path: Path | str | None) -> str:
    """Extension of the input path without the dot, ``gpg`` when there is none."""
    if file_path is None:
        return DEFAULT_EXTENSION
    suffix = Path(file_path).suffix
    return suffix[1:] if len(suffix) > 1 else DEFAULT_EXTENSION


def default_output_path(
    output_dir: Path,
    ext: str,
    encrypt_type: str | None = None,
    now: datetime | None = None,
) -> Path:
    """Output name used when the caller gives none.

    ``<encrypt_type>_encrypted_file_<timestamp>.<ext>`` for encryption,
    ``decrypted_file_<timestamp>.<ext>`` for decryption.
    """
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    if encrypt_type is None:
        return output_dir / f"decrypted_file_{stamp}.{ext}"
    return output_dir / f"{encrypt_type}_encrypted_file_{stamp}.{ext}"


def set_output_without_confirmation(args: list[str], output: Path | str) -> None:
    args.extend(["--yes", "--output", str(output)])


def check_input_source(
    data: bytes | None,
    file: BinaryIO | None,
    file_path: Path | str | None,
) -> Result[None]:
    if data is not None or file is not None:
        return Result.ok(None)
    if file_path is None:
        return Result.err(
            GPGError(
                GPGErrorType.FILE_NOT_PROVIDED_ERROR,
                "Provide data, an open file or a file path",
            )
        )
    if not Path(file_path).is_file():
        return Result.err(GPGError(GPGErrorType.FILE_NOT_FOUND_ERROR, f"{file_path} does not exist"))
    return Result.ok(None)


def check_passphrase(passphrase: SecureString | None, label: str = "passphrase") -> Result[None]:
    if passphrase is not None and not is_passphrase_valid(passphrase):
        return Result.err(GPGError(GPGErrorType.PASSPHRASE_ERROR, f"{label} invalid"))
    return Result.ok(None)


@dataclass
class EncryptOption:
    """What to encrypt, for whom, and where the result goes.

    ``sign_key_passphrase`` unlocks a protected signing key. It travels over
    the passphrase pipe like the symmetric passphrase; since that pipe holds
    one passphrase, both may only be combined when they are equal.
    """

    data: bytes | None = None
    file: BinaryIO | None = None
    file_path: Path | str | None = None
    recipients: list[str] | None = None
    sign: bool = False
    sign_key: str | None = None
    sign_key_passphrase: str | SecureString | None = None
    symmetric: bool = False
    symmetric_algo: str | None = None
    always_trust: bool = True
    passphrase: str | SecureString | None = None
    output: Path | str | None = None
    extra_args: list[str] | None = None

    def __post_init__(self) -> None:
        self.passphrase = _secret(self.passphrase)
        self.sign_key_passphrase = _secret(self.sign_key_passphrase)

    @classmethod
    def default(
        cls,
        file: BinaryIO | None = None,
        file_path: Path | str | None = None,
        recipients: list[str] | None = None,
        output: Path | str | None = None,
        data: bytes | None = None,
    ) -> EncryptOption:
        """Public key encryption to ``recipients``."""
        return cls(
            data=data, file=file, file_path=file_path, recipients=recipients, output=output
        )

    @classmethod
    def with_symmetric(
        cls,
        file: BinaryIO | None = None,
        file_path: Path | str | None = None,
        symmetric_algo: str | None = None,
        passphrase: str | SecureString | None = None,
        output: Path | str | None = None,
        data: bytes | None = None,
    ) -> EncryptOption:
        """Passphrase-only encryption."""
        return cls(
            data=data,
            file=file,
            file_path=file_path,
            symmetric=True,
            symmetric_algo=symmetric_algo,
            passphrase=passphrase,
            output=output,
        )

    @classmethod
    def with_key_and_symmetric(
        cls,
        file: BinaryIO | None = None,
        file_path: Path | str | None = None,
        recipients: list[str] | None = None,
        symmetric_algo: str | None = None,
        passphrase: str | SecureString | None = None,
        output: Path | str | None = None,
        data: bytes | None = None,
    ) -> EncryptOption:
        """Decryptable by either the recipients' keys or the passphrase."""
        return cls(
            data=data,
            file=file,
            file_path=file_path,
            recipients=recipients,
            symmetric=True,
            symmetric_algo=symmetric_algo,
            passphrase=passphrase,
            output=output,
        )


@dataclass
class DecryptOption:
    data: bytes | None = None
    file: BinaryIO | None = None
    file_path: Path | str | None = None
    recipient: str | None = None
    always_trust: bool = True
    passphrase: str | SecureString | None = None
    key_passphrase: str | SecureString | None = None
    output: Path | str | None = None
    extra_args: list[str] | None = None

    def __post_init__(self) -> None:
        self.passphrase = _secret(self.passphrase)
        self.key_passphrase = _secret(self.key_passphrase)

    @classmethod
    def default(
        cls,
        file: BinaryIO | None = None,
        file_path: Path | str | None = None,
        recipient: str | None = None,
        key_passphrase: str | SecureString | None = None,
        output: Path | str | None = None,
        data: bytes | None = None,
    ) -> DecryptOption:
        """Decryption with a secret key; ``key_passphrase`` unlocks it if protected."""
        return cls(
            data=data,
            file=file,
            file_path=file_path,
            recipient=recipient,
            key_passphrase=key_passphrase,
            output=output,
        )

    @classmethod
    def with_symmetric(
        cls,
        file: BinaryIO | None = None,
        file_path: Path | str | None = None,
        passphrase: str | SecureString | None = None,
        output: Path | str | None = None,
        data: bytes | None = None,
    ) -> DecryptOption:
        return cls(data=data, file=file, file_path=file_path, passphrase=passphrase, output=output)


def encrypt_passphrase(option: EncryptOption) -> Result[SecureString | None]:
    """Pick the single passphrase that goes over the passphrase pipe."""
    symmetric = option.passphrase if option.symmetric else None
    signing = option.sign_key_passphrase if option.sign else None
    for secret, label in ((symmetric, "passphrase"), (signing, "sign key passphrase")):
        checked = check_passphrase(secret, label)  # type: ignore[arg-type]
        if checked.is_err():
            return Result.err(checked.unwrap_err())

    if symmetric is not None and signing is not None:
        if symmetric.get() != signing.get():  # type: ignore[union-attr]
            return Result.err(
                GPGError(
                    GPGErrorType.INVALID_ARGUMENT_ERROR,
                    "gpg reads a single passphrase per call; sign separately when the "
                    "signing key passphrase differs from the symmetric passphrase",
                )
            )
    return Result.ok(symmetric or signing)  # type: ignore[arg-type]


def decrypt_passphrase(option: DecryptOption) -> Result[SecureString | None]:
    if option.key_passphrase is not None:
        checked = check_passphrase(option.key_passphrase, "key passphrase")  # type: ignore[arg-type]
        return checked.map(lambda _: option.key_passphrase)  # type: ignore[arg-type,return-value]
    checked = check_passphrase(option.passphrase)  # type: ignore[arg-type]
    return checked.map(lambda _: option.passphrase)  # type: ignore[arg-type,return-value]


def gen_encrypt_args(option: EncryptOption, output_dir: Path, armor: bool) -> Result[list[str]]:
    args: list[str] = []
    encrypt_type = ""

    if option.symmetric:
        args.extend(["--symmetric", "--no-symkey-cache"])
        if option.passphrase is None:
            return Result.err(
                GPGError(
                    GPGErrorType.PASSPHRASE_ERROR,
                    "passphrase is required if encrypting symmetrically",
                )
            )
        if option.symmetric_algo:
            args.extend(["--personal-cipher-preferences", option.symmetric_algo])
        encrypt_type += "pass_"

    if option.recipients:
        args.append("--encrypt")
        for recipient in option.recipients:
            args.extend(["--recipient", recipient])
        encrypt_type += "keys_"

    if not args:
        return Result.err(
            GPGError(
                GPGErrorType.INVALID_ARGUMENT_ERROR,
                "Please choose symmetric or keys to encrypt your file",
            )
        )

    if armor:
        args.append("--armor")

    if option.output is not None:
        set_output_without_confirmation(args, option.output)
    else:
        ext = get_file_extension(option.file_path)
        set_output_without_confirmation(
            args, default_output_path(output_dir, ext, encrypt_type=encrypt_type)
        )

    if option.sign:
        args.append("--sign")
        if option.sign_key:
            args.extend(["--default-key", option.sign_key])

    if option.always_trust:
        args.extend(["--trust-model", "always"])

    if option.extra_args:
        args.extend(option.extra_args)

    return Result.ok(args)


def gen_decrypt_args(option: DecryptOption, output_dir: Path) -> list[str]:
    args = ["--decrypt"]
    if option.recipient:
        args.extend(["--recipient", option.recipient])
    if option.always_trust:
        args.extend(["--trust-model", "always"])

    if option.output is not None:
        set_output_without_confirmation(args, option.output)
    else:
        ext = get_file_extension(option.file_path)
        set_output_without_confirmation(args, default_output_path(output_dir, ext))

    if option.extra_args:
        args.extend(option.extra_args)
    return args
