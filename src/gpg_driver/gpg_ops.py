from __future__ import annotations

import logging
import os
import socket
from collections.abc import Mapping, Sequence
from pathlib import Path

from .classifier import classify
from .colons import decode_list_key_result
from .config import GPGConfig, create_config
from .options import (
    DecryptOption,
    EncryptOption,
    check_input_source,
    check_passphrase,
    decrypt_passphrase,
    encrypt_passphrase,
    gen_decrypt_args,
    gen_encrypt_args,
)
from .process import ProcessDriver
from .types import CmdResult, InvocationRequest, ListKeyResult, Operation, Result, SecureString
from .version import KEYGRIP_MIN_VERSION

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300.0


def _param_name(key: str) -> str:
    """Canonical gpg batch parameter name: ``key_type`` -> ``Key-Type``."""
    return "-".join(part.capitalize() for part in key.strip().replace("_", "-").split("-"))


class GPGOperations:
    """High level gpg operations on top of one immutable ``GPGConfig``.

    Every method validates its arguments first and only then spawns gpg, so
    a bad call never costs a process launch.
    """

    def __init__(self, config: GPGConfig, timeout: float | None = DEFAULT_TIMEOUT) -> None:
        self._config = config
        self._timeout = timeout

    @classmethod
    def init(
        cls,
        homedir: Path | str | None = None,
        output_dir: Path | str | None = None,
        armor: bool = False,
        gpg_binary: str = "gpg",
        env: Mapping[str, str] | None = None,
        options: Sequence[str] = (),
        keyrings: Sequence[str] = (),
        secret_keyrings: Sequence[str] = (),
        timeout: float | None = DEFAULT_TIMEOUT,
    ) -> Result[GPGOperations]:
        config = create_config(
            homedir=homedir,
            output_dir=output_dir,
            armor=armor,
            gpg_binary=gpg_binary,
            env=env,
            options=options,
            keyrings=keyrings,
            secret_keyrings=secret_keyrings,
            timeout=timeout,
        )
        return config.map(lambda c: cls(c, timeout=timeout))

    @property
    def config(self) -> GPGConfig:
        return self._config

    @property
    def homedir(self) -> Path:
        return self._config.homedir

    @property
    def output_dir(self) -> Path:
        return self._config.output_dir

    def with_options(self, options: Sequence[str]) -> GPGOperations:
        return GPGOperations(self._config.with_options(options), self._timeout)

    def without_options(self) -> GPGOperations:
        return GPGOperations(self._config.without_options(), self._timeout)

    def with_env(self, env: Mapping[str, str]) -> GPGOperations:
        return GPGOperations(self._config.with_env(env), self._timeout)

    def without_env(self) -> GPGOperations:
        return GPGOperations(self._config.without_env(), self._timeout)

    def _invoke(
        self,
        operation: Operation,
        args: Sequence[str],
        data: bytes | None = None,
        file=None,
        file_path: Path | str | None = None,
        passphrase: SecureString | None = None,
    ) -> Result[CmdResult]:
        request = InvocationRequest(
            operation=operation,
            args=tuple(args),
            homedir=self._config.homedir,
            data=data,
            file=file,
            file_path=Path(file_path) if file_path is not None else None,
            passphrase=passphrase,
            env=self._config.env,
            extra_args=self._config.options,
        )
        driver = ProcessDriver.from_config(self._config)
        return driver.run(request, timeout=self._timeout).and_then(classify)

    def gen_key(
        self,
        key_passphrase: str | SecureString | None = None,
        params: Mapping[str, str] | None = None,
    ) -> Result[CmdResult]:
        """Generate a key pair from a batch parameter file.

        Without ``params`` an RSA 2048 key named "AutoGenerated Key" that
        never expires is created. Without ``key_passphrase`` the secret key
        is stored unprotected.
        """
        if isinstance(key_passphrase, str):
            key_passphrase = SecureString(key_passphrase)
        checked = check_passphrase(key_passphrase, "key passphrase")
        if checked.is_err():
            return Result.err(checked.unwrap_err())

        batch_input = self.gen_key_input(params, key_passphrase)
        logger.info("Generating key in %s", self._config.homedir)
        return self._invoke(
            Operation.GENERATE_KEY,
            ["--gen-key"],
            data=batch_input.encode("utf-8"),
            passphrase=key_passphrase,
        )

    def gen_key_input(
        self,
        params: Mapping[str, str] | None,
        passphrase: SecureString | str | None,
    ) -> str:
        """Render the unattended key generation parameters.

        Keys are matched case-insensitively and may use ``_`` instead of ``-``
        (``name_real`` for ``Name-Real``).
        ``Key-Type`` always comes first, ``%commit`` always last.
        """
        values = {_param_name(key): value.strip() for key, value in (params or {}).items()}
        values.setdefault("Key-Type", "RSA")
        if "Key-Curve" not in values:
            values.setdefault("Key-Length", "2048")
        values.setdefault("Expire-Date", "0")
        values.setdefault("Name-Real", "AutoGenerated Key")
        if "Name-Email" not in values:
            logname = os.environ.get("LOGNAME") or os.environ.get("USERNAME") or "unspecified"
            try:
                hostname = socket.gethostname()
            except OSError:
                hostname = "unknown"
            values["Name-Email"] = f"{logname}@{hostname}"

        lines = [f"Key-Type: {values.pop('Key-Type')}"]
        lines.extend(f"{key}: {value}" for key, value in values.items())
        if passphrase is None:
            lines.append("%no-protection")
        lines.append("%commit")
        return "\n".join(lines) + "\n"

    def list_keys(
        self,
        secret: bool = False,
        keys: Sequence[str] | None = None,
        signatures: bool = False,
    ) -> Result[list[ListKeyResult]]:
        if secret:
            mode = "--list-secret-keys"
        elif signatures:
            mode = "--list-sigs"
        else:
            mode = "--list-keys"

        args = [mode, "--with-colons", "--fingerprint", "--fingerprint"]
        if self._config.version.at_least(*KEYGRIP_MIN_VERSION):
            args.append("--with-keygrip")
        if keys:
            args.extend(keys)

        return self._invoke(Operation.LIST_KEY, args).map(decode_list_key_result)

    def encrypt(self, option: EncryptOption) -> Result[CmdResult]:
        passphrase = encrypt_passphrase(option)
        if passphrase.is_err():
            return Result.err(passphrase.unwrap_err())
        args = gen_encrypt_args(option, self._config.output_dir, self._config.armor)
        if args.is_err():
            return Result.err(args.unwrap_err())
        source = check_input_source(option.data, option.file, option.file_path)
        if source.is_err():
            return Result.err(source.unwrap_err())

        return self._invoke(
            Operation.ENCRYPT,
            args.unwrap(),
            data=option.data,
            file=option.file,
            file_path=option.file_path,
            passphrase=passphrase.unwrap(),
        )

    def decrypt(self, option: DecryptOption) -> Result[CmdResult]:
        passphrase = decrypt_passphrase(option)
        if passphrase.is_err():
            return Result.err(passphrase.unwrap_err())
        source = check_input_source(option.data, option.file, option.file_path)
        if source.is_err():
            return Result.err(source.unwrap_err())

        return self._invoke(
            Operation.DECRYPT,
            gen_decrypt_args(option, self._config.output_dir),
            data=option.data,
            file=option.file,
            file_path=option.file_path,
            passphrase=passphrase.unwrap(),
        )


