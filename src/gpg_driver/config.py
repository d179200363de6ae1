from __future__ import annotations

import dataclasses
import logging
import os
import shutil
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from .classifier import classify
from .errors import GPGError, GPGErrorType
from .process import ProcessDriver
from .types import InvocationRequest, Operation, Result
from .version import Version, version_from_result

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR_NAME = "gpg_output"
DEFAULT_PROBE_TIMEOUT = 30.0


def get_or_create_gpg_homedir() -> Path:
    """``$GNUPGHOME`` or ``~/.gnupg``, created with owner-only permissions."""
    homedir = Path(os.environ.get("GNUPGHOME", Path.home() / ".gnupg"))
    if not homedir.exists():
        homedir.mkdir(parents=True, mode=0o700)
        logger.info("Created GnuPG home %s", homedir)
    return homedir


def get_or_create_gpg_output_dir() -> Path:
    output_dir = Path.home() / DEFAULT_OUTPUT_DIR_NAME
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def check_is_dir(path: Path | str) -> bool:
    return Path(path).is_dir()


@dataclass(frozen=True)
class GPGConfig:
    """Settings shared read-only by every invocation.

    ``version`` is probed once in ``create_config`` and never changes for the
    lifetime of the object; the ``with_*``/``without_*`` helpers return new
    configurations instead of mutating this one.
    """

    homedir: Path
    output_dir: Path
    version: Version
    gpg_binary: str = "gpg"
    env: Mapping[str, str] | None = None
    options: tuple[str, ...] = ()
    keyrings: tuple[str, ...] = ()
    secret_keyrings: tuple[str, ...] = ()
    armor: bool = False

    def with_options(self, options: Sequence[str]) -> GPGConfig:
        return dataclasses.replace(self, options=tuple(options))

    def without_options(self) -> GPGConfig:
        return dataclasses.replace(self, options=())

    def with_env(self, env: Mapping[str, str]) -> GPGConfig:
        return dataclasses.replace(self, env=MappingProxyType(dict(env)))

    def without_env(self) -> GPGConfig:
        return dataclasses.replace(self, env=None)


def _resolve_dir(
    path: Path | str | None,
    default: Callable[[], Path],
    error_type: GPGErrorType,
) -> Result[Path]:
    try:
        resolved = Path(path).expanduser() if path else default()
    except OSError as e:
        return Result.err(GPGError(error_type, f"Could not create directory: {e}", cause=e))
    if not check_is_dir(resolved):
        return Result.err(GPGError(error_type, f"{resolved} is not a directory"))
    return Result.ok(resolved)


def probe_version(
    gpg_binary: str,
    homedir: Path,
    env: Mapping[str, str] | None = None,
    timeout: float | None = DEFAULT_PROBE_TIMEOUT,
) -> Result[Version]:
    """Ask gpg for its version with ``--list-config --with-colons``."""
    request = InvocationRequest(
        operation=Operation.VERIFY,
        args=("--list-config", "--with-colons"),
        homedir=homedir,
        env=env,
    )
    probe = ProcessDriver(gpg_binary).run(request, timeout=timeout).and_then(classify)
    if probe.is_err():
        error = probe.unwrap_err()
        return Result.err(
            GPGError(
                GPGErrorType.GPG_INIT_ERROR,
                f"Could not probe gpg: {error}",
                cmd_result=getattr(error, "cmd_result", None),
                cause=error,
            )
        )
    return version_from_result(probe.unwrap())


def create_config(
    homedir: Path | str | None = None,
    output_dir: Path | str | None = None,
    armor: bool = False,
    gpg_binary: str = "gpg",
    env: Mapping[str, str] | None = None,
    options: Sequence[str] = (),
    keyrings: Sequence[str] = (),
    secret_keyrings: Sequence[str] = (),
    timeout: float | None = DEFAULT_PROBE_TIMEOUT,
) -> Result[GPGConfig]:
    """Resolve directories, locate gpg and probe its version.

    Every failure here is a setup error; nothing is retried.
    """
    home_result = _resolve_dir(homedir, get_or_create_gpg_homedir, GPGErrorType.HOMEDIR_ERROR)
    if home_result.is_err():
        return Result.err(home_result.unwrap_err())
    output_result = _resolve_dir(
        output_dir, get_or_create_gpg_output_dir, GPGErrorType.OUTPUT_DIR_ERROR
    )
    if output_result.is_err():
        return Result.err(output_result.unwrap_err())

    binary = shutil.which(gpg_binary)
    if binary is None:
        return Result.err(
            GPGError(GPGErrorType.GPG_NOT_FOUND_ERROR, f"{gpg_binary} not found in PATH")
        )

    frozen_env = MappingProxyType(dict(env)) if env else None
    version_result = probe_version(binary, home_result.unwrap(), frozen_env, timeout)
    if version_result.is_err():
        return Result.err(version_result.unwrap_err())

    version = version_result.unwrap()
    logger.debug("Using %s %s with home %s", binary, version, home_result.unwrap())
    return Result.ok(
        GPGConfig(
            homedir=home_result.unwrap(),
            output_dir=output_result.unwrap(),
            version=version,
            gpg_binary=binary,
            env=frozen_env,
            options=tuple(options),
            keyrings=tuple(keyrings),
            secret_keyrings=tuple(secret_keyrings),
            armor=armor,
        )
    )
