from __future__ import annotations

import contextlib
import os
import shutil
import stat
import subprocess
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from gpg_driver.config import GPGConfig
from gpg_driver.prompts import MockPrompts
from gpg_driver.types import CmdResult, Operation
from gpg_driver.version import Version


def _gpg_agent_can_start() -> bool:
    """Check if gpg-agent can be started in a temp directory."""
    if shutil.which("gpg") is None or shutil.which("gpgconf") is None:
        return False

    tmpdir = tempfile.mkdtemp(prefix="gpg_")
    gnupghome = Path(tmpdir)
    gnupghome.chmod(0o700)
    env = os.environ.copy()
    env["GNUPGHOME"] = str(gnupghome)
    try:
        result = subprocess.run(
            ["gpgconf", "--launch", "gpg-agent"],
            env=env,
            capture_output=True,
            timeout=10,
        )
        return result.returncode == 0
    except (OSError, subprocess.SubprocessError):
        return False
    finally:
        with contextlib.suppress(OSError, subprocess.SubprocessError):
            subprocess.run(
                ["gpgconf", "--kill", "gpg-agent"],
                env=env,
                capture_output=True,
                timeout=5,
            )
        shutil.rmtree(gnupghome, ignore_errors=True)


# Cache the result
_GPG_AGENT_AVAILABLE: bool | None = None


def gpg_agent_available() -> bool:
    """Check if gpg-agent can be started (cached)."""
    global _GPG_AGENT_AVAILABLE
    if _GPG_AGENT_AVAILABLE is None:
        _GPG_AGENT_AVAILABLE = _gpg_agent_can_start()
    return _GPG_AGENT_AVAILABLE


@pytest.fixture
def gpg_home() -> Generator[Path, None, None]:
    """Create an isolated GnuPG home with loopback pinentry allowed.

    Note: Uses /tmp directly instead of pytest's tmp_path because Unix domain
    sockets have a maximum path length (~104 chars on macOS). Pytest's temp
    paths are often too long for gpg-agent's socket files.
    """
    tmpdir = tempfile.mkdtemp(prefix="gpg_")
    gnupghome = Path(tmpdir)
    gnupghome.chmod(0o700)

    agent_conf = gnupghome / "gpg-agent.conf"
    agent_conf.write_text("allow-loopback-pinentry\n")
    agent_conf.chmod(0o600)

    yield gnupghome

    env = os.environ.copy()
    env["GNUPGHOME"] = str(gnupghome)
    with contextlib.suppress(OSError, subprocess.SubprocessError):
        subprocess.run(
            ["gpgconf", "--kill", "gpg-agent"],
            env=env,
            capture_output=True,
            timeout=5,
        )

    shutil.rmtree(gnupghome, ignore_errors=True)


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    out = tmp_path / "out"
    out.mkdir()
    return out


@pytest.fixture
def gpg_config(tmp_path: Path, output_dir: Path) -> GPGConfig:
    """A config that never touches a real gpg; the version is fixed at 2.4."""
    homedir = tmp_path / "home"
    homedir.mkdir(mode=0o700)
    return GPGConfig(
        homedir=homedir,
        output_dir=output_dir,
        version=Version(2, 4, "2.4.6"),
        gpg_binary="gpg",
    )


@pytest.fixture
def make_cmd_result() -> Callable[..., CmdResult]:
    def _make(
        ok: bool = True,
        returncode: int | None = 0,
        stdout: bytes = b"",
        status_lines: tuple[str, ...] = (),
        operation: Operation = Operation.NOT_SET,
    ) -> CmdResult:
        return CmdResult(
            ok=ok,
            returncode=returncode,
            stdout=stdout,
            status_lines=status_lines,
            operation=operation,
        )

    return _make


@pytest.fixture
def fake_gpg(tmp_path: Path) -> Callable[[str], Path]:
    """Write a shell script that stands in for the gpg binary."""

    def _write(body: str, name: str = "fake-gpg") -> Path:
        script = tmp_path / name
        script.write_text("#!/bin/sh\n" + body)
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _write


@pytest.fixture
def mock_prompts() -> MockPrompts:
    return MockPrompts(passphrase="test-passphrase-secure", confirmations=True)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "slow: marks tests as slow-running")
    config.addinivalue_line("markers", "gpg: marks tests as requiring gpg and gpg-agent")


def pytest_collection_modifyitems(  # noqa: ARG001
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    skip_gpg = pytest.mark.skip(reason="gpg or gpg-agent not usable in this environment")

    for item in items:
        if item.get_closest_marker("gpg") is not None and not gpg_agent_available():
            item.add_marker(skip_gpg)
