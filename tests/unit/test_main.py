"""Tests for the gpg-driver CLI."""

from __future__ import annotations

import argparse
from collections.abc import Iterator
from io import StringIO
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console

from gpg_driver.environment import CheckResult, EnvironmentReport
from gpg_driver.errors import ErrorCategory, GPGError, GPGErrorType, RecoveryHint
from gpg_driver.gpg_ops import GPGOperations
from gpg_driver.main import get_parser, report_failure, run, show_environment_report
from gpg_driver.options import DecryptOption, EncryptOption
from gpg_driver.prompts import MockPrompts
from gpg_driver.types import ListKeyResult, Result, SecureString


@pytest.fixture
def output() -> Iterator[StringIO]:
    buffer = StringIO()
    with patch("gpg_driver.main.console", Console(file=buffer, width=200, color_system=None)):
        yield buffer


@pytest.fixture
def error_logger() -> Iterator[MagicMock]:
    with patch("gpg_driver.main.ErrorLogger") as logger_cls:
        yield logger_cls.return_value


@pytest.fixture(autouse=True)
def quiet_cli(error_logger: MagicMock, mock_prompts: MockPrompts) -> Iterator[None]:
    with (
        patch("gpg_driver.main.configure_logging"),
        patch("gpg_driver.main.Prompts", return_value=mock_prompts),
    ):
        yield


@pytest.fixture
def ops() -> Iterator[MagicMock]:
    mock_ops = MagicMock(spec=GPGOperations)
    mock_ops.homedir = Path("/tmp/gnupg")
    with patch("gpg_driver.main.GPGOperations.init", return_value=Result.ok(mock_ops)) as init:
        mock_ops.init = init
        yield mock_ops


class TestGetParser:
    """Test argument parser creation."""

    def test_prog(self) -> None:
        parser = get_parser()
        assert isinstance(parser, argparse.ArgumentParser)
        assert parser.prog == "gpg-driver"

    def test_subcommands(self) -> None:
        parser = get_parser()
        subparsers = next(
            action for action in parser._actions if isinstance(action, argparse._SubParsersAction)
        )
        assert set(subparsers.choices) == {"version", "doctor", "keys", "encrypt", "decrypt"}

    def test_recipients_repeat(self) -> None:
        ns = get_parser().parse_args(["encrypt", "a.txt", "-r", "alice", "-r", "bob"])
        assert ns.recipient == ["alice", "bob"]
        assert ns.file == Path("a.txt")

    def test_global_options(self) -> None:
        ns = get_parser().parse_args(
            ["--gnupghome", "/tmp/g", "--armor", "--timeout", "5", "keys", "list"]
        )
        assert ns.gnupghome == Path("/tmp/g")
        assert ns.armor
        assert ns.timeout == 5.0


class TestRunDispatch:
    def test_no_command(self, ops: MagicMock) -> None:
        assert run([]) == 1
        ops.init.assert_not_called()

    def test_keys_without_subcommand(self, ops: MagicMock) -> None:
        assert run(["keys"]) == 1
        ops.init.assert_not_called()

    def test_init_failure(self, error_logger: MagicMock) -> None:
        error = GPGError(GPGErrorType.GPG_NOT_FOUND_ERROR, "gpg missing")
        with patch("gpg_driver.main.GPGOperations.init", return_value=Result.err(error)):
            assert run(["keys", "list"]) == 1
        error_logger.log_error.assert_called_once_with(error)

    def test_global_options_reach_init(self, ops: MagicMock) -> None:
        ops.list_keys.return_value = Result.ok([])
        run(["--gnupghome", "/tmp/g", "--armor", "--timeout", "7", "keys", "list"])
        kwargs = ops.init.call_args.kwargs
        assert kwargs["homedir"] == Path("/tmp/g")
        assert kwargs["armor"] is True
        assert kwargs["timeout"] == 7.0


class TestVersionCommand:
    def test_prints_versions(self, output: StringIO, gpg_config) -> None:
        with patch("gpg_driver.main.create_config", return_value=Result.ok(gpg_config)):
            assert run(["version"]) == 0
        text = output.getvalue()
        assert "gpg-driver" in text
        assert "gpg 2.4.6" in text

    def test_failure_logged(self, error_logger: MagicMock) -> None:
        error = GPGError(GPGErrorType.GPG_INIT_ERROR, "cannot probe")
        with patch("gpg_driver.main.create_config", return_value=Result.err(error)):
            assert run(["version"]) == 1
        error_logger.log_error.assert_called_once_with(error)


class TestDoctorCommand:
    def test_all_passed(self, output: StringIO, tmp_path: Path) -> None:
        report = EnvironmentReport(
            system="Linux",
            checks=[CheckResult(name="GnuPG", passed=True, message="Found: /usr/bin/gpg")],
        )
        with patch("gpg_driver.main.verify_environment", return_value=report) as verify:
            assert run(["--gnupghome", str(tmp_path), "--output-dir", str(tmp_path), "doctor"]) == 0
        assert verify.call_args.kwargs == {"homedir": tmp_path, "output_dir": tmp_path}
        assert "PASS" in output.getvalue()

    def test_critical_failure(self, output: StringIO, tmp_path: Path) -> None:
        report = EnvironmentReport(
            system="Linux",
            checks=[
                CheckResult(name="GnuPG", passed=False, message="gpg not found", fix_hint="install"),
                CheckResult(name="gpg-agent", passed=False, message="no gpgconf", critical=False),
            ],
        )
        with patch("gpg_driver.main.verify_environment", return_value=report):
            assert run(["--gnupghome", str(tmp_path), "doctor"]) == 1
        text = output.getvalue()
        assert "FAIL" in text
        assert "WARN" in text
        assert "Fix: install" in text


class TestKeysCommands:
    def test_list_empty(self, ops: MagicMock, output: StringIO) -> None:
        ops.list_keys.return_value = Result.ok([])
        assert run(["keys", "list"]) == 0
        ops.list_keys.assert_called_once_with(secret=False, keys=None, signatures=False)
        assert "No keys found" in output.getvalue()

    def test_list_shows_keys(self, ops: MagicMock, mock_prompts: MockPrompts) -> None:
        key = ListKeyResult(record_type="sec", key_id="AAAABBBBCCCCDDDD")
        ops.list_keys.return_value = Result.ok([key])
        with patch.object(mock_prompts, "show_keys") as show_keys:
            assert run(["keys", "list", "--secret", "alice"]) == 0
        ops.list_keys.assert_called_once_with(secret=True, keys=["alice"], signatures=False)
        show_keys.assert_called_once_with([key], title="Secret keys")

    def test_list_failure(self, ops: MagicMock, error_logger: MagicMock) -> None:
        error = GPGError(GPGErrorType.GPG_PROCESS_ERROR, "Listing keys failed (exit status 2)")
        ops.list_keys.return_value = Result.err(error)
        assert run(["keys", "list"]) == 1
        error_logger.log_error.assert_called_once_with(error)

    def test_generate_without_passphrase(self, ops: MagicMock) -> None:
        ops.gen_key.return_value = Result.ok(MagicMock())
        argv = ["keys", "generate", "--name", "Alice", "--email", "a@example.org", "--no-passphrase"]
        assert run(argv) == 0
        ops.gen_key.assert_called_once_with(
            key_passphrase=None,
            params={"Key-Type": "RSA", "Name-Real": "Alice", "Name-Email": "a@example.org"},
        )

    def test_generate_prompts_for_passphrase(self, ops: MagicMock) -> None:
        ops.gen_key.return_value = Result.ok(MagicMock())
        assert run(["keys", "generate", "--key-type", "RSA", "--key-length", "3072"]) == 0
        kwargs = ops.gen_key.call_args.kwargs
        assert isinstance(kwargs["key_passphrase"], SecureString)
        assert kwargs["key_passphrase"].get() == "test-passphrase-secure"
        assert kwargs["params"]["Key-Length"] == "3072"


class TestEncryptCommand:
    def test_recipients(self, ops: MagicMock, tmp_path: Path) -> None:
        ops.encrypt.return_value = Result.ok(MagicMock())
        source = tmp_path / "a.txt"
        assert run(["encrypt", str(source), "-r", "alice", "--sign", "-o", "a.gpg"]) == 0
        option = ops.encrypt.call_args.args[0]
        assert isinstance(option, EncryptOption)
        assert option.file_path == source
        assert option.recipients == ["alice"]
        assert option.sign
        assert option.output == Path("a.gpg")
        assert option.passphrase is None

    def test_symmetric_prompts(self, ops: MagicMock, tmp_path: Path) -> None:
        ops.encrypt.return_value = Result.ok(MagicMock())
        assert run(["encrypt", str(tmp_path / "a.txt"), "--symmetric"]) == 0
        option = ops.encrypt.call_args.args[0]
        assert option.symmetric
        assert option.recipients is None
        assert option.passphrase.get() == "test-passphrase-secure"

    def test_failure(self, ops: MagicMock, error_logger: MagicMock, tmp_path: Path) -> None:
        error = GPGError(GPGErrorType.INVALID_RECIPIENT_ERROR, "Encryption failed")
        ops.encrypt.return_value = Result.err(error)
        assert run(["encrypt", str(tmp_path / "a.txt"), "-r", "nobody"]) == 1
        error_logger.log_error.assert_called_once_with(error)


class TestDecryptCommand:
    def test_public_key(self, ops: MagicMock, tmp_path: Path) -> None:
        ops.decrypt.return_value = Result.ok(MagicMock())
        assert run(["decrypt", str(tmp_path / "a.gpg")]) == 0
        option = ops.decrypt.call_args.args[0]
        assert isinstance(option, DecryptOption)
        assert option.key_passphrase is None
        assert option.passphrase is None

    def test_ask_passphrase(self, ops: MagicMock, tmp_path: Path) -> None:
        ops.decrypt.return_value = Result.ok(MagicMock())
        assert run(["decrypt", str(tmp_path / "a.gpg"), "--ask-passphrase"]) == 0
        option = ops.decrypt.call_args.args[0]
        assert option.key_passphrase.get() == "test-passphrase-secure"

    def test_symmetric(self, ops: MagicMock, tmp_path: Path) -> None:
        ops.decrypt.return_value = Result.ok(MagicMock())
        assert run(["decrypt", str(tmp_path / "a.gpg"), "--symmetric", "-o", "plain"]) == 0
        option = ops.decrypt.call_args.args[0]
        assert option.passphrase.get() == "test-passphrase-secure"
        assert option.output == Path("plain")


class TestReportFailure:
    def test_hints_shown(self, mock_prompts: MockPrompts, error_logger: MagicMock) -> None:
        error = GPGError(
            GPGErrorType.KEY_NOT_FOUND_ERROR,
            "no key",
            recovery_hints=[RecoveryHint("Import the key", command="gpg --import key.asc")],
        )
        with patch.object(mock_prompts, "show_error") as show_error:
            assert report_failure(error, mock_prompts) == 1
        hint = show_error.call_args.args[1]
        assert "Import the key" in hint
        assert "gpg --import key.asc" in hint
        error_logger.log_error.assert_called_once_with(error)

    def test_plain_exception_logged_as_warning(
        self, mock_prompts: MockPrompts, error_logger: MagicMock
    ) -> None:
        assert report_failure(RuntimeError("odd"), mock_prompts) == 1
        error_logger.log_warning.assert_called_once_with("odd", ErrorCategory.OUTCOME)
        error_logger.log_error.assert_not_called()


def test_show_environment_report(output: StringIO) -> None:
    report = EnvironmentReport(
        system="Darwin",
        checks=[CheckResult(name="GnuPG Version", passed=True, message="Version 2.4.6")],
    )
    show_environment_report(report)
    text = output.getvalue()
    assert "System: Darwin" in text
    assert "All critical checks passed" in text
