from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .config import DEFAULT_OUTPUT_DIR_NAME, create_config
from .environment import EnvironmentReport, verify_environment
from .errors import ErrorCategory, ErrorLogger, GPGError
from .gpg_ops import DEFAULT_TIMEOUT, GPGOperations
from .options import DecryptOption, EncryptOption
from .prompts import Prompts
from .types import Result

console = Console()


def get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gpg-driver",
        description="Run GnuPG non-interactively: keys, encryption and decryption",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log gpg invocations and status lines",
    )
    parser.add_argument(
        "--gnupghome",
        type=Path,
        default=None,
        help="Custom GnuPG home directory (default: $GNUPGHOME or ~/.gnupg)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Where generated output files go (default: ~/gpg_output)",
    )
    parser.add_argument("--armor", action="store_true", help="ASCII-armor encrypted output")
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help=f"Seconds before a gpg call is killed (default: {DEFAULT_TIMEOUT:g})",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("version", help="Show the gpg version in use")
    subparsers.add_parser("doctor", help="Check the gpg installation and directories")

    keys_parser = subparsers.add_parser("keys", help="Manage GPG keys")
    keys_subparsers = keys_parser.add_subparsers(dest="keys_command", help="Key commands")

    keys_list = keys_subparsers.add_parser("list", help="List keys in keyring")
    keys_list.add_argument("--secret", action="store_true", help="List secret keys")
    keys_list.add_argument("--sigs", action="store_true", help="Include signatures")
    keys_list.add_argument("keys", nargs="*", help="Key IDs, fingerprints or user IDs")

    keys_generate = keys_subparsers.add_parser("generate", help="Generate a new key pair")
    keys_generate.add_argument("--name", help="Real name (default: AutoGenerated Key)")
    keys_generate.add_argument("--email", help="Email (default: <login>@<hostname>)")
    keys_generate.add_argument("--key-type", default="RSA", help="Key algorithm (default: RSA)")
    keys_generate.add_argument(
        "--key-length", type=int, default=None, help="Key length in bits (default: 2048)"
    )
    keys_generate.add_argument(
        "--no-passphrase",
        action="store_true",
        help="Store the secret key without protection",
    )

    encrypt_parser = subparsers.add_parser("encrypt", help="Encrypt a file")
    encrypt_parser.add_argument("file", type=Path, help="File to encrypt")
    encrypt_parser.add_argument(
        "--recipient",
        "-r",
        action="append",
        default=[],
        help="Recipient key (repeatable)",
    )
    encrypt_parser.add_argument(
        "--symmetric", action="store_true", help="Encrypt with a passphrase"
    )
    encrypt_parser.add_argument("--sign", action="store_true", help="Also sign the output")
    encrypt_parser.add_argument("--sign-key", help="Key to sign with (default: gpg's default key)")
    encrypt_parser.add_argument("--output", "-o", type=Path, help="Output file")

    decrypt_parser = subparsers.add_parser("decrypt", help="Decrypt a file")
    decrypt_parser.add_argument("file", type=Path, help="File to decrypt")
    decrypt_parser.add_argument(
        "--symmetric", action="store_true", help="Decrypt with a passphrase"
    )
    decrypt_parser.add_argument(
        "--ask-passphrase",
        action="store_true",
        help="Prompt for the passphrase of a protected secret key",
    )
    decrypt_parser.add_argument("--output", "-o", type=Path, help="Output file")

    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def report_failure(error: Exception, prompts: Prompts) -> int:
    """Show an error to the user, record it in the error log and return exit code 1."""
    hint = None
    if isinstance(error, GPGError) and error.recovery_hints:
        hint = "\n".join(str(h) for h in error.recovery_hints)
    prompts.show_error(error, hint)

    error_logger = ErrorLogger()
    if isinstance(error, GPGError):
        error_logger.log_error(error)
    else:
        error_logger.log_warning(str(error), ErrorCategory.OUTCOME)
    return 1


def show_environment_report(report: EnvironmentReport) -> None:
    """Display environment verification report."""
    console.print("\n[bold]Environment Verification Report[/bold]")
    console.print(f"System: {report.system}\n")

    for check in report.checks:
        status = "[green]PASS[/green]" if check.passed else "[red]FAIL[/red]"
        if not check.critical and not check.passed:
            status = "[yellow]WARN[/yellow]"
        console.print(f"  {status} {check.name}: {check.message}")
        if check.fix_hint and not check.passed:
            console.print(f"       Fix: {check.fix_hint}")

    if report.all_passed:
        console.print("\n[green]All critical checks passed.[/green]")
    else:
        console.print("\n[red]Some critical checks failed. Please fix before proceeding.[/red]")


def open_operations(ns: argparse.Namespace) -> Result[GPGOperations]:
    return GPGOperations.init(
        homedir=ns.gnupghome,
        output_dir=ns.output_dir,
        armor=ns.armor,
        timeout=ns.timeout,
    )


def cmd_version(ns: argparse.Namespace, prompts: Prompts) -> int:
    result = create_config(homedir=ns.gnupghome, output_dir=ns.output_dir, timeout=ns.timeout)
    if result.is_err():
        return report_failure(result.unwrap_err(), prompts)

    config = result.unwrap()
    console.print(f"gpg-driver {__version__}")
    console.print(f"gpg {config.version} ({config.gpg_binary})")
    console.print(f"home: {config.homedir}")
    return 0


def cmd_doctor(ns: argparse.Namespace) -> int:
    """Check the gpg installation and directories."""
    homedir = ns.gnupghome or Path(os.environ.get("GNUPGHOME", Path.home() / ".gnupg"))
    output_dir = ns.output_dir or Path.home() / DEFAULT_OUTPUT_DIR_NAME
    report = verify_environment(homedir=homedir, output_dir=output_dir)
    show_environment_report(report)
    return 0 if report.all_passed else 1


def cmd_keys_list(ops: GPGOperations, ns: argparse.Namespace, prompts: Prompts) -> int:
    result = ops.list_keys(secret=ns.secret, keys=ns.keys or None, signatures=ns.sigs)
    if result.is_err():
        return report_failure(result.unwrap_err(), prompts)

    keys = result.unwrap()
    if not keys:
        console.print("[yellow]No keys found[/yellow]")
        return 0
    prompts.show_keys(keys, title="Secret keys" if ns.secret else "Public keys")
    return 0


def cmd_keys_generate(ops: GPGOperations, ns: argparse.Namespace, prompts: Prompts) -> int:
    params = {"Key-Type": ns.key_type}
    if ns.name:
        params["Name-Real"] = ns.name
    if ns.email:
        params["Name-Email"] = ns.email
    if ns.key_length:
        params["Key-Length"] = str(ns.key_length)

    passphrase = None
    if not ns.no_passphrase:
        passphrase = prompts.get_passphrase("Key passphrase", confirm=True)

    with prompts.working("Generating key..."):
        result = ops.gen_key(key_passphrase=passphrase, params=params)
    if result.is_err():
        return report_failure(result.unwrap_err(), prompts)

    prompts.show_success(f"Key generated in {ops.homedir}")
    return 0


def cmd_encrypt(ops: GPGOperations, ns: argparse.Namespace, prompts: Prompts) -> int:
    passphrase = None
    if ns.symmetric:
        passphrase = prompts.get_passphrase("Passphrase", confirm=True)

    option = EncryptOption(
        file_path=ns.file,
        recipients=ns.recipient or None,
        symmetric=ns.symmetric,
        passphrase=passphrase,
        sign=ns.sign,
        sign_key=ns.sign_key,
        output=ns.output,
    )
    result = ops.encrypt(option)
    if result.is_err():
        return report_failure(result.unwrap_err(), prompts)

    prompts.show_success(f"Encrypted {ns.file}")
    return 0


def cmd_decrypt(ops: GPGOperations, ns: argparse.Namespace, prompts: Prompts) -> int:
    if ns.symmetric:
        option = DecryptOption.with_symmetric(
            file_path=ns.file,
            passphrase=prompts.get_passphrase("Passphrase"),
            output=ns.output,
        )
    else:
        key_passphrase = None
        if ns.ask_passphrase:
            key_passphrase = prompts.get_passphrase("Key passphrase")
        option = DecryptOption.default(
            file_path=ns.file, key_passphrase=key_passphrase, output=ns.output
        )

    result = ops.decrypt(option)
    if result.is_err():
        return report_failure(result.unwrap_err(), prompts)

    prompts.show_success(f"Decrypted {ns.file}")
    return 0


def run(args: list[str]) -> int:
    """Main entry point."""
    parser = get_parser()
    ns = parser.parse_args(args)
    configure_logging(ns.verbose)

    if not ns.command:
        parser.print_help()
        return 1

    prompts = Prompts(console)

    if ns.command == "version":
        return cmd_version(ns, prompts)
    elif ns.command == "doctor":
        return cmd_doctor(ns)

    if ns.command == "keys" and not ns.keys_command:
        parser.print_help()
        return 1

    ops_result = open_operations(ns)
    if ops_result.is_err():
        return report_failure(ops_result.unwrap_err(), prompts)
    ops = ops_result.unwrap()

    if ns.command == "keys":
        if ns.keys_command == "list":
            return cmd_keys_list(ops, ns, prompts)
        return cmd_keys_generate(ops, ns, prompts)
    elif ns.command == "encrypt":
        return cmd_encrypt(ops, ns, prompts)
    elif ns.command == "decrypt":
        return cmd_decrypt(ops, ns, prompts)

    parser.print_help()
    return 1
