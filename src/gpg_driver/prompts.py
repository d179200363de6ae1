from __future__ import annotations

import getpass
import unicodedata
from contextlib import AbstractContextManager

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm
from rich.status import Status
from rich.table import Table

from .types import ListKeyResult, SecureString

MIN_PASSPHRASE_LENGTH = 1
MAX_PASSPHRASE_LENGTH = 1024

# The passphrase pipe is read up to the first newline, so a newline (or any
# other control character) inside the passphrase would truncate or corrupt it.
PASSPHRASE_DELIMITER = "\n"


def passphrase_problems(passphrase: str) -> list[str]:
    problems = []
    if len(passphrase) < MIN_PASSPHRASE_LENGTH:
        problems.append("Passphrase is empty")
    if len(passphrase) > MAX_PASSPHRASE_LENGTH:
        problems.append(f"Passphrase is longer than {MAX_PASSPHRASE_LENGTH} characters")
    if PASSPHRASE_DELIMITER in passphrase:
        problems.append("Passphrase contains a newline")
    elif any(unicodedata.category(c) == "Cc" for c in passphrase):
        problems.append("Passphrase contains control characters")
    return problems


def is_passphrase_valid(passphrase: str | SecureString) -> bool:
    if isinstance(passphrase, SecureString):
        passphrase = passphrase.get()
    return not passphrase_problems(passphrase)


class Prompts:
    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    def get_passphrase(self, prompt: str, confirm: bool = False) -> SecureString:
        """Ask for a passphrase until a valid one is entered.

        Args:
            prompt: The prompt message to display
            confirm: Whether to require typing it twice

        Returns:
            SecureString containing the passphrase
        """
        while True:
            value = getpass.getpass(f"{prompt}: ")

            problems = passphrase_problems(value)
            if problems:
                for problem in problems:
                    self._console.print(f"[red]{problem}[/red]")
                continue

            if confirm:
                confirm_value = getpass.getpass(f"{prompt} (confirm): ")
                if value != confirm_value:
                    self._console.print("[red]Passphrases do not match[/red]")
                    continue

            return SecureString(value)

    def confirm(self, message: str, default: bool = False) -> bool:
        return Confirm.ask(message, default=default)

    def working(self, message: str) -> AbstractContextManager[Status]:
        return self._console.status(message)

    def show_success(self, message: str) -> None:
        self._console.print(f"[green]✓[/green] {message}")

    def show_error(
        self,
        error: Exception,
        recovery_hint: str | None = None,
    ) -> None:
        self._console.print()
        self._console.print(f"[bold red]✗[/bold red] {escape(str(error))}")

        if recovery_hint:
            self._console.print()
            self._console.print(Panel(escape(recovery_hint), title="Recovery", border_style="yellow"))

    def show_keys(self, keys: list[ListKeyResult], title: str = "Keys") -> None:
        table = Table(title=title)
        table.add_column("Key ID", style="cyan")
        table.add_column("Trust")
        table.add_column("Created")
        table.add_column("Expires")
        table.add_column("User IDs")
        table.add_column("Subkeys")

        for key in keys:
            table.add_row(
                key.key_id,
                key.trust.name.lower(),
                key.creation_date.date().isoformat() if key.creation_date else "",
                key.expiry_date.date().isoformat() if key.expiry_date else "never",
                escape("\n".join(key.uids)),
                "\n".join(f"{sub.key_id} ({sub.capabilities})" for sub in key.subkeys),
            )

        self._console.print(table)


class MockPrompts(Prompts):
    """Mock prompts for testing - returns pre-configured values."""

    def __init__(
        self,
        passphrase: str = "test-passphrase",
        confirmations: bool = True,
    ) -> None:
        super().__init__(Console(quiet=True))
        self._passphrase = passphrase
        self._confirmations = confirmations

    def get_passphrase(self, prompt: str, confirm: bool = False) -> SecureString:
        return SecureString(self._passphrase)

    def confirm(self, message: str, default: bool = False) -> bool:
        return self._confirmations
