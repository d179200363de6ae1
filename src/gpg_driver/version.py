from __future__ import annotations

import re
from dataclasses import dataclass, field

from .errors import GPGError, GPGErrorType
from .types import CmdResult, Result

_VERSION_RE = re.compile(r"^(\d+)\.(\d+)")
_BANNER_RE = re.compile(r"^gpg \(GnuPG[^)]*\)\s+(\S+)", re.MULTILINE)

# First version that understands --with-keygrip and --pinentry-mode
KEYGRIP_MIN_VERSION = (2, 1)
LOOPBACK_MIN_VERSION = (2, 1)


@dataclass(frozen=True, order=True)
class Version:
    """gpg version compared on its first two components."""

    major: int
    minor: int
    full: str = field(compare=False)

    @classmethod
    def parse(cls, text: str) -> Version:
        text = text.strip()
        match = _VERSION_RE.match(text)
        if not match:
            raise ValueError(f"Not a dotted version string: {text!r}")
        return cls(int(match.group(1)), int(match.group(2)), text)

    @property
    def short(self) -> str:
        return f"{self.major}.{self.minor}"

    def at_least(self, major: int, minor: int) -> bool:
        return (self.major, self.minor) >= (major, minor)

    def __str__(self) -> str:
        return self.full


def parse_version_output(output: str, cmd_result: CmdResult | None = None) -> Result[Version]:
    """Find the version in ``--list-config --with-colons`` or ``--version`` output."""
    candidate = None
    for line in output.splitlines():
        if line.startswith("cfg:version:"):
            candidate = line.split(":")[2]
            break

    if candidate is None:
        # Parse version: "gpg (GnuPG) 2.4.0"
        match = _BANNER_RE.search(output)
        if match:
            candidate = match.group(1)

    if not candidate:
        return Result.err(
            GPGError(
                GPGErrorType.GPG_INIT_ERROR,
                "gpg did not report a version",
                cmd_result=cmd_result,
            )
        )

    try:
        return Result.ok(Version.parse(candidate))
    except ValueError as e:
        return Result.err(
            GPGError(
                GPGErrorType.GPG_INIT_ERROR,
                f"Could not parse gpg version: {e}",
                cmd_result=cmd_result,
                cause=e,
            )
        )


def version_from_result(cmd_result: CmdResult) -> Result[Version]:
    return parse_version_output(cmd_result.text, cmd_result)
