"""Package-manager invocation matching.

Only one install shape is recognised: ``brew install [--cask] <package>``.
Uninstall and upgrade commands are derived from it mechanically; anything
else is reported as not derivable rather than guessed at.
"""

import re
from dataclasses import dataclass

BREW_INSTALL_PATTERN = re.compile(r"\b(brew)\s+install\s+(--cask\s+)?([^\s;&|]+)")


@dataclass(frozen=True)
class PackageRef:
    manager: str
    package: str
    cask: bool = False

    @property
    def cask_flag(self) -> str:
        return "--cask " if self.cask else ""

    def command(self, verb: str) -> str:
        return f"{self.manager} {verb} {self.cask_flag}{self.package}"


def parse_install_command(command: str) -> PackageRef | None:
    match = BREW_INSTALL_PATTERN.search(command or "")
    if not match:
        return None
    manager, cask, package = match.groups()
    if package.startswith("-"):
        return None
    return PackageRef(manager=manager, package=package, cask=bool(cask))


def derive_uninstall_command(install_command: str) -> str | None:
    ref = parse_install_command(install_command)
    return ref.command("uninstall") if ref else None


def derive_upgrade_command(install_command: str) -> str | None:
    ref = parse_install_command(install_command)
    return ref.command("upgrade") if ref else None


__all__ = [
    "PackageRef",
    "parse_install_command",
    "derive_uninstall_command",
    "derive_upgrade_command",
]
