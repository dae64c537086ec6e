"""Best-effort version and update discovery for installed items."""

import json
import logging
import re
import shlex
from dataclasses import dataclass

from packaging import version as pkg_version

from ..config import Item, ItemKind
from ..execution import ProcessExecutor
from .packages import PackageRef, parse_install_command

VERSION_PATTERN = re.compile(r"(\d+\.\d+(?:\.\d+)?)")
APP_BUNDLE_PATTERN = re.compile(r"ls\s+(.+\.app)")

_logging = logging.getLogger(__name__)


@dataclass
class VersionInfo:
    version: str | None = None
    latest_version: str | None = None
    has_update: bool = False


def extract_version_number(text: str | None) -> str | None:
    """Return the first ``major.minor[.patch]`` found in ``text``."""
    if not text:
        return None
    match = VERSION_PATTERN.search(text)
    return match.group(1) if match else None


def is_newer(candidate: str, current: str) -> bool:
    """True if ``candidate`` is a strictly later version than ``current``."""
    try:
        return pkg_version.parse(candidate) > pkg_version.parse(current)
    except pkg_version.InvalidVersion:
        a = extract_version_number(candidate)
        b = extract_version_number(current)
        if not a or not b:
            return False
        return pkg_version.parse(a) > pkg_version.parse(b)


def app_bundle_paths(check_command: str) -> list[str]:
    """Extract ``/Applications/X.app`` paths from an ``ls`` style check."""
    match = APP_BUNDLE_PATTERN.search(check_command or "")
    if not match:
        return []
    paths = []
    for part in match.group(1).split("||"):
        part = part.strip()
        if part.startswith("ls "):
            part = part[3:].strip()
        part = part.replace("\\", "").strip("'\"")
        if part.endswith(".app"):
            paths.append(part)
    return paths


async def _first_line(executor: ProcessExecutor, command: str) -> str | None:
    result = await executor.run_buffered(command)
    if result.succeeded and result.stdout:
        return result.stdout.split("\n")[0].strip() or None
    return None


async def get_brew_installed_version(
    ref: PackageRef, executor: ProcessExecutor
) -> str | None:
    return await _first_line(
        executor,
        f"brew list {ref.cask_flag}--versions {shlex.quote(ref.package)} 2>/dev/null"
        " | awk '{print $2}'",
    )


async def get_brew_outdated_version(
    ref: PackageRef, executor: ProcessExecutor
) -> str | None:
    """Return the newer version brew would upgrade to, or None if up to date."""
    result = await executor.run_buffered(
        f"brew outdated {ref.cask_flag}--json=v2 2>/dev/null"
    )
    if not result.succeeded or not result.stdout:
        return None
    try:
        outdated = json.loads(result.stdout)
    except json.JSONDecodeError:
        _logging.debug(f"Unparseable brew outdated output for {ref.package}")
        return None

    if isinstance(outdated, list):
        entries = outdated
    else:
        entries = outdated.get("casks" if ref.cask else "formulae") or []

    for entry in entries:
        if isinstance(entry, dict) and entry.get("name") == ref.package:
            latest = entry.get("current_version")
            if not latest:
                installed = entry.get("installed_versions") or []
                latest = installed[0] if installed else None
            return latest
    return None


async def get_bundle_version(item: Item, executor: ProcessExecutor) -> str | None:
    for app_path in app_bundle_paths(item.check):
        plist = shlex.quote(f"{app_path}/Contents/Info")
        version = await _first_line(
            executor,
            f"defaults read {plist} CFBundleShortVersionString 2>/dev/null",
        )
        if version:
            return version
    return None


async def get_version_flag_output(item: Item, executor: ProcessExecutor) -> str | None:
    line = await _first_line(
        executor, f"{shlex.quote(item.id)} --version 2>/dev/null | head -1"
    )
    return extract_version_number(line)


async def get_version_info(item: Item, executor: ProcessExecutor) -> VersionInfo:
    """Gather version, latest version and update availability for ``item``.

    Never raises for command failures; unknown values stay ``None``.
    """
    info = VersionInfo()
    ref = parse_install_command(item.install)

    if item.kind is ItemKind.APP:
        info.version = await get_bundle_version(item, executor)

    if ref:
        if info.version is None:
            info.version = await get_brew_installed_version(ref, executor)
        latest = await get_brew_outdated_version(ref, executor)
        if latest:
            info.latest_version = latest
            info.has_update = True
    elif item.kind is ItemKind.TOOL:
        info.version = await get_version_flag_output(item, executor)

    if info.has_update and info.version and info.latest_version:
        info.has_update = is_newer(info.latest_version, info.version)

    return info


__all__ = [
    "VersionInfo",
    "extract_version_number",
    "is_newer",
    "app_bundle_paths",
    "get_version_info",
]
