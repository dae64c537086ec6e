"""Pytest fixtures and utilities for onboard tests."""

import asyncio
import os
import shlex
from pathlib import Path
from typing import Callable

import pytest
import yaml

from onboard.config import Item, ItemKind, OnboardConfig
from onboard.execution import ProcessExecutor, get_shell_env
from onboard.installer import Orchestrator
from onboard.paths import CONFIG_ENV_VAR

# Stands in for Homebrew: installs are marker files under $MARKER_DIR whose
# content is the installed version. Anything at 1.0.0 is reported outdated.
# A .slow marker delays version lookups after they have printed.
FAKE_BREW = r"""#!/bin/bash
slow_down() {
  if [ -f "$MARKER_DIR/.slow" ]; then
    sleep 1
  fi
}
cmd="$1"
shift
if [ "$1" = "--cask" ]; then
  shift
fi
case "$cmd" in
  install)
    echo "1.0.0" > "$MARKER_DIR/$1"
    echo "==> Pouring $1--1.0.0"
    ;;
  uninstall)
    if [ ! -f "$MARKER_DIR/$1" ]; then
      echo "Error: No such keg: $1" >&2
      exit 1
    fi
    rm -f "$MARKER_DIR/$1"
    echo "Uninstalling $1... (1 file)"
    ;;
  upgrade)
    echo "2.0.0" > "$MARKER_DIR/$1"
    echo "==> Upgrading $1 1.0.0 -> 2.0.0"
    ;;
  list)
    if [ "$1" = "--versions" ]; then
      shift
    fi
    [ -f "$MARKER_DIR/$1" ] || exit 1
    echo "$1 $(cat "$MARKER_DIR/$1")"
    slow_down
    ;;
  outdated)
    entries=""
    for f in "$MARKER_DIR"/*; do
      [ -f "$f" ] || continue
      if [ "$(cat "$f")" = "1.0.0" ]; then
        entry="{\"name\": \"$(basename "$f")\", \"installed_versions\": [\"1.0.0\"], \"current_version\": \"2.0.0\"}"
        entries="${entries:+$entries, }$entry"
      fi
    done
    echo "{\"formulae\": [$entries], \"casks\": [$entries]}"
    slow_down
    ;;
  *)
    echo "Error: Unknown command: $cmd" >&2
    exit 1
    ;;
esac
"""


@pytest.fixture
def marker_dir(tmp_path: Path) -> Path:
    """Directory whose files stand for installed items."""
    path = tmp_path / "markers"
    path.mkdir()
    return path


@pytest.fixture
def fake_brew_bin(tmp_path: Path) -> Path:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    brew = bin_dir / "brew"
    brew.write_text(FAKE_BREW)
    brew.chmod(0o755)
    return bin_dir


@pytest.fixture
def shell_env(marker_dir: Path, fake_brew_bin: Path) -> dict[str, str]:
    """Shell environment with the fake brew first on PATH."""
    env = get_shell_env()
    env["PATH"] = f"{fake_brew_bin}:{env['PATH']}"
    env["MARKER_DIR"] = str(marker_dir)
    return env


@pytest.fixture
def cli_env(monkeypatch, tmp_path: Path, marker_dir: Path, fake_brew_bin: Path) -> Path:
    """Isolate CLI runs: home directory in tmp_path, fake brew on PATH."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr(Path, "home", lambda: home)
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.setenv("PATH", f"{fake_brew_bin}:{os.environ.get('PATH', '')}")
    monkeypatch.setenv("MARKER_DIR", str(marker_dir))
    return home


@pytest.fixture
def executor(shell_env: dict[str, str]) -> ProcessExecutor:
    return ProcessExecutor(env=shell_env)


def marker_item(
    marker_dir: Path,
    item_id: str,
    depends_on: str | None = None,
    kind: ItemKind = ItemKind.TOOL,
    install: str | None = None,
) -> Item:
    """An item installed by touching a marker file."""
    marker = shlex.quote(str(marker_dir / item_id))
    return Item(
        id=item_id,
        name=item_id.title(),
        check=f"test -f {marker}",
        install=install or f"touch {marker}",
        kind=kind,
        depends_on=depends_on,
    )


def brew_item(
    item_id: str,
    depends_on: str | None = None,
    cask: bool = False,
) -> Item:
    """An item installed through the fake brew."""
    flag = "--cask " if cask else ""
    return Item(
        id=item_id,
        name=item_id.title(),
        check=f'test -f "$MARKER_DIR/{item_id}"',
        install=f"brew install {flag}{item_id}",
        kind=ItemKind.APP if cask else ItemKind.TOOL,
        depends_on=depends_on,
    )


def make_config(*items: Item, name: str = "Test Project") -> OnboardConfig:
    return OnboardConfig(
        name=name,
        dependencies=tuple(i for i in items if i.kind is ItemKind.TOOL),
        apps=tuple(i for i in items if i.kind is ItemKind.APP),
    )


@pytest.fixture
def make_orchestrator(executor: ProcessExecutor) -> Callable[..., Orchestrator]:
    def factory(*items: Item) -> Orchestrator:
        return Orchestrator(make_config(*items), executor)

    return factory


async def _wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def wait_until():
    """Poll a predicate from async tests until it holds."""
    return _wait_until


def write_config(path: Path, document: dict) -> Path:
    path.write_text(yaml.safe_dump(document, sort_keys=False))
    return path
