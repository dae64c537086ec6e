"""Configuration loading and validation for .onboard documents.

An ``.onboard`` document is YAML::

    name: Acme Web
    description: Everything a new engineer needs
    dependencies:
      - id: homebrew
        name: Homebrew
        check: which brew
        install: /bin/bash -c "$(curl -fsSL https://.../install.sh)"
      - id: git
        name: Git
        check: which git
        install: brew install git
        depends_on: homebrew
    apps:
      - id: vscode
        name: Visual Studio Code
        check: ls /Applications/Visual\\ Studio\\ Code.app
        install: brew install --cask visual-studio-code
        depends_on: homebrew

Validation is all-or-nothing: the first problem raises :class:`ConfigError`
naming the offending entry and field, and nothing is returned.
"""

import logging
import shlex
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .errors import format_field_error
from .execution import ProcessExecutor
from .paths import get_bundled_config_path

URL_FETCH_TIMEOUT = 30
BUNDLED_SOURCE = "bundled"

_logging = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when config loading or validation fails."""

    pass


class ItemKind(Enum):
    TOOL = "tool"
    APP = "app"


# Document section holding each kind of item.
SECTIONS = {
    ItemKind.TOOL: "dependencies",
    ItemKind.APP: "apps",
}

REQUIRED_ITEM_FIELDS = ["id", "name", "check", "install"]
OPTIONAL_ITEM_FIELDS = ["depends_on", "desc", "icon", "icon_bg", "icon_img"]


@dataclass(frozen=True)
class Item:
    """An installable tool or application."""

    id: str
    name: str
    check: str
    install: str
    kind: ItemKind = ItemKind.TOOL
    depends_on: str | None = None
    description: str | None = None
    icon: str | None = None
    icon_bg: str | None = None
    icon_img: str | None = None

    @property
    def correlation_id(self) -> str:
        """Key for this item's running process and terminal output."""
        return f"{self.kind.value}-{self.id}"


@dataclass(frozen=True)
class OnboardConfig:
    name: str
    description: str = ""
    dependencies: tuple[Item, ...] = ()
    apps: tuple[Item, ...] = ()

    @property
    def items(self) -> list[Item]:
        return [*self.dependencies, *self.apps]

    def get(self, item_id: str) -> Item | None:
        return next((item for item in self.items if item.id == item_id), None)

    def of_kind(self, kind: ItemKind | None) -> list[Item]:
        if kind is None:
            return self.items
        return list(self.dependencies if kind is ItemKind.TOOL else self.apps)


def _validate_item(data: Any, section: str, index: int, kind: ItemKind) -> Item:
    if not isinstance(data, dict):
        raise ConfigError(
            f"{section}[{index}] must be an object, got {type(data).__name__}"
        )

    item_id = data.get("id")
    if not isinstance(item_id, str) or not item_id.strip():
        raise ConfigError(format_field_error(f"{section}[{index}]", "id", "is required"))

    entity = f"Item '{item_id}' in {section}"
    for field_name in REQUIRED_ITEM_FIELDS[1:]:
        value = data.get(field_name)
        if value is None:
            raise ConfigError(format_field_error(entity, field_name, "is required"))
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(
                format_field_error(entity, field_name, "must be a non-empty string")
            )

    for field_name in OPTIONAL_ITEM_FIELDS:
        value = data.get(field_name)
        if value is not None and not isinstance(value, str):
            raise ConfigError(
                format_field_error(entity, field_name, "must be a string or null")
            )

    return Item(
        id=item_id.strip(),
        name=data["name"],
        check=data["check"],
        install=data["install"],
        kind=kind,
        depends_on=data.get("depends_on") or None,
        description=data.get("desc"),
        icon=data.get("icon"),
        icon_bg=data.get("icon_bg"),
        icon_img=data.get("icon_img"),
    )


def validate_config(data: Any) -> OnboardConfig:
    """Validate and convert a raw document into an :class:`OnboardConfig`.

    Raises:
        ConfigError: If validation fails, naming the offending entry and field
    """
    if not isinstance(data, dict):
        raise ConfigError(f"Config must be an object, got {type(data).__name__}")

    name = data.get("name")
    if not name:
        raise ConfigError("Config missing required field: name")
    if not isinstance(name, str):
        raise ConfigError(f"Config field 'name' must be a string, got {type(name).__name__}")

    description = data.get("description") or ""
    if not isinstance(description, str):
        raise ConfigError("Config field 'description' must be a string or null")

    sections: dict[ItemKind, tuple[Item, ...]] = {}
    seen: set[str] = set()
    for kind, section in SECTIONS.items():
        if section not in data:
            raise ConfigError(f"Config missing required field: {section}")
        entries = data[section]
        if entries is None:
            entries = []
        if not isinstance(entries, list):
            raise ConfigError(
                f"Config field '{section}' must be a list, got {type(entries).__name__}"
            )

        items = []
        for index, entry in enumerate(entries):
            item = _validate_item(entry, section, index, kind)
            if item.id in seen:
                raise ConfigError(f"Duplicate item id '{item.id}' in {section}")
            seen.add(item.id)
            items.append(item)
        sections[kind] = tuple(items)

    return OnboardConfig(
        name=name,
        description=description,
        dependencies=sections[ItemKind.TOOL],
        apps=sections[ItemKind.APP],
    )


def _format_syntax_error(text: str, error: yaml.YAMLError) -> str:
    """Format a YAML syntax error with line, caret, and context."""
    mark = getattr(error, "problem_mark", None)
    problem = getattr(error, "problem", None) or str(error)
    if mark is None:
        return f"Config syntax error: {problem}"

    line_num = mark.line + 1
    col_num = mark.column + 1
    msg_parts = [f"Config syntax error at line {line_num}, col {col_num}: {problem}"]

    lines = text.split("\n")
    if 1 <= line_num <= len(lines):
        msg_parts.append(lines[line_num - 1])
        msg_parts.append(" " * mark.column + "^")

    return "\n".join(msg_parts)


def parse_config_text(text: str) -> OnboardConfig:
    """Parse YAML text and validate it as an onboard document."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(_format_syntax_error(text, e)) from e
    return validate_config(data)


def load_config(path: Path) -> OnboardConfig:
    """Load and validate a local .onboard file.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except PermissionError:
        raise ConfigError(f"Permission denied reading config file: {path}")
    except UnicodeDecodeError:
        raise ConfigError(f"Config file is not valid UTF-8: {path}")
    except IOError as e:
        raise ConfigError(f"Error reading config file {path}: {e}")

    _logging.debug(f"Loaded config text from {path}")
    return parse_config_text(text)


def load_bundled_config() -> OnboardConfig:
    return load_config(get_bundled_config_path())


async def load_config_url(url: str, executor: ProcessExecutor) -> OnboardConfig:
    """Fetch a config over HTTP(S) with curl and validate it."""
    result = await executor.run_buffered(
        f"curl -fsSL {shlex.quote(url)}", timeout=URL_FETCH_TIMEOUT
    )
    if not result.succeeded:
        detail = result.stderr or f"exit code {result.exit_code}"
        raise ConfigError(f"Failed to fetch config from {url}: {detail}")
    return parse_config_text(result.stdout)


def is_url(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


async def load_config_source(
    source: str, executor: ProcessExecutor | None = None
) -> OnboardConfig:
    """Load a config from a path, an http(s) URL or the bundled default."""
    if source == BUNDLED_SOURCE:
        return load_bundled_config()
    if is_url(source):
        return await load_config_url(source, executor or ProcessExecutor())
    return load_config(Path(source).expanduser())


def dump_config(document: dict) -> str:
    """Serialize a raw onboard document to YAML, preserving key order."""
    return yaml.safe_dump(
        document, default_flow_style=False, sort_keys=False, allow_unicode=True
    )


__all__ = [
    "BUNDLED_SOURCE",
    "ConfigError",
    "ItemKind",
    "Item",
    "OnboardConfig",
    "validate_config",
    "parse_config_text",
    "load_config",
    "load_bundled_config",
    "load_config_url",
    "load_config_source",
    "dump_config",
    "is_url",
]
