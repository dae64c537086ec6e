"""Project scanner: infer an onboard document from a code base's manifests.

Manifest filenames are matched against static tables; every detected id maps
to a catalog entry. Generated documents always start with the foundation chain
``xcode-clt -> homebrew -> git`` and every other entry depends on Homebrew.
"""

import fnmatch
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from .config import ConfigError, ItemKind, SECTIONS, dump_config, parse_config_text

MAX_SCAN_DEPTH = 2
SKIPPED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "venv",
    "node_modules",
    "vendor",
    "target",
    "dist",
    "build",
    "__pycache__",
    ".tox",
    ".next",
    "Pods",
}

_logging = logging.getLogger(__name__)


# Manifest filename (or glob) -> ids of the tools it implies.
MANIFEST_DEPENDENCIES: dict[str, list[str]] = {
    "package.json": ["node"],
    ".nvmrc": ["node"],
    "yarn.lock": ["node", "yarn"],
    "pnpm-lock.yaml": ["node", "pnpm"],
    "bun.lockb": ["bun"],
    "bun.lock": ["bun"],
    "deno.json": ["deno"],
    "Cargo.toml": ["rust"],
    "go.mod": ["go"],
    "pyproject.toml": ["python"],
    "requirements.txt": ["python"],
    "setup.py": ["python"],
    "Pipfile": ["python", "pipenv"],
    "poetry.lock": ["python", "poetry"],
    "uv.lock": ["python", "uv"],
    "Gemfile": ["ruby"],
    "composer.json": ["php", "composer"],
    "pom.xml": ["java", "maven"],
    "build.gradle": ["java", "gradle"],
    "build.gradle.kts": ["java", "gradle"],
    "mix.exs": ["elixir"],
    "*.tf": ["terraform"],
    "Chart.yaml": ["helm", "kubectl"],
    "docker-compose.yml": ["docker-cli"],
    "docker-compose.yaml": ["docker-cli"],
    "compose.yaml": ["docker-cli"],
    "Dockerfile": ["docker-cli"],
    ".pre-commit-config.yaml": ["pre-commit"],
    "Package.swift": ["mas"],
    "*.xcodeproj": ["mas"],
}

# Manifest filename -> ids of the applications it implies.
MANIFEST_APPS: dict[str, list[str]] = {
    "docker-compose.yml": ["docker"],
    "docker-compose.yaml": ["docker"],
    "compose.yaml": ["docker"],
    "Dockerfile": ["docker"],
    "Package.swift": ["xcode"],
    "*.xcodeproj": ["xcode"],
    "pubspec.yaml": ["android-studio"],
    ".vscode": ["vscode"],
}


def _brew_tool(item_id: str, name: str, binary: str, formula: str, desc: str) -> dict:
    return {
        "id": item_id,
        "name": name,
        "check": f"which {binary}",
        "install": f"brew install {formula}",
        "desc": desc,
    }


def _cask_app(item_id: str, name: str, bundle: str, cask: str, desc: str) -> dict:
    escaped = bundle.replace(" ", "\\ ")
    return {
        "id": item_id,
        "name": name,
        "check": f"ls /Applications/{escaped}.app",
        "install": f"brew install --cask {cask}",
        "desc": desc,
    }


FOUNDATION: list[dict] = [
    {
        "id": "xcode-clt",
        "name": "Xcode Command Line Tools",
        "check": "xcode-select -p",
        "install": "xcode-select --install",
        "desc": "Compilers and headers required by Homebrew",
    },
    {
        "id": "homebrew",
        "name": "Homebrew",
        "check": "which brew",
        "install": '/bin/bash -c "$(curl -fsSL https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh)"',
        "depends_on": "xcode-clt",
        "desc": "Package manager for macOS",
    },
    {
        "id": "git",
        "name": "Git",
        "check": "which git",
        "install": "brew install git",
        "depends_on": "homebrew",
        "desc": "Version control",
    },
]

KNOWN_TOOLS: dict[str, dict] = {
    entry["id"]: entry
    for entry in [
        _brew_tool("node", "Node.js", "node", "node", "JavaScript runtime"),
        _brew_tool("yarn", "Yarn", "yarn", "yarn", "Node package manager"),
        _brew_tool("pnpm", "pnpm", "pnpm", "pnpm", "Fast Node package manager"),
        _brew_tool("bun", "Bun", "bun", "oven-sh/bun/bun", "JavaScript runtime and toolkit"),
        _brew_tool("deno", "Deno", "deno", "deno", "JavaScript and TypeScript runtime"),
        _brew_tool("rust", "Rust", "cargo", "rust", "Rust compiler and Cargo"),
        _brew_tool("go", "Go", "go", "go", "Go toolchain"),
        _brew_tool("python", "Python", "python3", "python", "Python interpreter"),
        _brew_tool("pipenv", "Pipenv", "pipenv", "pipenv", "Python virtualenv manager"),
        _brew_tool("poetry", "Poetry", "poetry", "poetry", "Python packaging and dependency manager"),
        _brew_tool("uv", "uv", "uv", "uv", "Python package and project manager"),
        _brew_tool("ruby", "Ruby", "ruby", "ruby", "Ruby interpreter"),
        _brew_tool("php", "PHP", "php", "php", "PHP interpreter"),
        _brew_tool("composer", "Composer", "composer", "composer", "PHP dependency manager"),
        _brew_tool("java", "Java", "java", "openjdk", "OpenJDK runtime"),
        _brew_tool("maven", "Maven", "mvn", "maven", "Java build tool"),
        _brew_tool("gradle", "Gradle", "gradle", "gradle", "JVM build tool"),
        _brew_tool("elixir", "Elixir", "elixir", "elixir", "Elixir language"),
        _brew_tool("terraform", "Terraform", "terraform", "hashicorp/tap/terraform", "Infrastructure as code"),
        _brew_tool("helm", "Helm", "helm", "helm", "Kubernetes package manager"),
        _brew_tool("kubectl", "kubectl", "kubectl", "kubernetes-cli", "Kubernetes CLI"),
        _brew_tool("docker-cli", "Docker CLI", "docker", "docker", "Container CLI"),
        _brew_tool("pre-commit", "pre-commit", "pre-commit", "pre-commit", "Git hook manager"),
        _brew_tool("mas", "mas", "mas", "mas", "Mac App Store CLI"),
    ]
}

KNOWN_APPS: dict[str, dict] = {
    entry["id"]: entry
    for entry in [
        _cask_app("docker", "Docker Desktop", "Docker", "docker", "Container runtime"),
        {
            "id": "xcode",
            "name": "Xcode",
            "check": "ls /Applications/Xcode.app",
            "install": "mas install 497799835",
            "depends_on": "mas",
            "desc": "Apple development IDE",
        },
        _cask_app("android-studio", "Android Studio", "Android Studio", "android-studio", "Android IDE"),
        _cask_app("vscode", "Visual Studio Code", "Visual Studio Code", "visual-studio-code", "Code editor"),
    ]
}


@dataclass
class ScanResult:
    root: Path
    manifests: list[Path] = field(default_factory=list)
    dependency_ids: list[str] = field(default_factory=list)
    app_ids: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.dependency_ids and not self.app_ids


def _add_unique(target: list[str], ids: list[str]) -> None:
    for item_id in ids:
        if item_id not in target:
            target.append(item_id)


def _match_manifest(filename: str, table: dict[str, list[str]]) -> list[str]:
    matched: list[str] = []
    for pattern, ids in table.items():
        if fnmatch.fnmatchcase(filename, pattern):
            _add_unique(matched, ids)
    return matched


def scan_project(path: Path) -> ScanResult:
    """Walk ``path`` (to a depth of two directories) and collect known manifests."""
    root = Path(path).expanduser().resolve()
    if not root.is_dir():
        raise NotADirectoryError(f"Not a directory: {root}")

    result = ScanResult(root=root)
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        depth = len(current.relative_to(root).parts)

        # Directory names can be manifests too (e.g. Foo.xcodeproj)
        candidates = sorted(filenames) + sorted(
            d for d in dirnames if d not in SKIPPED_DIRS
        )
        for name in candidates:
            deps = _match_manifest(name, MANIFEST_DEPENDENCIES)
            apps = _match_manifest(name, MANIFEST_APPS)
            if not deps and not apps:
                continue
            manifest = (current / name).relative_to(root)
            _logging.debug(f"Found manifest {manifest}: {deps + apps}")
            result.manifests.append(manifest)
            _add_unique(result.dependency_ids, deps)
            _add_unique(result.app_ids, apps)

        if depth >= MAX_SCAN_DEPTH:
            dirnames[:] = []
        else:
            dirnames[:] = sorted(d for d in dirnames if d not in SKIPPED_DIRS)

    return result


def build_document(
    name: str,
    dependency_ids: list[str],
    app_ids: list[str],
    description: str = "",
) -> dict:
    """Assemble a raw onboard document from detected ids.

    Raises:
        ValueError: If an id is not in the catalog
    """
    foundation_ids = [entry["id"] for entry in FOUNDATION]
    dependencies = [dict(entry) for entry in FOUNDATION]
    apps = []

    for ids, catalog, target in (
        (dependency_ids, KNOWN_TOOLS, dependencies),
        (app_ids, KNOWN_APPS, apps),
    ):
        seen: set[str] = set()
        for item_id in ids:
            if item_id in foundation_ids or item_id in seen:
                continue
            if item_id not in catalog:
                raise ValueError(f"Unknown item id '{item_id}'")
            seen.add(item_id)
            entry = dict(catalog[item_id])
            entry.setdefault("depends_on", "homebrew")
            target.append(entry)

    document = {"name": name}
    if description:
        document["description"] = description
    document[SECTIONS[ItemKind.TOOL]] = dependencies
    document[SECTIONS[ItemKind.APP]] = apps
    return document


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "project"


def default_output_path(root: Path, name: str) -> Path:
    return Path(root) / f"{slugify(name)}.onboard"


def write_document(document: dict, path: Path) -> Path:
    """Serialize ``document`` to ``path`` after checking it loads back cleanly.

    Raises:
        ConfigError: If the serialized document does not validate
    """
    text = dump_config(document)
    parse_config_text(text)
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Error writing config file {path}: {e}")
    _logging.info(f"Wrote {path}")
    return path


__all__ = [
    "FOUNDATION",
    "KNOWN_TOOLS",
    "KNOWN_APPS",
    "MANIFEST_DEPENDENCIES",
    "MANIFEST_APPS",
    "ScanResult",
    "scan_project",
    "build_document",
    "slugify",
    "default_output_path",
    "write_document",
]
