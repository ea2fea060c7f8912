# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Package definitions: named groups of types selected by file patterns.

A packaging file looks like:

    module_root: ../src
    packages:
      - name: Core
        includes: ["core/**/*.py"]
        excludes: ["**/test_*.py"]
        clusters:
          - name: Models
            includes: ["core.models.*"]
      - name: UI
        includes: ["ui/**/*.py"]

Unlike Config, packaging errors are fatal: an analysis cannot start from a
broken package definition.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from packviz.config import ConfigurationError
from packviz.patterns import Wildcard, first_match

logger = logging.getLogger(__name__)


class Cluster:
    """Named sub-grouping of a package, matched against full type names."""

    def __init__(
        self, name: str, includes: List[str], excludes: Optional[List[str]] = None
    ) -> None:
        self.name = name
        self.includes = [Wildcard(p) for p in includes]
        self.excludes = [Wildcard(p) for p in (excludes or [])]

    def matches(self, full_name: str) -> bool:
        if first_match(full_name, self.includes) is None:
            return False
        return first_match(full_name, self.excludes) is None

    def __repr__(self) -> str:
        return f"Cluster({self.name!r})"


@dataclass
class Package:
    """A named logical grouping of types."""

    name: str
    includes: List[str] = field(default_factory=list)
    excludes: List[str] = field(default_factory=list)
    clusters: List[Cluster] = field(default_factory=list)


@dataclass
class SystemPackaging:
    """Module root plus the packages in declaration order."""

    module_root: Path
    packages: List[Package] = field(default_factory=list)

    def select(self, names: List[str]) -> List[Package]:
        """Select packages by case-insensitive name; an empty list selects all."""
        if not names:
            return list(self.packages)

        wanted = {name.lower() for name in names}
        selected = [p for p in self.packages if p.name.lower() in wanted]

        known = {p.name.lower() for p in self.packages}
        for name in names:
            if name.lower() not in known:
                logger.warning(f"Unknown package '{name}', ignoring")

        return selected


def _require_string_list(value: Any, what: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigurationError(f"{what} must be a list of strings, got {value!r}")
    return list(value)


def _parse_cluster(data: Any, package_name: str) -> Cluster:
    if not isinstance(data, dict) or not isinstance(data.get("name"), str):
        raise ConfigurationError(f"Cluster in package '{package_name}' needs a name: {data!r}")

    name = data["name"]
    includes = _require_string_list(data.get("includes"), f"Cluster '{name}' includes")
    if not includes:
        raise ConfigurationError(f"Cluster '{name}' needs at least one include pattern")
    excludes = _require_string_list(data.get("excludes"), f"Cluster '{name}' excludes")
    return Cluster(name, includes, excludes)


def _parse_package(data: Any) -> Package:
    if not isinstance(data, dict):
        raise ConfigurationError(f"Package definition must be a dictionary, got {data!r}")

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError(f"Package definition needs a name: {data!r}")

    clusters = data.get("clusters") or []
    if not isinstance(clusters, list):
        raise ConfigurationError(f"Clusters of package '{name}' must be a list")

    return Package(
        name=name,
        includes=_require_string_list(data.get("includes"), f"Package '{name}' includes"),
        excludes=_require_string_list(data.get("excludes"), f"Package '{name}' excludes"),
        clusters=[_parse_cluster(c, name) for c in clusters],
    )


def parse_system_packaging(data: Dict[str, Any], base_dir: Path) -> SystemPackaging:
    """Build SystemPackaging from already loaded YAML data.

    Args:
        data: Parsed YAML dictionary.
        base_dir: Directory relative module roots are resolved against.

    Raises:
        ConfigurationError: If required fields are missing or malformed.
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Packaging file must contain a YAML dictionary")

    module_root = data.get("module_root")
    if not isinstance(module_root, str) or not module_root:
        raise ConfigurationError("Packaging file needs a 'module_root' directory")

    packages = data.get("packages")
    if not isinstance(packages, list):
        raise ConfigurationError("Packaging file needs a 'packages' list")

    parsed = [_parse_package(p) for p in packages]

    names = [p.name.lower() for p in parsed]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate package names: {', '.join(duplicates)}")

    root = Path(module_root)
    if not root.is_absolute():
        root = base_dir / root

    return SystemPackaging(module_root=root, packages=parsed)


def load_system_packaging(path: Path) -> SystemPackaging:
    """Load package definitions from a YAML file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or malformed.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Packaging file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing packaging file {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Error reading packaging file {path}: {e}") from e

    packaging = parse_system_packaging(data, path.parent)
    logger.info(f"Loaded {len(packaging.packages)} package(s) from {path}")
    return packaging
