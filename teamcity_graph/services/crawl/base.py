from __future__ import annotations

import hashlib
import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Tuple


def canonical_json(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def sha256_hexdigest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class CrawlError(Exception):
    """Base class for failures raised while walking the TeamCity API."""


class LinkNotFound(CrawlError):
    """A hard-coded link path is missing from a server document.

    This is a contract violation between this tool and the server API, never a
    transient condition, so it is not retried.
    """

    def __init__(self, path: Tuple[str, ...], missing: str) -> None:
        self.path = tuple(path)
        self.missing = missing
        super().__init__(f"Link {'/'.join(self.path) or '<root>'} not found: missing {missing}")


@dataclass(frozen=True)
class PackageVersionId:
    id: str
    version: str

    @classmethod
    def from_element(cls, package: ET.Element) -> "PackageVersionId":
        """Build from a manifest ``<package id=".." version=".."/>`` element."""
        pid = package.get("id")
        version = package.get("version")
        if pid is None or version is None:
            raise CrawlError(f"Package element without id/version: {ET.tostring(package, encoding='unicode')}")
        return cls(pid, version)

    @classmethod
    def from_feed_dependency(cls, dependency: str) -> "PackageVersionId":
        """Parse one ``id:version[:targetFramework]`` feed entry."""
        parts = dependency.split(":")
        if len(parts) < 2:
            raise ValueError(f"Malformed feed dependency: {dependency!r}")
        return cls(parts[0], parts[1])

    def __str__(self) -> str:
        return f"Id: {self.id}, Version: {self.version}"


PackageFilter = Callable[[PackageVersionId], bool]


def accept_all(_: PackageVersionId) -> bool:
    return True


def prefix_filter(prefix: str) -> PackageFilter:
    """Keep only packages whose id starts with ``prefix`` (empty prefix keeps all)."""
    if not prefix:
        return accept_all
    return lambda package: package.id.startswith(prefix)


@dataclass(frozen=True)
class Package:
    version_id: PackageVersionId
    # Materialized once by the resolver; read again by edge emission and elision.
    dependencies: Tuple[PackageVersionId, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "dependencies", tuple(self.dependencies))

    def __str__(self) -> str:
        return str(self.version_id)


def _freeze(obj: Any, *names: str) -> None:
    # Read-only copies: callers keep no handle that can change an assembled entity.
    for name in names:
        object.__setattr__(obj, name, MappingProxyType(dict(getattr(obj, name))))


@dataclass(frozen=True, eq=False)
class Build:
    id: str
    number: str
    created_packages: Mapping[PackageVersionId, Package] = field(default_factory=dict)
    dependencies: Mapping[PackageVersionId, Package] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _freeze(self, "created_packages", "dependencies")

    @property
    def uses_nuget(self) -> bool:
        return bool(self.created_packages) or bool(self.dependencies)

    def __str__(self) -> str:
        return f"Id: {self.id}, Number: {self.number}"


@dataclass(frozen=True, eq=False)
class BuildType:
    id: str
    name: str
    builds: Mapping[str, Build] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _freeze(self, "builds")

    @property
    def uses_nuget(self) -> bool:
        return any(b.uses_nuget for b in self.builds.values())

    @property
    def publishes_packages(self) -> bool:
        return any(b.created_packages for b in self.builds.values())

    def __str__(self) -> str:
        return f"Name: {self.name}, Id: {self.id}"


@dataclass(frozen=True, eq=False)
class Project:
    id: str
    name: str
    build_types: Mapping[str, BuildType] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _freeze(self, "build_types")

    @property
    def uses_nuget(self) -> bool:
        return any(bt.uses_nuget for bt in self.build_types.values())

    def __str__(self) -> str:
        return f"Name: {self.name}, Id: {self.id}"


@dataclass
class CrawlFailure:
    """A subtree that was dropped from the crawl result."""

    kind: str  # project | buildType | build
    ref_id: str
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "ref_id": self.ref_id, "error": self.error}
