from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, NamedTuple, Set

from teamcity_graph.services.crawl.base import Build, BuildType, Package, Project


class Edge(NamedTuple):
    source: str
    target: str


def build_package_index(projects: Iterable[Project]) -> Dict[str, Package]:
    """Map package id -> one created Package, first seen wins.

    Packages created by several builds under the same id (even with different
    versions) collapse to a single entry.
    """
    index: Dict[str, Package] = {}
    for project in projects:
        for build_type in project.build_types.values():
            for build in build_type.builds.values():
                for version_id, package in build.created_packages.items():
                    index.setdefault(version_id.id, package)
    return index


def _distinct(ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(ids))


def indirect_dependencies(build: Build, index: Mapping[str, Package]) -> Set[str]:
    """Ids one hop behind the build's direct dependencies.

    Direct dependencies that no crawled build created are not in the index and
    contribute nothing.
    """
    out: Set[str] = set()
    for package in build.dependencies.values():
        known = index.get(package.version_id.id)
        if known is not None:
            out.update(dep.id for dep in known.dependencies)
    return out


def build_edges_for(build_type: BuildType, build: Build, index: Mapping[str, Package]) -> List[Edge]:
    if build.created_packages:
        edges: List[Edge] = []
        for package in build.created_packages.values():
            for dep_id in _distinct(d.id for d in package.dependencies):
                edges.append(Edge(package.version_id.id, dep_id))
        return edges

    indirect = indirect_dependencies(build, index)
    return [
        Edge(build_type.id, dep_id)
        for dep_id in _distinct(v.id for v in build.dependencies)
        if dep_id not in indirect
    ]


def build_edges(projects: Iterable[Project]) -> List[Edge]:
    """Edges of the package graph for fully assembled projects.

    A build that created packages contributes package -> dependency edges. A
    build that only consumed packages contributes build type -> package edges,
    minus packages already reachable one hop through another direct dependency.
    """
    projects = list(projects)
    index = build_package_index(projects)
    edges: List[Edge] = []
    for project in projects:
        if not project.uses_nuget:
            continue
        for build_type in project.build_types.values():
            if not build_type.uses_nuget:
                continue
            for build in build_type.builds.values():
                if build.uses_nuget:
                    edges.extend(build_edges_for(build_type, build, index))
    return edges
