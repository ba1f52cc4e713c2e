"""Graphviz rendering of a crawled TeamCity package graph.

Projects become clusters; a build type that publishes packages becomes a nested
cluster holding its packages, a build type that only consumes packages becomes a
plain node. Dependency edges are appended after all clusters.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from teamcity_graph.services.crawl.base import Project
from .dependencies import Edge

logger = logging.getLogger(__name__)

COLOR_SCHEME = "brbg3"


def quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _header() -> List[str]:
    return [
        f"digraph TeamCity {{colorscheme={COLOR_SCHEME};",
        f'  node [fontname = "Helvetica", style="rounded,filled", shape=box, color=1, colorscheme={COLOR_SCHEME}];',
        f'  graph [fontname = "Helvetica-Bold", style="rounded,filled", shape=box, color=3, colorscheme={COLOR_SCHEME}];',
        '  edge [fontname = "Helvetica"];',
        "  rankdir = LR;",
        "",
    ]


def _project_lines(project: Project) -> List[str]:
    logger.debug("Project %s", project)
    lines = [
        f"  subgraph {quote('cluster_project_' + project.id)} {{",
        f"    label = {quote(project.name)};",
    ]
    for build_type in project.build_types.values():
        if not build_type.uses_nuget:
            continue
        logger.debug("  BuildType %s", build_type)
        if build_type.publishes_packages:
            lines.append(f"    subgraph {quote('cluster_buildType_' + build_type.id)} {{")
            lines.append(f"      label = {quote(build_type.name)}; color=2;")
        else:
            lines.append(f"      {quote(build_type.id)} [label={quote(build_type.name)}, color=2];")

        for build in build_type.builds.values():
            if not build.uses_nuget:
                continue
            logger.debug("    Build %s", build)
            for package in build.dependencies.values():
                logger.debug("      Dependency %s", package)
            for package in build.created_packages.values():
                logger.debug("      Created package %s", package)
                lines.append(f"        {quote(package.version_id.id)};")

        if build_type.publishes_packages:
            lines.append("    }")
    lines.append("  }")
    return lines


def render_dot(projects: Iterable[Project], edges: Sequence[Edge]) -> str:
    lines = _header()
    for project in projects:
        if project.uses_nuget:
            lines.extend(_project_lines(project))
    for edge in edges:
        lines.append(f"  {quote(edge.source)} -> {quote(edge.target)};")
    lines.append("}")
    return "\n".join(lines) + "\n"
