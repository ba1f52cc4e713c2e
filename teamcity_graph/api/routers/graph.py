import xml.etree.ElementTree as ET
from typing import List, Optional

import httpx
from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse

from teamcity_graph.models.graph import (
    BuildOut,
    BuildTypeOut,
    EdgeOut,
    FailureOut,
    GraphResponse,
    PackageOut,
    ProjectOut,
)
from teamcity_graph.services.crawl.base import Build, CrawlError, Package, Project
from teamcity_graph.services.graph_service import CrawlResult, CrawlTimeout, crawl
from teamcity_graph.services.teamcity_client import TeamCitySettings, get_client, load_settings

router = APIRouter(tags=["graph"])


def _package_out(package: Package) -> PackageOut:
    return PackageOut(
        id=package.version_id.id,
        version=package.version_id.version,
        dependencies=[d.id for d in package.dependencies],
    )


def _build_out(build: Build) -> BuildOut:
    return BuildOut(
        id=build.id,
        number=build.number,
        uses_nuget=build.uses_nuget,
        created_packages=[_package_out(p) for p in build.created_packages.values()],
        dependencies=[_package_out(p) for p in build.dependencies.values()],
    )


def _project_out(project: Project) -> ProjectOut:
    return ProjectOut(
        id=project.id,
        name=project.name,
        uses_nuget=project.uses_nuget,
        build_types=[
            BuildTypeOut(
                id=bt.id,
                name=bt.name,
                uses_nuget=bt.uses_nuget,
                publishes_packages=bt.publishes_packages,
                builds=[_build_out(b) for b in bt.builds.values()],
            )
            for bt in project.build_types.values()
        ],
    )


def _settings(prefix: Optional[str]) -> TeamCitySettings:
    try:
        return load_settings().with_overrides(package_prefix=prefix)
    except RuntimeError as exc:
        raise HTTPException(status_code=500, detail=str(exc))


async def _crawl(settings: TeamCitySettings) -> CrawlResult:
    try:
        return await crawl(settings, client=get_client(settings))
    except CrawlTimeout as exc:
        raise HTTPException(status_code=504, detail=str(exc))
    except (CrawlError, httpx.HTTPError, httpx.InvalidURL, ET.ParseError) as exc:
        raise HTTPException(status_code=502, detail=f"Failed to crawl TeamCity: {exc!r}")


@router.get("/graph", response_model=GraphResponse)
async def api_get_graph(prefix: Optional[str] = None):
    """Crawl the server and return projects, edges and skipped subtrees."""
    settings = _settings(prefix)
    result = await _crawl(settings)
    return GraphResponse(
        server=settings.server_uri,
        package_prefix=settings.package_prefix or None,
        projects=[_project_out(p) for p in result.projects],
        edges=[EdgeOut(source=e.source, target=e.target) for e in result.edges],
        failures=[FailureOut(**f.to_dict()) for f in result.failures],
    )


@router.get("/graph/edges", response_model=List[EdgeOut])
async def api_get_edges(prefix: Optional[str] = None):
    result = await _crawl(_settings(prefix))
    return [EdgeOut(source=e.source, target=e.target) for e in result.edges]


@router.get("/graph/dot", response_class=PlainTextResponse)
async def api_get_dot(prefix: Optional[str] = None):
    result = await _crawl(_settings(prefix))
    return PlainTextResponse(result.to_dot(), media_type="text/vnd.graphviz")
