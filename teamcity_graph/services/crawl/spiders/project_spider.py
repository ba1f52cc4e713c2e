"""Project spider: walk server root -> projects -> build types -> latest build.

Every fan-out point starts all child fetches at once and waits for all of them
before the parent entity is built. A failing project, build type or build is
logged, recorded in ``failures`` and left out; its siblings are unaffected.
"""

from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
from typing import Awaitable, Dict, Iterable, List, Optional, Tuple, TypeVar, Union

import httpx

from ..base import (
    Build,
    BuildType,
    CrawlError,
    CrawlFailure,
    Package,
    PackageFilter,
    PackageVersionId,
    Project,
    accept_all,
)
from ..fetcher import DocumentFetcher
from ..links import href_to_uri, link_of, resolve_link
from .package_feed_spider import PackageFeedSpider

logger = logging.getLogger(__name__)

T = TypeVar("T")

MANIFEST_PATH = "/repository/download/{build_type_id}/{build_id}:id/.teamcity/nuget/nuget.xml"
SUCCESSFUL_BUILDS_QUERY = b"status=SUCCESS"


def _required(element: ET.Element, attribute: str) -> str:
    value = element.get(attribute)
    if value is None:
        raise CrawlError(f"<{element.tag}> without '{attribute}' attribute")
    return value


class ProjectSpider:
    name = "teamcity_projects"

    def __init__(
        self,
        fetcher: DocumentFetcher,
        packages: PackageFeedSpider,
        *,
        root_uri: Optional[Union[str, httpx.URL]] = None,
        package_filter: Optional[PackageFilter] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.fetcher = fetcher
        self.packages = packages
        self.base = fetcher.base_url
        self.root_uri = root_uri if root_uri is not None else self.base
        self.package_filter = package_filter or packages.package_filter or accept_all
        self.log = log or logger
        self.failures: List[CrawlFailure] = []

    async def _gather_isolated(self, kind: str, items: Iterable[Tuple[str, Awaitable[T]]]) -> List[T]:
        """Await all subtrees concurrently; drop and record the ones that fail."""
        items = list(items)
        results = await asyncio.gather(*(aw for _, aw in items), return_exceptions=True)
        out: List[T] = []
        for (ref_id, _), res in zip(items, results):
            if isinstance(res, asyncio.CancelledError):
                raise res
            if isinstance(res, BaseException):
                self.log.error("Skipping %s %s: %r", kind, ref_id, res, exc_info=res)
                self.failures.append(CrawlFailure(kind=kind, ref_id=ref_id, error=repr(res)))
                continue
            out.append(res)
        return out

    async def project_list(self) -> ET.Element:
        root = await self.fetcher.fetch(self.root_uri)
        return await self.fetcher.fetch(resolve_link(root, ["projects"], self.base))

    async def assemble_projects(self) -> List[Project]:
        """Crawl the whole server. Only a failing root/project list raises."""
        projects = await self.project_list()
        refs = projects.findall("project")
        self.log.info("Found %d projects", len(refs))
        return await self._gather_isolated(
            "project", ((ref.get("id") or "?", self.assemble_project(ref)) for ref in refs)
        )

    async def assemble_project(self, project_ref: ET.Element) -> Project:
        project = await self.fetcher.fetch(link_of(project_ref, self.base))
        container = project.find("buildTypes")
        refs = container.findall("buildType") if container is not None else []
        build_types = await self._gather_isolated(
            "buildType", ((ref.get("id") or "?", self.assemble_build_type(ref)) for ref in refs)
        )
        return Project(
            id=_required(project_ref, "id"),
            name=_required(project_ref, "name"),
            build_types={bt.id: bt for bt in build_types},
        )

    async def assemble_build_type(self, build_type_ref: ET.Element) -> BuildType:
        build_type = await self.fetcher.fetch(link_of(build_type_ref, self.base))
        builds_uri = resolve_link(build_type, ["builds"], self.base).copy_with(query=SUCCESSFUL_BUILDS_QUERY)
        successful = await self.fetcher.fetch(builds_uri)
        # Newest first; only the latest successful build matters.
        latest = successful.findall("build")[:1]
        builds = await self._gather_isolated(
            "build", ((ref.get("id") or "?", self.assemble_build(ref)) for ref in latest)
        )
        return BuildType(
            id=_required(build_type_ref, "id"),
            name=_required(build_type_ref, "name"),
            builds={b.id: b for b in builds},
        )

    def manifest_uri(self, build_type_id: str, build_id: str) -> httpx.URL:
        return href_to_uri(self.base, MANIFEST_PATH.format(build_type_id=build_type_id, build_id=build_id))

    async def assemble_build(self, build_ref: ET.Element) -> Build:
        build_id = _required(build_ref, "id")
        manifest = await self.fetcher.fetch_or_empty(
            self.manifest_uri(_required(build_ref, "buildTypeId"), build_id)
        )
        consumed_ids = self.manifest_packages(manifest, "packages")
        created_ids = self.manifest_packages(manifest, "created")
        resolved = await asyncio.gather(
            *(self.packages.resolve_dependencies(pid) for pid in consumed_ids + created_ids)
        )
        deps_by_id: Dict[PackageVersionId, Tuple[PackageVersionId, ...]] = dict(
            zip(consumed_ids + created_ids, resolved)
        )
        return Build(
            id=build_id,
            number=_required(build_ref, "number"),
            created_packages={pid: Package(pid, deps_by_id[pid]) for pid in created_ids},
            dependencies={pid: Package(pid, deps_by_id[pid]) for pid in consumed_ids},
        )

    def manifest_packages(self, manifest: ET.Element, relation: str) -> List[PackageVersionId]:
        group = manifest.find(relation)
        if group is None:
            return []
        ids = (PackageVersionId.from_element(p) for p in group.findall("package"))
        # dict keeps first-seen order while collapsing repeated identities
        return list(dict.fromkeys(pid for pid in ids if self.package_filter(pid)))
