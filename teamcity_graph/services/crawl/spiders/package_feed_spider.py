"""NuGet feed spider: resolve the declared dependencies of one package version.

The TeamCity NuGet feed is an OData service. A package entry looks like::

    <entry xmlns="http://www.w3.org/2005/Atom" xmlns:m="..metadata" xmlns:d="..dataservices">
      <m:properties>
        <d:Dependencies>Foo.Core:1.2.0|Bar:2.0:net45|</d:Dependencies>
      </m:properties>
    </entry>

A package whose entry cannot be fetched or parsed is treated as having no
dependencies; the failure is logged and never reaches the crawl.
"""

from __future__ import annotations

import asyncio
import logging
import urllib.parse
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Tuple, Union

import httpx

from ..base import PackageFilter, PackageVersionId, accept_all
from ..fetcher import DocumentFetcher

logger = logging.getLogger(__name__)

METADATA_NS = "http://schemas.microsoft.com/ado/2007/08/dataservices/metadata"
DATASERVICES_NS = "http://schemas.microsoft.com/ado/2007/08/dataservices"


def parse_dependency_string(
    dependencies: Optional[str], package_filter: PackageFilter = accept_all
) -> List[PackageVersionId]:
    """Split a ``|`` separated feed dependency string, dropping empty segments."""
    out: List[PackageVersionId] = []
    for entry in (dependencies or "").split("|"):
        if not entry:
            continue
        pid = PackageVersionId.from_feed_dependency(entry)
        if package_filter(pid):
            out.append(pid)
    return out


def dependency_string_of(entry: ET.Element) -> Optional[str]:
    props = entry.find(f"{{{METADATA_NS}}}properties")
    if props is None:
        raise ValueError("feed entry has no m:properties")
    deps = props.find(f"{{{DATASERVICES_NS}}}Dependencies")
    if deps is None:
        raise ValueError("feed entry has no d:Dependencies")
    return deps.text


class PackageFeedSpider:
    name = "nuget_feed"

    def __init__(
        self,
        fetcher: DocumentFetcher,
        feed_uri: Union[str, httpx.URL],
        *,
        package_filter: PackageFilter = accept_all,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.fetcher = fetcher
        self.feed_uri = str(feed_uri).rstrip("/")
        self.package_filter = package_filter
        self.log = log or logger
        # One lookup per distinct package version per crawl.
        self._pending: Dict[PackageVersionId, "asyncio.Task[Tuple[PackageVersionId, ...]]"] = {}

    def package_uri(self, pid: PackageVersionId) -> str:
        pkg = urllib.parse.quote(pid.id.replace("'", "''"), safe=".-_")
        ver = urllib.parse.quote(pid.version.replace("'", "''"), safe=".-_+")
        return f"{self.feed_uri}/Packages(Id='{pkg}',Version='{ver}')"

    async def resolve_dependencies(self, pid: PackageVersionId) -> Tuple[PackageVersionId, ...]:
        task = self._pending.get(pid)
        if task is None:
            task = asyncio.ensure_future(self._resolve(pid))
            self._pending[pid] = task
        return await task

    async def _resolve(self, pid: PackageVersionId) -> Tuple[PackageVersionId, ...]:
        try:
            entry = await self.fetcher.fetch(self.package_uri(pid))
            return tuple(parse_dependency_string(dependency_string_of(entry), self.package_filter))
        except Exception as exc:
            self.log.warning("Failed to get package %s: %r", pid, exc)
            return ()
