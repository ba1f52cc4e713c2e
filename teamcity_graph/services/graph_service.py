"""Crawl a TeamCity server and derive its package graph.

Entry point shared by the CLI runner and the HTTP API. A crawl is always a full
fresh walk; nothing is cached between calls.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from teamcity_graph.services.crawl.base import CrawlFailure, Project, prefix_filter
from teamcity_graph.services.crawl.fetcher import DocumentFetcher
from teamcity_graph.services.crawl.spiders.package_feed_spider import PackageFeedSpider
from teamcity_graph.services.crawl.spiders.project_spider import ProjectSpider
from teamcity_graph.services.graph import Edge, build_edges, render_dot
from teamcity_graph.services.teamcity_client import TeamCitySettings, create_client

logger = logging.getLogger(__name__)


class CrawlTimeout(Exception):
    """The crawl-wide deadline expired; every in-flight fetch was cancelled."""


@dataclass
class CrawlResult:
    projects: List[Project]
    edges: List[Edge]
    failures: List[CrawlFailure] = field(default_factory=list)

    def to_dot(self) -> str:
        return render_dot(self.projects, self.edges)


async def crawl(
    settings: TeamCitySettings,
    *,
    client: Optional[httpx.AsyncClient] = None,
    log: Optional[logging.Logger] = None,
) -> CrawlResult:
    """Crawl projects, build types and packages, then compute the edges.

    ``client`` is used as-is when given (and left open); otherwise a client is
    created from ``settings`` for the duration of the crawl.
    """
    log = log or logger
    if client is None:
        async with create_client(settings) as owned:
            return await crawl(settings, client=owned, log=log)

    package_filter = prefix_filter(settings.package_prefix)
    fetcher = DocumentFetcher(client, log=log)
    packages = PackageFeedSpider(fetcher, settings.resolved_feed_uri, package_filter=package_filter, log=log)
    spider = ProjectSpider(fetcher, packages, root_uri=settings.server_uri, log=log)

    try:
        projects = await asyncio.wait_for(spider.assemble_projects(), timeout=settings.crawl_timeout)
    except asyncio.TimeoutError:
        raise CrawlTimeout(f"Crawl of {settings.server_uri} exceeded {settings.crawl_timeout}s") from None

    edges = build_edges(projects)
    log.info(
        "Crawled %d projects, %d edges, %d failed subtrees",
        len(projects), len(edges), len(spider.failures),
    )
    return CrawlResult(projects=projects, edges=edges, failures=list(spider.failures))


def crawl_sync(settings: TeamCitySettings) -> CrawlResult:
    return asyncio.run(crawl(settings))
