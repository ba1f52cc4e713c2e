import asyncio
import logging

from teamcity_graph.services.crawl.base import PackageVersionId, prefix_filter
from teamcity_graph.services.crawl.fetcher import DocumentFetcher
from teamcity_graph.services.crawl.spiders.package_feed_spider import (
    PackageFeedSpider,
    parse_dependency_string,
)

from conftest import FEED_PATH


def test_parse_dependency_string_drops_trailing_empty_segment():
    assert parse_dependency_string("A:1.0|B:2.0|") == [PackageVersionId("A", "1.0"), PackageVersionId("B", "2.0")]


def test_parse_dependency_string_empty():
    assert parse_dependency_string("") == []
    assert parse_dependency_string(None) == []


def test_parse_dependency_string_ignores_target_framework():
    assert parse_dependency_string("A:[1.0,2.0):net45||B:3.1") == [
        PackageVersionId("A", "[1.0,2.0)"),
        PackageVersionId("B", "3.1"),
    ]


def test_parse_dependency_string_applies_filter():
    parsed = parse_dependency_string("Acme.A:1.0|Other:2.0|Acme.B:1.1", prefix_filter("Acme."))
    assert [p.id for p in parsed] == ["Acme.A", "Acme.B"]


def _spider(teamcity, **kwargs):
    fetcher = DocumentFetcher(teamcity.client())
    return PackageFeedSpider(fetcher, "http://teamcity" + FEED_PATH, **kwargs)


def test_resolve_dependencies_from_feed(teamcity):
    teamcity.package("Acme.App", "2.0", "Acme.Core:1.0|Newtonsoft.Json:13.0.1:net45|")
    spider = _spider(teamcity, package_filter=prefix_filter("Acme."))

    deps = asyncio.run(spider.resolve_dependencies(PackageVersionId("Acme.App", "2.0")))

    assert deps == (PackageVersionId("Acme.Core", "1.0"),)


def test_feed_failure_yields_no_dependencies(teamcity, caplog):
    teamcity.package("Acme.Broken", "1.0", status=500)
    spider = _spider(teamcity)

    with caplog.at_level(logging.WARNING):
        deps = asyncio.run(spider.resolve_dependencies(PackageVersionId("Acme.Broken", "1.0")))

    assert "Failed to get package Id: Acme.Broken, Version: 1.0" in caplog.text
    record = next(r for r in caplog.records if r.levelno == logging.WARNING)
    assert record.args[0] == PackageVersionId("Acme.Broken", "1.0")
    assert deps == ()


def test_missing_and_malformed_entries_yield_no_dependencies(teamcity):
    teamcity.add(f"{FEED_PATH}/Packages(Id='Acme.Odd',Version='1.0')", "<entry><title>no properties</title></entry>")
    teamcity.package("Acme.Bad", "1.0", "NoVersionHere|")
    spider = _spider(teamcity)

    async def go():
        return await asyncio.gather(
            spider.resolve_dependencies(PackageVersionId("Acme.Odd", "1.0")),
            spider.resolve_dependencies(PackageVersionId("Acme.Bad", "1.0")),
            spider.resolve_dependencies(PackageVersionId("Acme.Missing", "1.0")),
        )

    assert asyncio.run(go()) == [(), (), ()]


def test_each_package_version_fetched_once(teamcity):
    teamcity.package("Acme.Core", "1.0", "Acme.Base:1.0")
    spider = _spider(teamcity)
    pid = PackageVersionId("Acme.Core", "1.0")

    async def go():
        return await asyncio.gather(*(spider.resolve_dependencies(PackageVersionId(pid.id, pid.version)) for _ in range(5)))

    results = asyncio.run(go())
    assert all(r == (PackageVersionId("Acme.Base", "1.0"),) for r in results)
    assert len(teamcity.feed_requests()) == 1
