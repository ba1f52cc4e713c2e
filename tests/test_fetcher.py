import asyncio

import httpx
import pytest

from teamcity_graph.services.crawl.fetcher import DocumentFetcher, empty_manifest

BASE = "http://teamcity/app/rest/server"


def _fetcher(status: int, body: str) -> DocumentFetcher:
    def handler(request):
        return httpx.Response(status, text=body)

    return DocumentFetcher(httpx.AsyncClient(base_url=BASE, transport=httpx.MockTransport(handler)))


def test_fetch_parses_document():
    fetcher = _fetcher(200, '<server><projects href="/app/rest/projects"/></server>')
    doc = asyncio.run(fetcher.fetch(BASE))
    assert doc.tag == "server"
    assert doc.find("projects").get("href") == "/app/rest/projects"


def test_fetch_propagates_http_errors():
    fetcher = _fetcher(500, "boom")
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(fetcher.fetch(BASE))


def test_fetch_or_empty_returns_empty_manifest_on_404():
    fetcher = _fetcher(404, "Not found")
    doc = asyncio.run(fetcher.fetch_or_empty("http://teamcity/repository/download/BT/1:id/.teamcity/nuget/nuget.xml"))
    assert doc.tag == "nuget-dependencies"
    assert [child.tag for child in doc] == ["packages", "created", "published"]
    assert all(len(child) == 0 for child in doc)


def test_fetch_or_empty_parses_successful_manifest():
    fetcher = _fetcher(200, '<nuget-dependencies><packages><package id="A" version="1"/></packages><created/><published/></nuget-dependencies>')
    doc = asyncio.run(fetcher.fetch_or_empty("http://teamcity/x.xml"))
    assert doc.find("packages/package").get("id") == "A"


def test_empty_manifest_is_fresh_each_time():
    first = empty_manifest()
    first.find("packages").append(first.makeelement("package", {"id": "X", "version": "1"}))
    assert len(empty_manifest().find("packages")) == 0
