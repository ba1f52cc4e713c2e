import asyncio
from typing import Dict, Iterable, List, Sequence, Tuple
from xml.sax.saxutils import quoteattr

import httpx
import pytest

from teamcity_graph.services.graph_service import crawl
from teamcity_graph.services.teamcity_client import TeamCitySettings

SERVER = "http://teamcity/app/rest/server"
FEED_PATH = "/guestAuth/app/nuget/v1/FeedService.svc"


def feed_entry(dependencies: str) -> str:
    return f"""
<entry xmlns="http://www.w3.org/2005/Atom"
       xmlns:m="http://schemas.microsoft.com/ado/2007/08/dataservices/metadata"
       xmlns:d="http://schemas.microsoft.com/ado/2007/08/dataservices">
  <title type="text">pkg</title>
  <m:properties>
    <d:Dependencies>{dependencies}</d:Dependencies>
  </m:properties>
</entry>
""".strip()


def manifest(consumed: Iterable[Tuple[str, str]] = (), created: Iterable[Tuple[str, str]] = ()) -> str:
    def group(items):
        return "".join(f'<package id={quoteattr(i)} version={quoteattr(v)}/>' for i, v in items)

    return (
        "<nuget-dependencies>"
        f"<packages>{group(consumed)}</packages>"
        f"<created>{group(created)}</created>"
        "<published/>"
        "</nuget-dependencies>"
    )


class FakeTeamCity:
    """In-memory TeamCity REST API served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Tuple[int, str]] = {}
        self.requests: List[httpx.URL] = []
        self.projects: List[Tuple[str, str]] = []
        self.delay = 0.0
        self.add("/app/rest/server", '<server version="2024.1"><projects href="/app/rest/projects"/></server>')

    def add(self, path: str, body: str, *, status: int = 200, query: str = "") -> None:
        self.routes[(path, query)] = (status, body)

    def project(self, pid: str, name: str, build_types: Sequence[Tuple[str, str]] = (), *, status: int = 200) -> None:
        self.projects.append((pid, name))
        refs = "".join(
            f'<buildType id="{bt}" name="{bt_name}" projectId="{pid}" href="/app/rest/buildTypes/id:{bt}"/>'
            for bt, bt_name in build_types
        )
        self.add(
            f"/app/rest/projects/id:{pid}",
            f'<project id="{pid}" name="{name}"><buildTypes count="{len(build_types)}">{refs}</buildTypes></project>',
            status=status,
        )

    def build_type(self, bt: str, build_ids: Sequence[str] = (), *, builds_link: bool = True) -> None:
        link = f'<builds href="/app/rest/buildTypes/id:{bt}/builds/"/>' if builds_link else ""
        self.add(f"/app/rest/buildTypes/id:{bt}", f'<buildType id="{bt}">{link}</buildType>')
        refs = "".join(
            f'<build id="{b}" number="{n}" status="SUCCESS" buildTypeId="{bt}" href="/app/rest/builds/id:{b}"/>'
            for n, b in enumerate(build_ids, start=1)
        )
        self.add(f"/app/rest/buildTypes/id:{bt}/builds/", f'<builds count="{len(build_ids)}">{refs}</builds>', query="status=SUCCESS")

    def manifest(self, bt: str, build_id: str, consumed=(), created=(), *, status: int = 200) -> None:
        self.add(f"/repository/download/{bt}/{build_id}:id/.teamcity/nuget/nuget.xml", manifest(consumed, created), status=status)

    def package(self, pid: str, version: str, dependencies: str = "", *, status: int = 200) -> None:
        self.add(f"{FEED_PATH}/Packages(Id='{pid}',Version='{version}')", feed_entry(dependencies), status=status)

    def feed_requests(self) -> List[str]:
        return [u.path for u in self.requests if u.path.startswith(FEED_PATH)]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url)
        if self.delay:
            await asyncio.sleep(self.delay)
        path = request.url.path
        query = request.url.query.decode()
        if path == "/app/rest/projects":
            refs = "".join(
                f'<project id="{pid}" name="{name}" href="/app/rest/projects/id:{pid}"/>' for pid, name in self.projects
            )
            return httpx.Response(200, text=f'<projects count="{len(self.projects)}">{refs}</projects>')
        status, body = self.routes.get((path, query), (404, "Not found"))
        return httpx.Response(status, text=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=SERVER, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def teamcity() -> FakeTeamCity:
    return FakeTeamCity()


@pytest.fixture
def run_crawl(teamcity):
    def _run(prefix: str = "", crawl_timeout=None):
        settings = TeamCitySettings(server_uri=SERVER, package_prefix=prefix, crawl_timeout=crawl_timeout)

        async def go():
            async with teamcity.client() as client:
                return await crawl(settings, client=client)

        return asyncio.run(go())

    return _run
