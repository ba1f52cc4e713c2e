from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Optional, Union

import httpx

logger = logging.getLogger(__name__)


def empty_manifest() -> ET.Element:
    """The manifest of a build without any NuGet activity."""
    root = ET.Element("nuget-dependencies")
    for name in ("packages", "created", "published"):
        ET.SubElement(root, name)
    return root


class DocumentFetcher:
    """GET a URI on the shared client and parse the body as XML.

    The client is shared by every concurrent fetch of a crawl; httpx pools
    connections and needs no external locking.
    """

    def __init__(self, client: httpx.AsyncClient, *, log: Optional[logging.Logger] = None) -> None:
        self.client = client
        self.log = log or logger

    @property
    def base_url(self) -> httpx.URL:
        return self.client.base_url

    async def _get(self, uri: Union[str, httpx.URL]) -> httpx.Response:
        self.log.debug("GET %s", uri)
        return await self.client.get(uri)

    async def fetch(self, uri: Union[str, httpx.URL]) -> ET.Element:
        """Fetch and parse; transport, status and parse errors propagate."""
        resp = await self._get(uri)
        resp.raise_for_status()
        return ET.fromstring(resp.content)

    async def fetch_or_empty(self, uri: Union[str, httpx.URL]) -> ET.Element:
        """Like fetch(), but a non-success status yields the empty manifest.

        Only meant for the package manifest download, which answers 404 for
        builds that never touched NuGet.
        """
        resp = await self._get(uri)
        if not resp.is_success:
            self.log.debug("No package manifest at %s (HTTP %s)", uri, resp.status_code)
            return empty_manifest()
        return ET.fromstring(resp.content)
