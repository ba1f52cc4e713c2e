"""Hypermedia link resolution for TeamCity REST documents."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Iterable, Tuple, Union

import httpx

from .base import LinkNotFound


def href_to_uri(base: Union[str, httpx.URL], href: str) -> httpx.URL:
    """Resolve a (usually server-relative) href against the server base address."""
    return httpx.URL(base).join(href)


def navigate(document: ET.Element, path: Iterable[str]) -> ET.Element:
    """Walk child elements by name from the document root, first match only."""
    walked = []
    element = document
    for name in path:
        walked.append(name)
        child = element.find(name)
        if child is None:
            raise LinkNotFound(tuple(walked), f"element <{name}>")
        element = child
    return element


def link_of(element: ET.Element, base: Union[str, httpx.URL], path: Tuple[str, ...] = ()) -> httpx.URL:
    """Absolute URI of ``element``'s ``href``; ``path`` names the element in errors."""
    href = element.get("href")
    if href is None:
        raise LinkNotFound(path or (element.tag,), "href attribute")
    return href_to_uri(base, href)


def resolve_link(document: ET.Element, path: Iterable[str], base: Union[str, httpx.URL]) -> httpx.URL:
    """Return the absolute URI of the ``href`` found at ``path`` inside ``document``.

    Raises LinkNotFound if an intermediate element or the final href is absent.
    """
    path = tuple(path)
    return link_of(navigate(document, path), base, path)
