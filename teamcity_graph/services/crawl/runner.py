from __future__ import annotations

import argparse
import logging
import os
import sys
import xml.etree.ElementTree as ET
from typing import Optional

import httpx

from teamcity_graph.services.graph_service import CrawlResult, CrawlTimeout, crawl_sync
from teamcity_graph.services.teamcity_client import TeamCitySettings, load_settings

from .base import CrawlError
from .pipeline import edge_records, write_jsonl

logger = logging.getLogger(__name__)


def _add_connection_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--server", help="TeamCity REST root, e.g. http://teamcity/app/rest/server")
    p.add_argument("--user", help="TeamCity user name")
    p.add_argument("--password", help="TeamCity password")
    p.add_argument("--feed", help="NuGet feed root (FeedService.svc)")
    p.add_argument("--prefix", help="Only keep packages whose id starts with this")
    p.add_argument("--timeout", type=float, help="Crawl-wide deadline in seconds")
    p.add_argument("-v", "--verbose", action="store_true", help="Log every request")


def _settings_from_args(args: argparse.Namespace) -> TeamCitySettings:
    return load_settings().with_overrides(
        server_uri=args.server,
        user=args.user,
        password=args.password,
        feed_uri=args.feed,
        package_prefix=args.prefix,
        crawl_timeout=args.timeout,
    )


def _report_failures(result: CrawlResult) -> None:
    for failure in result.failures:
        print(f"skipped {failure.kind} {failure.ref_id}: {failure.error}", file=sys.stderr)


def run_dot(settings: TeamCitySettings, *, out: Optional[str] = None) -> CrawlResult:
    result = crawl_sync(settings)
    dot = result.to_dot()
    if out:
        with open(out, "w", encoding="utf-8") as f:
            f.write(dot)
        print(out)
    else:
        sys.stdout.write(dot)
    return result


def run_edges(settings: TeamCitySettings, *, out_dir: str) -> CrawlResult:
    result = crawl_sync(settings)
    records = edge_records(result.edges, server=settings.server_uri)
    path = write_jsonl(records, out_dir=out_dir, filename_prefix="edges")
    print(path)
    return result


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description="Graph NuGet package flow between TeamCity build configurations")
    sub = parser.add_subparsers(dest="cmd", required=True)

    dot = sub.add_parser("dot", help="Crawl and print a Graphviz digraph")
    _add_connection_args(dot)
    dot.add_argument("--out", help="Write the digraph to this file instead of stdout")

    edges = sub.add_parser("edges", help="Crawl and write the edge list as JSONL")
    _add_connection_args(edges)
    default_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", ".."))
    edges.add_argument("--out-dir", default=os.path.join(default_root, "data", "edges"), help="Output directory for JSONL files")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        settings = _settings_from_args(args)
        if args.cmd == "dot":
            result = run_dot(settings, out=args.out)
        elif args.cmd == "edges":
            result = run_edges(settings, out_dir=args.out_dir)
        else:
            parser.error("unknown command")
            return 2
    except (CrawlTimeout, CrawlError, httpx.HTTPError, httpx.InvalidURL, ET.ParseError, RuntimeError) as exc:
        logger.error("Crawl failed: %s", exc)
        return 1

    _report_failures(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
