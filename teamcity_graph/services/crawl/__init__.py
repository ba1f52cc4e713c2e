"""TeamCity crawling subsystem.

Structure:
- base.py: entity types (projects, build types, builds, packages) and errors
- links.py: href navigation inside REST documents
- fetcher.py: GET + XML parse, empty-manifest fallback
- spiders/: project hierarchy and NuGet feed walkers
- pipeline.py: dedupe + JSONL writer for edge exports
- runner.py: CLI entrypoint

Uses httpx (AsyncClient) + xml.etree for parsing; all fetches of one crawl share
a single client.
"""

__all__ = [
    "base",
    "links",
    "fetcher",
    "pipeline",
    "runner",
]
