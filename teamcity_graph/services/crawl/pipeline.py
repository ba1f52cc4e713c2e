from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from typing import Dict, Iterable, List

from .base import canonical_json, sha256_hexdigest


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def edge_records(edges: Iterable, *, server: str) -> List[Dict]:
    """Normalize (source, target) pairs into flat export records."""
    return [{"source": s, "target": t, "meta_server": server} for s, t in edges]


def _content_hash(rec: Dict) -> str:
    """Hash of the record's own fields, cached on it as ``meta_content_hash``."""
    if not rec.get("meta_content_hash"):
        rec["meta_content_hash"] = sha256_hexdigest(canonical_json(rec))
    return rec["meta_content_hash"]


def write_jsonl(records: Iterable[Dict], out_dir: str, filename_prefix: str) -> str:
    """Write one JSON object per line to ``<out_dir>/<prefix>-<UTC stamp>.jsonl``.

    An edge emitted by several builds is written once; records are keyed by
    content hash and the first occurrence wins. Returns the file path.
    """
    ensure_dir(out_dir)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    path = os.path.join(out_dir, f"{filename_prefix}-{stamp}.jsonl")

    unique: Dict[str, Dict] = {}
    for rec in records:
        unique.setdefault(_content_hash(rec), rec)
    with open(path, "a", encoding="utf-8") as f:
        f.writelines(json.dumps(rec, ensure_ascii=False) + "\n" for rec in unique.values())
    return path
