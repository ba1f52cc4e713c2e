"""Package graph derived from a finished crawl.

Pure functions over assembled projects; nothing here touches the network.
"""
from .dependencies import (
    Edge,
    build_package_index,
    indirect_dependencies,
    build_edges_for,
    build_edges,
)
from .dot import render_dot

__all__ = [
    # edges
    'Edge','build_package_index','indirect_dependencies','build_edges_for','build_edges',
    # rendering
    'render_dot',
]
