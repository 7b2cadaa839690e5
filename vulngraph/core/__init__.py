"""Core app configuration and graph store."""

from vulngraph.core.config import get_settings, settings
from vulngraph.core.graph_store import (
    GraphStore,
    GraphStoreConfigError,
    GraphStoreError,
    get_graph_store,
)

__all__ = [
    "GraphStore",
    "GraphStoreConfigError",
    "GraphStoreError",
    "get_graph_store",
    "get_settings",
    "settings",
]
