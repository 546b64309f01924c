"""Link graph storage: immutable snapshots and the store that publishes them."""

from notegraph.graph.snapshot import GraphSnapshot
from notegraph.graph.store import GraphChange, LinkGraphStore

__all__ = [
    "GraphChange",
    "GraphSnapshot",
    "LinkGraphStore",
]
