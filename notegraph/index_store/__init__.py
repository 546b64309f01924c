from notegraph.index_store.base import GraphIndexStore
from notegraph.index_store.local import LocalGraphIndexStore

__all__ = ["GraphIndexStore", "LocalGraphIndexStore"]
