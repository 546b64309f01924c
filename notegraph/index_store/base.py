from typing import Protocol

from notegraph.graph.snapshot import GraphSnapshot
from notegraph.graph.store import LinkGraphStore


class GraphIndexStore(Protocol):
    def update_from_snapshot(self, snapshot: GraphSnapshot) -> None:
        """Replace the stored graph with the contents of a snapshot."""
        ...

    def restore_into(self, store: LinkGraphStore) -> None:
        """Load the stored graph into a link graph store."""
        ...

    def get_all_note_ids(self) -> set[str]:
        """Get all note IDs in the index."""
        ...

    def save(self, filepath: str | None = None) -> None:
        """Save the index to disk."""
        ...

    def clear(self) -> None:
        """Clear all data from the index."""
        ...
