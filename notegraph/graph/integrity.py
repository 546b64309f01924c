"""Consistency checks run on candidate snapshots before they are published."""

from typing import Iterable

from notegraph.errors import GraphInvariantError
from notegraph.graph.snapshot import GraphSnapshot


def check_notes(
    snapshot: GraphSnapshot, note_ids: Iterable[str], removed: Iterable[str] = ()
) -> None:
    """Validate the parts of a snapshot touched by a write.

    Args:
        snapshot: Candidate snapshot
        note_ids: Notes whose outgoing edges were rebuilt
        removed: Notes deleted by the write

    Raises:
        GraphInvariantError: If an edge or incoming entry is inconsistent
    """
    for note_id in note_ids:
        if note_id not in snapshot.notes:
            continue
        for edge in snapshot.edges_from(note_id):
            _check_edge(snapshot, note_id, edge.source, edge.target)
        for source in snapshot.incoming.get(note_id, ()):
            if note_id not in snapshot.out_targets(source):
                raise GraphInvariantError(
                    f"Incoming entry {source} -> {note_id} has no matching edge",
                    {"source": source, "target": note_id},
                )

    for note_id in removed:
        if note_id in snapshot.notes:
            continue
        if note_id in snapshot.incoming or note_id in snapshot.outgoing:
            raise GraphInvariantError(
                f"Removed note {note_id} still has edges", {"note_id": note_id}
            )
        if note_id in snapshot.index:
            raise GraphInvariantError(
                f"Removed note {note_id} is still indexed", {"note_id": note_id}
            )


def check_snapshot(snapshot: GraphSnapshot) -> None:
    """Validate every invariant of a snapshot.

    Raises:
        GraphInvariantError: On the first violation found
    """
    known = set(snapshot.notes)

    for name, mapping in (
        ("references", snapshot.references),
        ("outgoing", snapshot.outgoing),
        ("broken", snapshot.broken),
    ):
        unknown = set(mapping) - known
        if unknown:
            raise GraphInvariantError(
                f"{name} entries for unknown notes: {sorted(unknown)}", {"note_ids": sorted(unknown)}
            )

    if snapshot.index.note_ids() != known:
        raise GraphInvariantError("Lookup index is out of sync with the note set")

    expected_incoming: dict[str, set[str]] = {}
    for note_id, edges in snapshot.outgoing.items():
        for edge in edges:
            _check_edge(snapshot, note_id, edge.source, edge.target)
            expected_incoming.setdefault(edge.target, set()).add(edge.source)

    actual_incoming = {target: set(sources) for target, sources in snapshot.incoming.items()}
    if actual_incoming != expected_incoming:
        raise GraphInvariantError("Incoming index does not match the stored edges")

    for note_id, broken in snapshot.broken.items():
        for reference in broken:
            if reference.source != note_id:
                raise GraphInvariantError(
                    f"Broken reference filed under {note_id} belongs to {reference.source}",
                    {"note_id": note_id},
                )


def _check_edge(snapshot: GraphSnapshot, owner: str, source: str, target: str) -> None:
    if source != owner:
        raise GraphInvariantError(
            f"Edge {source} -> {target} stored under {owner}", {"owner": owner}
        )
    if target not in snapshot.notes:
        raise GraphInvariantError(
            f"Edge {source} -> {target} points to an unknown note",
            {"source": source, "target": target},
        )
    if source not in snapshot.incoming.get(target, ()):
        raise GraphInvariantError(
            f"Edge {source} -> {target} is missing from the incoming index",
            {"source": source, "target": target},
        )
