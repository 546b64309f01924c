"""Immutable graph snapshots and the builder used to derive new ones.

A snapshot is never mutated after it is published. Writers copy the top-level
maps into a ``SnapshotBuilder``, replace per-note entries and build a new
snapshot, which the store publishes with a single reference swap.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

from notegraph.domain.note import NoteRecord
from notegraph.domain.references import Reference
from notegraph.domain.relationships import BrokenReference, Edge
from notegraph.errors import UnknownNoteError
from notegraph.ingestion.relationship_extraction.corpus_index import CorpusIndex


def _empty() -> Mapping:
    return MappingProxyType({})


@dataclass(frozen=True)
class GraphSnapshot:
    """A consistent, read-only view of the whole link graph.

    Attributes:
        notes: Note projections by id
        references: Parsed references per note, in order of appearance
        outgoing: Resolved outgoing edges per note
        incoming: Ids of notes with at least one edge into the key note
        broken: Unresolved references per note
        index: Lookup index the edges were resolved against
        version: Monotonic write counter
        content_generation: Bumped whenever any note's content is added, changed or removed
        note_versions: Version at which each note's derived data last changed
    """

    notes: Mapping[str, NoteRecord] = field(default_factory=_empty)
    references: Mapping[str, tuple[Reference, ...]] = field(default_factory=_empty)
    outgoing: Mapping[str, tuple[Edge, ...]] = field(default_factory=_empty)
    incoming: Mapping[str, frozenset[str]] = field(default_factory=_empty)
    broken: Mapping[str, tuple[BrokenReference, ...]] = field(default_factory=_empty)
    index: CorpusIndex = field(default_factory=CorpusIndex)
    version: int = 0
    content_generation: int = 0
    note_versions: Mapping[str, int] = field(default_factory=_empty)

    def __contains__(self, note_id: object) -> bool:
        return note_id in self.notes

    def __len__(self) -> int:
        return len(self.notes)

    def note(self, note_id: str) -> NoteRecord:
        try:
            return self.notes[note_id]
        except KeyError:
            raise UnknownNoteError(note_id) from None

    def note_ids(self) -> list[str]:
        return sorted(self.notes)

    def note_version(self, note_id: str) -> int:
        return self.note_versions.get(note_id, -1)

    def edges_from(self, note_id: str) -> tuple[Edge, ...]:
        return self.outgoing.get(note_id, ())

    def edges_to(self, note_id: str) -> list[Edge]:
        """Edges whose target is the note, derived from the stored outgoing edges."""
        edges = []
        for source in sorted(self.incoming.get(note_id, ())):
            edges.extend(edge for edge in self.edges_from(source) if edge.target == note_id)
        return edges

    def out_targets(self, note_id: str) -> set[str]:
        return {edge.target for edge in self.edges_from(note_id)}

    def in_sources(self, note_id: str) -> set[str]:
        return {edge.source for edge in self.edges_to(note_id)}

    def neighbors(self, note_id: str) -> set[str]:
        """Notes linked to or from the note, ignoring direction and self-links."""
        return (self.out_targets(note_id) | self.in_sources(note_id)) - {note_id}

    def linked(self, a: str, b: str) -> bool:
        """Whether an edge exists between the two notes in either direction."""
        return b in self.out_targets(a) or a in self.out_targets(b)

    def broken_for(self, note_id: str) -> tuple[BrokenReference, ...]:
        return self.broken.get(note_id, ())

    def all_edges(self) -> Iterable[Edge]:
        for note_id in sorted(self.outgoing):
            yield from self.outgoing[note_id]

    def orphans(self) -> set[str]:
        """Notes with no resolved edge in either direction."""
        return {
            note_id
            for note_id in self.notes
            if not self.outgoing.get(note_id) and not self.incoming.get(note_id)
        }


class SnapshotBuilder:
    """Mutable working copy of a snapshot used inside a single write."""

    def __init__(self, base: GraphSnapshot):
        self.base = base
        self.notes = dict(base.notes)
        self.references = dict(base.references)
        self.outgoing = dict(base.outgoing)
        self.incoming = dict(base.incoming)
        self.broken = dict(base.broken)
        self.note_versions = dict(base.note_versions)
        self.index = base.index
        self.version = base.version + 1
        self.content_changed = False
        self.changed: set[str] = set()
        self.removed: set[str] = set()

    @classmethod
    def empty(cls, base: GraphSnapshot) -> "SnapshotBuilder":
        """A builder that replaces everything while continuing the base's counters."""
        builder = cls(GraphSnapshot(version=base.version, content_generation=base.content_generation))
        builder.removed = set(base.notes)
        builder.content_changed = bool(base.notes)
        return builder

    def put_note(self, note: NoteRecord) -> bool:
        """Insert or replace a note projection.

        Returns:
            True if the note's lookup entry (title, path or modification time) changed
        """
        previous = self.notes.get(note.id)
        self.notes[note.id] = note
        self.removed.discard(note.id)

        if previous is None or previous.content != note.content:
            self.content_changed = True
        if previous is None or previous.content != note.content or previous.tags != note.tags:
            self._mark(note.id)

        index_changed = previous is None or (
            (previous.title, previous.path, previous.modified)
            != (note.title, note.path, note.modified)
        )
        if index_changed:
            self.index = self.index.with_note(note)
        return index_changed

    def set_links(
        self,
        note_id: str,
        references: Iterable[Reference],
        edges: Iterable[Edge],
        broken: Iterable[BrokenReference],
    ) -> bool:
        """Replace a note's references, outgoing edges and broken references.

        Returns:
            True if the outgoing edges changed
        """
        old_edges = self.outgoing.get(note_id, ())
        new_edges = tuple(edges)

        old_targets = {edge.target for edge in old_edges}
        new_targets = {edge.target for edge in new_edges}
        for target in old_targets - new_targets:
            self._unlink(target, note_id)
        for target in new_targets - old_targets:
            self.incoming[target] = self.incoming.get(target, frozenset()) | {note_id}

        self.references[note_id] = tuple(references)
        self.outgoing[note_id] = new_edges
        self.broken[note_id] = tuple(broken)

        edges_changed = old_edges != new_edges
        if edges_changed:
            self._mark(note_id)
        return edges_changed

    def drop_note(self, note_id: str) -> None:
        """Remove a note together with every edge where it is source or target."""
        if note_id not in self.notes:
            return

        for target in {edge.target for edge in self.outgoing.get(note_id, ())}:
            self._unlink(target, note_id)

        for source in self.incoming.pop(note_id, frozenset()):
            if source == note_id:
                continue
            remaining = tuple(edge for edge in self.outgoing.get(source, ()) if edge.target != note_id)
            self.outgoing[source] = remaining
            self._mark(source)

        del self.notes[note_id]
        self.references.pop(note_id, None)
        self.outgoing.pop(note_id, None)
        self.broken.pop(note_id, None)
        self.note_versions.pop(note_id, None)
        self.changed.discard(note_id)
        self.removed.add(note_id)
        self.index = self.index.without_note(note_id)
        self.content_changed = True

    def build(self) -> GraphSnapshot:
        return GraphSnapshot(
            notes=MappingProxyType(self.notes),
            references=MappingProxyType(self.references),
            outgoing=MappingProxyType(self.outgoing),
            incoming=MappingProxyType(self.incoming),
            broken=MappingProxyType(self.broken),
            index=self.index,
            version=self.version,
            content_generation=self.base.content_generation + (1 if self.content_changed else 0),
            note_versions=MappingProxyType(self.note_versions),
        )

    def _unlink(self, target: str, source: str) -> None:
        remaining = self.incoming.get(target, frozenset()) - {source}
        if remaining:
            self.incoming[target] = remaining
        else:
            self.incoming.pop(target, None)

    def _mark(self, note_id: str) -> None:
        self.changed.add(note_id)
        self.note_versions[note_id] = self.version
