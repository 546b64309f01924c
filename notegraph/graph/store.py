"""The link graph store: the single writer of graph snapshots."""

import threading
from pathlib import PurePosixPath
from typing import Callable, Iterable, NamedTuple

from loguru import logger

from notegraph.cancellation import CancellationToken
from notegraph.domain.note import NoteRecord
from notegraph.domain.references import Reference
from notegraph.domain.relationships import Backlink, BrokenReference, Edge, LinkStatistics
from notegraph.errors import GraphInvariantError
from notegraph.graph import traversal
from notegraph.graph.integrity import check_notes, check_snapshot
from notegraph.graph.snapshot import GraphSnapshot, SnapshotBuilder
from notegraph.ingestion.reference_parser import ReferenceParser
from notegraph.ingestion.relationship_extraction.corpus_index import reference_keys
from notegraph.ingestion.relationship_extraction.graph_builder import EdgeBuilder
from notegraph.ingestion.relationship_extraction.resolver import ReferenceResolver


class GraphChange(NamedTuple):
    """Notification sent to listeners after a snapshot is published.

    Attributes:
        version: Version of the published snapshot
        changed: Notes whose content, tags or outgoing edges changed
        removed: Notes that no longer exist
        content_changed: Whether any note content was added, changed or removed
    """

    version: int
    changed: frozenset[str]
    removed: frozenset[str]
    content_changed: bool


ChangeListener = Callable[[GraphChange], None]


class LinkGraphStore:
    """Maintains outgoing edges, the incoming index and broken references.

    Every write runs under one lock, builds a new ``GraphSnapshot`` from the
    current one and publishes it with a single reference swap. Readers call
    ``snapshot()`` (or any query method) without locking and always see a
    complete snapshot, possibly one write behind a concurrent writer.
    """

    def __init__(
        self,
        *,
        parser: ReferenceParser | None = None,
        resolver: ReferenceResolver | None = None,
        context_chars: int = 80,
        auto_reresolve: bool = True,
        strict_integrity_checks: bool = False,
    ):
        """Initialize the store.

        Args:
            parser: Reference parser, a default one if omitted
            resolver: Reference resolver, a default one if omitted
            context_chars: Characters of surrounding text kept as edge context
            auto_reresolve: Re-resolve other notes' references when a note appears,
                moves or is retitled
            strict_integrity_checks: Validate the whole candidate snapshot on every write
        """
        self.parser = parser or ReferenceParser()
        self.resolver = resolver or ReferenceResolver()
        self.edge_builder = EdgeBuilder(self.resolver, context_chars=context_chars)
        self.auto_reresolve = auto_reresolve
        self.strict_integrity_checks = strict_integrity_checks

        self._lock = threading.RLock()
        self._snapshot = GraphSnapshot()
        self._listeners: list[ChangeListener] = []

    def snapshot(self) -> GraphSnapshot:
        """Return the current published snapshot."""
        return self._snapshot

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener called after every published write.

        Returns:
            Function that removes the listener again
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # Writes

    def register_note(self, note: NoteRecord) -> None:
        """Add a note or refresh its projection, then index its content."""
        with self._lock:
            builder = SnapshotBuilder(self._snapshot)
            previous_keys = builder.index.lookup_keys(note.id) if note.id in builder.notes else set()

            index_changed = builder.put_note(note)
            self._index_note(builder, note.id)

            touched = {note.id}
            if index_changed and self.auto_reresolve:
                keys = previous_keys | builder.index.lookup_keys(note.id)
                touched |= self._reresolve_dependents(builder, keys, exclude=touched)

            self._publish(builder, touched)

    def update_note_links(self, note_id: str, raw_content: str) -> None:
        """Re-parse a note's content and replace its outgoing edges and broken references.

        Raises:
            UnknownNoteError: If the note has not been registered
        """
        with self._lock:
            note = self._snapshot.note(note_id)
            builder = SnapshotBuilder(self._snapshot)
            builder.put_note(note.model_copy(update={"content": raw_content}))
            self._index_note(builder, note_id)
            self._publish(builder, {note_id})

    def update_note_tags(self, note_id: str, tags: list[str]) -> None:
        """Replace a note's tags.

        Raises:
            UnknownNoteError: If the note has not been registered
        """
        with self._lock:
            note = self._snapshot.note(note_id)
            builder = SnapshotBuilder(self._snapshot)
            builder.put_note(NoteRecord.model_validate({**note.model_dump(), "tags": tags}))
            self._publish(builder, {note_id})

    def remove_note(self, note_id: str) -> None:
        """Remove a note with every edge and broken reference that involves it.

        References from other notes to the removed note become broken
        references of those notes. Unknown ids are ignored.
        """
        with self._lock:
            current = self._snapshot
            if note_id not in current:
                logger.debug(f"Ignoring removal of unknown note {note_id}")
                return

            builder = SnapshotBuilder(current)
            keys = builder.index.lookup_keys(note_id)
            sources = current.in_sources(note_id) - {note_id}

            builder.drop_note(note_id)
            for source in sources:
                self._index_note(builder, source, reparse=False)

            touched = set(sources)
            if self.auto_reresolve:
                touched |= self._reresolve_dependents(builder, keys, exclude=touched)

            self._publish(builder, touched)
            logger.debug(f"Removed note {note_id}, re-resolved {len(touched)} dependent notes")

    def move_note(self, note_id: str, new_path: str, new_title: str | None = None) -> None:
        """Identity-preserving rename: same id, new path and optionally a new title.

        Raises:
            UnknownNoteError: If the note has not been registered
        """
        with self._lock:
            note = self._snapshot.note(note_id)
            folder = str(PurePosixPath(new_path.replace("\\", "/")).parent)
            update = {"path": new_path, "folder_path": "" if folder == "." else folder}
            if new_title is not None:
                update["title"] = new_title
            self.register_note(note.model_copy(update=update))

    def rename_note(self, old_id: str, new_note: NoteRecord) -> None:
        """Identity-changing rename: remove ``old_id`` and create ``new_note`` in one write.

        The old note's content is carried over when ``new_note`` has none.

        Raises:
            UnknownNoteError: If ``old_id`` has not been registered
        """
        with self._lock:
            current = self._snapshot
            old = current.note(old_id)
            if not new_note.content:
                new_note = new_note.model_copy(update={"content": old.content})
            if new_note.id == old_id:
                self.register_note(new_note)
                return

            builder = SnapshotBuilder(current)
            keys = builder.index.lookup_keys(old_id)
            sources = current.in_sources(old_id) - {old_id}

            builder.drop_note(old_id)
            builder.put_note(new_note)
            self._index_note(builder, new_note.id)
            for source in sources - {new_note.id}:
                self._index_note(builder, source, reparse=False)

            touched = {new_note.id} | sources
            if self.auto_reresolve:
                keys |= builder.index.lookup_keys(new_note.id)
                touched |= self._reresolve_dependents(builder, keys, exclude=touched)

            self._publish(builder, touched)
            logger.debug(f"Renamed note {old_id} to {new_note.id}")

    def rebuild(self, notes: Iterable[NoteRecord]) -> None:
        """Replace the whole graph with the given notes in a single write."""
        with self._lock:
            builder = SnapshotBuilder.empty(self._snapshot)
            for note in notes:
                builder.put_note(note)
            for note_id in sorted(builder.notes):
                self._index_note(builder, note_id)
            self._publish(builder, set(builder.notes))
            logger.info(
                f"Rebuilt link graph: {len(builder.notes)} notes, "
                f"{sum(len(edges) for edges in builder.outgoing.values())} edges"
            )

    def restore(
        self,
        notes: Iterable[NoteRecord],
        references: dict[str, list[Reference]],
        edges: Iterable[Edge] = (),
    ) -> None:
        """Load a persisted graph without re-parsing note content.

        Edges are re-resolved from the stored references, so the result is
        consistent with the notes even if the persisted edges were stale.
        Persisted edges only contribute their creation times.
        """
        previous: dict[str, list[Edge]] = {}
        for edge in edges:
            previous.setdefault(edge.source, []).append(edge)

        with self._lock:
            builder = SnapshotBuilder.empty(self._snapshot)
            for note in notes:
                builder.put_note(note)
            for note_id in sorted(builder.notes):
                builder.outgoing[note_id] = tuple(previous.get(note_id, ()))
                builder.references[note_id] = tuple(references.get(note_id, ()))
            # Seed the incoming index from the seeded edges so set_links can diff against it
            builder.incoming = {}
            for note_id, seeded in builder.outgoing.items():
                for target in {edge.target for edge in seeded}:
                    builder.incoming[target] = builder.incoming.get(target, frozenset()) | {note_id}
            for note_id in sorted(builder.notes):
                self._index_note(builder, note_id, reparse=False)
            for target in list(builder.incoming):
                if target not in builder.notes:
                    builder.incoming.pop(target)
            self._publish(builder, set(builder.notes))

    def clear(self) -> None:
        """Remove every note."""
        with self._lock:
            self._publish(SnapshotBuilder.empty(self._snapshot), set())

    # Reads

    def get_backlinks(self, note_id: str) -> list[Backlink]:
        """Notes linking to the note, one entry per source note.

        Raises:
            UnknownNoteError: If the note is not known
        """
        snapshot = self._snapshot
        snapshot.note(note_id)

        by_source: dict[str, list[Edge]] = {}
        for edge in snapshot.edges_to(note_id):
            by_source.setdefault(edge.source, []).append(edge)

        backlinks = []
        for source, edges in by_source.items():
            source_note = snapshot.notes[source]
            first = edges[0]
            backlinks.append(
                Backlink(
                    source=source,
                    source_title=source_note.title,
                    source_path=source_note.path,
                    context=first.context,
                    kind=first.kind,
                    line_number=first.line_number,
                    occurrence_count=len(edges),
                )
            )
        backlinks.sort(key=lambda backlink: (backlink.source_title, backlink.source))
        return backlinks

    def get_outgoing_links(self, note_id: str) -> list[Edge]:
        """Resolved outgoing edges of the note, in order of appearance.

        Raises:
            UnknownNoteError: If the note is not known
        """
        snapshot = self._snapshot
        snapshot.note(note_id)
        return list(snapshot.edges_from(note_id))

    def get_broken_links(self, note_id: str | None = None) -> list[BrokenReference]:
        """Broken references of one note, or of every note when ``note_id`` is None.

        Each entry carries up to five suggested titles close to the unresolved target.
        """
        snapshot = self._snapshot
        if note_id is None:
            sources = sorted(snapshot.broken)
        else:
            snapshot.note(note_id)
            sources = [note_id]

        broken = []
        for source in sources:
            for reference in snapshot.broken_for(source):
                suggestions = self.resolver.suggest(reference.reference.target, snapshot.index)
                broken.append(reference.model_copy(update={"suggestions": tuple(suggestions)}))
        return broken

    def get_orphans(self) -> set[str]:
        return self._snapshot.orphans()

    def find_paths(
        self,
        from_id: str,
        to_id: str,
        max_depth: int = 4,
        *,
        undirected: bool = False,
        limit: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[list[str]]:
        """Simple paths of at most ``max_depth`` hops, shortest first.

        Paths follow edges from source to target unless ``undirected`` is set.
        """
        return traversal.find_paths(
            self._snapshot,
            from_id,
            to_id,
            max_depth,
            undirected=undirected,
            limit=limit,
            cancel_token=cancel_token,
        )

    def detect_disconnected_components(
        self, cancel_token: CancellationToken | None = None
    ) -> list[set[str]]:
        """Connected components of the undirected graph, largest first."""
        return traversal.connected_components(self._snapshot, cancel_token=cancel_token)

    def resolve(self, target: str) -> str | None:
        """Resolve a title, path or id against the current corpus."""
        return self.resolver.resolve(target, self._snapshot.index)

    def statistics(self) -> LinkStatistics:
        snapshot = self._snapshot
        return LinkStatistics(
            total_notes=len(snapshot),
            total_links=sum(len(edges) for edges in snapshot.outgoing.values()),
            total_broken_links=sum(len(broken) for broken in snapshot.broken.values()),
            orphaned_notes=len(snapshot.orphans()),
        )

    def check_integrity(self) -> None:
        """Validate the current snapshot.

        Raises:
            GraphInvariantError: If the snapshot is inconsistent
        """
        check_snapshot(self._snapshot)

    # Internals

    def _index_note(self, builder: SnapshotBuilder, note_id: str, reparse: bool = True) -> bool:
        note = builder.notes[note_id]
        if reparse:
            references: Iterable[Reference] = self.parser.parse(note.content)
        else:
            references = builder.references.get(note_id, ())

        edges, broken = self.edge_builder.build_edges(
            source_id=note_id,
            content=note.content,
            references=list(references),
            index=builder.index,
            previous_edges=builder.outgoing.get(note_id, ()),
        )
        logger.debug(f"Indexed note {note_id}: {len(edges)} edges, {len(broken)} broken references")
        return builder.set_links(note_id, references, edges, broken)

    def _reresolve_dependents(
        self, builder: SnapshotBuilder, keys: set[str], exclude: set[str]
    ) -> set[str]:
        """Re-resolve notes whose references could match any of the lookup keys."""
        dependents = set()
        for source, references in builder.references.items():
            if source in exclude:
                continue
            if any(reference_keys(reference.target) & keys for reference in references):
                dependents.add(source)

        for source in sorted(dependents):
            self._index_note(builder, source, reparse=False)
        return dependents

    def _publish(self, builder: SnapshotBuilder, touched: set[str]) -> None:
        snapshot = builder.build()
        try:
            if self.strict_integrity_checks:
                check_snapshot(snapshot)
            else:
                check_notes(snapshot, touched, builder.removed)
        except GraphInvariantError as e:
            logger.error(f"Discarding write, graph invariant violated: {e}")
            raise

        self._snapshot = snapshot
        change = GraphChange(
            version=snapshot.version,
            changed=frozenset(builder.changed),
            removed=frozenset(builder.removed),
            content_changed=builder.content_changed,
        )
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception(f"Graph change listener failed for version {change.version}")
