"""Orchestration of full and incremental indexing from a note source."""

from loguru import logger
from pydantic import BaseModel

from notegraph.domain.relationships import LinkStatistics
from notegraph.graph.store import LinkGraphStore
from notegraph.index_store.base import GraphIndexStore
from notegraph.note_sources.base import NoteSource


class SyncResult(BaseModel):
    total: int = 0
    added: int = 0
    updated: int = 0
    removed: int = 0


class IndexingOrchestrator:
    """Keeps a link graph store in step with a note source.

    ``rebuild`` re-indexes every note in a single write. ``sync`` plays the
    role of the change notifier for folder-backed corpora: it registers new
    and modified notes and removes notes that disappeared from the source.
    """

    def __init__(
        self,
        *,
        source: NoteSource,
        store: LinkGraphStore,
        index_store: GraphIndexStore | None = None,
    ):
        """Initialize the orchestrator with required services.

        Args:
            source: Note source to read notes from
            store: Link graph store to index into
            index_store: Optional persisted index, saved after each run
        """
        self.source = source
        self.store = store
        self.index_store = index_store

    def rebuild(self) -> LinkStatistics:
        """Index every note of the source from scratch."""
        notes = list(self.source.iter_notes())
        logger.info(f"Rebuilding index from {len(notes)} notes")
        self.store.rebuild(notes)
        self._persist()

        stats = self.store.statistics()
        logger.info("Rebuild complete:")
        logger.info(f"  - Notes: {stats.total_notes}")
        logger.info(f"  - Links: {stats.total_links}")
        logger.info(f"  - Broken links: {stats.total_broken_links}")
        logger.info(f"  - Orphans: {stats.orphaned_notes}")
        return stats

    def sync(self) -> SyncResult:
        """Apply changes in the source since the last rebuild or sync."""
        snapshot = self.store.snapshot()
        current_note_ids = self.source.list_note_ids()

        deleted_note_ids = set(snapshot.notes) - current_note_ids
        if deleted_note_ids:
            logger.info(f"Removing {len(deleted_note_ids)} deleted notes...")
            for note_id in sorted(deleted_note_ids):
                self.store.remove_note(note_id)

        result = SyncResult(total=len(current_note_ids), removed=len(deleted_note_ids))
        for note in self.source.iter_notes():
            existing = snapshot.notes.get(note.id)
            if existing is None:
                result.added += 1
            elif existing.modified != note.modified or existing != note:
                result.updated += 1
            else:
                continue
            self.store.register_note(note)

        logger.info(
            f"Sync complete: {result.added} added, {result.updated} updated, "
            f"{result.removed} removed, {result.total} total"
        )
        self._persist()
        return result

    def _persist(self) -> None:
        if self.index_store is None:
            return
        self.index_store.update_from_snapshot(self.store.snapshot())
        self.index_store.save()
