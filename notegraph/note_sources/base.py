from typing import Iterator, Protocol

from notegraph.domain.note import NoteRecord


class NoteSource(Protocol):
    """The note service that owns note content, titles and paths."""

    def get_note(self, note_id: str) -> NoteRecord | None:
        """Get a note by its ID."""
        ...

    def list_note_ids(self) -> set[str]:
        """Get all note IDs currently present in the source."""
        ...

    def iter_notes(self) -> Iterator[NoteRecord]:
        """Iterate over every note in the source."""
        ...
