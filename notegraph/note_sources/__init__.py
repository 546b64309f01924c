from notegraph.note_sources.base import NoteSource
from notegraph.note_sources.local import LocalNoteSource

__all__ = ["LocalNoteSource", "NoteSource"]
