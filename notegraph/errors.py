"""Exception hierarchy for the indexing engine.

Parse anomalies and unresolved references are not errors: the parser skips
malformed syntax and the store records broken references. Only the cases
below are raised.
"""


class NoteGraphError(Exception):
    """Base exception for all notegraph errors."""

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        return self.message


class UnknownNoteError(NoteGraphError, KeyError):
    """Raised when an operation names a note the corpus does not know."""

    def __init__(self, note_id: str):
        super().__init__(f"Unknown note: {note_id}", {"note_id": note_id})
        self.note_id = note_id


class GraphInvariantError(NoteGraphError, RuntimeError):
    """Raised when the graph would become internally inconsistent.

    This is a programming error. The write that triggered it is discarded and
    the previously published snapshot stays current.
    """


class OperationCancelled(NoteGraphError):
    """Raised when a long-running read-only computation is cancelled."""
