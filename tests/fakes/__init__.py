from tests.fakes.fake_note_source import FakeNoteSource, make_note

__all__ = ["FakeNoteSource", "make_note"]
