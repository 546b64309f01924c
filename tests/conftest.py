import tempfile
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from notegraph.api import create_app
from notegraph.domain.note import NoteRecord
from notegraph.graph.store import LinkGraphStore
from notegraph.service import KnowledgeIndex
from tests.fakes import FakeNoteSource, make_note


@pytest.fixture
def store() -> LinkGraphStore:
    return LinkGraphStore(strict_integrity_checks=True)


@pytest.fixture
def scenario_notes() -> list[NoteRecord]:
    """A links to B (aliased) and C (anchored), D stands alone."""
    return [
        make_note("A", "Alpha", "Alpha links to [[Beta|the beta note]] and [[Gamma#Details]]."),
        make_note("B", "Beta", "Beta has no links."),
        make_note("C", "Gamma", "# Details\nGamma content."),
        make_note("D", "Delta", "Delta is on its own."),
    ]


@pytest.fixture
def scenario_store(store: LinkGraphStore, scenario_notes: list[NoteRecord]) -> LinkGraphStore:
    for note in scenario_notes:
        store.register_note(note)
    return store


@pytest.fixture
def topic_notes() -> list[NoteRecord]:
    """Two groups of notes on unrelated topics plus one note linking inside each group."""
    return [
        make_note(
            "py1",
            "Python Basics",
            "Python programming uses functions, classes and modules. See [[Python Typing]].",
            tags=["python", "programming"],
        ),
        make_note(
            "py2",
            "Python Typing",
            "Python programming with type hints makes functions and classes clearer.",
            tags=["python", "programming"],
        ),
        make_note(
            "py3",
            "Python Packaging",
            "Python programming modules are packaged and published as libraries.",
            tags=["python", "programming"],
        ),
        make_note(
            "gd1",
            "Tomato Garden",
            "Gardening tomatoes needs rich soil, sunlight and regular watering. See [[Soil Care]].",
            tags=["garden", "plants"],
        ),
        make_note(
            "gd2",
            "Soil Care",
            "Gardening soil needs compost, watering and mulch for healthy tomatoes.",
            tags=["garden", "plants"],
        ),
        make_note(
            "gd3",
            "Garden Pests",
            "Gardening pests damage tomatoes; healthy soil and watering reduce them.",
            tags=["garden", "plants"],
        ),
    ]


@pytest.fixture
def knowledge_index(topic_notes: list[NoteRecord]) -> Generator[KnowledgeIndex, None, None]:
    with KnowledgeIndex(store=LinkGraphStore(strict_integrity_checks=True)) as index:
        index.store.rebuild(topic_notes)
        yield index


@pytest.fixture
def fake_note_source(scenario_notes: list[NoteRecord]) -> FakeNoteSource:
    return FakeNoteSource({note.id: note for note in scenario_notes})


@pytest.fixture
def test_client(knowledge_index: KnowledgeIndex) -> TestClient:
    """Create test client backed by an in-memory knowledge index."""
    app = create_app(index=knowledge_index, analysis_timeout=10.0)
    return TestClient(app)


@pytest.fixture
def temp_notes_base() -> Generator[Path, None, None]:
    """Create a temporary notes directory structure
    used when testing the reading and indexing of notes.
    """
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def notes_directory(temp_notes_base: Path) -> Path:
    """Create notes subdirectory."""
    notes_dir = temp_notes_base / "notes"
    notes_dir.mkdir()
    return notes_dir
