"""Tests for the link graph store."""

import random

import pytest

from notegraph.domain.relationships import EdgeKind
from notegraph.errors import GraphInvariantError, UnknownNoteError
from notegraph.graph.snapshot import GraphSnapshot
from notegraph.graph.store import GraphChange, LinkGraphStore
from tests.fakes import make_note


def assert_backlinks_match_edges(store: LinkGraphStore) -> None:
    snapshot = store.snapshot()
    for note_id in snapshot.notes:
        expected = {edge.source for edge in snapshot.all_edges() if edge.target == note_id}
        assert {backlink.source for backlink in store.get_backlinks(note_id)} == expected


def test_scenario_alias_anchor_and_orphan(scenario_store: LinkGraphStore) -> None:
    store = scenario_store

    assert [b.source for b in store.get_backlinks("B")] == ["A"]
    assert [b.source for b in store.get_backlinks("C")] == ["A"]
    assert store.get_backlinks("A") == []
    assert store.get_orphans() == {"D"}

    outgoing = store.get_outgoing_links("A")
    assert [edge.target for edge in outgoing] == ["B", "C"]
    assert all(edge.kind == EdgeKind.REFERENCE for edge in outgoing)
    assert "[[Beta|the beta note]]" in outgoing[0].context


def test_backlink_details(scenario_store: LinkGraphStore) -> None:
    (backlink,) = scenario_store.get_backlinks("B")

    assert backlink.source_title == "Alpha"
    assert backlink.source_path == "A.md"
    assert backlink.line_number == 1
    assert backlink.occurrence_count == 1


def test_repeated_reference_in_different_contexts(store: LinkGraphStore) -> None:
    store.register_note(make_note("T", "Target"))
    content = "First mention of [[Target]].\n" + "filler " * 40 + "\nSecond mention of [[Target]]."
    store.register_note(make_note("S", "Source", content))

    (backlink,) = store.get_backlinks("T")
    assert backlink.occurrence_count == 2
    assert len(store.get_outgoing_links("S")) == 2


def test_markdown_links_resolve_by_path_and_stem(store: LinkGraphStore) -> None:
    store.register_note(make_note("G", "Guide", path="docs/guide.md"))
    store.register_note(make_note("P", "Plan", path="projects/plan.md"))
    store.register_note(
        make_note(
            "S",
            "Source",
            "Read [the guide](./docs/guide.md), [plan](../projects/plan.md), "
            "[site](https://example.com/docs/guide.md) and [later](missing.md).",
        )
    )

    assert [b.source for b in store.get_backlinks("G")] == ["S"]
    assert [b.source for b in store.get_backlinks("P")] == ["S"]
    (broken,) = store.get_broken_links("S")
    assert broken.reference.target == "missing.md"
    assert broken.reference.is_markdown


def test_broken_reference_repaired_after_target_created(store: LinkGraphStore) -> None:
    store.register_note(make_note("A", "Alpha", "Waiting for [[Missing Note]]."))

    (broken,) = store.get_broken_links("A")
    assert broken.reference.target == "Missing Note"
    assert store.get_outgoing_links("A") == []

    store.register_note(make_note("M", "Missing Note"))

    assert store.get_broken_links("A") == []
    assert [b.source for b in store.get_backlinks("M")] == ["A"]


def test_broken_reference_repaired_by_reindex_without_auto_reresolve() -> None:
    store = LinkGraphStore(auto_reresolve=False)
    store.register_note(make_note("A", "Alpha", "Waiting for [[Missing Note]]."))
    store.register_note(make_note("M", "Missing Note"))

    assert len(store.get_broken_links("A")) == 1

    store.update_note_links("A", "Waiting for [[Missing Note]].")

    assert store.get_broken_links("A") == []
    assert [b.source for b in store.get_backlinks("M")] == ["A"]


def test_broken_links_carry_suggestions(store: LinkGraphStore) -> None:
    store.register_note(make_note("P", "Project Plan"))
    store.register_note(make_note("A", "Alpha", "[[Projct Plan]] and [[Zzz]]"))

    broken = {b.reference.target: b for b in store.get_broken_links()}

    assert "Project Plan" in broken["Projct Plan"].suggestions
    assert broken["Zzz"].suggestions == ()


def test_update_note_links_replaces_edges(scenario_store: LinkGraphStore) -> None:
    store = scenario_store

    store.update_note_links("A", "Now only [[Delta]]")

    assert store.get_backlinks("B") == []
    assert store.get_backlinks("C") == []
    assert [b.source for b in store.get_backlinks("D")] == ["A"]
    assert store.get_orphans() == {"B", "C"}
    assert store.snapshot().notes["A"].content == "Now only [[Delta]]"


def test_update_note_links_is_idempotent(scenario_store: LinkGraphStore) -> None:
    store = scenario_store
    content = "Alpha links to [[Beta]] twice: [[Beta]] and [[Missing]]"

    store.update_note_links("A", content)
    once = store.snapshot()
    store.update_note_links("A", content)
    twice = store.snapshot()

    assert twice.edges_from("A") == once.edges_from("A")
    assert twice.broken_for("A") == once.broken_for("A")
    assert dict(twice.incoming) == dict(once.incoming)


def test_update_unknown_note_raises(store: LinkGraphStore) -> None:
    with pytest.raises(UnknownNoteError):
        store.update_note_links("nope", "[[x]]")

    with pytest.raises(KeyError):
        store.update_note_tags("nope", ["tag"])


def test_remove_note_leaves_no_trace(scenario_store: LinkGraphStore) -> None:
    store = scenario_store

    store.remove_note("B")
    snapshot = store.snapshot()

    assert "B" not in snapshot
    assert all("B" not in (edge.source, edge.target) for edge in snapshot.all_edges())
    assert "B" not in snapshot.incoming
    assert all("B" not in sources for sources in snapshot.incoming.values())
    assert "B" not in snapshot.broken
    assert "B" not in snapshot.index
    assert [b.reference.target for b in store.get_broken_links("A")] == ["Beta"]


def test_remove_unknown_note_is_noop(scenario_store: LinkGraphStore) -> None:
    before = scenario_store.snapshot()

    scenario_store.remove_note("does-not-exist")

    assert scenario_store.snapshot() is before


def test_move_note_keeps_identity(scenario_store: LinkGraphStore) -> None:
    store = scenario_store

    store.move_note("B", "archive/beta.md")

    assert store.snapshot().notes["B"].folder_path == "archive"
    assert [b.source for b in store.get_backlinks("B")] == ["A"]


def test_move_note_with_new_title_breaks_title_references(scenario_store: LinkGraphStore) -> None:
    store = scenario_store

    store.move_note("B", "archive/renamed.md", new_title="Beta Renamed")

    assert store.get_backlinks("B") == []
    assert [b.reference.target for b in store.get_broken_links("A")] == ["Beta"]

    store.update_note_links("A", "[[Beta Renamed]] and [[Gamma]]")
    assert [b.source for b in store.get_backlinks("B")] == ["A"]


def test_rename_note_with_new_identity(scenario_store: LinkGraphStore) -> None:
    store = scenario_store

    store.rename_note("B", make_note("B2", "Beta", path="beta-v2.md"))
    snapshot = store.snapshot()

    assert "B" not in snapshot
    assert snapshot.notes["B2"].content == "Beta has no links."
    assert [b.source for b in store.get_backlinks("B2")] == ["A"]


def test_update_note_tags(scenario_store: LinkGraphStore) -> None:
    scenario_store.update_note_tags("D", ["#solo", "solo", "alone"])

    assert scenario_store.snapshot().notes["D"].tags == ["solo", "alone"]


def test_find_paths() -> None:
    store = LinkGraphStore()
    store.rebuild(
        [
            make_note("A", "A", "[[B]] [[C]]"),
            make_note("B", "B", "[[C]]"),
            make_note("C", "C", ""),
            make_note("D", "D", ""),
        ]
    )

    assert store.find_paths("A", "C", 3) == [["A", "C"], ["A", "B", "C"]]
    assert store.find_paths("A", "C", 1) == [["A", "C"]]
    assert store.find_paths("A", "C", 3, limit=1) == [["A", "C"]]
    assert store.find_paths("C", "A", 3) == []
    assert store.find_paths("C", "A", 3, undirected=True) == [["C", "A"], ["C", "B", "A"]]
    assert store.find_paths("A", "D", 3) == []
    assert store.find_paths("A", "A", 3) == []
    assert store.find_paths("A", "unknown", 3) == []


def test_paths_respect_depth_and_are_simple() -> None:
    store = LinkGraphStore()
    notes = [make_note(f"n{i}", f"n{i}") for i in range(6)]
    rng = random.Random(3)
    for note in notes:
        targets = rng.sample([n.id for n in notes if n.id != note.id], 3)
        note.content = " ".join(f"[[{target}]]" for target in targets)
    store.rebuild(notes)

    for max_depth in (1, 2, 3):
        for path in store.find_paths("n0", "n5", max_depth, undirected=True):
            assert len(path) - 1 <= max_depth
            assert len(set(path)) == len(path)


def test_detect_disconnected_components() -> None:
    store = LinkGraphStore()
    store.rebuild(
        [
            make_note("A", "A", "[[B]]"),
            make_note("B", "B", "[[C]]"),
            make_note("C", "C"),
            make_note("D", "D"),
            make_note("E", "E", "[[F]]"),
            make_note("F", "F"),
        ]
    )

    assert store.detect_disconnected_components() == [{"A", "B", "C"}, {"E", "F"}, {"D"}]


def test_statistics(scenario_store: LinkGraphStore) -> None:
    scenario_store.register_note(make_note("E", "Epsilon", "[[Nowhere]]"))

    stats = scenario_store.statistics()

    assert stats.total_notes == 5
    assert stats.total_links == 2
    assert stats.total_broken_links == 1
    assert stats.orphaned_notes == 2


def test_typed_links_produce_typed_edges(store: LinkGraphStore) -> None:
    store.rebuild(
        [
            make_note("P1", "Part One", "next:: [[Part Two]]\ncontradicts:: [[Opinion]]"),
            make_note("P2", "Part Two"),
            make_note("O", "Opinion"),
        ]
    )

    kinds = {edge.target: edge.kind for edge in store.get_outgoing_links("P1")}

    assert kinds == {"P2": EdgeKind.CONTINUATION, "O": EdgeKind.CONTRADICTION}


def test_listeners_receive_changes(scenario_store: LinkGraphStore) -> None:
    changes: list[GraphChange] = []
    unsubscribe = scenario_store.subscribe(changes.append)

    scenario_store.update_note_tags("D", ["x"])
    scenario_store.remove_note("C")
    unsubscribe()
    scenario_store.remove_note("D")

    assert len(changes) == 2
    assert "D" in changes[0].changed
    assert not changes[0].content_changed
    assert "C" in changes[1].removed
    assert "A" in changes[1].changed


def test_failed_write_publishes_nothing(
    scenario_store: LinkGraphStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = scenario_store
    store.strict_integrity_checks = False
    before = store.snapshot()

    def fail(*args, **kwargs) -> None:
        raise GraphInvariantError("boom")

    monkeypatch.setattr("notegraph.graph.store.check_notes", fail)

    with pytest.raises(GraphInvariantError):
        store.update_note_links("A", "[[Delta]]")

    assert store.snapshot() is before
    assert [b.source for b in store.get_backlinks("B")] == ["A"]


def test_random_operations_keep_graph_consistent() -> None:
    store = LinkGraphStore(strict_integrity_checks=True)
    rng = random.Random(42)
    titles = [f"Note {i}" for i in range(8)]

    for step in range(200):
        note_id = f"n{rng.randrange(8)}"
        action = rng.random()
        if action < 0.5:
            links = " ".join(f"[[{rng.choice(titles)}]]" for _ in range(rng.randrange(4)))
            store.register_note(make_note(note_id, f"Note {note_id[1:]}", links))
        elif action < 0.7:
            store.remove_note(note_id)
        elif action < 0.85 and note_id in store.snapshot():
            store.update_note_links(note_id, f"[[{rng.choice(titles)}]] step {step}")
        elif note_id in store.snapshot():
            store.move_note(note_id, f"moved/{note_id}.md", new_title=rng.choice(titles))

        store.check_integrity()
        assert_backlinks_match_edges(store)

    for note_id in store.snapshot().notes:
        for edge in store.get_outgoing_links(note_id):
            assert edge.target in store.snapshot()


def test_clear(scenario_store: LinkGraphStore) -> None:
    scenario_store.clear()

    assert len(scenario_store.snapshot()) == 0
    assert scenario_store.get_orphans() == set()


def test_empty_snapshot_has_read_only_maps() -> None:
    snapshot = GraphSnapshot()

    assert len(snapshot) == 0
    assert snapshot.note_ids() == []
    assert snapshot.edges_from("anything") == ()
    with pytest.raises(TypeError):
        snapshot.notes["x"] = None
