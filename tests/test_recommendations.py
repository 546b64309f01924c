"""Tests for recommendations and knowledge gap detection."""

import pytest

from notegraph.analysis.recommendations import deduplicate
from notegraph.cancellation import CancellationToken
from notegraph.domain.insights import Recommendation, RecommendationKind
from notegraph.errors import OperationCancelled, UnknownNoteError
from notegraph.graph.store import LinkGraphStore
from notegraph.service import KnowledgeIndex
from tests.fakes import make_note


def test_similar_recommendations(knowledge_index: KnowledgeIndex) -> None:
    recommendations = knowledge_index.recommendations.recommend("py1", "similar")

    assert {r.note_id for r in recommendations} == {"py2", "py3"}
    assert all(r.reason == "content_similarity" for r in recommendations)
    assert all(r.kind == RecommendationKind.SIMILAR for r in recommendations)
    assert all(0.0 <= r.confidence <= 1.0 for r in recommendations)
    assert [r.score for r in recommendations] == sorted(
        (r.score for r in recommendations), reverse=True
    )
    assert set(recommendations[0].details["components"]) == {"textual", "tag", "link", "structural"}


def test_related_recommendations() -> None:
    with KnowledgeIndex() as index:
        index.store.rebuild(
            [make_note("A", "A", "[[B]]"), make_note("B", "B", "[[C]]"), make_note("C", "C")]
        )

        related = {r.note_id: r for r in index.recommendations.recommend("A", "related")}

    assert set(related) == {"B", "C"}
    assert related["B"].reason == "direct_link"
    assert related["B"].score == pytest.approx(0.6)
    assert related["B"].confidence == 1.0
    assert related["B"].details["links_to"] is True
    assert related["C"].reason == "shared_neighbors"
    assert related["C"].score == pytest.approx(0.4)
    assert related["C"].confidence == pytest.approx(0.5)
    assert related["C"].details["shared_neighbors"] == ["B"]


def test_complementary_recommendations_skip_linked_notes(knowledge_index: KnowledgeIndex) -> None:
    complementary = knowledge_index.recommendations.recommend("py1", "complementary")

    assert [r.note_id for r in complementary] == ["py3"]
    (recommendation,) = complementary
    assert recommendation.reason == "shared_concepts"
    assert "python" in recommendation.details["shared_terms"]
    assert recommendation.details["shared_tags"] == ["programming", "python"]
    assert recommendation.confidence == 1.0


def test_serendipitous_recommendations(knowledge_index: KnowledgeIndex) -> None:
    first = knowledge_index.recommendations.recommend("py1", "serendipitous")
    second = knowledge_index.recommendations.recommend("py1", "serendipitous")

    assert {r.note_id for r in first} == {"gd1", "gd2", "gd3"}
    assert first == second
    for recommendation in first:
        assert recommendation.reason == "unexpected_connection"
        assert recommendation.score == pytest.approx(0.1)
        assert 0 < recommendation.confidence <= 0.3


def test_mixed_recommendations_have_one_entry_per_note(knowledge_index: KnowledgeIndex) -> None:
    mixed = knowledge_index.recommendations.recommend_mixed("py1")
    note_ids = [r.note_id for r in mixed]

    assert len(note_ids) == len(set(note_ids))
    assert "py1" not in note_ids
    assert {"py2", "py3"} <= set(note_ids)


def test_limit(knowledge_index: KnowledgeIndex) -> None:
    assert len(knowledge_index.recommendations.recommend("py1", "serendipitous", limit=2)) == 2
    assert len(knowledge_index.recommendations.recommend_mixed("py1", limit=1)) == 1
    assert knowledge_index.recommendations.recommend("py1", "similar", limit=0) == []
    assert knowledge_index.recommendations.recommend_mixed("py1", limit=0) == []


def test_deduplicate_keeps_best_score() -> None:
    def recommendation(note_id: str, score: float, kind: str) -> Recommendation:
        return Recommendation(
            note_id=note_id, title=note_id, kind=kind, score=score, confidence=0.5, reason="r"
        )

    result = deduplicate(
        [
            recommendation("a", 0.2, "similar"),
            recommendation("a", 0.7, "related"),
            recommendation("b", 0.5, "similar"),
        ]
    )

    assert [(r.note_id, r.score, r.kind) for r in result] == [
        ("a", 0.7, RecommendationKind.RELATED),
        ("b", 0.5, RecommendationKind.SIMILAR),
    ]


def test_unknown_note_and_kind(knowledge_index: KnowledgeIndex) -> None:
    with pytest.raises(UnknownNoteError):
        knowledge_index.recommendations.recommend("missing", "similar")

    with pytest.raises(ValueError):
        knowledge_index.recommendations.recommend("py1", "nonsense")


def test_knowledge_gaps(topic_notes) -> None:
    with KnowledgeIndex(store=LinkGraphStore(), gap_threshold=0.35) as index:
        index.store.rebuild(topic_notes)

        report = index.recommendations.knowledge_gaps()

    assert report.disconnected_components == [{"py1", "py2"}, {"gd3"}, {"py3"}]
    assert {(gap.a, gap.b) for gap in report.conceptual_gaps} == {
        ("py1", "py3"),
        ("py2", "py3"),
        ("gd1", "gd3"),
        ("gd2", "gd3"),
    }
    for gap in report.conceptual_gaps:
        assert gap.score >= 0.35
    py_gap = next(gap for gap in report.conceptual_gaps if gap.a == "py1")
    assert "python" in py_gap.shared_terms


def test_connected_corpus_has_no_structural_gaps() -> None:
    with KnowledgeIndex() as index:
        index.store.rebuild([make_note("A", "A", "[[B]]"), make_note("B", "B")])

        report = index.recommendations.knowledge_gaps()

    assert report.disconnected_components == []
    assert report.conceptual_gaps == []


def test_recommendations_can_be_cancelled(knowledge_index: KnowledgeIndex) -> None:
    token = CancellationToken()
    token.cancel()

    with pytest.raises(OperationCancelled):
        knowledge_index.recommendations.recommend("py1", "similar", cancel_token=token)

    with pytest.raises(OperationCancelled):
        knowledge_index.recommendations.knowledge_gaps(cancel_token=token)


def test_background_submission(knowledge_index: KnowledgeIndex) -> None:
    future = knowledge_index.submit(knowledge_index.recommendations.recommend, "py1", "related")

    assert [r.note_id for r in future.result(timeout=10)] == ["py2"]


def test_closed_index_rejects_work() -> None:
    index = KnowledgeIndex()
    index.close()

    with pytest.raises(RuntimeError):
        index.submit(len, [])
