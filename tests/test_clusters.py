"""Tests for cluster detection."""

import pytest

from notegraph.analysis.clusters import ClusterDetector
from notegraph.analysis.similarity import SimilarityEngine
from notegraph.cancellation import CancellationToken
from notegraph.errors import OperationCancelled
from notegraph.graph.store import LinkGraphStore
from tests.fakes import make_note


def test_topic_groups_become_clusters(knowledge_index) -> None:
    clusters = knowledge_index.clusters.detect_clusters()

    assert sorted(sorted(cluster.members) for cluster in clusters) == [
        ["gd1", "gd2", "gd3"],
        ["py1", "py2", "py3"],
    ]
    assert [cluster.id for cluster in clusters] == ["cluster-1", "cluster-2"]
    assert clusters[0].cohesion >= clusters[1].cohesion


def test_cluster_topics_start_with_shared_tags(knowledge_index) -> None:
    clusters = knowledge_index.clusters.detect_clusters()
    python_cluster = knowledge_index.clusters.cluster_of("py1", clusters)

    assert python_cluster is not None
    assert python_cluster.topics[:2] == ["programming", "python"]
    assert len(python_cluster.topics) <= 5


def test_cohesion_is_mean_pairwise_similarity(knowledge_index) -> None:
    clusters = knowledge_index.clusters.detect_clusters()
    garden = knowledge_index.clusters.cluster_of("gd2", clusters)
    similarity = knowledge_index.similarity

    expected = (
        similarity.similarity("gd1", "gd2").score
        + similarity.similarity("gd1", "gd3").score
        + similarity.similarity("gd2", "gd3").score
    ) / 3

    assert garden.cohesion == pytest.approx(expected)


def test_min_cluster_size_drops_small_groups(knowledge_index) -> None:
    detector = ClusterDetector(knowledge_index.similarity, min_cluster_size=4)

    assert detector.detect_clusters() == []


def test_no_similar_pairs_gives_no_clusters(knowledge_index) -> None:
    detector = ClusterDetector(knowledge_index.similarity, threshold=0.99)

    assert detector.detect_clusters() == []


def test_empty_store_has_no_clusters(store: LinkGraphStore) -> None:
    assert ClusterDetector(SimilarityEngine(store)).detect_clusters() == []


def test_cluster_of_unclustered_note(knowledge_index) -> None:
    knowledge_index.store.register_note(make_note("lonely", "Lonely", "Astronomy telescopes"))
    clusters = knowledge_index.clusters.detect_clusters()

    assert knowledge_index.clusters.cluster_of("lonely", clusters) is None


def test_detection_can_be_cancelled(knowledge_index) -> None:
    token = CancellationToken()
    token.cancel()

    with pytest.raises(OperationCancelled):
        knowledge_index.clusters.detect_clusters(cancel_token=token)
