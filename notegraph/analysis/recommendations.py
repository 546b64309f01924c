"""Recommendations and knowledge gap detection built on graph and similarity signals."""

import random
from typing import Callable

from loguru import logger

from notegraph.analysis.clusters import ClusterDetector
from notegraph.analysis.similarity import SimilarityEngine, jaccard
from notegraph.cancellation import CancellationToken, check
from notegraph.domain.insights import (
    ConceptualGap,
    KnowledgeGapReport,
    Recommendation,
    RecommendationKind,
)
from notegraph.graph import traversal
from notegraph.graph.snapshot import GraphSnapshot

SERENDIPITY_MAX_CONFIDENCE = 0.3


class RecommendationEngine:
    """Produces ranked, explained note recommendations.

    Four independent lists are available:

    - similar: notes with a high combined similarity score
    - related: direct graph neighbours and notes sharing neighbours
    - complementary: unlinked notes sharing key terms or tags
    - serendipitous: weakly similar notes outside the note's cluster and component

    Every recommendation carries a machine-readable ``reason`` and a
    ``confidence`` that is independent of its ranking ``score``.
    """

    def __init__(
        self,
        similarity: SimilarityEngine,
        clusters: ClusterDetector,
        *,
        similar_threshold: float = 0.3,
        max_recommendations: int = 10,
        gap_threshold: float = 0.5,
        key_term_count: int = 10,
        serendipity_seed: int = 7,
    ):
        self.similarity = similarity
        self.clusters = clusters
        self.similar_threshold = similar_threshold
        self.max_recommendations = max_recommendations
        self.gap_threshold = gap_threshold
        self.key_term_count = key_term_count
        self.serendipity_seed = serendipity_seed

    def recommend(
        self,
        note_id: str,
        kind: RecommendationKind | str,
        limit: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[Recommendation]:
        """Recommendations of one kind for a note.

        Args:
            note_id: Note to recommend for
            kind: Which recommendation list to compute
            limit: Maximum number of results, ``max_recommendations`` by default
            cancel_token: Token checked between candidates

        Returns:
            Recommendations ordered by score, at most one per recommended note

        Raises:
            UnknownNoteError: If the note is not known
            OperationCancelled: If the token is cancelled
        """
        kind = RecommendationKind(kind)
        snapshot = self.similarity.store.snapshot()
        snapshot.note(note_id)

        strategies: dict[
            RecommendationKind,
            Callable[[GraphSnapshot, str, CancellationToken | None], list[Recommendation]],
        ] = {
            RecommendationKind.SIMILAR: self._similar,
            RecommendationKind.RELATED: self._related,
            RecommendationKind.COMPLEMENTARY: self._complementary,
            RecommendationKind.SERENDIPITOUS: self._serendipitous,
        }
        results = deduplicate(strategies[kind](snapshot, note_id, cancel_token))
        return results[: self.max_recommendations if limit is None else limit]

    def recommend_mixed(
        self,
        note_id: str,
        limit: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[Recommendation]:
        """All recommendation kinds merged, keeping the best entry per note."""
        results = []
        for kind in RecommendationKind:
            results.extend(self.recommend(note_id, kind, limit=None, cancel_token=cancel_token))
        return deduplicate(results)[: self.max_recommendations if limit is None else limit]

    def knowledge_gaps(self, cancel_token: CancellationToken | None = None) -> KnowledgeGapReport:
        """Structural and conceptual gaps in the knowledge base.

        Disconnected components are every component except the largest one.
        Conceptual gaps are pairs of notes scoring at least ``gap_threshold``
        that are not within two undirected hops of each other.
        """
        snapshot = self.similarity.store.snapshot()
        components = traversal.connected_components(snapshot, cancel_token=cancel_token)

        vectors = self.similarity.text_vectors(snapshot)
        gaps = []
        for score in self.similarity.all_pairs(
            self.gap_threshold, snapshot=snapshot, cancel_token=cancel_token
        ):
            check(cancel_token, "knowledge_gaps")
            if score.b in traversal.within_hops(snapshot, score.a, 2):
                continue
            shared = set(vectors.key_terms(score.a, self.key_term_count)) & set(
                vectors.key_terms(score.b, self.key_term_count)
            )
            gaps.append(
                ConceptualGap(a=score.a, b=score.b, score=score.score, shared_terms=sorted(shared))
            )

        gaps.sort(key=lambda gap: (-gap.score, gap.a, gap.b))
        logger.info(
            f"Found {max(0, len(components) - 1)} disconnected components "
            f"and {len(gaps)} conceptual gaps"
        )
        return KnowledgeGapReport(disconnected_components=components[1:], conceptual_gaps=gaps)

    def _similar(
        self, snapshot: GraphSnapshot, note_id: str, cancel_token: CancellationToken | None
    ) -> list[Recommendation]:
        recommendations = []
        for score in self.similarity.similar_notes(
            note_id, self.similar_threshold, snapshot=snapshot, cancel_token=cancel_token
        ):
            other = score.other(note_id)
            signals = score.components.model_dump()
            recommendations.append(
                Recommendation(
                    note_id=other,
                    title=snapshot.notes[other].title,
                    kind=RecommendationKind.SIMILAR,
                    score=score.score,
                    confidence=sum(1 for value in signals.values() if value > 0) / len(signals),
                    reason="content_similarity",
                    details={"components": signals},
                )
            )
        return recommendations

    def _related(
        self, snapshot: GraphSnapshot, note_id: str, cancel_token: CancellationToken | None
    ) -> list[Recommendation]:
        neighbors = snapshot.neighbors(note_id)
        candidates = set(neighbors)
        for neighbor in neighbors:
            candidates |= snapshot.neighbors(neighbor)
        candidates.discard(note_id)

        recommendations = []
        for candidate in sorted(candidates):
            check(cancel_token, "related")
            candidate_neighbors = snapshot.neighbors(candidate)
            shared = neighbors & candidate_neighbors
            direct = candidate in neighbors

            if direct:
                reason, confidence = "direct_link", 1.0
            elif shared:
                reason, confidence = "shared_neighbors", len(shared) / (len(shared) + 1)
            else:
                continue

            recommendations.append(
                Recommendation(
                    note_id=candidate,
                    title=snapshot.notes[candidate].title,
                    kind=RecommendationKind.RELATED,
                    score=0.6 * (1.0 if direct else 0.0) + 0.4 * jaccard(neighbors, candidate_neighbors),
                    confidence=confidence,
                    reason=reason,
                    details={
                        "shared_neighbors": sorted(shared),
                        "links_to": candidate in snapshot.out_targets(note_id),
                        "linked_from": note_id in snapshot.out_targets(candidate),
                    },
                )
            )
        return recommendations

    def _complementary(
        self, snapshot: GraphSnapshot, note_id: str, cancel_token: CancellationToken | None
    ) -> list[Recommendation]:
        vectors = self.similarity.text_vectors(snapshot)
        terms = set(vectors.key_terms(note_id, self.key_term_count))
        tags = set(snapshot.notes[note_id].tags)

        recommendations = []
        for other in snapshot.note_ids():
            if other == note_id or snapshot.linked(note_id, other):
                continue
            check(cancel_token, "complementary")
            other_terms = set(vectors.key_terms(other, self.key_term_count))
            shared_terms = terms & other_terms
            shared_tags = tags & set(snapshot.notes[other].tags)
            if not shared_terms and not shared_tags:
                continue

            recommendations.append(
                Recommendation(
                    note_id=other,
                    title=snapshot.notes[other].title,
                    kind=RecommendationKind.COMPLEMENTARY,
                    score=jaccard(terms, other_terms),
                    confidence=min(1.0, (len(shared_terms) + len(shared_tags)) / 3),
                    reason="shared_concepts",
                    details={"shared_terms": sorted(shared_terms), "shared_tags": sorted(shared_tags)},
                )
            )
        return recommendations

    def _serendipitous(
        self, snapshot: GraphSnapshot, note_id: str, cancel_token: CancellationToken | None
    ) -> list[Recommendation]:
        clusters = self.clusters.detect_clusters(snapshot, cancel_token)
        own_cluster = self.clusters.cluster_of(note_id, clusters)

        excluded = {note_id} | traversal.within_hops(snapshot, note_id, len(snapshot))
        if own_cluster is not None:
            excluded |= own_cluster.members

        candidates = []
        for other in snapshot.note_ids():
            if other in excluded:
                continue
            check(cancel_token, "serendipitous")
            score = self.similarity.similarity(note_id, other, snapshot).score
            if 0 < score < self.similar_threshold:
                candidates.append((other, score))

        rng = random.Random(f"{self.serendipity_seed}:{note_id}")
        sample = rng.sample(candidates, min(self.max_recommendations, len(candidates)))

        return [
            Recommendation(
                note_id=other,
                title=snapshot.notes[other].title,
                kind=RecommendationKind.SERENDIPITOUS,
                score=score,
                confidence=min(SERENDIPITY_MAX_CONFIDENCE, score),
                reason="unexpected_connection",
                details={"cluster": own_cluster.id if own_cluster else None},
            )
            for other, score in sample
        ]


def deduplicate(recommendations: list[Recommendation]) -> list[Recommendation]:
    """Keep the highest-scoring recommendation per note, ordered by score."""
    best: dict[str, Recommendation] = {}
    for recommendation in recommendations:
        current = best.get(recommendation.note_id)
        if current is None or recommendation.score > current.score:
            best[recommendation.note_id] = recommendation
    return sorted(best.values(), key=lambda item: (-item.score, item.note_id))
