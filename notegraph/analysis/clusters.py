"""Community detection over the note similarity graph."""

from collections import Counter
from itertools import combinations

import networkx as nx
from loguru import logger
from networkx.algorithms.community import greedy_modularity_communities

from notegraph.analysis.similarity import SimilarityEngine
from notegraph.cancellation import CancellationToken, check
from notegraph.domain.insights import Cluster
from notegraph.graph.snapshot import GraphSnapshot


class ClusterDetector:
    """Groups notes into clusters of mutually similar notes."""

    def __init__(
        self,
        similarity: SimilarityEngine,
        *,
        threshold: float = 0.2,
        min_cluster_size: int = 2,
        topic_count: int = 5,
    ):
        """Initialize the detector.

        Args:
            similarity: Engine used to weight the similarity graph
            threshold: Minimum pair score for an edge in the similarity graph
            min_cluster_size: Smaller communities are dropped
            topic_count: Maximum number of topics reported per cluster
        """
        self.similarity = similarity
        self.threshold = threshold
        self.min_cluster_size = min_cluster_size
        self.topic_count = topic_count

    def detect_clusters(
        self,
        snapshot: GraphSnapshot | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[Cluster]:
        """Detect clusters on a snapshot of the whole corpus.

        Returns:
            Clusters ordered by cohesion, then size, then first member, with ids
            "cluster-1", "cluster-2", ... in that order
        """
        snapshot = snapshot or self.similarity.store.snapshot()
        graph = self.similarity_graph(snapshot, cancel_token)

        if graph.number_of_edges() == 0:
            return []

        check(cancel_token, "detect_clusters")
        communities = greedy_modularity_communities(graph, weight="weight")

        candidates = []
        for community in communities:
            check(cancel_token, "detect_clusters")
            members = set(community)
            if len(members) < self.min_cluster_size:
                continue
            candidates.append((members, self._cohesion(graph, members, snapshot)))

        candidates.sort(key=lambda item: (-item[1], -len(item[0]), min(item[0])))
        clusters = [
            Cluster(
                id=f"cluster-{position}",
                members=members,
                cohesion=cohesion,
                topics=self._topics(snapshot, members),
            )
            for position, (members, cohesion) in enumerate(candidates, start=1)
        ]
        logger.info(f"Detected {len(clusters)} clusters over {len(snapshot)} notes")
        return clusters

    def similarity_graph(
        self, snapshot: GraphSnapshot, cancel_token: CancellationToken | None = None
    ) -> nx.Graph:
        """Undirected graph with an edge for every pair at or above the threshold."""
        graph = nx.Graph()
        graph.add_nodes_from(snapshot.note_ids())
        for score in self.similarity.all_pairs(
            self.threshold, snapshot=snapshot, cancel_token=cancel_token
        ):
            graph.add_edge(score.a, score.b, weight=score.score)
        return graph

    def cluster_of(self, note_id: str, clusters: list[Cluster]) -> Cluster | None:
        for cluster in clusters:
            if note_id in cluster.members:
                return cluster
        return None

    def _cohesion(self, graph: nx.Graph, members: set[str], snapshot: GraphSnapshot) -> float:
        """Mean pairwise similarity of the members, including pairs below the threshold."""
        pairs = list(combinations(sorted(members), 2))
        if not pairs:
            return 0.0
        total = 0.0
        for a, b in pairs:
            if graph.has_edge(a, b):
                total += graph[a][b]["weight"]
            else:
                total += self.similarity.similarity(a, b, snapshot).score
        return total / len(pairs)

    def _topics(self, snapshot: GraphSnapshot, members: set[str]) -> list[str]:
        tag_counts: Counter[str] = Counter()
        term_counts: Counter[str] = Counter()
        vectors = self.similarity.text_vectors(snapshot)
        for note_id in members:
            tag_counts.update(snapshot.notes[note_id].tags)
            term_counts.update(vectors.key_terms(note_id, self.topic_count))

        topics = [tag for tag, _ in sorted(tag_counts.items(), key=lambda item: (-item[1], item[0]))]
        for term, _ in sorted(term_counts.items(), key=lambda item: (-item[1], item[0])):
            if len(topics) >= self.topic_count:
                break
            if term not in topics:
                topics.append(term)
        return topics[: self.topic_count]
