"""Read-only discovery over graph snapshots: similarity, clusters and recommendations."""

from notegraph.analysis.clusters import ClusterDetector
from notegraph.analysis.recommendations import RecommendationEngine
from notegraph.analysis.similarity import SimilarityEngine

__all__ = [
    "ClusterDetector",
    "RecommendationEngine",
    "SimilarityEngine",
]
