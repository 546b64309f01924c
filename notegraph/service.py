"""The per-workspace indexing service that wires the engine together."""

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, TypeVar

from loguru import logger

from notegraph.analysis.clusters import ClusterDetector
from notegraph.analysis.recommendations import RecommendationEngine
from notegraph.analysis.similarity import SimilarityEngine
from notegraph.cancellation import CancellationToken
from notegraph.config import Settings
from notegraph.graph.store import LinkGraphStore
from notegraph.ingestion.reference_parser import ReferenceParser
from notegraph.ingestion.relationship_extraction.resolver import ReferenceResolver

T = TypeVar("T")


class KnowledgeIndex:
    """Owns the link graph store, the discovery engines and a worker pool.

    Writes go through ``store``; similarity, clustering and recommendations
    read snapshots and can be run on the worker pool with ``submit``.
    Background results may be stale relative to writes made while they ran.
    """

    def __init__(
        self,
        *,
        store: LinkGraphStore | None = None,
        textual_weight: float = 0.4,
        tag_weight: float = 0.3,
        link_weight: float = 0.2,
        structural_weight: float = 0.1,
        similar_threshold: float = 0.3,
        max_recommendations: int = 10,
        cluster_threshold: float = 0.2,
        min_cluster_size: int = 2,
        cluster_topic_count: int = 5,
        gap_threshold: float = 0.5,
        key_term_count: int = 10,
        serendipity_seed: int = 7,
        max_path_depth: int = 4,
        max_paths: int = 50,
        worker_threads: int = 2,
    ):
        self.store = store or LinkGraphStore()
        self.similarity = SimilarityEngine(
            self.store,
            textual_weight=textual_weight,
            tag_weight=tag_weight,
            link_weight=link_weight,
            structural_weight=structural_weight,
        )
        self.clusters = ClusterDetector(
            self.similarity,
            threshold=cluster_threshold,
            min_cluster_size=min_cluster_size,
            topic_count=cluster_topic_count,
        )
        self.recommendations = RecommendationEngine(
            self.similarity,
            self.clusters,
            similar_threshold=similar_threshold,
            max_recommendations=max_recommendations,
            gap_threshold=gap_threshold,
            key_term_count=key_term_count,
            serendipity_seed=serendipity_seed,
        )
        self.similar_threshold = similar_threshold
        self.max_path_depth = max_path_depth
        self.max_paths = max_paths
        self._executor = ThreadPoolExecutor(
            max_workers=worker_threads, thread_name_prefix="notegraph"
        )
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "KnowledgeIndex":
        """Build an index configured from application settings."""
        store = LinkGraphStore(
            parser=ReferenceParser(),
            resolver=ReferenceResolver(tie_break_policy=settings.tie_break_policy),
            context_chars=settings.context_chars,
            auto_reresolve=settings.auto_reresolve,
            strict_integrity_checks=settings.strict_integrity_checks,
        )
        return cls(
            store=store,
            textual_weight=settings.textual_weight,
            tag_weight=settings.tag_weight,
            link_weight=settings.link_weight,
            structural_weight=settings.structural_weight,
            similar_threshold=settings.similar_threshold,
            max_recommendations=settings.max_recommendations,
            cluster_threshold=settings.cluster_threshold,
            min_cluster_size=settings.min_cluster_size,
            cluster_topic_count=settings.cluster_topic_count,
            gap_threshold=settings.gap_threshold,
            key_term_count=settings.key_term_count,
            serendipity_seed=settings.serendipity_seed,
            max_path_depth=settings.max_path_depth,
            max_paths=settings.max_paths,
            worker_threads=settings.worker_threads,
        )

    def submit(
        self, func: Callable[..., T], *args, cancel_token: CancellationToken | None = None, **kwargs
    ) -> Future[T]:
        """Run a read-only computation on the worker pool.

        A ``cancel_token`` is forwarded to the function as a keyword argument.

        Raises:
            RuntimeError: If the index has been closed
        """
        if self._closed:
            raise RuntimeError("KnowledgeIndex is closed")
        if cancel_token is not None:
            kwargs["cancel_token"] = cancel_token
        return self._executor.submit(func, *args, **kwargs)

    def close(self) -> None:
        """Stop the worker pool and detach the engines from the store."""
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=True, cancel_futures=True)
        self.similarity.close()
        logger.debug("Knowledge index closed")

    def __enter__(self) -> "KnowledgeIndex":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
