"""Multi-signal similarity between notes."""

import math
import re
import threading
from collections import OrderedDict
from functools import lru_cache

from loguru import logger

from notegraph.analysis.text_vectors import TextVectors
from notegraph.cancellation import CancellationToken, check
from notegraph.domain.insights import SimilarityComponents, SimilarityScore
from notegraph.graph.snapshot import GraphSnapshot
from notegraph.graph.store import GraphChange, LinkGraphStore

_HEADING = re.compile(r"^(#{1,6})\s+\S", re.MULTILINE)
_LIST_ITEM = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+\S", re.MULTILINE)
_CODE_FENCE = re.compile(r"^\s*```", re.MULTILINE)


def jaccard(a: set[str], b: set[str]) -> float:
    """Jaccard index of two sets, 0 when both are empty."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


@lru_cache(maxsize=4096)
def structural_features(content: str) -> tuple[int, int, int, int, int]:
    """Coarse structure of a note.

    Returns:
        Tuple of (length bucket, heading count, deepest heading level, list items, code blocks)
    """
    words = len(content.split())
    headings = _HEADING.findall(content)
    return (
        int(math.log2(words + 1)),
        len(headings),
        max((len(marks) for marks in headings), default=0),
        len(_LIST_ITEM.findall(content)),
        len(_CODE_FENCE.findall(content)) // 2,
    )


def structural_similarity(a: tuple[int, ...], b: tuple[int, ...]) -> float:
    """Mean of per-feature min/max ratios, a feature both notes lack counts as equal."""
    ratios = []
    for left, right in zip(a, b):
        high = max(left, right)
        ratios.append(1.0 if high == 0 else min(left, right) / high)
    return sum(ratios) / len(ratios) if ratios else 1.0


class SimilarityEngine:
    """Computes and caches weighted note similarity.

    Scores are read from store snapshots and may lag behind a concurrent
    write. Cached pairs are purged when either note's content, tags or
    outgoing edges change, and the whole cache is dropped when any note
    content changes because that shifts the corpus-wide term weights.
    """

    cached_generations = 3

    def __init__(
        self,
        store: LinkGraphStore,
        *,
        textual_weight: float = 0.4,
        tag_weight: float = 0.3,
        link_weight: float = 0.2,
        structural_weight: float = 0.1,
    ):
        """Initialize the engine and subscribe to store changes.

        Args:
            store: Store whose snapshots are compared
            textual_weight: Weight of TF-IDF cosine similarity
            tag_weight: Weight of tag overlap
            link_weight: Weight of outgoing link overlap
            structural_weight: Weight of structural resemblance
        """
        self.store = store
        self.textual_weight = textual_weight
        self.tag_weight = tag_weight
        self.link_weight = link_weight
        self.structural_weight = structural_weight

        self._lock = threading.Lock()
        self._pairs: dict[tuple[str, str], tuple[tuple[int, int, int], SimilarityScore]] = {}
        self._vectors: OrderedDict[int, TextVectors] = OrderedDict()
        self._unsubscribe = store.subscribe(self._on_change)

    def close(self) -> None:
        """Stop listening to store changes."""
        self._unsubscribe()

    def similarity(self, a: str, b: str, snapshot: GraphSnapshot | None = None) -> SimilarityScore:
        """Similarity of two notes.

        The returned score lists the pair in canonical (sorted) order, so
        ``similarity(a, b) == similarity(b, a)``.

        Raises:
            UnknownNoteError: If either note is not known
        """
        snapshot = snapshot or self.store.snapshot()
        snapshot.note(a)
        snapshot.note(b)
        return self._score(snapshot, a, b)

    def _score(
        self, snapshot: GraphSnapshot, a: str, b: str, vectors: TextVectors | None = None
    ) -> SimilarityScore:
        first, second = sorted((a, b))
        stamp = (
            snapshot.content_generation,
            snapshot.note_version(first),
            snapshot.note_version(second),
        )
        with self._lock:
            cached = self._pairs.get((first, second))
        if cached is not None and cached[0] == stamp:
            return cached[1]

        if vectors is None:
            vectors = self.text_vectors(snapshot)
        score = self._compute(snapshot, first, second, vectors)
        if snapshot is self.store.snapshot():
            with self._lock:
                self._pairs[(first, second)] = (stamp, score)
        return score

    def similar_notes(
        self,
        note_id: str,
        threshold: float = 0.0,
        limit: int | None = None,
        *,
        snapshot: GraphSnapshot | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[SimilarityScore]:
        """Notes scoring at least ``threshold`` against the note, best first."""
        snapshot = snapshot or self.store.snapshot()
        snapshot.note(note_id)

        vectors = self.text_vectors(snapshot)
        scores = []
        for other in snapshot.note_ids():
            if other == note_id:
                continue
            check(cancel_token, "similar_notes")
            score = self._score(snapshot, note_id, other, vectors)
            if score.score > 0 and score.score >= threshold:
                scores.append(score)

        scores.sort(key=lambda score: (-score.score, score.other(note_id)))
        return scores[:limit] if limit is not None else scores

    def all_pairs(
        self,
        threshold: float = 0.0,
        *,
        snapshot: GraphSnapshot | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[SimilarityScore]:
        """Every unordered pair of notes scoring at least ``threshold``."""
        snapshot = snapshot or self.store.snapshot()
        note_ids = snapshot.note_ids()
        vectors = self.text_vectors(snapshot)

        scores = []
        for i, a in enumerate(note_ids):
            check(cancel_token, "all_pairs")
            for b in note_ids[i + 1 :]:
                score = self._score(snapshot, a, b, vectors)
                if score.score > 0 and score.score >= threshold:
                    scores.append(score)
        return scores

    def key_terms(
        self, note_id: str, limit: int = 10, snapshot: GraphSnapshot | None = None
    ) -> list[str]:
        """Top TF-IDF terms of a note."""
        snapshot = snapshot or self.store.snapshot()
        snapshot.note(note_id)
        return self.text_vectors(snapshot).key_terms(note_id, limit)

    def text_vectors(self, snapshot: GraphSnapshot | None = None) -> TextVectors:
        """TF-IDF model for the snapshot's content generation, fitted on first use.

        Models of the most recently used generations are kept, so analysis on a
        snapshot that an edit has since replaced fits its model only once.
        """
        snapshot = snapshot or self.store.snapshot()
        generation = snapshot.content_generation
        with self._lock:
            if generation in self._vectors:
                self._vectors.move_to_end(generation)
                return self._vectors[generation]

        vectors = TextVectors.from_snapshot(snapshot)
        with self._lock:
            vectors = self._vectors.setdefault(generation, vectors)
            self._vectors.move_to_end(generation)
            while len(self._vectors) > self.cached_generations:
                self._vectors.popitem(last=False)
        return vectors

    def cached_pairs(self) -> set[tuple[str, str]]:
        with self._lock:
            return set(self._pairs)

    def _compute(
        self, snapshot: GraphSnapshot, a: str, b: str, vectors: TextVectors
    ) -> SimilarityScore:
        note_a = snapshot.notes[a]
        note_b = snapshot.notes[b]

        components = SimilarityComponents(
            textual=vectors.cosine(a, b),
            tag=jaccard(set(note_a.tags), set(note_b.tags)),
            link=jaccard(snapshot.out_targets(a), snapshot.out_targets(b)),
            structural=structural_similarity(
                structural_features(note_a.content), structural_features(note_b.content)
            ),
        )
        score = (
            self.textual_weight * components.textual
            + self.tag_weight * components.tag
            + self.link_weight * components.link
            + self.structural_weight * components.structural
        )
        return SimilarityScore(a=a, b=b, score=min(1.0, max(0.0, score)), components=components)

    def _on_change(self, change: GraphChange) -> None:
        with self._lock:
            if change.content_changed:
                purged = len(self._pairs)
                self._pairs.clear()
            else:
                stale = change.changed | change.removed
                keys = [key for key in self._pairs if key[0] in stale or key[1] in stale]
                for key in keys:
                    del self._pairs[key]
                purged = len(keys)
        if purged:
            logger.debug(f"Purged {purged} cached similarity scores at version {change.version}")
