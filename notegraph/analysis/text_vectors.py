"""TF-IDF text vectors for note content."""

import re

import numpy as np
from loguru import logger
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

from notegraph.graph.snapshot import GraphSnapshot
from notegraph.ingestion.reference_parser import MARKDOWN_LINK_PATTERN, WIKILINK_PATTERN

_INLINE_FIELD = re.compile(r"^\s*[A-Za-z][A-Za-z0-9_\-]*::", re.MULTILINE)
_URL = re.compile(r"https?://\S+")


def strip_markup(content: str) -> str:
    """Replace wiki and Markdown links by their display text, drop URLs and inline field names."""

    def _display(match: re.Match[str]) -> str:
        body = match.group("body")
        target, _, alias = body.partition("|")
        return alias.strip() or target.split("#", 1)[0].strip()

    text = WIKILINK_PATTERN.sub(_display, content)
    text = MARKDOWN_LINK_PATTERN.sub(lambda match: match.group("text"), text)
    text = _URL.sub(" ", text)
    return _INLINE_FIELD.sub(" ", text)


class TextVectors:
    """TF-IDF model fitted on every note of one snapshot.

    Rows are l2-normalized, so the cosine of two rows is their dot product.
    A corpus without any usable term (empty notes, only stop words) yields an
    empty model where every textual similarity is 0.
    """

    def __init__(self, note_ids: list[str], texts: list[str]):
        self.note_ids = list(note_ids)
        self._rows = {note_id: row for row, note_id in enumerate(self.note_ids)}
        self._vectorizer = TfidfVectorizer(stop_words="english", norm="l2")
        self._matrix = None
        self._terms = np.array([], dtype=object)

        if not texts:
            return
        try:
            self._matrix = self._vectorizer.fit_transform(texts)
            self._terms = self._vectorizer.get_feature_names_out()
        except ValueError:
            logger.debug(f"No usable vocabulary in {len(texts)} notes, textual similarity is 0")
            self._matrix = None

    @classmethod
    def from_snapshot(cls, snapshot: GraphSnapshot) -> "TextVectors":
        note_ids = snapshot.note_ids()
        texts = [strip_markup(snapshot.notes[note_id].content) for note_id in note_ids]
        logger.debug(f"Fitting TF-IDF model on {len(note_ids)} notes")
        return cls(note_ids, texts)

    @property
    def vocabulary_size(self) -> int:
        return len(self._terms)

    def cosine(self, a: str, b: str) -> float:
        """Cosine similarity of two notes' vectors, 0 if either is unknown or empty."""
        if self._matrix is None or a not in self._rows or b not in self._rows:
            return 0.0
        value = float(cosine_similarity(self._matrix[self._rows[a]], self._matrix[self._rows[b]])[0, 0])
        return min(1.0, max(0.0, value))

    def key_terms(self, note_id: str, limit: int = 10) -> list[str]:
        """Highest weighted terms of a note, ties broken alphabetically."""
        if self._matrix is None or note_id not in self._rows:
            return []
        row = self._matrix[self._rows[note_id]]
        indices = row.nonzero()[1]
        weights = row.toarray().ravel()
        ranked = sorted(indices, key=lambda index: (-weights[index], self._terms[index]))
        return [str(self._terms[index]) for index in ranked[:limit]]
