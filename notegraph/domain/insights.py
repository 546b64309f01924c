"""Derived discovery models: similarity, clusters, recommendations and gaps."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class SimilarityComponents(BaseModel):
    """The four independent similarity signals, each in [0, 1]."""

    model_config = ConfigDict(frozen=True)

    textual: float = 0.0
    tag: float = 0.0
    link: float = 0.0
    structural: float = 0.0


class SimilarityScore(BaseModel):
    """Weighted similarity between two notes, with its components."""

    model_config = ConfigDict(frozen=True)

    a: str
    b: str
    score: float
    components: SimilarityComponents

    def involves(self, note_id: str) -> bool:
        return note_id in (self.a, self.b)

    def other(self, note_id: str) -> str:
        """Return the note on the other side of the pair."""
        return self.b if note_id == self.a else self.a


class Cluster(BaseModel):
    """A group of mutually similar notes."""

    id: str
    members: set[str]
    cohesion: float
    topics: list[str] = []


class RecommendationKind(str, Enum):
    SIMILAR = "similar"
    RELATED = "related"
    COMPLEMENTARY = "complementary"
    SERENDIPITOUS = "serendipitous"


class Recommendation(BaseModel):
    """A ranked suggestion with a machine-readable reason.

    Attributes:
        note_id: Recommended note
        title: Title of the recommended note
        kind: Recommendation list the entry belongs to
        score: Ranking score, higher ranks first
        confidence: How much evidence backs the recommendation, independent of rank
        reason: Machine-readable reason code, e.g. "content_similarity"
        details: Reason-specific explanation data (components, shared terms, ...)
    """

    note_id: str
    title: str
    kind: RecommendationKind
    score: float
    confidence: float
    reason: str
    details: dict = {}


class ConceptualGap(BaseModel):
    """Two notes that look closely related but are not connected in the graph."""

    a: str
    b: str
    score: float
    shared_terms: list[str] = []


class KnowledgeGapReport(BaseModel):
    disconnected_components: list[set[str]] = []
    conceptual_gaps: list[ConceptualGap] = []
