"""Relationship domain models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict

from notegraph.domain.references import Reference, RelationType


class EdgeKind(str, Enum):
    """Closed set of edge kinds stored in the link graph."""

    REFERENCE = "reference"
    EMBED = "embed"
    CONTINUATION = "continuation"
    CONTRADICTION = "contradiction"
    BRANCH = "branch"
    STRUCTURAL = "structural"

    @classmethod
    def for_reference(cls, reference: Reference) -> "EdgeKind":
        """Map a parsed reference to the kind of edge it produces."""
        if reference.relation is not None:
            return _RELATION_EDGE_KINDS[reference.relation]
        if reference.is_embed:
            return cls.EMBED
        return cls.REFERENCE


_RELATION_EDGE_KINDS = {
    RelationType.CONTINUATION: EdgeKind.CONTINUATION,
    RelationType.CONTRADICTION: EdgeKind.CONTRADICTION,
    RelationType.BRANCH: EdgeKind.BRANCH,
    RelationType.STRUCTURAL: EdgeKind.STRUCTURAL,
}


class Edge(BaseModel):
    """A resolved reference from one note to another.

    Edges are unique by (source, target, context): the same pair of notes may
    be connected by several edges when the reference appears in different
    places of the source note.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    kind: EdgeKind = EdgeKind.REFERENCE
    context: str | None = None  # surrounding text where the link appears
    line_number: int = 1
    created_at: float = 0.0

    @property
    def key(self) -> tuple[str, str, str | None]:
        return (self.source, self.target, self.context)


class BrokenReference(BaseModel):
    """A reference whose target does not resolve to any known note."""

    model_config = ConfigDict(frozen=True)

    source: str
    reference: Reference
    suggestions: tuple[str, ...] = ()


class Backlink(BaseModel):
    """An incoming edge as seen from its target note."""

    source: str
    source_title: str
    source_path: str
    context: str | None = None
    kind: EdgeKind = EdgeKind.REFERENCE
    line_number: int = 1
    occurrence_count: int = 1


class LinkStatistics(BaseModel):
    total_notes: int = 0
    total_links: int = 0
    total_broken_links: int = 0
    orphaned_notes: int = 0
