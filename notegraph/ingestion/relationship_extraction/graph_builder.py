"""Building a note's outgoing edges from its parsed references."""

import time

from notegraph.domain.references import Reference
from notegraph.domain.relationships import BrokenReference, Edge, EdgeKind

from . import analyzer
from .corpus_index import CorpusIndex
from .resolver import ReferenceResolver


class EdgeBuilder:
    """Turns parsed references into resolved edges and broken references."""

    def __init__(self, resolver: ReferenceResolver, context_chars: int = 80):
        """Initialize the builder.

        Args:
            resolver: Resolver used to map reference targets to note IDs
            context_chars: Characters of surrounding text stored as edge context
        """
        self.resolver = resolver
        self.context_chars = context_chars

    def build_edges(
        self,
        *,
        source_id: str,
        content: str,
        references: list[Reference] | tuple[Reference, ...],
        index: CorpusIndex,
        previous_edges: tuple[Edge, ...] = (),
    ) -> tuple[list[Edge], list[BrokenReference]]:
        """Resolve references of one note into edges.

        Edges whose (source, target, context) key already existed keep their
        original creation time, so re-indexing unchanged content is a no-op.

        Args:
            source_id: ID of the note the references were parsed from
            content: Content the references were parsed from
            references: References in order of appearance
            index: Corpus index snapshot to resolve against
            previous_edges: Edges the note had before this rebuild

        Returns:
            Tuple of (edges, broken references)
        """
        created = {edge.key: edge.created_at for edge in previous_edges}
        now = time.time()

        edges: dict[tuple[str, str, str | None], Edge] = {}
        broken: list[BrokenReference] = []

        for reference in references:
            target_id = self.resolver.resolve(reference, index)
            if target_id is None:
                broken.append(BrokenReference(source=source_id, reference=reference))
                continue

            context = analyzer.extract_reference_context(content, reference, self.context_chars)
            key = (source_id, target_id, context)
            if key in edges:
                continue

            edges[key] = Edge(
                source=source_id,
                target=target_id,
                kind=EdgeKind.for_reference(reference),
                context=context,
                line_number=reference.line_number,
                created_at=created.get(key, now),
            )

        return list(edges.values()), broken
