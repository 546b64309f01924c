"""Relationship extraction module for resolving note references into graph edges."""

from notegraph.ingestion.relationship_extraction.corpus_index import CorpusIndex
from notegraph.ingestion.relationship_extraction.graph_builder import EdgeBuilder
from notegraph.ingestion.relationship_extraction.resolver import ReferenceResolver

__all__ = [
    "CorpusIndex",
    "EdgeBuilder",
    "ReferenceResolver",
]
