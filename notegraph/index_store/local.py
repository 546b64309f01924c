import json
from pathlib import Path

from loguru import logger
from pydantic import BaseModel

from notegraph.domain.note import NoteRecord
from notegraph.domain.references import Reference
from notegraph.domain.relationships import Edge, EdgeKind
from notegraph.errors import GraphInvariantError
from notegraph.graph.snapshot import GraphSnapshot
from notegraph.graph.store import LinkGraphStore
from notegraph.index_store.base import GraphIndexStore


class NodeRow(BaseModel):
    """A note as stored in the index file."""

    id: str
    title: str
    type: str = "note"
    word_count: int = 0
    path: str = ""
    tags: list[str] = []
    created: float = 0.0
    modified: float = 0.0
    folder_path: str = ""
    content: str = ""

    @classmethod
    def from_note(cls, note: NoteRecord) -> "NodeRow":
        return cls(word_count=note.word_count, **note.model_dump())

    def to_note(self) -> NoteRecord:
        return NoteRecord(
            id=self.id,
            title=self.title,
            path=self.path,
            content=self.content,
            created=self.created,
            modified=self.modified,
            tags=self.tags,
            folder_path=self.folder_path,
        )


class EdgeRow(BaseModel):
    """An edge as stored in the index file."""

    source: str
    target: str
    type: EdgeKind = EdgeKind.REFERENCE
    context: str | None = None
    line_number: int = 1
    created_at: float = 0.0

    @classmethod
    def from_edge(cls, edge: Edge) -> "EdgeRow":
        return cls(
            source=edge.source,
            target=edge.target,
            type=edge.kind,
            context=edge.context,
            line_number=edge.line_number,
            created_at=edge.created_at,
        )

    def to_edge(self) -> Edge:
        return Edge(
            source=self.source,
            target=self.target,
            kind=self.type,
            context=self.context,
            line_number=self.line_number,
            created_at=self.created_at,
        )


class LocalGraphIndexStore(GraphIndexStore):
    """Local graph index that stores nodes, edges and parsed references in a JSON file.

    The index is a cache of the link graph: it can always be rebuilt from the
    note source.
    """

    def __init__(self, filepath: str | Path | None = None) -> None:
        """Initialize LocalGraphIndexStore.

        Args:
            filepath: Path to index file. If provided and exists, will auto-load.
                     If provided and doesn't exist, will save to this path when save() is called.
                     If not provided, creates empty index in memory only.

        Raises:
            GraphInvariantError: If the file contains an edge or reference whose note is missing
        """
        self._filepath = str(filepath) if filepath else None

        self._nodes: dict[str, NodeRow] = {}
        self._edges: list[EdgeRow] = []
        self._references: dict[str, list[Reference]] = {}

        if self._filepath and Path(self._filepath).exists():
            with open(self._filepath, "r") as f:
                data = json.load(f)
            self._nodes = {row["id"]: NodeRow(**row) for row in data.get("nodes", [])}
            self._edges = [EdgeRow(**row) for row in data.get("edges", [])]
            self._references = {
                note_id: [Reference(**reference) for reference in references]
                for note_id, references in data.get("references", {}).items()
            }
            self._check_foreign_keys()
            logger.info(
                f"Loaded graph index from {self._filepath}: "
                f"{len(self._nodes)} nodes, {len(self._edges)} edges"
            )

    @classmethod
    def from_data(
        cls,
        nodes: list[NodeRow] | None = None,
        edges: list[EdgeRow] | None = None,
        references: dict[str, list[Reference]] | None = None,
    ) -> "LocalGraphIndexStore":
        """Create LocalGraphIndexStore from provided data (useful for testing).

        Raises:
            GraphInvariantError: If an edge or reference names a missing node
        """
        instance = cls(filepath=None)
        instance._nodes = {node.id: node for node in nodes or []}
        instance._edges = list(edges or [])
        instance._references = dict(references or {})
        instance._check_foreign_keys()
        return instance

    def update_from_snapshot(self, snapshot: GraphSnapshot) -> None:
        self._nodes = {
            note_id: NodeRow.from_note(snapshot.notes[note_id]) for note_id in snapshot.note_ids()
        }
        self._edges = [EdgeRow.from_edge(edge) for edge in snapshot.all_edges()]
        self._references = {
            note_id: list(snapshot.references.get(note_id, ())) for note_id in snapshot.note_ids()
        }

    def restore_into(self, store: LinkGraphStore) -> None:
        store.restore(
            notes=[node.to_note() for node in self._nodes.values()],
            references=self._references,
            edges=[row.to_edge() for row in self._edges],
        )

    def get_all_note_ids(self) -> set[str]:
        return set(self._nodes.keys())

    def get_node(self, note_id: str) -> NodeRow | None:
        return self._nodes.get(note_id)

    def get_edges(self) -> list[EdgeRow]:
        return list(self._edges)

    def save(self, filepath: str | None = None) -> None:
        """Save the index to a JSON file.

        Args:
            filepath: Path to save to. If not provided, uses the filepath from initialization.
        """
        save_path = filepath or self._filepath
        if not save_path:
            raise ValueError(
                "No filepath provided and no default filepath set during initialization"
            )

        save_path = str(save_path)
        Path(save_path).parent.mkdir(parents=True, exist_ok=True)
        data = {
            "nodes": [node.model_dump(mode="json") for node in self._nodes.values()],
            "edges": [edge.model_dump(mode="json") for edge in self._edges],
            "references": {
                note_id: [reference.model_dump(mode="json") for reference in references]
                for note_id, references in self._references.items()
            },
        }
        with open(save_path, "w") as f:
            json.dump(data, f)
        logger.info(f"Saved graph index to {save_path}")

    def clear(self) -> None:
        self._nodes.clear()
        self._edges.clear()
        self._references.clear()

    def _check_foreign_keys(self) -> None:
        for edge in self._edges:
            for endpoint in (edge.source, edge.target):
                if endpoint not in self._nodes:
                    raise GraphInvariantError(
                        f"Edge {edge.source} -> {edge.target} references missing node {endpoint}",
                        {"source": edge.source, "target": edge.target},
                    )
        for note_id in self._references:
            if note_id not in self._nodes:
                raise GraphInvariantError(
                    f"References stored for missing node {note_id}", {"note_id": note_id}
                )
