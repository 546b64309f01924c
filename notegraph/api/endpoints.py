import asyncio
from typing import Callable, TypeVar

from fastapi import APIRouter, HTTPException
from loguru import logger
from pydantic import BaseModel

from notegraph.cancellation import CancellationToken
from notegraph.domain.insights import RecommendationKind
from notegraph.domain.references import Reference
from notegraph.errors import OperationCancelled, UnknownNoteError
from notegraph.service import KnowledgeIndex

T = TypeVar("T")


class ParseRequest(BaseModel):
    text: str


class ParsedReference(BaseModel):
    reference: Reference
    span: tuple[int, int]
    resolved_note_id: str | None = None


def _call(description: str, func: Callable[[], T]) -> T:
    """Run a query, mapping unknown notes to 404 and other failures to 500."""
    try:
        return func()
    except UnknownNoteError as err:
        logger.warning(f"Note not found while {description}: {err.note_id}")
        raise HTTPException(status_code=404, detail="Note not found") from err
    except Exception as e:
        logger.error(f"Error {description}: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error") from e


async def _call_in_background(
    index: KnowledgeIndex,
    description: str,
    timeout: float | None,
    func: Callable[..., T],
    *args,
    **kwargs,
) -> T:
    """Run a cancellable computation on the index's worker pool."""
    token = CancellationToken(timeout=timeout)
    try:
        return await asyncio.wrap_future(index.submit(func, *args, cancel_token=token, **kwargs))
    except UnknownNoteError as err:
        logger.warning(f"Note not found while {description}: {err.note_id}")
        raise HTTPException(status_code=404, detail="Note not found") from err
    except OperationCancelled as err:
        logger.warning(f"Cancelled while {description}: {err}")
        raise HTTPException(status_code=504, detail="Computation timed out") from err
    except Exception as e:
        logger.error(f"Error {description}: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error") from e


def _create_links_endpoints(index: KnowledgeIndex):
    """Create the backlink, outgoing link and broken link handlers."""
    store = index.store

    async def get_backlinks(note_id: str):
        return _call("getting backlinks", lambda: store.get_backlinks(note_id))

    async def get_outgoing_links(note_id: str):
        return _call("getting outgoing links", lambda: store.get_outgoing_links(note_id))

    async def get_note_broken_links(note_id: str):
        return _call("getting broken links", lambda: store.get_broken_links(note_id))

    async def get_all_broken_links():
        return _call("getting broken links", lambda: store.get_broken_links())

    return get_backlinks, get_outgoing_links, get_note_broken_links, get_all_broken_links


def _create_graph_endpoints(index: KnowledgeIndex, timeout: float | None):
    """Create the orphan, path, component and statistics handlers."""
    store = index.store

    async def get_orphans():
        return _call("getting orphans", lambda: sorted(store.get_orphans()))

    async def find_paths(
        from_id: str,
        to_id: str,
        max_depth: int | None = None,
        undirected: bool = False,
        limit: int | None = None,
    ):
        return await _call_in_background(
            index,
            "finding paths",
            timeout,
            store.find_paths,
            from_id,
            to_id,
            index.max_path_depth if max_depth is None else max_depth,
            undirected=undirected,
            limit=index.max_paths if limit is None else limit,
        )

    async def get_components():
        components = await _call_in_background(
            index, "detecting components", timeout, store.detect_disconnected_components
        )
        return [sorted(component) for component in components]

    async def get_statistics():
        return _call("computing statistics", store.statistics)

    return get_orphans, find_paths, get_components, get_statistics


def _create_discovery_endpoints(index: KnowledgeIndex, timeout: float | None):
    """Create the similarity, cluster, recommendation and gap handlers."""

    async def get_similarity(a: str, b: str):
        return await _call_in_background(
            index, "computing similarity", timeout, _similarity, index, a, b
        )

    async def get_similar_notes(note_id: str, threshold: float | None = None, limit: int = 10):
        return await _call_in_background(
            index,
            "finding similar notes",
            timeout,
            index.similarity.similar_notes,
            note_id,
            index.similar_threshold if threshold is None else threshold,
            limit,
        )

    async def get_clusters():
        return await _call_in_background(
            index, "detecting clusters", timeout, index.clusters.detect_clusters
        )

    async def get_recommendations(
        note_id: str, kind: RecommendationKind | None = None, limit: int | None = None
    ):
        if kind is None:
            return await _call_in_background(
                index,
                "recommending notes",
                timeout,
                index.recommendations.recommend_mixed,
                note_id,
                limit,
            )
        return await _call_in_background(
            index,
            "recommending notes",
            timeout,
            index.recommendations.recommend,
            note_id,
            kind,
            limit,
        )

    async def get_knowledge_gaps():
        return await _call_in_background(
            index, "finding knowledge gaps", timeout, index.recommendations.knowledge_gaps
        )

    return get_similarity, get_similar_notes, get_clusters, get_recommendations, get_knowledge_gaps


def _similarity(index: KnowledgeIndex, a: str, b: str, cancel_token: CancellationToken):
    cancel_token.raise_if_cancelled("similarity")
    return index.similarity.similarity(a, b)


def _create_resolution_endpoints(index: KnowledgeIndex):
    """Create the title search and parse preview handlers."""
    store = index.store

    async def search_notes_by_title(title: str):
        """Search for a note by title for reference resolution."""

        def search():
            snapshot = store.snapshot()
            note_id = store.resolver.resolve(title, snapshot.index)
            if note_id:
                note = snapshot.notes[note_id]
                return {
                    "note_id": note.id,
                    "title": note.title or note.stem,
                    "exists": True,
                    "url": f"/note/{note.id}",
                }
            return {
                "note_id": None,
                "title": title,
                "exists": False,
                "url": None,
                "suggestions": store.resolver.suggest(title, snapshot.index),
            }

        return _call(f"searching for note by title '{title}'", search)

    async def parse_preview(request: ParseRequest) -> list[ParsedReference]:
        """Parse text without indexing it and show how each reference resolves."""

        def parse():
            snapshot = store.snapshot()
            return [
                ParsedReference(
                    reference=reference,
                    span=reference.span,
                    resolved_note_id=store.resolver.resolve(reference, snapshot.index),
                )
                for reference in store.parser.parse(request.text)
            ]

        return _call("parsing text", parse)

    return search_notes_by_title, parse_preview


def get_endpoints_router(*, index: KnowledgeIndex, analysis_timeout: float | None = None) -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    async def health_check():
        return {"status": "healthy"}

    backlinks, outgoing, note_broken, all_broken = _create_links_endpoints(index)
    router.get("/api/notes/{note_id}/backlinks")(backlinks)
    router.get("/api/notes/{note_id}/links")(outgoing)
    router.get("/api/notes/{note_id}/broken-links")(note_broken)
    router.get("/api/broken-links")(all_broken)

    orphans, paths, components, statistics = _create_graph_endpoints(index, analysis_timeout)
    router.get("/api/orphans")(orphans)
    router.get("/api/paths")(paths)
    router.get("/api/components")(components)
    router.get("/api/statistics")(statistics)

    similarity, similar, clusters, recommendations, gaps = _create_discovery_endpoints(
        index, analysis_timeout
    )
    router.get("/api/similarity")(similarity)
    router.get("/api/notes/{note_id}/similar")(similar)
    router.get("/api/clusters")(clusters)
    router.get("/api/notes/{note_id}/recommendations")(recommendations)
    router.get("/api/gaps")(gaps)

    search, parse = _create_resolution_endpoints(index)
    router.get("/api/notes/search")(search)
    router.post("/api/parse")(parse)

    return router
