"""Path finding and connectivity over a graph snapshot."""

import networkx as nx

from notegraph.cancellation import CancellationToken, check
from notegraph.graph.snapshot import GraphSnapshot


def to_networkx(snapshot: GraphSnapshot, directed: bool = True) -> nx.Graph:
    """Collapse the snapshot's edges into a simple networkx graph.

    Parallel edges between the same pair of notes (one per context) become a
    single edge whose ``weight`` counts them. Self-links are dropped.
    """
    graph: nx.Graph = nx.DiGraph() if directed else nx.Graph()
    graph.add_nodes_from(sorted(snapshot.notes))
    for edge in snapshot.all_edges():
        if edge.source == edge.target:
            continue
        if graph.has_edge(edge.source, edge.target):
            graph[edge.source][edge.target]["weight"] += 1
        else:
            graph.add_edge(edge.source, edge.target, weight=1)
    return graph


def find_paths(
    snapshot: GraphSnapshot,
    start: str,
    end: str,
    max_depth: int,
    *,
    undirected: bool = False,
    limit: int | None = None,
    cancel_token: CancellationToken | None = None,
) -> list[list[str]]:
    """Enumerate simple paths between two notes.

    Args:
        snapshot: Graph snapshot to search
        start: Note to start from
        end: Note to reach
        max_depth: Maximum number of hops
        undirected: Follow edges in both directions instead of source to target only
        limit: Maximum number of paths to return
        cancel_token: Token checked once per path found

    Returns:
        Paths as lists of note ids, shortest first then lexicographic. Empty when
        start == end, when either note is unknown or no path fits the bound.
    """
    if start == end or start not in snapshot or end not in snapshot or max_depth < 1:
        return []

    graph = to_networkx(snapshot, directed=not undirected)
    paths = []
    for path in nx.all_simple_paths(graph, start, end, cutoff=max_depth):
        check(cancel_token, "find_paths")
        paths.append(path)

    paths.sort(key=lambda path: (len(path), path))
    if limit is not None:
        paths = paths[:limit]
    return paths


def connected_components(
    snapshot: GraphSnapshot, cancel_token: CancellationToken | None = None
) -> list[set[str]]:
    """Connected components of the undirected graph, largest first."""
    graph = to_networkx(snapshot, directed=False)
    components = []
    for component in nx.connected_components(graph):
        check(cancel_token, "connected_components")
        components.append(set(component))
    components.sort(key=lambda component: (-len(component), min(component)))
    return components


def within_hops(snapshot: GraphSnapshot, note_id: str, hops: int) -> set[str]:
    """Notes reachable from the note in at most ``hops`` undirected steps, itself excluded."""
    if note_id not in snapshot:
        return set()
    seen = {note_id}
    frontier = {note_id}
    for _ in range(hops):
        frontier = {
            neighbor for current in frontier for neighbor in snapshot.neighbors(current)
        } - seen
        if not frontier:
            break
        seen |= frontier
    return seen - {note_id}
