"""Graph topology for a single design level.

Builds adjacency and in-degree maps and orders nodes with Kahn's
algorithm.  Subsystem nesting is not traversed here; each level is
ordered on its own.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

from engine.powertree.model import Design, Edge


def build_adjacency(
    node_ids: Iterable[str], edges: Iterable[Edge]
) -> tuple[dict[str, list[str]], dict[str, int]]:
    """Adjacency list and in-degree map.  Edges to unknown ids are skipped."""
    adj: dict[str, list[str]] = {nid: [] for nid in node_ids}
    indeg: dict[str, int] = {nid: 0 for nid in adj}
    for e in edges:
        if e.from_node not in adj or e.to_node not in adj:
            continue
        adj[e.from_node].append(e.to_node)
        indeg[e.to_node] += 1
    return adj, indeg


def detect_cycle(
    node_ids: Iterable[str], edges: Iterable[Edge]
) -> tuple[bool, list[str]]:
    """Topologically order the nodes.

    Returns:
        ``(has_cycle, order)``.  When a cycle exists ``order`` holds only
        the nodes that could be ordered before the cycle blocked progress.
    """
    adj, indeg = build_adjacency(node_ids, edges)
    queue = deque(nid for nid, d in indeg.items() if d == 0)
    order: list[str] = []
    while queue:
        u = queue.popleft()
        order.append(u)
        for v in adj[u]:
            indeg[v] -= 1
            if indeg[v] == 0:
                queue.append(v)
    return len(order) != len(adj), order


def design_order(design: Design) -> tuple[bool, list[str]]:
    return detect_cycle(design.nodes.keys(), design.edges)


def connected_edges(design: Design) -> list[Edge]:
    """Edges whose endpoints both exist in the design."""
    return [
        e for e in design.edges
        if e.from_node in design.nodes and e.to_node in design.nodes
    ]
