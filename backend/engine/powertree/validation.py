"""Structural lint of a design description.

The checks are advisory: they report problems a user would want to fix
before trusting the numbers, but ``compute`` runs regardless.
"""

from __future__ import annotations

from engine.powertree.model import Design, NoteNode


def validate_design(design: Design) -> list[str]:
    warnings: list[str] = []
    if not design.nodes:
        warnings.append("Design has no nodes.")

    connected: set[str] = set()
    for edge in design.edges:
        if edge.from_node not in design.nodes or edge.to_node not in design.nodes:
            warnings.append(f"Edge {edge.id} references missing nodes.")
        connected.add(edge.from_node)
        connected.add(edge.to_node)

    for node in design.nodes.values():
        if not isinstance(node, NoteNode) and node.id not in connected:
            warnings.append(f"Unconnected node: {node.name or node.id}")
    return warnings
