"""Computed operating points.

Results are produced fresh by every ``compute`` call and never written
back onto the design.  All floats are finite when they leave the engine.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields

from engine.powertree.model import NodeKind


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def _sanitize(obj) -> None:
    for f in fields(obj):
        value = getattr(obj, f.name)
        if isinstance(value, float):
            setattr(obj, f.name, _finite(value))


@dataclass
class BranchResult:
    """Operating point of one dual-output converter branch."""
    handle: str
    label: str
    v_out: float = 0.0
    i_out: float = 0.0
    p_out: float = 0.0
    p_in: float = 0.0
    eta: float = 0.0
    loss: float = 0.0


@dataclass
class NodeResult:
    node_id: str
    kind: NodeKind
    p_in: float = 0.0
    p_out: float = 0.0
    i_in: float = 0.0
    i_out: float = 0.0
    v_upstream: float | None = None
    loss: float = 0.0
    eta: float | None = None
    # Single-instance input power of a Subsystem node.
    p_in_single: float | None = None
    outputs: dict[str, BranchResult] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def sanitize(self) -> None:
        _sanitize(self)
        for branch in self.outputs.values():
            _sanitize(branch)


@dataclass
class EdgeResult:
    edge_id: str
    from_node: str
    to_node: str
    i_edge: float = 0.0
    v_drop: float = 0.0
    p_loss: float = 0.0
    r_total: float = 0.0

    def sanitize(self) -> None:
        _sanitize(self)


@dataclass
class Totals:
    load_power: float = 0.0
    source_input: float = 0.0
    overall_efficiency: float = 0.0


@dataclass
class ComputeResult:
    nodes: dict[str, NodeResult]
    edges: dict[str, EdgeResult]
    totals: Totals
    global_warnings: list[str]
    order: list[str]
    has_cycle: bool = False

    def sanitize(self) -> None:
        for node in self.nodes.values():
            node.sanitize()
        for edge in self.edges.values():
            edge.sanitize()
        _sanitize(self.totals)

    def node(self, node_id: str) -> NodeResult:
        return self.nodes[node_id]

    def edge(self, edge_id: str) -> EdgeResult:
        return self.edges[edge_id]


@dataclass
class DeepAggregates:
    """Loads and losses summed through every nesting level."""
    critical_load_power: float = 0.0
    non_critical_load_power: float = 0.0
    edge_loss: float = 0.0
    converter_loss: float = 0.0
    total_load_power: float = 0.0
