"""Per-call evaluation scratch state.

A :class:`Workspace` lives for exactly one ``compute`` invocation.  It
holds the mutable node/edge results while the reconciliation passes run,
plus intermediate structures (subsystem port maps) that must not leak
onto the design or into the returned result.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from engine.powertree.constants import (
    EPSILON,
    INPUT_HANDLE,
    OUTPUT_HANDLE,
    VOLTAGE_MATCH_TOLERANCE,
)
from engine.powertree.model import (
    BusNode,
    ConverterNode,
    Design,
    DualOutputConverterNode,
    Edge,
    SourceNode,
    SubsystemInputNode,
    SubsystemNode,
)
from engine.powertree.results import ComputeResult, EdgeResult, NodeResult
from engine.powertree.topology import connected_edges


@dataclass
class PortChoice:
    port_id: str | None
    tied: list[str] = field(default_factory=list)


@dataclass
class SubsystemPorts:
    """Per-input-port figures of an evaluated Subsystem, already scaled by
    the paralleled-system count."""
    power_incl_loss: dict[str, float] = field(default_factory=dict)
    power_excl_loss: dict[str, float] = field(default_factory=dict)
    voltages: dict[str, float] = field(default_factory=dict)

    def attribute(self, to_handle: str | None, supply_v: float | None) -> PortChoice:
        """Pick the port an incoming edge feeds.

        Matching handle first, then the only port, then the port whose
        voltage is nearest the supply.  Exact ties resolve to the first
        port in design order and are reported in ``tied``.
        """
        if to_handle and to_handle in self.voltages:
            return PortChoice(to_handle)
        ids = list(self.voltages)
        if not ids:
            return PortChoice(None)
        if len(ids) == 1:
            return PortChoice(ids[0])
        if supply_v is None:
            return PortChoice(None)
        diffs = {pid: abs(self.voltages[pid] - supply_v) for pid in ids}
        best = min(diffs.values())
        nearest = [pid for pid in ids if diffs[pid] - best <= VOLTAGE_MATCH_TOLERANCE]
        return PortChoice(nearest[0], nearest if len(nearest) > 1 else [])


class Workspace:
    """Mutable evaluation state for one design level."""

    def __init__(
        self,
        design: Design,
        depth: int,
        max_depth: int,
        solve: Callable[[Design, int], ComputeResult],
    ) -> None:
        self.design = design
        self.depth = depth
        self.max_depth = max_depth
        self.solve = solve
        self.edges_resolved = False

        self.nodes: dict[str, NodeResult] = {
            nid: NodeResult(node_id=nid, kind=node.kind)
            for nid, node in design.nodes.items()
        }
        self.edges: dict[str, EdgeResult] = {
            e.id: EdgeResult(edge_id=e.id, from_node=e.from_node, to_node=e.to_node)
            for e in design.edges
        }
        self.ports: dict[str, SubsystemPorts] = {}

        self.live_edges: list[Edge] = connected_edges(design)
        self.outgoing: dict[str, list[Edge]] = {nid: [] for nid in design.nodes}
        self.incoming: dict[str, list[Edge]] = {nid: [] for nid in design.nodes}
        for e in self.live_edges:
            self.outgoing[e.from_node].append(e)
            self.incoming[e.to_node].append(e)

    # ------------------------------------------------------------------
    # Edge selection
    # ------------------------------------------------------------------

    def output_edges(self, node_id: str) -> list[Edge]:
        """Outgoing edges leaving a single-output node's output handle."""
        return [
            e for e in self.outgoing[node_id]
            if e.from_handle is None or e.from_handle == OUTPUT_HANDLE
        ]

    def input_edges(self, node_id: str) -> list[Edge]:
        return [
            e for e in self.incoming[node_id]
            if e.to_handle is None or e.to_handle == INPUT_HANDLE
        ]

    def branch_edges(self, node: DualOutputConverterNode) -> dict[str, list[Edge]]:
        grouped: dict[str, list[Edge]] = {}
        for e in self.outgoing[node.id]:
            grouped.setdefault(node.resolve_handle(e.from_handle), []).append(e)
        return grouped

    # ------------------------------------------------------------------
    # Electrical lookups
    # ------------------------------------------------------------------

    def upstream_voltage(self, edge: Edge) -> float | None:
        """Output voltage the parent presents on this edge."""
        parent = self.design.nodes.get(edge.from_node)
        if isinstance(parent, (SourceNode, ConverterNode)):
            return parent.v_out
        if isinstance(parent, DualOutputConverterNode):
            branch = parent.branch_for_edge(edge.from_handle)
            return branch.v_out if branch is not None else None
        if isinstance(parent, BusNode):
            return parent.v_bus
        if isinstance(parent, SubsystemInputNode):
            return parent.v_out
        return None

    def feed_voltage(self, node_id: str) -> float | None:
        """Voltage presented by the first input feed that has one."""
        for edge in self.input_edges(node_id):
            up_v = self.upstream_voltage(edge)
            if up_v is not None and up_v > EPSILON:
                return up_v
        return None

    def port_for_edge(self, edge: Edge) -> tuple[SubsystemPorts | None, PortChoice]:
        ports = self.ports.get(edge.to_node)
        if ports is None:
            return None, PortChoice(None)
        return ports, ports.attribute(edge.to_handle, self.upstream_voltage(edge))

    def child_power(self, edge: Edge) -> float:
        """Input power the child draws through this edge, inner losses included."""
        child = self.design.nodes[edge.to_node]
        if isinstance(child, SubsystemNode):
            ports, choice = self.port_for_edge(edge)
            if ports is None or choice.port_id is None:
                return 0.0
            return ports.power_incl_loss.get(choice.port_id, 0.0)
        return self.nodes[edge.to_node].p_in

    def edge_current(self, edges: list[Edge]) -> float:
        return sum(self.edges[e.id].i_edge for e in edges)

    def edge_loss(self, edges: list[Edge]) -> float:
        return sum(self.edges[e.id].p_loss for e in edges)
