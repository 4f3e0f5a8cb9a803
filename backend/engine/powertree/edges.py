"""Interconnect resolution.

An edge's current follows from what its child draws and the voltage the
parent presents: converters draw ``P_in / V``, subsystems draw the power
of the port the edge feeds, everything else draws its own input current.
The series resistance then gives ``V_drop = I * R`` and ``P_loss = I^2 * R``.
"""

from __future__ import annotations

from engine.powertree.constants import EPSILON
from engine.powertree.model import ConverterNode, DualOutputConverterNode, Edge, SubsystemNode
from engine.powertree.workspace import Workspace


def _edge_current(ws: Workspace, edge: Edge, up_v: float | None) -> float:
    child = ws.design.nodes[edge.to_node]
    child_res = ws.nodes[edge.to_node]

    if isinstance(child, (ConverterNode, DualOutputConverterNode)):
        v = up_v if up_v is not None and up_v > EPSILON else child.vin_mid
        if v is None or v <= EPSILON:
            return 0.0
        return child_res.p_in / v

    if isinstance(child, SubsystemNode):
        ports, choice = ws.port_for_edge(edge)
        if ports is None or choice.port_id is None:
            return 0.0
        power = ports.power_excl_loss.get(choice.port_id, 0.0)
        v = up_v if up_v is not None and up_v > EPSILON else ports.voltages[choice.port_id]
        return power / max(v, EPSILON)

    return child_res.i_in


def resolve_edge(ws: Workspace, edge: Edge) -> None:
    up_v = ws.upstream_voltage(edge)
    current = _edge_current(ws, edge, up_v)
    r_total = edge.r_ohm

    er = ws.edges[edge.id]
    er.i_edge = current
    er.r_total = r_total
    er.v_drop = current * r_total
    er.p_loss = current * current * r_total


def refresh_upstream_voltages(ws: Workspace) -> None:
    """Voltage seen at each node through its first voltage-carrying feed."""
    for node_id, feeds in ws.incoming.items():
        for edge in feeds:
            up_v = ws.upstream_voltage(edge)
            if up_v is not None:
                ws.nodes[node_id].v_upstream = up_v - ws.edges[edge.id].v_drop
                break


def resolve_edges(ws: Workspace, edges: list[Edge] | None = None) -> None:
    for edge in ws.live_edges if edges is None else edges:
        resolve_edge(ws, edge)
    refresh_upstream_voltages(ws)
    ws.edges_resolved = True
