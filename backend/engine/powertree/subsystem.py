"""Recursive evaluation of embedded subsystem designs.

The embedded design is deep-copied, its ``SubsystemInput`` ports are
replaced by equivalent sources, and the whole engine runs on the copy.
The single-instance result is then folded back into the parent level,
scaled by the paralleled-system count.
"""

from __future__ import annotations

import copy
import dataclasses
import logging

from engine.powertree.constants import EPSILON
from engine.powertree.model import Design, Node, SourceNode, SubsystemInputNode, SubsystemNode
from engine.powertree.results import NodeResult
from engine.powertree.workspace import SubsystemPorts, Workspace

logger = logging.getLogger(__name__)


def _inner_design(ws: Workspace, node: SubsystemNode, res: NodeResult) -> Design:
    parent = ws.design
    if ws.depth + 1 > ws.max_depth:
        logger.warning(
            "Subsystem %s exceeds nesting depth limit %d", node.id, ws.max_depth
        )
        res.warnings.append(
            f"Subsystem nesting exceeds depth limit ({ws.max_depth}); "
            "embedded design ignored."
        )
        return Design(id="embedded-empty", name="Embedded", margins=parent.margins)
    if node.design is None:
        res.warnings.append("Subsystem has no embedded design; assuming empty design.")
        return Design(id="embedded-empty", name="Embedded", margins=parent.margins)
    return copy.deepcopy(node.design)


def substitute_input_ports(
    design: Design, fallback_v: float | None
) -> tuple[Design, dict[str, float]]:
    """Replace each SubsystemInput with a Source at the port's voltage.

    Returns the substituted design and the port voltage map.  Ports with
    no voltage of their own take ``fallback_v`` (the Subsystem's nominal
    input override), or 0 when that is unset too.
    """
    voltages: dict[str, float] = {}
    nodes: dict[str, Node] = {}
    for nid, n in design.nodes.items():
        if isinstance(n, SubsystemInputNode):
            v = n.v_out if n.v_out is not None and n.v_out > 0 else (fallback_v or 0.0)
            voltages[nid] = v
            nodes[nid] = SourceNode(id=nid, name=n.name or "Subsystem Input", v_out=v)
        else:
            nodes[nid] = n
    return dataclasses.replace(design, nodes=nodes), voltages


def evaluate_subsystem(ws: Workspace, node: SubsystemNode, res: NodeResult) -> None:
    inner = _inner_design(ws, node, res)
    inner, port_voltages = substitute_input_ports(inner, node.input_v_nom)
    inner = dataclasses.replace(inner, scenario=ws.design.scenario, intake_warnings=[])

    inner_result = ws.solve(inner, ws.depth + 1)
    for warning in inner_result.global_warnings:
        res.warnings.append(f"Embedded design: {warning}")

    count = max(1, round(node.num_paralleled_systems))

    ports = SubsystemPorts(voltages=port_voltages)
    p_in_single = 0.0
    for pid in port_voltages:
        port_result = inner_result.nodes.get(pid)
        with_loss = port_result.p_out if port_result is not None else 0.0
        without_loss = sum(
            inner_result.nodes[e.to_node].p_in
            for e in inner.edges
            if e.from_node == pid and e.to_node in inner_result.nodes
        )
        p_in_single += with_loss
        ports.power_incl_loss[pid] = with_loss * count
        ports.power_excl_loss[pid] = without_loss * count
    ws.ports[node.id] = ports

    res.p_in_single = p_in_single
    res.p_in = p_in_single * count
    res.p_out = inner_result.totals.load_power * count
    res.loss = res.p_in - res.p_out
    res.i_in = 0.0
    for pid, v in port_voltages.items():
        if v <= EPSILON:
            res.warnings.append(
                f"Input port {pid} has no voltage; set its Vout or the nominal input voltage."
            )
            continue
        res.i_in += ports.power_incl_loss[pid] / v
