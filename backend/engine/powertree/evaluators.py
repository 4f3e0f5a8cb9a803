"""Per-kind node evaluation rules.

Each evaluator reads the design node plus whatever node/edge results are
already known in the workspace and writes the node's own result.  The
same rule is reused by the initial bottom-up pass and by the corrective
and finalization passes; before edges are resolved the edge-derived
terms are zero and the provisional fallbacks apply.
"""

from __future__ import annotations

from collections.abc import Callable

from engine.powertree.constants import EPSILON, IDLE_FRACTION_OF_TYPICAL
from engine.powertree.efficiency import stage_efficiency
from engine.powertree.model import (
    BusNode,
    ConverterNode,
    DualOutputConverterNode,
    LoadNode,
    Node,
    NoteNode,
    Scenario,
    SourceNode,
    SubsystemInputNode,
    SubsystemNode,
)
from engine.powertree.results import BranchResult, NodeResult
from engine.powertree.subsystem import evaluate_subsystem
from engine.powertree.workspace import Workspace


def _clamp_pct(value: float) -> float:
    return min(max(value, 0.0), 100.0)


def scenario_current(load: LoadNode, scenario: Scenario) -> float:
    """Total current drawn by a load (all paralleled devices) in a scenario.

    ``scenario`` may be a :class:`Scenario` or its string value.
    """
    scenario = Scenario(scenario)
    count = max(1, round(load.num_paralleled_devices))
    if scenario is Scenario.MAX:
        per_device = load.i_max * _clamp_pct(load.utilization_max) / 100.0
    elif scenario is Scenario.IDLE:
        if load.i_idle is not None and load.i_idle > 0:
            per_device = load.i_idle
        else:
            per_device = load.i_typ * IDLE_FRACTION_OF_TYPICAL
    else:
        per_device = load.i_typ * _clamp_pct(load.utilization_typ) / 100.0
    return per_device * count


def evaluate_load(ws: Workspace, node: LoadNode, res: NodeResult) -> None:
    current = scenario_current(node, ws.design.scenario)
    power = node.v_req * current
    res.i_out = res.i_in = current
    res.p_out = res.p_in = power


def _provisional_input_current(
    ws: Workspace, node: ConverterNode | DualOutputConverterNode, p_in: float
) -> float:
    """Input current before the feed edges are resolved.

    Uses the midpoint of the input window, else the feed voltage.  With
    neither known the estimate is 0 until the edge pass sets it.
    """
    v = node.vin_mid
    if v is None or v <= EPSILON:
        v = ws.feed_voltage(node.id)
    if v is None or v <= EPSILON:
        return 0.0
    return p_in / v


def evaluate_converter(ws: Workspace, node: ConverterNode, res: NodeResult) -> None:
    out_edges = ws.output_edges(node.id)
    p_out = sum(ws.child_power(e) for e in out_edges) + ws.edge_loss(out_edges)
    i_out = ws.edge_current(out_edges)
    if i_out == 0:
        i_out = p_out / max(node.v_out, EPSILON)

    eta = stage_efficiency(node, p_out, i_out)
    p_in = p_out / max(eta, EPSILON)

    res.p_out = p_out
    res.i_out = i_out
    res.eta = eta
    res.p_in = p_in
    res.loss = p_in - p_out
    if not ws.edges_resolved:
        res.i_in = _provisional_input_current(ws, node, p_in)


def evaluate_dual_output_converter(
    ws: Workspace, node: DualOutputConverterNode, res: NodeResult
) -> None:
    grouped = ws.branch_edges(node)
    outputs: dict[str, BranchResult] = {}
    for idx, (handle, branch) in enumerate(node.branch_handles()):
        edges = grouped.get(handle, [])
        p_out = sum(ws.child_power(e) for e in edges) + ws.edge_loss(edges)
        i_out = ws.edge_current(edges)
        if i_out == 0:
            i_out = p_out / max(branch.v_out, EPSILON)
        eta = stage_efficiency(branch, p_out, i_out)
        p_in = p_out / max(eta, EPSILON)
        outputs[handle] = BranchResult(
            handle=handle,
            label=branch.label or f"Output {chr(65 + idx)}",
            v_out=branch.v_out,
            i_out=i_out,
            p_out=p_out,
            p_in=p_in,
            eta=eta,
            loss=p_in - p_out,
        )

    res.outputs = outputs
    res.p_out = sum(b.p_out for b in outputs.values())
    res.p_in = sum(b.p_in for b in outputs.values())
    res.i_out = sum(b.i_out for b in outputs.values())
    res.loss = res.p_in - res.p_out
    res.eta = res.p_out / res.p_in if res.p_in > EPSILON else None
    if not ws.edges_resolved:
        res.i_in = _provisional_input_current(ws, node, res.p_in)


def evaluate_bus(ws: Workspace, node: BusNode, res: NodeResult) -> None:
    """Inline resistor: Vin == Vout == V_bus, dissipation I_out^2 * R."""
    out_edges = ws.output_edges(node.id)
    p_out = sum(ws.child_power(e) for e in out_edges) + ws.edge_loss(out_edges)
    i_out = ws.edge_current(out_edges)
    if i_out == 0:
        i_out = p_out / max(node.v_bus, EPSILON)

    loss = i_out * i_out * node.r_ohm
    res.p_out = p_out
    res.i_out = res.i_in = i_out
    res.loss = loss
    res.p_in = p_out + loss


def evaluate_source(ws: Workspace, node: SourceNode, res: NodeResult) -> None:
    out_edges = ws.outgoing[node.id]
    if ws.edges_resolved:
        current = ws.edge_current(out_edges)
    else:
        current = sum(ws.nodes[e.to_node].i_in for e in out_edges)
    power = current * node.v_out
    res.i_out = res.i_in = current
    res.p_out = res.p_in = power


def evaluate_subsystem_input(
    ws: Workspace, node: SubsystemInputNode, res: NodeResult
) -> None:
    out_edges = ws.outgoing[node.id]
    if ws.edges_resolved:
        current = ws.edge_current(out_edges)
    else:
        current = sum(ws.nodes[e.to_node].i_in for e in out_edges)
    power = current * (node.v_out or 0.0)
    res.i_out = res.i_in = current
    res.p_in = power
    # The port also supplies the wiring loss on its own feeds.
    res.p_out = power + ws.edge_loss(out_edges)


def evaluate_note(ws: Workspace, node: NoteNode, res: NodeResult) -> None:
    pass


EVALUATORS: dict[type[Node], Callable[[Workspace, Node, NodeResult], None]] = {
    LoadNode: evaluate_load,
    ConverterNode: evaluate_converter,
    DualOutputConverterNode: evaluate_dual_output_converter,
    BusNode: evaluate_bus,
    SubsystemNode: evaluate_subsystem,
    SourceNode: evaluate_source,
    SubsystemInputNode: evaluate_subsystem_input,
    NoteNode: evaluate_note,
}

# Kinds whose outputs are re-derived once edge values are known.
RECONCILED = (ConverterNode, DualOutputConverterNode, BusNode)


def evaluate(ws: Workspace, node_id: str) -> None:
    node = ws.design.nodes[node_id]
    EVALUATORS[type(node)](ws, node, ws.nodes[node_id])
