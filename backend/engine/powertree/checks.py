"""Advisory constraint checks run on final values.

Warnings are strings attached to the owning node.  They never change a
computed value.
"""

from __future__ import annotations

from engine.powertree.constants import DEFAULT_EFFICIENCY, VOLTAGE_MATCH_TOLERANCE
from engine.powertree.efficiency import stage_efficiency_issue
from engine.powertree.model import (
    BusNode,
    ConverterNode,
    DualOutputConverterNode,
    LoadNode,
    Margins,
    Redundancy,
    SourceNode,
    SubsystemNode,
)
from engine.powertree.results import NodeResult
from engine.powertree.workspace import Workspace


def _derated(limit: float, pct: float) -> float:
    return limit * (1 - pct / 100.0)


def _fallback_note(reason: str) -> str:
    return f"Efficiency curve unusable ({reason}); assuming {DEFAULT_EFFICIENCY:.0%}."


def check_source(node: SourceNode, res: NodeResult, margins: Margins) -> None:
    power = res.p_out
    current = res.i_out
    if node.redundancy is Redundancy.N_PLUS_1:
        available = (node.count - 1) * node.rated_power
        if available < power:
            res.warnings.append(
                f"Redundancy shortfall: available {available:.1f}W < required {power:.1f}W"
            )
    if node.p_max and power > _derated(node.p_max, margins.power_pct):
        res.warnings.append(f"Source overpower {power:.1f}W > {node.p_max}W")
    if node.i_max and current > _derated(node.i_max, margins.current_pct):
        res.warnings.append(f"Source overcurrent {current:.2f}A > {node.i_max}A")


def check_converter(node: ConverterNode, res: NodeResult, margins: Margins) -> None:
    if node.iout_max and res.i_out > _derated(node.iout_max, margins.current_pct):
        res.warnings.append(
            f"I_out {res.i_out:.3f}A exceeds limit {node.iout_max}A (incl. margin)."
        )
    if node.pout_max and res.p_out > _derated(node.pout_max, margins.power_pct):
        res.warnings.append(
            f"P_out {res.p_out:.2f}W exceeds limit {node.pout_max}W (incl. margin)."
        )
    reason = stage_efficiency_issue(node)
    if reason:
        res.warnings.append(_fallback_note(reason))


def check_dual_output_converter(
    node: DualOutputConverterNode, res: NodeResult, margins: Margins
) -> None:
    for handle, branch in node.branch_handles():
        metric = res.outputs.get(handle)
        if metric is None:
            continue
        label = metric.label
        if branch.iout_max and metric.i_out > _derated(branch.iout_max, margins.current_pct):
            res.warnings.append(
                f"{label}: I_out {metric.i_out:.3f}A exceeds limit "
                f"{branch.iout_max}A (incl. margin)."
            )
        if branch.pout_max and metric.p_out > _derated(branch.pout_max, margins.power_pct):
            res.warnings.append(
                f"{label}: P_out {metric.p_out:.2f}W exceeds limit "
                f"{branch.pout_max}W (incl. margin)."
            )
        reason = stage_efficiency_issue(branch)
        if reason:
            res.warnings.append(f"{label}: {_fallback_note(reason)}")


def check_load(node: LoadNode, res: NodeResult, margins: Margins) -> None:
    up_v = res.v_upstream if res.v_upstream is not None else node.v_req
    allowed = node.v_req * (1 - margins.voltage_margin_pct / 100.0)
    if up_v < allowed:
        res.warnings.append(
            f"Voltage margin shortfall at load: upstream {up_v:.3f}V "
            f"< allowed {allowed:.3f}V"
        )


def _add_once(res: NodeResult, message: str) -> None:
    if message not in res.warnings:
        res.warnings.append(message)


def check_interconnects(ws: Workspace) -> None:
    """Voltage compatibility and drop budget across every live edge."""
    margins = ws.design.margins
    for edge in ws.live_edges:
        up_v = ws.upstream_voltage(edge)
        if up_v is None:
            continue
        child = ws.design.nodes[edge.to_node]
        res = ws.nodes[edge.to_node]

        if isinstance(child, (ConverterNode, DualOutputConverterNode)):
            # No window check unless both bounds are set.
            if (
                child.vin_min is not None
                and child.vin_max is not None
                and not child.vin_min <= up_v <= child.vin_max
            ):
                res.warnings.append(
                    f"Upstream voltage {up_v:.3f}V outside converter Vin range "
                    f"[{child.vin_min:.3f}, {child.vin_max:.3f}]V"
                )
        elif isinstance(child, LoadNode):
            if abs(up_v - child.v_req) > VOLTAGE_MATCH_TOLERANCE:
                res.warnings.append(
                    f"Voltage mismatch: upstream {up_v:.3f}V != load Vreq {child.v_req:.3f}V"
                )
        elif isinstance(child, BusNode):
            if abs(up_v - child.v_bus) > VOLTAGE_MATCH_TOLERANCE:
                res.warnings.append(
                    f"Voltage mismatch: upstream {up_v:.3f}V != bus {child.v_bus:.3f}V"
                )
        elif isinstance(child, SubsystemNode):
            ports, choice = ws.port_for_edge(edge)
            if ports is not None and choice.port_id is not None:
                if choice.tied:
                    _add_once(
                        res,
                        f"Ambiguous input port attribution: ports {', '.join(choice.tied)} "
                        f"are equally close to {up_v:.3f}V",
                    )
                expected = ports.voltages[choice.port_id]
                if abs(up_v - expected) > VOLTAGE_MATCH_TOLERANCE:
                    res.warnings.append(
                        f"Voltage mismatch: upstream {up_v:.3f}V != subsystem port "
                        f"{expected:.3f}V"
                    )

        v_drop = ws.edges[edge.id].v_drop
        budget = abs(up_v) * margins.voltage_drop_pct / 100.0
        if up_v and v_drop > budget:
            res.warnings.append(
                f"Interconnect {edge.id} drop {v_drop:.3f}V exceeds "
                f"{margins.voltage_drop_pct:g}% of {up_v:.3f}V"
            )


def run_checks(ws: Workspace) -> None:
    margins = ws.design.margins
    for node_id, node in ws.design.nodes.items():
        res = ws.nodes[node_id]
        if isinstance(node, SourceNode):
            check_source(node, res, margins)
        elif isinstance(node, ConverterNode):
            check_converter(node, res, margins)
        elif isinstance(node, DualOutputConverterNode):
            check_dual_output_converter(node, res, margins)
        elif isinstance(node, LoadNode):
            check_load(node, res, margins)
    check_interconnects(ws)
