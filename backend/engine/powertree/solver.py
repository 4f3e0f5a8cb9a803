"""Reconciliation driver for steady-state power-tree analysis.

Power flow in a power tree is defined in both directions: a converter's
input depends on what its outputs consume, while the current on each
interconnect depends on the voltage presented upstream.  The driver
resolves this with a fixed sequence of passes:

1. initial      bottom-up node estimate with edge-independent fallbacks
2. edges        first edge resolution from the provisional child values
3. corrective   converters, dual-output converters and buses re-derive
                outputs from downstream input power plus edge losses
4. edges        second edge resolution from the refined child values
5. input        converter/bus input current from their input-handle
                feeds; sources re-read their outgoing edge currents
6. finalize     converter/bus outputs from the stable edge currents, bus
                feeds re-resolved, source totals refreshed

The pass count is fixed rather than iterated to a tolerance: every pass
reads only values that an earlier pass has already settled, and the
topological order rules out cyclic dependencies within a level.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from engine.powertree.checks import run_checks
from engine.powertree.constants import MAX_SUBSYSTEM_DEPTH
from engine.powertree.edges import refresh_upstream_voltages, resolve_edge, resolve_edges
from engine.powertree.evaluators import RECONCILED, evaluate
from engine.powertree.model import (
    SOURCE_LIKE,
    BusNode,
    Design,
    LoadNode,
    SubsystemNode,
)
from engine.powertree.results import ComputeResult, EdgeResult, NodeResult, Totals
from engine.powertree.topology import design_order
from engine.powertree.workspace import Workspace

logger = logging.getLogger(__name__)

CYCLE_WARNING = "Cycle detected: computation blocked."


# ======================================================================
# Passes
# ======================================================================

def _initial_pass(ws: Workspace, order: list[str]) -> None:
    for node_id in reversed(order):
        evaluate(ws, node_id)


def _edge_pass(ws: Workspace, order: list[str]) -> None:
    resolve_edges(ws)


def _corrective_pass(ws: Workspace, order: list[str]) -> None:
    for node_id in reversed(order):
        if isinstance(ws.design.nodes[node_id], RECONCILED):
            evaluate(ws, node_id)


def _input_current_pass(ws: Workspace, order: list[str]) -> None:
    for node_id in order:
        if isinstance(ws.design.nodes[node_id], RECONCILED):
            ws.nodes[node_id].i_in = ws.edge_current(ws.input_edges(node_id))
    for node_id in order:
        if isinstance(ws.design.nodes[node_id], SOURCE_LIKE):
            evaluate(ws, node_id)


def _refresh_source_totals(ws: Workspace, node_id: str) -> None:
    """Supply figures of a source-like node from its final feeds."""
    current = 0.0
    power = 0.0
    for edge in ws.outgoing[node_id]:
        er = ws.edges[edge.id]
        current += er.i_edge
        power += ws.child_power(edge) + er.p_loss
    res = ws.nodes[node_id]
    res.i_out = res.i_in = current
    res.p_out = res.p_in = power


def _finalization_pass(ws: Workspace, order: list[str]) -> None:
    for node_id in reversed(order):
        if isinstance(ws.design.nodes[node_id], RECONCILED):
            evaluate(ws, node_id)

    # Bus feeds carry exactly what the bus passes on.
    for edge in ws.live_edges:
        if isinstance(ws.design.nodes[edge.to_node], BusNode):
            resolve_edge(ws, edge)
    refresh_upstream_voltages(ws)

    for node_id in order:
        if isinstance(ws.design.nodes[node_id], SOURCE_LIKE):
            _refresh_source_totals(ws, node_id)


RECONCILIATION_PASSES: tuple[tuple[str, Callable[[Workspace, list[str]], None]], ...] = (
    ("initial", _initial_pass),
    ("edges", _edge_pass),
    ("corrective", _corrective_pass),
    ("edges", _edge_pass),
    ("input", _input_current_pass),
    ("finalize", _finalization_pass),
)


# ======================================================================
# Result assembly
# ======================================================================

def _totals(ws: Workspace) -> Totals:
    load_power = 0.0
    source_input = 0.0
    for node_id, node in ws.design.nodes.items():
        res = ws.nodes[node_id]
        if isinstance(node, LoadNode) and node.critical:
            load_power += res.p_out
        elif isinstance(node, SubsystemNode):
            load_power += res.p_out
        elif isinstance(node, SOURCE_LIKE):
            source_input += res.p_in
    overall = load_power / source_input if source_input > 0 else 0.0
    return Totals(load_power=load_power, source_input=source_input, overall_efficiency=overall)


def _blocked_result(design: Design, order: list[str], warnings: list[str]) -> ComputeResult:
    return ComputeResult(
        nodes={nid: NodeResult(node_id=nid, kind=n.kind) for nid, n in design.nodes.items()},
        edges={
            e.id: EdgeResult(edge_id=e.id, from_node=e.from_node, to_node=e.to_node)
            for e in design.edges
        },
        totals=Totals(),
        global_warnings=warnings + [CYCLE_WARNING],
        order=order,
        has_cycle=True,
    )


def _solve(design: Design, depth: int, max_depth: int) -> ComputeResult:
    has_cycle, order = design_order(design)
    global_warnings = list(design.intake_warnings)

    if has_cycle:
        logger.warning(
            "Cycle in design %s: %d of %d nodes ordered",
            design.id, len(order), len(design.nodes),
        )
        return _blocked_result(design, order, global_warnings)

    ws = Workspace(
        design,
        depth=depth,
        max_depth=max_depth,
        solve=lambda inner, level: _solve(inner, level, max_depth),
    )
    for name, run_pass in RECONCILIATION_PASSES:
        run_pass(ws, order)
        logger.debug("Design %s depth %d: %s pass complete", design.id, depth, name)

    run_checks(ws)

    result = ComputeResult(
        nodes=ws.nodes,
        edges=ws.edges,
        totals=_totals(ws),
        global_warnings=global_warnings,
        order=order,
    )
    result.sanitize()
    return result


def compute(design: Design, max_depth: int = MAX_SUBSYSTEM_DEPTH) -> ComputeResult:
    """Compute the steady-state operating point of a design.

    Args:
        design: design to analyze; it is never modified
        max_depth: maximum subsystem nesting depth to evaluate

    Returns:
        ComputeResult with per-node and per-edge metrics, totals, global
        warnings and the topological order.  A cyclic design yields
        all-zero metrics and a single cycle warning instead of raising.
    """
    return _solve(design, 0, max_depth)
