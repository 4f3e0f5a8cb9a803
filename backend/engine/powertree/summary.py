"""Flattened converter and loss summary across the design hierarchy.

Every conversion stage (Converter, DualOutputConverter) and every inline
Bus element is listed once per appearance, with figures scaled by the
number of paralleled instances of the subsystems enclosing it.
"""

from __future__ import annotations

import copy
import dataclasses
from dataclasses import dataclass, field

from engine.powertree.constants import EPSILON, MAX_SUBSYSTEM_DEPTH
from engine.powertree.efficiency import resolve_phase_count
from engine.powertree.model import (
    BusNode,
    ConverterNode,
    Design,
    DualOutputConverterNode,
    NodeKind,
    SubsystemNode,
)
from engine.powertree.results import ComputeResult
from engine.powertree.solver import compute

TOP_LEVEL_LOCATION = "System"


@dataclass
class ConverterSummaryBranch:
    handle: str
    label: str
    v_out: float | None
    i_out: float
    p_in: float
    p_out: float
    loss: float
    efficiency: float
    phase_count: int = 1
    loss_per_phase: float | None = None
    edge_loss: float = 0.0


@dataclass
class ConverterSummaryEntry:
    id: str
    key: str
    name: str
    kind: NodeKind
    vin_min: float | None
    vin_max: float | None
    v_out: float | None
    i_out: float
    p_in: float
    p_out: float
    loss: float
    efficiency: float
    location: str
    location_path: list[str] = field(default_factory=list)
    topology: str | None = None
    v_outs: list[tuple[str, float]] = field(default_factory=list)
    phase_count: int = 1
    loss_per_phase: float | None = None
    edge_loss: float = 0.0
    outputs: list[ConverterSummaryBranch] = field(default_factory=list)


def _ratio(p_out: float, p_in: float) -> float:
    if p_in <= 0:
        return 0.0
    return min(max(p_out / max(p_in, EPSILON), 0.0), 1.0)


def _per_phase(loss: float, phases: int) -> float | None:
    return loss / phases if phases > 1 else None


def _entries_for_level(
    design: Design,
    result: ComputeResult,
    path_names: list[str],
    path_ids: list[str],
    multiplier: int,
) -> list[ConverterSummaryEntry]:
    location = " / ".join(path_names) if path_names else TOP_LEVEL_LOCATION
    edge_loss_from: dict[str, float] = {}
    for edge in design.edges:
        er = result.edges.get(edge.id)
        if er is not None:
            edge_loss_from[edge.from_node] = edge_loss_from.get(edge.from_node, 0.0) + er.p_loss

    entries = []
    for node in design.nodes.values():
        if not isinstance(node, (ConverterNode, DualOutputConverterNode, BusNode)):
            continue
        res = result.nodes[node.id]
        p_in = res.p_in * multiplier
        p_out = res.p_out * multiplier
        loss = res.loss * multiplier
        entry = ConverterSummaryEntry(
            id=node.id,
            key=">".join(path_ids + [node.id]),
            name=node.name or node.kind.value,
            kind=node.kind,
            vin_min=None,
            vin_max=None,
            v_out=None,
            i_out=res.i_out * multiplier,
            p_in=p_in,
            p_out=p_out,
            loss=loss,
            efficiency=_ratio(p_out, p_in),
            location=location,
            location_path=list(path_names),
            edge_loss=edge_loss_from.get(node.id, 0.0) * multiplier,
        )

        if isinstance(node, ConverterNode):
            entry.vin_min, entry.vin_max = node.vin_min, node.vin_max
            entry.v_out = node.v_out
            entry.topology = node.topology
            entry.phase_count = resolve_phase_count(node.phase_count)
        elif isinstance(node, BusNode):
            entry.vin_min = entry.vin_max = entry.v_out = node.v_bus
        else:
            entry.vin_min, entry.vin_max = node.vin_min, node.vin_max
            entry.topology = node.topology
            branch_edge_loss: dict[str, float] = {}
            for edge in design.edges:
                if edge.from_node == node.id and edge.id in result.edges:
                    handle = node.resolve_handle(edge.from_handle)
                    branch_edge_loss[handle] = (
                        branch_edge_loss.get(handle, 0.0) + result.edges[edge.id].p_loss
                    )
            for handle, branch in node.branch_handles():
                metric = res.outputs.get(handle)
                if metric is None:
                    continue
                b_pin = metric.p_in * multiplier
                b_pout = metric.p_out * multiplier
                b_loss = metric.loss * multiplier
                phases = resolve_phase_count(branch.phase_count)
                entry.outputs.append(ConverterSummaryBranch(
                    handle=handle,
                    label=metric.label,
                    v_out=branch.v_out,
                    i_out=metric.i_out * multiplier,
                    p_in=b_pin,
                    p_out=b_pout,
                    loss=b_loss,
                    efficiency=_ratio(b_pout, b_pin),
                    phase_count=phases,
                    loss_per_phase=_per_phase(b_loss, phases),
                    edge_loss=branch_edge_loss.get(handle, 0.0) * multiplier,
                ))
                entry.v_outs.append((metric.label, branch.v_out))
        entry.loss_per_phase = _per_phase(loss, entry.phase_count)
        entries.append(entry)
    return entries


def build_converter_summary(
    design: Design,
    result: ComputeResult | None = None,
    max_depth: int = MAX_SUBSYSTEM_DEPTH,
) -> list[ConverterSummaryEntry]:
    """List every conversion and bus stage in the hierarchy.

    ``result`` may carry an already computed top-level result.  Entries are
    sorted by output power, largest first, then by name; dual-output
    branches inside an entry are sorted the same way by label.
    """
    entries: list[ConverterSummaryEntry] = []

    def visit(level: Design, level_result: ComputeResult, names, ids, multiplier, depth):
        entries.extend(_entries_for_level(level, level_result, names, ids, multiplier))
        if depth >= max_depth:
            return
        for node in level.nodes.values():
            if not isinstance(node, SubsystemNode) or node.design is None:
                continue
            inner = dataclasses.replace(copy.deepcopy(node.design), scenario=level.scenario)
            visit(
                inner,
                compute(inner, max_depth=max_depth - depth - 1),
                names + [node.name or "Subsystem"],
                ids + [node.id],
                multiplier * max(1, round(node.num_paralleled_systems)),
                depth + 1,
            )

    visit(design, result if result is not None else compute(design, max_depth), [], [], 1, 0)

    entries.sort(key=lambda e: (-round(e.p_out, 9), e.name))
    for entry in entries:
        entry.outputs.sort(key=lambda b: (-round(b.p_out, 9), b.label))
    return entries
