"""Deep roll-up of loads and losses across nested subsystems."""

from __future__ import annotations

import copy
import dataclasses
import logging

from engine.powertree.constants import MAX_SUBSYSTEM_DEPTH
from engine.powertree.evaluators import RECONCILED
from engine.powertree.model import Design, LoadNode, SubsystemNode
from engine.powertree.results import DeepAggregates
from engine.powertree.solver import compute

logger = logging.getLogger(__name__)


def _walk(design: Design, depth: int, max_depth: int) -> DeepAggregates:
    result = compute(design, max_depth=max(max_depth - depth, 0))

    agg = DeepAggregates()
    for node_id, node in design.nodes.items():
        res = result.nodes[node_id]
        if isinstance(node, LoadNode):
            if node.critical:
                agg.critical_load_power += res.p_out
            else:
                agg.non_critical_load_power += res.p_out
        elif isinstance(node, RECONCILED):
            agg.converter_loss += res.loss
    agg.edge_loss = sum(e.p_loss for e in result.edges.values())

    for node in design.nodes.values():
        if not isinstance(node, SubsystemNode) or node.design is None:
            continue
        if depth + 1 > max_depth:
            logger.warning("Deep aggregation stopped at depth %d in %s", depth, design.id)
            continue
        inner = dataclasses.replace(copy.deepcopy(node.design), scenario=design.scenario)
        inner_agg = _walk(inner, depth + 1, max_depth)
        count = max(1, round(node.num_paralleled_systems))
        agg.critical_load_power += inner_agg.critical_load_power * count
        agg.non_critical_load_power += inner_agg.non_critical_load_power * count
        agg.edge_loss += inner_agg.edge_loss * count
        agg.converter_loss += inner_agg.converter_loss * count

    agg.total_load_power = agg.critical_load_power + agg.non_critical_load_power
    return agg


def compute_deep_aggregates(
    design: Design, max_depth: int = MAX_SUBSYSTEM_DEPTH
) -> DeepAggregates:
    """Sum load power and losses through every nesting level.

    Each embedded design is evaluated on its own (its input ports act as
    sources) under the parent's scenario, and its contribution is scaled
    by the Subsystem's paralleled-system count.
    """
    return _walk(design, 0, max_depth)
