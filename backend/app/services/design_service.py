"""Bridge between request schemas and the power-tree engine.

Converts a validated :class:`DesignIn` into an engine ``Design``, runs the
requested analysis and shapes the engine dataclasses into response
payloads.  Loader errors surface as ``ValueError`` for the API layer to
map onto HTTP 422.
"""

import dataclasses
import logging
from enum import Enum

from app.config import settings
from app.core.logging import design_context
from app.schemas.design import DesignIn
from app.schemas.results import (
    ComputeResponse,
    ConverterSummaryEntryOut,
    DeepAggregatesResponse,
)
from engine.powertree import (
    Design,
    build_converter_summary,
    build_design_from_config,
    compute,
    compute_deep_aggregates,
    validate_design,
)

logger = logging.getLogger(__name__)


def _plain(pairs: list[tuple[str, object]]) -> dict:
    return {k: v.value if isinstance(v, Enum) else v for k, v in pairs}


def _payload(obj) -> dict:
    return dataclasses.asdict(obj, dict_factory=_plain)


def design_from_schema(body: DesignIn) -> Design:
    # Absent node and edge lists are left out so the loader reports them.
    config = body.model_dump(by_alias=True, exclude_none=True)
    design = build_design_from_config(config)
    with design_context(design.id):
        logger.info(
            "Loaded design %s (%d nodes, %d edges)",
            design.id, len(design.nodes), len(design.edges),
            extra={
                "scenario": design.scenario.value,
                "node_count": len(design.nodes),
                "edge_count": len(design.edges),
            },
        )
    return design


def run_compute(body: DesignIn) -> ComputeResponse:
    design = design_from_schema(body)
    with design_context(design.id):
        result = compute(design, max_depth=settings.max_subsystem_depth)
        if result.has_cycle:
            logger.warning(
                "Design %s is cyclic; returning blocked result", design.id,
                extra={"has_cycle": True},
            )
    return ComputeResponse.model_validate(_payload(result))


def run_deep_aggregates(body: DesignIn) -> DeepAggregatesResponse:
    design = design_from_schema(body)
    with design_context(design.id):
        aggregates = compute_deep_aggregates(design, max_depth=settings.max_subsystem_depth)
    return DeepAggregatesResponse.model_validate(_payload(aggregates))


def run_converter_summary(body: DesignIn) -> list[ConverterSummaryEntryOut]:
    design = design_from_schema(body)
    with design_context(design.id):
        entries = build_converter_summary(design, max_depth=settings.max_subsystem_depth)
    return [ConverterSummaryEntryOut.model_validate(_payload(e)) for e in entries]


def run_validation(body: DesignIn) -> list[str]:
    design = design_from_schema(body)
    return design.intake_warnings + validate_design(design)
