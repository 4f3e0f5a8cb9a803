"""Power-tree analysis endpoints.

All analyses are synchronous and stateless: the design travels in the
request body and nothing is persisted.
"""

from fastapi import APIRouter, HTTPException, status

from app.schemas.design import DesignIn
from app.schemas.results import (
    ComputeResponse,
    ConverterSummaryEntryOut,
    DeepAggregatesResponse,
    ValidationResponse,
)
from app.services import design_service
from engine.powertree import Scenario

router = APIRouter()


def _unprocessable(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


@router.post(
    "/compute",
    response_model=ComputeResponse,
    summary="Compute operating point",
    description="Steady-state currents, powers, losses and warnings for every node and interconnect.",
)
async def compute_design(body: DesignIn):
    try:
        return design_service.run_compute(body)
    except ValueError as exc:
        raise _unprocessable(exc) from exc


@router.post("/aggregates", response_model=DeepAggregatesResponse, summary="Deep aggregates")
async def deep_aggregates(body: DesignIn):
    try:
        return design_service.run_deep_aggregates(body)
    except ValueError as exc:
        raise _unprocessable(exc) from exc


@router.post(
    "/converter-summary",
    response_model=list[ConverterSummaryEntryOut],
    summary="Converter summary",
    description="Every converter and bus element across the hierarchy, largest output first.",
)
async def converter_summary(body: DesignIn):
    try:
        return design_service.run_converter_summary(body)
    except ValueError as exc:
        raise _unprocessable(exc) from exc


@router.post("/validate", response_model=ValidationResponse, summary="Lint a design")
async def validate(body: DesignIn):
    try:
        return ValidationResponse(warnings=design_service.run_validation(body))
    except ValueError as exc:
        raise _unprocessable(exc) from exc


@router.get("/scenarios", summary="List scenarios")
async def list_scenarios() -> list[str]:
    return [s.value for s in Scenario]
