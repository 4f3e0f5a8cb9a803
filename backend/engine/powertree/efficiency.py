"""Converter efficiency resolution.

A converter stage carries either a fixed efficiency or a piecewise-linear
curve over load fraction.  Curve breakpoints may be given as a load
percentage of the basis maximum (``Pout_max`` or ``Iout_max``) or as an
absolute operating current; both are normalized onto the same 0-100 %
axis before interpolation.  When the curve is specified per phase, the
operating point and the basis maximum are both divided by the phase count.
"""

from __future__ import annotations

import math
from typing import Union

import numpy as np

from engine.powertree.constants import DEFAULT_EFFICIENCY
from engine.powertree.model import (
    ConverterNode,
    CurveBasis,
    CurveEfficiency,
    EfficiencyModel,
    FixedEfficiency,
    OutputBranch,
)

ConversionStage = Union[ConverterNode, OutputBranch]


def resolve_phase_count(raw: float | int | None) -> int:
    """Phase count as a positive integer; anything unusable counts as 1."""
    if raw is None:
        return 1
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 1
    if not math.isfinite(value) or value <= 0:
        return 1
    return max(1, round(value))


def _basis_max(
    model: CurveEfficiency, pout_max: float | None, iout_max: float | None
) -> float | None:
    raw = pout_max if model.basis is CurveBasis.OUTPUT_POWER else iout_max
    if raw is None or not math.isfinite(raw) or raw <= 0:
        return None
    return raw


def _normalized_points(
    model: CurveEfficiency, max_base: float
) -> tuple[np.ndarray, np.ndarray]:
    """Breakpoints as ascending (load %, eta) arrays."""
    positions = []
    etas = []
    for point in model.points:
        if point.load_pct is not None:
            pct = point.load_pct
        elif point.current is not None:
            pct = point.current / max_base * 100.0
        else:
            continue
        positions.append(min(max(pct, 0.0), 100.0))
        etas.append(point.eta)

    pos = np.asarray(positions, dtype=np.float64)
    eta = np.asarray(etas, dtype=np.float64)
    order = np.argsort(pos, kind="stable")
    return pos[order], eta[order]


def efficiency_from_model(
    model: EfficiencyModel,
    p_out: float,
    i_out: float,
    pout_max: float | None = None,
    iout_max: float | None = None,
    phase_count: int = 1,
) -> float:
    """Evaluate conversion efficiency at an operating point.

    Args:
        model: fixed value or curve
        p_out: stage output power (W), all phases combined
        i_out: stage output current (A), all phases combined
        pout_max: rated output power, basis for power-normalized curves
        iout_max: rated output current, basis for current-normalized curves
        phase_count: number of phases sharing the load

    Returns:
        Efficiency as a fraction.  Curves that cannot be evaluated (no
        usable points, missing basis maximum) return 0.9.
    """
    if isinstance(model, FixedEfficiency):
        return model.value

    phases = resolve_phase_count(phase_count)
    divisor = phases if model.per_phase else 1

    if not model.points:
        return DEFAULT_EFFICIENCY

    raw_max = _basis_max(model, pout_max, iout_max)
    if raw_max is None:
        return DEFAULT_EFFICIENCY
    max_base = raw_max / divisor

    positions, etas = _normalized_points(model, max_base)
    if positions.size == 0:
        return DEFAULT_EFFICIENCY

    operating = p_out if model.basis is CurveBasis.OUTPUT_POWER else i_out
    pct = float(np.clip(operating / divisor / max_base * 100.0, 0.0, 100.0))

    # np.interp holds the end values outside the breakpoint range.
    return float(np.interp(pct, positions, etas))


def efficiency_issue(
    model: EfficiencyModel,
    pout_max: float | None = None,
    iout_max: float | None = None,
) -> str | None:
    """Describe why a curve falls back to the default efficiency, if it does."""
    if isinstance(model, FixedEfficiency):
        return None
    if not model.points:
        return "no curve points"
    if _basis_max(model, pout_max, iout_max) is None:
        label = "Pout_max" if model.basis is CurveBasis.OUTPUT_POWER else "Iout_max"
        return f"{label} not set"
    if not any(p.load_pct is not None or p.current is not None for p in model.points):
        return "no positioned curve points"
    return None


def stage_efficiency(stage: ConversionStage, p_out: float, i_out: float) -> float:
    """Efficiency of a converter or dual-output branch at its operating point."""
    return efficiency_from_model(
        stage.efficiency,
        p_out,
        i_out,
        pout_max=stage.pout_max,
        iout_max=stage.iout_max,
        phase_count=stage.phase_count,
    )


def stage_efficiency_issue(stage: ConversionStage) -> str | None:
    return efficiency_issue(stage.efficiency, stage.pout_max, stage.iout_max)
