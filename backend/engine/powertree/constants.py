"""Shared numeric floors and handle names for the power-tree engine."""

from __future__ import annotations

# Near-zero floor for every voltage/efficiency/resistance divisor.
EPSILON: float = 1e-9

# Efficiency used when a curve cannot be evaluated.
DEFAULT_EFFICIENCY: float = 0.9

# Idle current as a fraction of typical current when no idle value is set.
IDLE_FRACTION_OF_TYPICAL: float = 0.2

# Absolute tolerance (V) for voltage-compatibility checks.
VOLTAGE_MATCH_TOLERANCE: float = 1e-6

# Recursion limit for embedded subsystem designs.
MAX_SUBSYSTEM_DEPTH: int = 16

OUTPUT_HANDLE: str = "output"
INPUT_HANDLE: str = "input"
DEFAULT_BRANCH_HANDLE: str = "outputA"
