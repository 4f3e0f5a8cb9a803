"""Steady-state power-tree analysis module for hierarchical DC designs.

Submodules
----------
model
    Node variants, interconnects, and design construction from config dicts.
efficiency
    Fixed and piecewise-linear converter efficiency models.
topology
    Adjacency construction and Kahn topological ordering.
solver
    Multi-pass reconciliation driver (``compute``).
aggregates
    Deep roll-up of loads and losses across nested subsystems.
summary
    Flattened converter/loss summary across the hierarchy.
validation
    Structural lint of a design description.
"""

from engine.powertree.aggregates import compute_deep_aggregates
from engine.powertree.efficiency import efficiency_from_model
from engine.powertree.model import Design, Scenario, build_design_from_config
from engine.powertree.solver import compute
from engine.powertree.summary import build_converter_summary
from engine.powertree.topology import detect_cycle
from engine.powertree.validation import validate_design

__all__ = [
    "build_converter_summary",
    "build_design_from_config",
    "compute",
    "compute_deep_aggregates",
    "Design",
    "detect_cycle",
    "efficiency_from_model",
    "Scenario",
    "validate_design",
]
