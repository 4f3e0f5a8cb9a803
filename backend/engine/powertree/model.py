"""Power-tree design model.

A design is a directed graph of supply, conversion, bus, and load nodes
joined by resistive interconnects.  Subsystem nodes embed a complete
design of their own, so the structure is recursive.  Everything here is
plain data; evaluation lives in :mod:`engine.powertree.solver`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union

from engine.powertree.constants import DEFAULT_BRANCH_HANDLE, DEFAULT_EFFICIENCY


class Scenario(str, Enum):
    TYPICAL = "Typical"
    MAX = "Max"
    IDLE = "Idle"


class NodeKind(str, Enum):
    SOURCE = "Source"
    LOAD = "Load"
    CONVERTER = "Converter"
    DUAL_OUTPUT_CONVERTER = "DualOutputConverter"
    BUS = "Bus"
    SUBSYSTEM = "Subsystem"
    SUBSYSTEM_INPUT = "SubsystemInput"
    NOTE = "Note"


class Redundancy(str, Enum):
    N = "N"
    N_PLUS_1 = "N+1"


class CurveBasis(str, Enum):
    OUTPUT_POWER = "pout_max"
    OUTPUT_CURRENT = "iout_max"


# ---------------------------------------------------------------------------
# Efficiency models
# ---------------------------------------------------------------------------

@dataclass
class FixedEfficiency:
    value: float = DEFAULT_EFFICIENCY
    per_phase: bool = False


@dataclass
class CurvePoint:
    """One efficiency breakpoint.

    The position is given either as a load percentage of the basis maximum
    or as an absolute operating current; ``load_pct`` wins when both are set.
    """
    eta: float
    load_pct: float | None = None
    current: float | None = None


@dataclass
class CurveEfficiency:
    basis: CurveBasis = CurveBasis.OUTPUT_POWER
    points: list[CurvePoint] = field(default_factory=list)
    per_phase: bool = False


EfficiencyModel = Union[FixedEfficiency, CurveEfficiency]


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------

def _window_midpoint(vin_min: float | None, vin_max: float | None) -> float | None:
    if vin_min is None or vin_max is None:
        return None
    return (vin_min + vin_max) / 2


@dataclass
class Node:
    """Common node identity.  Concrete kinds subclass this."""
    id: str
    name: str = ""

    kind: ClassVar[NodeKind]


@dataclass
class SourceNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.SOURCE

    v_out: float = 0.0
    i_max: float | None = None
    p_max: float | None = None
    count: int = 1
    redundancy: Redundancy = Redundancy.N

    @property
    def rated_power(self) -> float:
        if self.p_max:
            return self.p_max
        return (self.i_max or 0.0) * self.v_out


@dataclass
class LoadNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.LOAD

    v_req: float = 0.0
    i_typ: float = 0.0
    i_max: float = 0.0
    i_idle: float | None = None
    utilization_typ: float = 100.0
    utilization_max: float = 100.0
    num_paralleled_devices: int = 1
    critical: bool = True


@dataclass
class ConverterNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.CONVERTER

    vin_min: float | None = None
    vin_max: float | None = None
    v_out: float = 0.0
    iout_max: float | None = None
    pout_max: float | None = None
    phase_count: int = 1
    efficiency: EfficiencyModel = field(default_factory=FixedEfficiency)
    topology: str | None = None

    @property
    def vin_mid(self) -> float | None:
        return _window_midpoint(self.vin_min, self.vin_max)


@dataclass
class OutputBranch:
    """One independent output of a dual-output converter."""
    id: str | None = None
    label: str | None = None
    v_out: float = 0.0
    iout_max: float | None = None
    pout_max: float | None = None
    phase_count: int = 1
    efficiency: EfficiencyModel = field(default_factory=FixedEfficiency)


@dataclass
class DualOutputConverterNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.DUAL_OUTPUT_CONVERTER

    vin_min: float | None = None
    vin_max: float | None = None
    outputs: list[OutputBranch] = field(default_factory=list)
    topology: str | None = None

    @property
    def vin_mid(self) -> float | None:
        return _window_midpoint(self.vin_min, self.vin_max)

    @property
    def fallback_handle(self) -> str:
        if self.outputs and self.outputs[0].id:
            return self.outputs[0].id
        return DEFAULT_BRANCH_HANDLE

    def branch_handles(self) -> list[tuple[str, OutputBranch]]:
        """Return ``(handle_id, branch)`` pairs in declaration order."""
        fallback = self.fallback_handle
        handles = []
        for idx, branch in enumerate(self.outputs):
            if branch.id:
                handle = branch.id
            elif idx == 0:
                handle = fallback
            else:
                handle = f"{fallback}-{idx}"
            handles.append((handle, branch))
        return handles

    def resolve_handle(self, from_handle: str | None) -> str:
        """Map an edge's source handle onto a branch handle."""
        known = {b.id for b in self.outputs if b.id}
        if from_handle and from_handle in known:
            return from_handle
        return self.fallback_handle

    def branch_for_edge(self, from_handle: str | None) -> OutputBranch | None:
        if not self.outputs:
            return None
        for branch in self.outputs:
            if from_handle and branch.id == from_handle:
                return branch
        return self.outputs[0]


@dataclass
class BusNode(Node):
    """Inline resistive element (fuse, e-fuse, load switch, shunt)."""
    kind: ClassVar[NodeKind] = NodeKind.BUS

    v_bus: float = 0.0
    r_milliohm: float = 0.0

    @property
    def r_ohm(self) -> float:
        return max(0.0, self.r_milliohm) / 1000.0


@dataclass
class SubsystemNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.SUBSYSTEM

    design: Design | None = None
    num_paralleled_systems: int = 1
    input_v_nom: float | None = None


@dataclass
class SubsystemInputNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.SUBSYSTEM_INPUT

    v_out: float | None = None


@dataclass
class NoteNode(Node):
    kind: ClassVar[NodeKind] = NodeKind.NOTE

    text: str = ""


SOURCE_LIKE = (SourceNode, SubsystemInputNode)


# ---------------------------------------------------------------------------
# Interconnects and design
# ---------------------------------------------------------------------------

@dataclass
class Edge:
    id: str
    from_node: str
    to_node: str
    from_handle: str | None = None
    to_handle: str | None = None
    r_milliohm: float = 0.0

    @property
    def r_ohm(self) -> float:
        return max(0.0, self.r_milliohm) / 1000.0


@dataclass
class Margins:
    """Derating percentages applied by the warning pass."""
    current_pct: float = 10.0
    power_pct: float = 10.0
    voltage_drop_pct: float = 5.0
    voltage_margin_pct: float = 3.0


@dataclass
class Design:
    id: str = "design"
    name: str = "Design"
    nodes: dict[str, Node] = field(default_factory=dict)
    edges: list[Edge] = field(default_factory=list)
    scenario: Scenario = Scenario.TYPICAL
    margins: Margins = field(default_factory=Margins)
    # Loader notes surfaced as global warnings by compute().
    intake_warnings: list[str] = field(default_factory=list)

    def add_node(self, node: Node) -> Node:
        if node.id in self.nodes:
            raise ValueError(f"Duplicate node id {node.id!r}")
        self.nodes[node.id] = node
        return node


# ---------------------------------------------------------------------------
# Construction from configuration dictionaries
# ---------------------------------------------------------------------------

def _float(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    number = _float(value, math.nan)
    return number if math.isfinite(number) else None


def _positive(value: Any) -> float | None:
    number = _float(value, 0.0)
    return number if number > 0 else None


def _count(value: Any) -> int:
    return max(1, round(_float(value, 1.0)))


def _efficiency_from_config(cfg: dict | None) -> EfficiencyModel:
    if not cfg:
        return FixedEfficiency()
    per_phase = bool(cfg.get("per_phase", False))
    if cfg.get("type", "fixed") == "curve":
        points = []
        for p in cfg.get("points") or []:
            load_pct = p.get("load_pct")
            current = p.get("current")
            points.append(CurvePoint(
                eta=_float(p.get("eta"), 0.0),
                load_pct=_float(load_pct) if load_pct is not None else None,
                current=_float(current) if current is not None else None,
            ))
        return CurveEfficiency(
            basis=CurveBasis(cfg.get("basis", CurveBasis.OUTPUT_POWER.value)),
            points=points,
            per_phase=per_phase,
        )
    return FixedEfficiency(
        value=_float(cfg.get("value"), DEFAULT_EFFICIENCY),
        per_phase=per_phase,
    )


def _node_from_config(nc: dict) -> Node:
    if not isinstance(nc, dict):
        raise ValueError(f"Node entry must be a mapping, got {type(nc).__name__}")
    try:
        kind = NodeKind(nc.get("type"))
    except ValueError:
        raise ValueError(f"Unknown node type {nc.get('type')!r}") from None

    if nc.get("id") in (None, ""):
        raise ValueError(f"{kind.value} node is missing an id")
    node_id = str(nc["id"])
    name = nc.get("name") or ""

    if kind is NodeKind.SOURCE:
        return SourceNode(
            id=node_id,
            name=name,
            v_out=_float(nc.get("v_out")),
            i_max=_positive(nc.get("i_max")),
            p_max=_positive(nc.get("p_max")),
            count=_count(nc.get("count", 1)),
            redundancy=Redundancy(nc.get("redundancy") or "N"),
        )
    if kind is NodeKind.LOAD:
        i_idle = nc.get("i_idle")
        return LoadNode(
            id=node_id,
            name=name,
            v_req=_float(nc.get("v_req")),
            i_typ=_float(nc.get("i_typ")),
            i_max=_float(nc.get("i_max")),
            i_idle=_float(i_idle) if i_idle is not None else None,
            utilization_typ=_float(nc.get("utilization_typ"), 100.0),
            utilization_max=_float(nc.get("utilization_max"), 100.0),
            num_paralleled_devices=_count(nc.get("num_paralleled_devices", 1)),
            critical=nc.get("critical", True) is not False,
        )
    if kind is NodeKind.CONVERTER:
        return ConverterNode(
            id=node_id,
            name=name,
            vin_min=_optional_float(nc.get("vin_min")),
            vin_max=_optional_float(nc.get("vin_max")),
            v_out=_float(nc.get("v_out")),
            iout_max=_positive(nc.get("iout_max")),
            pout_max=_positive(nc.get("pout_max")),
            phase_count=_count(nc.get("phase_count", 1)),
            efficiency=_efficiency_from_config(nc.get("efficiency")),
            topology=nc.get("topology"),
        )
    if kind is NodeKind.DUAL_OUTPUT_CONVERTER:
        outputs = [
            OutputBranch(
                id=oc.get("id"),
                label=oc.get("label"),
                v_out=_float(oc.get("v_out")),
                iout_max=_positive(oc.get("iout_max")),
                pout_max=_positive(oc.get("pout_max")),
                phase_count=_count(oc.get("phase_count", 1)),
                efficiency=_efficiency_from_config(oc.get("efficiency")),
            )
            for oc in nc.get("outputs") or []
        ]
        return DualOutputConverterNode(
            id=node_id,
            name=name,
            vin_min=_optional_float(nc.get("vin_min")),
            vin_max=_optional_float(nc.get("vin_max")),
            outputs=outputs,
            topology=nc.get("topology"),
        )
    if kind is NodeKind.BUS:
        return BusNode(
            id=node_id,
            name=name,
            v_bus=_float(nc.get("v_bus")),
            r_milliohm=max(0.0, _float(nc.get("r_milliohm"))),
        )
    if kind is NodeKind.SUBSYSTEM:
        inner = nc.get("design")
        return SubsystemNode(
            id=node_id,
            name=name,
            design=build_design_from_config(inner) if isinstance(inner, dict) else None,
            num_paralleled_systems=_count(nc.get("num_paralleled_systems", 1)),
            input_v_nom=_positive(nc.get("input_v_nom")),
        )
    if kind is NodeKind.SUBSYSTEM_INPUT:
        return SubsystemInputNode(id=node_id, name=name, v_out=_positive(nc.get("v_out")))
    return NoteNode(id=node_id, name=name, text=nc.get("text") or "")


def _edge_from_config(ec: dict, index: int) -> Edge:
    if not isinstance(ec, dict):
        raise ValueError(f"Edge entry must be a mapping, got {type(ec).__name__}")
    edge_id = str(ec.get("id") or f"e{index}")
    for key in ("from", "to"):
        if ec.get(key) in (None, ""):
            raise ValueError(f"Edge {edge_id} is missing its '{key}' endpoint")
    return Edge(
        id=edge_id,
        from_node=str(ec["from"]),
        to_node=str(ec["to"]),
        from_handle=ec.get("from_handle"),
        to_handle=ec.get("to_handle"),
        r_milliohm=max(0.0, _float(ec.get("r_milliohm"))),
    )


def build_design_from_config(config: dict) -> Design:
    """Build a :class:`Design` from a configuration dictionary.

    Args:
        config: dict with keys id, name, scenario, margins, nodes, edges.
            Each node dict carries ``id``, ``type`` and kind-specific keys
            (``v_out``, ``vin_min``, ``efficiency`` ...).  A ``Subsystem``
            node may embed a nested design dict under ``design``.  Each edge
            dict carries ``id``, ``from``, ``to`` and optionally
            ``from_handle``, ``to_handle`` and ``r_milliohm``.

    Raises:
        ValueError: on duplicate node ids, an unknown node type, a node
            without an id, an edge without endpoints or a non-mapping
            entry.
    """
    intake_warnings: list[str] = []

    nodes_cfg = config.get("nodes")
    if not isinstance(nodes_cfg, list):
        intake_warnings.append("Design nodes were missing; using an empty node list.")
        nodes_cfg = []
    edges_cfg = config.get("edges")
    if not isinstance(edges_cfg, list):
        intake_warnings.append("Design interconnects were missing; using an empty edge list.")
        edges_cfg = []

    margins_cfg = config.get("margins") or {}
    design = Design(
        id=str(config.get("id") or "design"),
        name=config.get("name") or "Design",
        scenario=Scenario(config.get("scenario") or Scenario.TYPICAL.value),
        margins=Margins(
            current_pct=_float(margins_cfg.get("current_pct"), 10.0),
            power_pct=_float(margins_cfg.get("power_pct"), 10.0),
            voltage_drop_pct=_float(margins_cfg.get("voltage_drop_pct"), 5.0),
            voltage_margin_pct=_float(margins_cfg.get("voltage_margin_pct"), 3.0),
        ),
        intake_warnings=intake_warnings,
    )

    for nc in nodes_cfg:
        design.add_node(_node_from_config(nc))

    for i, ec in enumerate(edges_cfg):
        design.edges.append(_edge_from_config(ec, i))

    return design
