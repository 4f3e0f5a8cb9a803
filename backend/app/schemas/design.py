"""Request bodies describing a power-tree design."""

from __future__ import annotations

from pydantic import BaseModel, Field

NODE_TYPE_PATTERN = (
    "^(Source|Load|Converter|DualOutputConverter|Bus|Subsystem|SubsystemInput|Note)$"
)


class CurvePointIn(BaseModel):
    eta: float = Field(ge=0, le=1)
    load_pct: float | None = None
    current: float | None = None


class EfficiencyIn(BaseModel):
    type: str = Field(default="fixed", pattern="^(fixed|curve)$")
    value: float | None = Field(default=None, gt=0, le=1)
    basis: str = Field(default="pout_max", pattern="^(pout_max|iout_max)$")
    per_phase: bool = False
    points: list[CurvePointIn] = Field(default_factory=list)


class OutputBranchIn(BaseModel):
    id: str | None = None
    label: str | None = None
    v_out: float = 0.0
    iout_max: float | None = None
    pout_max: float | None = None
    phase_count: int = 1
    efficiency: EfficiencyIn | None = None


class NodeIn(BaseModel):
    id: str = Field(min_length=1)
    type: str = Field(pattern=NODE_TYPE_PATTERN)
    name: str | None = None

    # Source / Converter / SubsystemInput
    v_out: float | None = None
    i_max: float | None = None
    p_max: float | None = None
    count: int | None = None
    redundancy: str | None = Field(default=None, pattern="^(N|N\\+1)$")

    # Load
    v_req: float | None = None
    i_typ: float | None = None
    i_idle: float | None = None
    utilization_typ: float | None = None
    utilization_max: float | None = None
    num_paralleled_devices: int | None = None
    critical: bool | None = None

    # Converter / DualOutputConverter
    vin_min: float | None = None
    vin_max: float | None = None
    iout_max: float | None = None
    pout_max: float | None = None
    phase_count: int | None = None
    efficiency: EfficiencyIn | None = None
    topology: str | None = None
    outputs: list[OutputBranchIn] | None = None

    # Bus
    v_bus: float | None = None
    r_milliohm: float | None = None

    # Subsystem
    design: DesignIn | None = None
    num_paralleled_systems: int | None = None
    input_v_nom: float | None = None

    # Note
    text: str | None = None


class EdgeIn(BaseModel):
    model_config = {"populate_by_name": True}

    id: str | None = None
    from_node: str = Field(alias="from")
    to_node: str = Field(alias="to")
    from_handle: str | None = None
    to_handle: str | None = None
    r_milliohm: float = Field(default=0.0, ge=0)


class MarginsIn(BaseModel):
    current_pct: float = Field(default=10.0, ge=0, lt=100)
    power_pct: float = Field(default=10.0, ge=0, lt=100)
    voltage_drop_pct: float = Field(default=5.0, ge=0, lt=100)
    voltage_margin_pct: float = Field(default=3.0, ge=0, lt=100)


class DesignIn(BaseModel):
    id: str | None = None
    name: str | None = None
    scenario: str = Field(default="Typical", pattern="^(Typical|Max|Idle)$")
    margins: MarginsIn = Field(default_factory=MarginsIn)
    nodes: list[NodeIn] | None = None
    edges: list[EdgeIn] | None = None


NodeIn.model_rebuild()
