from pydantic import BaseModel


class BranchResultOut(BaseModel):
    handle: str
    label: str
    v_out: float
    i_out: float
    p_out: float
    p_in: float
    eta: float
    loss: float


class NodeResultOut(BaseModel):
    node_id: str
    kind: str
    p_in: float
    p_out: float
    i_in: float
    i_out: float
    v_upstream: float | None = None
    loss: float
    eta: float | None = None
    p_in_single: float | None = None
    outputs: dict[str, BranchResultOut] = {}
    warnings: list[str] = []


class EdgeResultOut(BaseModel):
    edge_id: str
    from_node: str
    to_node: str
    i_edge: float
    v_drop: float
    p_loss: float
    r_total: float


class TotalsOut(BaseModel):
    load_power: float
    source_input: float
    overall_efficiency: float


class ComputeResponse(BaseModel):
    nodes: dict[str, NodeResultOut]
    edges: dict[str, EdgeResultOut]
    totals: TotalsOut
    global_warnings: list[str]
    order: list[str]
    has_cycle: bool = False


class DeepAggregatesResponse(BaseModel):
    critical_load_power: float
    non_critical_load_power: float
    edge_loss: float
    converter_loss: float
    total_load_power: float


class ConverterSummaryBranchOut(BaseModel):
    handle: str
    label: str
    v_out: float | None = None
    i_out: float
    p_in: float
    p_out: float
    loss: float
    efficiency: float
    phase_count: int
    loss_per_phase: float | None = None
    edge_loss: float


class ConverterSummaryEntryOut(BaseModel):
    id: str
    key: str
    name: str
    kind: str
    vin_min: float | None = None
    vin_max: float | None = None
    v_out: float | None = None
    i_out: float
    p_in: float
    p_out: float
    loss: float
    efficiency: float
    location: str
    location_path: list[str]
    topology: str | None = None
    v_outs: list[tuple[str, float]] = []
    phase_count: int
    loss_per_phase: float | None = None
    edge_loss: float
    outputs: list[ConverterSummaryBranchOut] = []


class ValidationResponse(BaseModel):
    warnings: list[str]
