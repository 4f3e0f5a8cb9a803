"""Tests for engine.powertree — topology, reconciliation and warnings."""

from __future__ import annotations

import copy

import numpy as np
import pytest

from engine.powertree import build_design_from_config, compute, detect_cycle
from engine.powertree.evaluators import scenario_current
from engine.powertree.model import (
    BusNode,
    ConverterNode,
    Design,
    Edge,
    FixedEfficiency,
    LoadNode,
    Margins,
    NodeKind,
    NoteNode,
    Scenario,
    SourceNode,
    SubsystemInputNode,
)
from engine.powertree.solver import CYCLE_WARNING


# ======================================================================
# Helper: build simple test designs
# ======================================================================


def _source_load_design(
    v: float = 12.0,
    i_typ: float = 2.0,
    r_milliohm: float = 0.0,
    v_req: float | None = None,
    margins: Margins | None = None,
) -> Design:
    """Single source feeding a single load through one interconnect."""
    design = Design(id="chain", margins=margins or Margins())
    design.add_node(SourceNode(id="src", name="Supply", v_out=v))
    design.add_node(LoadNode(
        id="load", name="Load", v_req=v if v_req is None else v_req, i_typ=i_typ, i_max=i_typ,
    ))
    design.edges.append(Edge(id="e1", from_node="src", to_node="load", r_milliohm=r_milliohm))
    return design


def _floating_feed_design(vin_min: float | None = None, vin_max: float | None = None) -> Design:
    """Unset input port feeding a 3.3 V buck and a 1 A load."""
    design = Design(id="floating")
    design.add_node(SubsystemInputNode(id="port"))
    design.add_node(ConverterNode(
        id="buck", v_out=3.3, vin_min=vin_min, vin_max=vin_max,
        efficiency=FixedEfficiency(0.9),
    ))
    design.add_node(LoadNode(id="load", v_req=3.3, i_typ=1.0, i_max=1.0))
    design.edges += [Edge("e1", "port", "buck"), Edge("e2", "buck", "load")]
    return design


def _converter_pair_cycle() -> Design:
    return build_design_from_config({
        "nodes": [
            {"id": "a", "type": "Converter", "vin_min": 4, "vin_max": 6, "v_out": 5},
            {"id": "b", "type": "Converter", "vin_min": 4, "vin_max": 6, "v_out": 5},
            {"id": "load", "type": "Load", "v_req": 5, "i_typ": 1},
        ],
        "edges": [
            {"id": "ab", "from": "a", "to": "b"},
            {"id": "ba", "from": "b", "to": "a"},
            {"id": "bl", "from": "b", "to": "load"},
        ],
    })


# ======================================================================
# Topology
# ======================================================================


class TestTopology:

    def test_linear_order(self):
        edges = [Edge("e1", "a", "b"), Edge("e2", "b", "c")]
        has_cycle, order = detect_cycle(["c", "b", "a"], edges)
        assert not has_cycle
        assert order == ["a", "b", "c"]

    def test_cycle_reports_partial_order(self):
        edges = [Edge("e1", "root", "x"), Edge("e2", "x", "y"), Edge("e3", "y", "x")]
        has_cycle, order = detect_cycle(["root", "x", "y"], edges)
        assert has_cycle
        assert order == ["root"]

    def test_edges_to_unknown_nodes_ignored(self):
        has_cycle, order = detect_cycle(["a"], [Edge("e1", "a", "ghost")])
        assert not has_cycle
        assert order == ["a"]


# ======================================================================
# Basic chains
# ======================================================================


class TestSourceLoadChain:

    def test_ideal_wiring_power_balance(self):
        result = compute(_source_load_design())
        load = result.node("load")
        src = result.node("src")
        assert load.p_in == pytest.approx(24.0)
        assert src.p_out == pytest.approx(load.p_in)
        assert result.totals.overall_efficiency == pytest.approx(1.0)

    def test_resistive_interconnect(self):
        result = compute(_source_load_design(r_milliohm=100.0))
        edge = result.edge("e1")
        assert edge.i_edge == pytest.approx(2.0)
        assert edge.r_total == pytest.approx(0.1)
        assert edge.v_drop == pytest.approx(0.2)
        assert edge.p_loss == pytest.approx(0.4)
        assert result.node("load").v_upstream == pytest.approx(11.8)
        assert result.node("src").p_out == pytest.approx(24.4)
        assert result.totals.source_input == pytest.approx(24.4)

    def test_order_is_topological(self):
        result = compute(_source_load_design())
        assert result.order == ["src", "load"]
        assert not result.has_cycle

    def test_idempotent(self):
        design = _source_load_design(r_milliohm=25.0)
        assert compute(design) == compute(design)

    def test_design_not_mutated(self):
        design = _source_load_design(r_milliohm=25.0)
        before = copy.deepcopy(design)
        compute(design)
        assert design == before


class TestConverterChain:

    def test_fixed_efficiency_buck(self, buck_chain_config):
        result = compute(build_design_from_config(buck_chain_config))
        buck = result.node("buck")
        assert buck.p_out == pytest.approx(3.3)
        assert buck.eta == pytest.approx(0.9)
        assert buck.p_in == pytest.approx(3.3 / 0.9)
        assert buck.loss == pytest.approx(3.3 / 0.9 - 3.3)
        assert buck.i_out == pytest.approx(1.0)
        assert buck.i_in == pytest.approx(3.3 / 0.9 / 12.0)
        assert result.edge("e1").i_edge == pytest.approx(3.3 / 0.9 / 12.0)
        assert result.node("src").p_out == pytest.approx(3.3 / 0.9)
        assert result.totals.overall_efficiency == pytest.approx(0.9)

    def test_output_edge_loss_charged_to_converter(self, buck_chain_config):
        buck_chain_config["edges"][1]["r_milliohm"] = 100.0
        result = compute(build_design_from_config(buck_chain_config))
        buck = result.node("buck")
        assert result.edge("e2").p_loss == pytest.approx(0.1)
        assert buck.p_out == pytest.approx(3.4)
        assert buck.p_in == pytest.approx(3.4 / 0.9)
        assert result.node("mcu").v_upstream == pytest.approx(3.2)

    def test_curve_efficiency_follows_load(self, buck_chain_config):
        buck_chain_config["nodes"][1]["pout_max"] = 6.6
        buck_chain_config["nodes"][1]["efficiency"] = {
            "type": "curve",
            "basis": "pout_max",
            "points": [{"load_pct": 0, "eta": 0.80}, {"load_pct": 100, "eta": 0.90}],
        }
        result = compute(build_design_from_config(buck_chain_config))
        # 3.3 W of 6.6 W is 50 % load
        assert result.node("buck").eta == pytest.approx(0.85)

    def test_multiple_children_summed(self, buck_chain_config):
        buck_chain_config["nodes"].append(
            {"id": "led", "type": "Load", "v_req": 3.3, "i_typ": 0.5, "i_max": 0.5}
        )
        buck_chain_config["edges"].append({"id": "e3", "from": "buck", "to": "led"})
        result = compute(build_design_from_config(buck_chain_config))
        buck = result.node("buck")
        assert buck.i_out == pytest.approx(1.5)
        assert buck.p_out == pytest.approx(4.95)

    def test_missing_input_window_not_checked(self, buck_chain_config):
        del buck_chain_config["nodes"][1]["vin_min"]
        del buck_chain_config["nodes"][1]["vin_max"]
        result = compute(build_design_from_config(buck_chain_config))
        buck = result.node("buck")
        assert buck.warnings == []
        assert buck.i_in == pytest.approx(3.3 / 0.9 / 12.0)
        assert result.edge("e1").i_edge == pytest.approx(3.3 / 0.9 / 12.0)

    def test_feed_without_voltage_uses_window_midpoint(self):
        design = _floating_feed_design(vin_min=10.0, vin_max=14.0)
        result = compute(design)
        assert result.edge("e1").i_edge == pytest.approx(3.3 / 0.9 / 12.0)

    def test_feed_without_voltage_or_window(self):
        result = compute(_floating_feed_design())
        buck = result.node("buck")
        assert buck.p_in == pytest.approx(3.3 / 0.9)
        assert buck.i_in == 0
        assert result.edge("e1").i_edge == 0
        assert result.node("port").p_out == pytest.approx(3.3 / 0.9)


class TestBus:

    def test_efuse_loss(self, efuse_config):
        result = compute(build_design_from_config(efuse_config))
        fuse = result.node("fuse")
        assert fuse.i_out == pytest.approx(2.0)
        assert fuse.loss == pytest.approx(0.2)
        assert fuse.p_in == pytest.approx(24.2)
        assert result.node("src").p_out == pytest.approx(24.2)
        assert result.edge("e1").i_edge == pytest.approx(2.0)

    def test_resistive_loss_is_i_squared_r(self):
        design = Design(id="bus")
        design.add_node(SourceNode(id="src", v_out=5.0))
        design.add_node(BusNode(id="bus", v_bus=5.0, r_milliohm=10.0))
        design.add_node(LoadNode(id="load", v_req=5.0, i_typ=2.0, i_max=2.0))
        design.edges += [Edge("e1", "src", "bus"), Edge("e2", "bus", "load")]
        result = compute(design)
        assert result.node("bus").loss == pytest.approx(4 * 0.01)


class TestDualOutputConverter:

    def test_branches_evaluated_independently(self, dual_output_config):
        result = compute(build_design_from_config(dual_output_config))
        pmic = result.node("pmic")
        a = pmic.outputs["outA"]
        b = pmic.outputs["outB"]
        assert a.p_out == pytest.approx(5.0)
        assert a.p_in == pytest.approx(5.0 / 0.9)
        assert b.p_out == pytest.approx(6.6)
        assert b.p_in == pytest.approx(6.6 / 0.8)
        assert b.i_out == pytest.approx(2.0)
        assert pmic.p_in == pytest.approx(a.p_in + b.p_in)
        assert pmic.p_out == pytest.approx(11.6)
        assert pmic.eta == pytest.approx(11.6 / (a.p_in + b.p_in))
        assert result.node("src").p_out == pytest.approx(a.p_in + b.p_in)

    def test_unknown_handle_falls_back_to_first_branch(self, dual_output_config):
        dual_output_config["edges"][2]["from_handle"] = "bogus"
        result = compute(build_design_from_config(dual_output_config))
        outputs = result.node("pmic").outputs
        assert outputs["outA"].p_out == pytest.approx(5.0 + 6.6)
        assert outputs["outB"].p_out == pytest.approx(0.0)

    def test_branch_overcurrent_warning_uses_label(self, dual_output_config):
        dual_output_config["nodes"][3]["i_typ"] = 2.9
        result = compute(build_design_from_config(dual_output_config))
        assert any(w.startswith("3V3: I_out") for w in result.node("pmic").warnings)


# ======================================================================
# Load scenarios
# ======================================================================


class TestScenarios:

    def _load(self, **kwargs) -> LoadNode:
        params = {"id": "l", "v_req": 5.0, "i_typ": 1.0, "i_max": 2.0}
        params.update(kwargs)
        return LoadNode(**params)

    def test_typical_uses_utilization(self):
        assert scenario_current(self._load(utilization_typ=50), Scenario.TYPICAL) == 0.5

    def test_max_uses_max_utilization(self):
        assert scenario_current(self._load(utilization_max=50), Scenario.MAX) == 1.0

    def test_utilization_clamped(self):
        assert scenario_current(self._load(utilization_max=150), Scenario.MAX) == 2.0

    def test_idle_explicit(self):
        assert scenario_current(self._load(i_idle=0.05), Scenario.IDLE) == 0.05

    def test_idle_fallback_fraction(self):
        assert scenario_current(self._load(), Scenario.IDLE) == pytest.approx(0.2)

    def test_paralleled_devices(self):
        load = self._load(num_paralleled_devices=3)
        assert scenario_current(load, Scenario.TYPICAL) == pytest.approx(3.0)

    def test_design_scenario_applied(self):
        design = _source_load_design(i_typ=1.0)
        design.nodes["load"].i_max = 3.0
        design.scenario = Scenario.MAX
        assert compute(design).node("load").p_in == pytest.approx(36.0)

    def test_scenario_given_by_name(self):
        design = Design(id="named", scenario="Max")
        design.add_node(SourceNode(id="src", v_out=5.0))
        design.add_node(LoadNode(id="load", v_req=5.0, i_typ=1.0, i_max=3.0))
        design.edges.append(Edge("e1", "src", "load"))
        assert compute(design).node("load").p_in == pytest.approx(15.0)

    def test_scenario_current_accepts_name(self):
        assert scenario_current(self._load(), "Idle") == pytest.approx(0.2)


# ======================================================================
# Cycles and malformed input
# ======================================================================


class TestCycles:

    def test_cycle_blocks_computation(self):
        result = compute(_converter_pair_cycle())
        assert result.has_cycle
        assert result.global_warnings == [CYCLE_WARNING]
        assert all(n.p_in == 0 and n.p_out == 0 for n in result.nodes.values())
        assert all(e.i_edge == 0 for e in result.edges.values())
        assert result.totals.source_input == 0

    def test_single_warning_regardless_of_size(self):
        design = _converter_pair_cycle()
        for i in range(20):
            design.add_node(LoadNode(id=f"extra{i}", v_req=1.0, i_typ=1.0))
        assert len(compute(design).global_warnings) == 1


class TestMalformedInput:

    def test_missing_lists_warn(self):
        result = compute(build_design_from_config({"id": "empty"}))
        assert result.global_warnings == [
            "Design nodes were missing; using an empty node list.",
            "Design interconnects were missing; using an empty edge list.",
        ]
        assert result.nodes == {}

    def test_unknown_node_type_raises(self):
        with pytest.raises(ValueError, match="Unknown node type"):
            build_design_from_config({"nodes": [{"id": "x", "type": "Capacitor"}], "edges": []})

    def test_duplicate_ids_raise(self):
        nodes = [{"id": "x", "type": "Load"}, {"id": "x", "type": "Load"}]
        with pytest.raises(ValueError, match="Duplicate node id"):
            build_design_from_config({"nodes": nodes, "edges": []})

    def test_node_without_id_raises(self):
        with pytest.raises(ValueError, match="missing an id"):
            build_design_from_config({"nodes": [{"type": "Load"}], "edges": []})

    @pytest.mark.parametrize("missing", ["from", "to"])
    def test_edge_without_endpoint_raises(self, missing):
        edge = {"id": "e1", "from": "a", "to": "b"}
        del edge[missing]
        nodes = [{"id": "a", "type": "Source"}, {"id": "b", "type": "Load"}]
        with pytest.raises(ValueError, match=f"missing its '{missing}' endpoint"):
            build_design_from_config({"nodes": nodes, "edges": [edge]})

    def test_non_mapping_edge_raises(self):
        with pytest.raises(ValueError, match="Edge entry must be a mapping"):
            build_design_from_config({"nodes": [], "edges": [["a", "b"]]})

    def test_dangling_edge_is_ignored(self):
        design = _source_load_design()
        design.edges.append(Edge(id="ghost", from_node="src", to_node="nowhere"))
        result = compute(design)
        assert result.edge("ghost").i_edge == 0
        assert result.node("src").p_out == pytest.approx(24.0)

    def test_results_are_finite(self):
        design = _source_load_design(v=0.0, v_req=0.0)
        result = compute(design)
        values = [v for n in result.nodes.values() for v in (n.p_in, n.p_out, n.i_in, n.i_out)]
        assert np.all(np.isfinite(values))

    def test_note_nodes_inert(self):
        design = _source_load_design()
        design.add_node(NoteNode(id="note", text="rev B"))
        result = compute(design)
        assert result.node("note").kind is NodeKind.NOTE
        assert result.node("note").p_in == 0
        assert result.totals.load_power == pytest.approx(24.0)


# ======================================================================
# Warning pass
# ======================================================================


class TestWarnings:

    def test_voltage_margin_shortfall(self):
        margins = Margins(voltage_margin_pct=10.0)
        # 1 A through 0.6 Ohm leaves 4.4 V at a 5 V load
        result = compute(_source_load_design(v=5.0, i_typ=1.0, r_milliohm=600.0, margins=margins))
        assert result.node("load").v_upstream == pytest.approx(4.4)
        assert any("Voltage margin shortfall" in w for w in result.node("load").warnings)

    def test_voltage_margin_met(self):
        margins = Margins(voltage_margin_pct=10.0)
        result = compute(_source_load_design(v=5.0, i_typ=1.0, r_milliohm=400.0, margins=margins))
        assert result.node("load").v_upstream == pytest.approx(4.6)
        assert not any("Voltage margin shortfall" in w for w in result.node("load").warnings)

    def test_drop_budget(self):
        result = compute(_source_load_design(v=5.0, i_typ=1.0, r_milliohm=400.0))
        assert any("Interconnect e1 drop" in w for w in result.node("load").warnings)

    def test_load_voltage_mismatch(self):
        result = compute(_source_load_design(v=12.0, v_req=5.0))
        assert any("Voltage mismatch" in w for w in result.node("load").warnings)

    def test_converter_input_window(self, buck_chain_config):
        buck_chain_config["nodes"][0]["v_out"] = 24.0
        result = compute(build_design_from_config(buck_chain_config))
        assert any("outside converter Vin range" in w for w in result.node("buck").warnings)

    def test_converter_overcurrent_with_margin(self, buck_chain_config):
        buck_chain_config["nodes"][2]["i_typ"] = 4.6
        result = compute(build_design_from_config(buck_chain_config))
        assert any("I_out" in w and "exceeds limit" in w for w in result.node("buck").warnings)

    def test_converter_within_limits(self, buck_chain_config):
        result = compute(build_design_from_config(buck_chain_config))
        assert result.node("buck").warnings == []

    def test_efficiency_fallback_note(self, buck_chain_config):
        buck_chain_config["nodes"][1]["efficiency"] = {"type": "curve", "points": []}
        result = compute(build_design_from_config(buck_chain_config))
        buck = result.node("buck")
        assert buck.eta == pytest.approx(0.9)
        assert "Efficiency curve unusable (no curve points); assuming 90%." in buck.warnings

    def test_redundancy_shortfall(self):
        result = compute(build_design_from_config({
            "nodes": [
                {"id": "src", "type": "Source", "v_out": 12, "p_max": 10, "count": 2,
                 "redundancy": "N+1"},
                {"id": "load", "type": "Load", "v_req": 12, "i_typ": 1},
            ],
            "edges": [{"id": "e1", "from": "src", "to": "load"}],
        }))
        warnings = result.node("src").warnings
        assert any(w.startswith("Redundancy shortfall") for w in warnings)
        assert any(w.startswith("Source overpower") for w in warnings)

    def test_non_critical_load_excluded_from_totals(self):
        design = _source_load_design()
        design.nodes["load"].critical = False
        result = compute(design)
        assert result.node("load").p_in == pytest.approx(24.0)
        assert result.totals.load_power == 0
        assert result.totals.overall_efficiency == 0
