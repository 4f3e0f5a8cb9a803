"""Tests for the converter summary and design lint."""

from __future__ import annotations

import pytest

from engine.powertree import (
    build_converter_summary,
    build_design_from_config,
    compute,
    validate_design,
)
from engine.powertree.model import Design, Edge, LoadNode, NodeKind, NoteNode, SourceNode


class TestConverterSummary:

    def test_top_level_converter(self, buck_chain_config):
        entries = build_converter_summary(build_design_from_config(buck_chain_config))
        assert len(entries) == 1
        entry = entries[0]
        assert entry.key == "buck"
        assert entry.name == "Buck 3V3"
        assert entry.kind is NodeKind.CONVERTER
        assert entry.location == "System"
        assert entry.location_path == []
        assert entry.vin_min == 10.0 and entry.vin_max == 14.0
        assert entry.v_out == 3.3
        assert entry.p_out == pytest.approx(3.3)
        assert entry.efficiency == pytest.approx(0.9)
        assert entry.loss_per_phase is None

    def test_reuses_given_result(self, buck_chain_config):
        design = build_design_from_config(buck_chain_config)
        result = compute(design)
        result.nodes["buck"].p_out = 99.0
        entries = build_converter_summary(design, result)
        assert entries[0].p_out == 99.0

    def test_loss_per_phase(self, buck_chain_config):
        buck_chain_config["nodes"][1]["phase_count"] = 2
        entry = build_converter_summary(build_design_from_config(buck_chain_config))[0]
        assert entry.phase_count == 2
        assert entry.loss_per_phase == pytest.approx(entry.loss / 2)

    def test_downstream_edge_loss(self, buck_chain_config):
        buck_chain_config["edges"][1]["r_milliohm"] = 100.0
        entry = build_converter_summary(build_design_from_config(buck_chain_config))[0]
        assert entry.edge_loss == pytest.approx(0.1)

    def test_bus_listed(self, efuse_config):
        entries = build_converter_summary(build_design_from_config(efuse_config))
        assert [e.kind for e in entries] == [NodeKind.BUS]
        assert entries[0].loss == pytest.approx(0.2)
        assert entries[0].v_out == 12.0

    def test_dual_output_branches_sorted(self, dual_output_config):
        entry = build_converter_summary(build_design_from_config(dual_output_config))[0]
        assert entry.kind is NodeKind.DUAL_OUTPUT_CONVERTER
        assert [b.label for b in entry.outputs] == ["3V3", "5V"]
        assert entry.outputs[0].efficiency == pytest.approx(0.8)
        assert entry.v_outs == [("5V", 5.0), ("3V3", 3.3)]
        assert entry.p_out == pytest.approx(11.6)

    def test_nested_entries_scaled(self, rack_config):
        entries = build_converter_summary(build_design_from_config(rack_config))
        assert len(entries) == 1
        entry = entries[0]
        assert entry.key == "boards>buck5"
        assert entry.location == "Boards"
        assert entry.location_path == ["Boards"]
        assert entry.p_out == pytest.approx(10.0)
        assert entry.p_in == pytest.approx(12.5)
        assert entry.efficiency == pytest.approx(0.8)

    def test_sorted_by_output_power(self, rack_config, buck_chain_config):
        rack_config["nodes"].append(buck_chain_config["nodes"][1])
        rack_config["nodes"].append(buck_chain_config["nodes"][2])
        rack_config["edges"] += [
            {"id": "x1", "from": "psu", "to": "buck"},
            {"id": "x2", "from": "buck", "to": "mcu"},
        ]
        entries = build_converter_summary(build_design_from_config(rack_config))
        assert [e.id for e in entries] == ["buck5", "buck"]


class TestValidateDesign:

    def test_clean_design(self, buck_chain_config):
        assert validate_design(build_design_from_config(buck_chain_config)) == []

    def test_empty_design(self):
        assert validate_design(Design()) == ["Design has no nodes."]

    def test_dangling_edge(self):
        design = Design()
        design.add_node(SourceNode(id="src", name="Supply", v_out=5.0))
        design.add_node(LoadNode(id="load", name="Load", v_req=5.0))
        design.edges += [Edge("e1", "src", "load"), Edge("e2", "src", "ghost")]
        assert validate_design(design) == ["Edge e2 references missing nodes."]

    def test_unconnected_nodes(self):
        design = Design()
        design.add_node(SourceNode(id="src", name="Supply", v_out=5.0))
        design.add_node(LoadNode(id="orphan", v_req=5.0))
        design.add_node(NoteNode(id="note", text="rev B layout"))
        assert validate_design(design) == [
            "Unconnected node: Supply",
            "Unconnected node: orphan",
        ]
