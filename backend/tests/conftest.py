"""Shared test fixtures for power-tree engine and API tests."""

from __future__ import annotations

import pytest


# ======================================================================
# Design config fixtures
# ======================================================================

@pytest.fixture
def buck_chain_config() -> dict:
    """12 V source -> 90 % buck to 3.3 V -> 1 A load, ideal wiring."""
    return {
        "id": "buck-chain",
        "name": "Buck chain",
        "scenario": "Typical",
        "nodes": [
            {"id": "src", "type": "Source", "name": "12V rail", "v_out": 12.0},
            {
                "id": "buck",
                "type": "Converter",
                "name": "Buck 3V3",
                "vin_min": 10.0,
                "vin_max": 14.0,
                "v_out": 3.3,
                "iout_max": 5.0,
                "efficiency": {"type": "fixed", "value": 0.9},
            },
            {"id": "mcu", "type": "Load", "name": "MCU", "v_req": 3.3, "i_typ": 1.0, "i_max": 2.0},
        ],
        "edges": [
            {"id": "e1", "from": "src", "to": "buck"},
            {"id": "e2", "from": "buck", "to": "mcu"},
        ],
    }


@pytest.fixture
def efuse_config() -> dict:
    """12 V source -> 50 mOhm e-fuse bus -> 2 A load at 12 V."""
    return {
        "id": "efuse",
        "nodes": [
            {"id": "src", "type": "Source", "name": "PSU", "v_out": 12.0},
            {"id": "fuse", "type": "Bus", "name": "eFuse", "v_bus": 12.0, "r_milliohm": 50.0},
            {"id": "fan", "type": "Load", "name": "Fan", "v_req": 12.0, "i_typ": 2.0, "i_max": 3.0},
        ],
        "edges": [
            {"id": "e1", "from": "src", "to": "fuse"},
            {"id": "e2", "from": "fuse", "to": "fan"},
        ],
    }


@pytest.fixture
def dual_output_config() -> dict:
    """Dual-output PMIC feeding a 5 V and a 3.3 V load from separate branches."""
    return {
        "id": "pmic",
        "nodes": [
            {"id": "src", "type": "Source", "name": "12V", "v_out": 12.0},
            {
                "id": "pmic",
                "type": "DualOutputConverter",
                "name": "PMIC",
                "vin_min": 10.0,
                "vin_max": 14.0,
                "outputs": [
                    {"id": "outA", "label": "5V", "v_out": 5.0, "iout_max": 3.0,
                     "efficiency": {"type": "fixed", "value": 0.9}},
                    {"id": "outB", "label": "3V3", "v_out": 3.3, "iout_max": 3.0,
                     "efficiency": {"type": "fixed", "value": 0.8}},
                ],
            },
            {"id": "usb", "type": "Load", "name": "USB", "v_req": 5.0, "i_typ": 1.0, "i_max": 1.5},
            {"id": "soc", "type": "Load", "name": "SoC", "v_req": 3.3, "i_typ": 2.0, "i_max": 2.5},
        ],
        "edges": [
            {"id": "e1", "from": "src", "to": "pmic"},
            {"id": "e2", "from": "pmic", "to": "usb", "from_handle": "outA"},
            {"id": "e3", "from": "pmic", "to": "soc", "from_handle": "outB"},
        ],
    }


@pytest.fixture
def board_design_config() -> dict:
    """Embedded board: 12 V input port -> 80 % buck to 5 V -> 1 A load."""
    return {
        "id": "board",
        "name": "Board",
        "nodes": [
            {"id": "in12", "type": "SubsystemInput", "name": "12V in", "v_out": 12.0},
            {
                "id": "buck5",
                "type": "Converter",
                "name": "Buck 5V",
                "vin_min": 10.0,
                "vin_max": 14.0,
                "v_out": 5.0,
                "efficiency": {"type": "fixed", "value": 0.8},
            },
            {"id": "cpu", "type": "Load", "name": "CPU", "v_req": 5.0, "i_typ": 1.0, "i_max": 2.0},
        ],
        "edges": [
            {"id": "b1", "from": "in12", "to": "buck5"},
            {"id": "b2", "from": "buck5", "to": "cpu"},
        ],
    }


@pytest.fixture
def rack_config(board_design_config) -> dict:
    """12 V supply feeding two paralleled copies of the board."""
    return {
        "id": "rack",
        "name": "Rack",
        "nodes": [
            {"id": "psu", "type": "Source", "name": "PSU", "v_out": 12.0},
            {
                "id": "boards",
                "type": "Subsystem",
                "name": "Boards",
                "num_paralleled_systems": 2,
                "design": board_design_config,
            },
        ],
        "edges": [{"id": "r1", "from": "psu", "to": "boards"}],
    }
