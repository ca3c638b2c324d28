# tests/conftest.py
import copy

import pytest

BASE_UNITS = {"voltage": "V", "current": "A", "power": "W", "resistance": "mΩ"}
BASE_MARGINS = {"currentPct": 10, "powerPct": 10, "voltageDropPct": 5, "voltageMarginPct": 3}


# Helper function to create a project document the way the editor exports it
def make_project(nodes: list, edges: list, project_id: str = "proj", **overrides) -> dict:
    """
    Builds a project document mapping.
    nodes: e.g., [{"id": "s", "type": "Source", "V_nom": 12}]
    edges: e.g., [{"id": "e1", "from": "s", "to": "c", "interconnect": {"R_milliohm": 10}}]
    """
    project = {
        "id": project_id,
        "name": project_id,
        "units": dict(BASE_UNITS),
        "defaultMargins": dict(BASE_MARGINS),
        "scenarios": ["Typical", "Max", "Idle"],
        "currentScenario": "Typical",
        "nodes": copy.deepcopy(nodes),
        "edges": copy.deepcopy(edges),
    }
    project.update(overrides)
    return project


def edge(edge_id: str, src: str, dst: str, r_milliohm: float = None, **handles) -> dict:
    data = {"id": edge_id, "from": src, "to": dst}
    if r_milliohm is not None:
        data["interconnect"] = {"R_milliohm": r_milliohm}
    data.update(handles)
    return data


def inner_converter_project(load_current: float = 2.0, load_max_current: float = None, r_in: float = None, r_out: float = None) -> dict:
    """Embedded project: SubsystemInput (12 V) -> Converter (0.9, 5 V) -> Load (5 V)."""
    return make_project(
        nodes=[
            {"id": "in", "type": "SubsystemInput", "name": "In", "Vout": 12},
            {"id": "ic", "type": "Converter", "name": "Inner Buck", "Vin_min": 10, "Vin_max": 14, "Vout": 5,
             "efficiency": {"type": "fixed", "value": 0.9}},
            {"id": "il", "type": "Load", "name": "Inner Load", "Vreq": 5, "I_typ": load_current,
             "I_max": load_max_current if load_max_current is not None else load_current},
        ],
        edges=[edge("ie1", "in", "ic", r_in), edge("ie2", "ic", "il", r_out)],
        project_id="inner",
    )


@pytest.fixture
def fixed_converter_project() -> dict:
    """12 V source -> 0.92 fixed converter (5 V) -> 5 W load."""
    return make_project(
        nodes=[
            {"id": "s", "type": "Source", "name": "S", "V_nom": 12},
            {"id": "c", "type": "Converter", "name": "C", "Vin_min": 10, "Vin_max": 14, "Vout": 5,
             "efficiency": {"type": "fixed", "value": 0.92}},
            {"id": "l", "type": "Load", "name": "L", "Vreq": 5, "I_typ": 1, "I_max": 1},
        ],
        edges=[edge("e1", "s", "c"), edge("e2", "c", "l")],
    )


@pytest.fixture
def efuse_project() -> dict:
    return make_project(
        nodes=[
            {"id": "src", "type": "Source", "name": "Source", "Vout": 12},
            {"id": "efuse", "type": "Bus", "name": "Efuse", "V_bus": 12, "R_milliohm": 50},
            {"id": "load", "type": "Load", "name": "Load", "Vreq": 12, "I_typ": 2, "I_max": 2,
             "Utilization_typ": 100, "Utilization_max": 100},
        ],
        edges=[edge("e1", "src", "efuse"), edge("e2", "efuse", "load")],
        project_id="proj-efuse",
    )


@pytest.fixture
def dual_output_project() -> dict:
    return make_project(
        nodes=[
            {"id": "s", "type": "Source", "name": "S", "V_nom": 48},
            {"id": "d", "type": "DualOutputConverter", "name": "Dual", "Vin_min": 36, "Vin_max": 60,
             "outputs": [
                 {"id": "outA", "label": "Rail A", "Vout": 12, "Iout_max": 5, "efficiency": {"type": "fixed", "value": 0.95}},
                 {"id": "outB", "label": "Rail B", "Vout": 5, "Iout_max": 5, "efficiency": {"type": "fixed", "value": 0.9}},
             ]},
            {"id": "la", "type": "Load", "name": "Load A", "Vreq": 12, "I_typ": 1, "I_max": 1},
            {"id": "lb", "type": "Load", "name": "Load B", "Vreq": 5, "I_typ": 2, "I_max": 2},
        ],
        edges=[
            edge("e1", "s", "d"),
            edge("e2", "d", "la", fromHandle="outA"),
            edge("e3", "d", "lb", fromHandle="outB"),
        ],
    )


@pytest.fixture
def subsystem_project() -> dict:
    """12 V source feeding one Subsystem that holds a 0.9 converter and a 10 W load."""
    return make_project(
        nodes=[
            {"id": "s", "type": "Source", "name": "S", "V_nom": 12},
            {"id": "sub", "type": "Subsystem", "name": "Board", "inputV_nom": 12,
             "numParalleledSystems": 1, "project": inner_converter_project()},
        ],
        edges=[edge("e1", "s", "sub")],
    )
