# tests/test_subsystem.py
import dataclasses

import pytest

from powertree_core import Scenario, compute
from powertree_core.components import SourceNode, SubsystemNode
from powertree_core.constants import MAX_SUBSYSTEM_DEPTH
from powertree_core.parser import ProjectParser
from powertree_core.simulation import prepare_embedded_project, select_port_id

from tests.conftest import edge, inner_converter_project, make_project

SINGLE_INNER_INPUT = 10.0 / 0.9


def _converter_feeding_subsystem(count: int = 1, scenario: str = "Typical", **inner_kwargs) -> dict:
    return make_project(
        nodes=[
            {"id": "s", "type": "Source", "V_nom": 48},
            {"id": "c", "type": "Converter", "Vin_min": 40, "Vin_max": 60, "Vout": 12,
             "efficiency": {"type": "fixed", "value": 0.95}},
            {"id": "sub", "type": "Subsystem", "name": "Board", "inputV_nom": 12,
             "numParalleledSystems": count, "project": inner_converter_project(**inner_kwargs)},
        ],
        edges=[edge("e1", "s", "c", 5), edge("e2", "c", "sub", 100)],
        currentScenario=scenario,
    )


def _nested(levels: int) -> dict:
    """A chain of `levels` Subsystems, each holding the next one behind a SubsystemInput."""
    project = make_project(
        nodes=[
            {"id": "in", "type": "SubsystemInput", "Vout": 12},
            {"id": "l", "type": "Load", "Vreq": 12, "I_typ": 1},
        ],
        edges=[edge("e", "in", "l")],
        project_id="leaf",
    )
    for idx in range(levels):
        project = make_project(
            nodes=[
                {"id": "in", "type": "SubsystemInput", "Vout": 12},
                {"id": "sub", "type": "Subsystem", "inputV_nom": 12, "project": project},
            ],
            edges=[edge("e", "in", "sub")],
            project_id=f"level-{idx}",
        )
    return project


class TestSubsystemRollUp:

    def test_subsystem_input_exceeds_output(self, subsystem_project):
        result = compute(subsystem_project)
        sub = result.nodes["sub"]
        assert sub.p_in > sub.p_out > 0
        assert sub.p_out == pytest.approx(10.0)
        assert sub.p_in == pytest.approx(SINGLE_INNER_INPUT)
        assert sub.loss == pytest.approx(SINGLE_INNER_INPUT - 10.0)

    def test_feeding_edge_current(self, subsystem_project):
        result = compute(subsystem_project)
        assert result.edges["e1"].i_edge == pytest.approx(result.nodes["sub"].p_in / 12.0)
        assert result.nodes["sub"].i_in == pytest.approx(result.nodes["sub"].p_in / 12.0)

    def test_inner_result_is_exposed(self, subsystem_project):
        sub = compute(subsystem_project).nodes["sub"]
        inner = sub.inner_result
        assert inner is not None
        assert isinstance(inner.nodes["in"].node, SourceNode)
        assert inner.nodes["ic"].p_out == pytest.approx(10.0)
        assert sub.ports["in"].voltage == 12.0
        assert sub.ports["in"].power == pytest.approx(inner.nodes["in"].p_out)
        assert [f.name for f in dataclasses.fields(sub.ports["in"])] == ["id", "voltage", "power"]

    def test_parent_totals_count_subsystem_as_load(self, subsystem_project):
        totals = compute(subsystem_project).totals
        assert totals.load_power == pytest.approx(10.0)
        assert totals.source_input == pytest.approx(SINGLE_INNER_INPUT)

    def test_parallel_instances_multiply_power(self):
        result = compute(_converter_feeding_subsystem(count=3))
        sub = result.nodes["sub"]
        assert sub.p_in == pytest.approx(3 * SINGLE_INNER_INPUT)
        assert sub.p_out == pytest.approx(30.0)
        assert sub.p_in_single == pytest.approx(SINGLE_INNER_INPUT)


class TestConverterToSubsystemEdge:

    def test_converter_output_includes_edge_loss(self):
        result = compute(_converter_feeding_subsystem(count=2))
        conv = result.nodes["c"]
        sub = result.nodes["sub"]
        e2 = result.edges["e2"]

        assert e2.i_edge == pytest.approx(sub.p_in / 12.0)
        assert e2.p_loss_edge == pytest.approx((sub.p_in / 12.0) ** 2 * 0.1)
        assert conv.p_out == pytest.approx(sub.p_in + e2.p_loss_edge)
        assert conv.p_in == pytest.approx(conv.p_out / 0.95)

    def test_source_sees_every_loss(self):
        result = compute(_converter_feeding_subsystem(count=2))
        expected = result.nodes["c"].p_in + result.edges["e1"].p_loss_edge
        assert result.nodes["s"].p_out == pytest.approx(expected)


class TestScenarioSync:

    def test_embedded_project_follows_parent_scenario(self):
        typical = compute(_converter_feeding_subsystem(load_current=1.0, load_max_current=2.0))
        peak = compute(_converter_feeding_subsystem(scenario="Max", load_current=1.0, load_max_current=2.0))
        assert typical.nodes["sub"].p_out == pytest.approx(5.0)
        assert peak.nodes["sub"].p_out == pytest.approx(10.0)
        assert peak.nodes["sub"].inner_result.scenario is Scenario.MAX


class TestSubsystemPorts:

    def _two_port_project(self) -> dict:
        inner = make_project(
            nodes=[
                {"id": "in12", "type": "SubsystemInput", "Vout": 12},
                {"id": "in5", "type": "SubsystemInput", "Vout": 5},
                {"id": "l12", "type": "Load", "Vreq": 12, "I_typ": 1},
                {"id": "l5", "type": "Load", "Vreq": 5, "I_typ": 2},
            ],
            edges=[edge("ie1", "in12", "l12"), edge("ie2", "in5", "l5")],
            project_id="two-port",
        )
        return make_project(
            nodes=[
                {"id": "s12", "type": "Source", "V_nom": 12},
                {"id": "s5", "type": "Source", "V_nom": 5},
                {"id": "sub", "type": "Subsystem", "project": inner},
            ],
            edges=[edge("e1", "s12", "sub", toHandle="in12"), edge("e2", "s5", "sub")],
        )

    def test_each_edge_feeds_its_own_port(self):
        result = compute(self._two_port_project())
        assert result.edges["e1"].i_edge == pytest.approx(1.0)
        # No target handle: the port nearest the upstream voltage is used.
        assert result.edges["e2"].i_edge == pytest.approx(2.0)
        assert result.nodes["sub"].p_in == pytest.approx(22.0)

    def test_input_count_warning(self):
        warnings = compute(self._two_port_project()).nodes["sub"].warnings
        assert "Subsystem embedded project should contain exactly one Subsystem Input node (found 2)." in warnings

    def test_select_port_id(self):
        ports = {"a": 12.0, "b": 5.0}
        assert select_port_id(ports, "b", 12.0) == "b"
        assert select_port_id(ports, None, 4.8) == "b"
        assert select_port_id({"only": 3.3}, "other", 12.0) == "only"
        assert select_port_id({}, None, 12.0) is None


class TestSubsystemEdgeCases:

    def test_missing_project_is_empty_with_warning(self):
        document = make_project(
            nodes=[{"id": "s", "type": "Source", "V_nom": 12}, {"id": "sub", "type": "Subsystem", "inputV_nom": 12}],
            edges=[edge("e1", "s", "sub")],
        )
        sub = compute(document).nodes["sub"]
        assert "Subsystem has no embedded project; assuming empty project." in sub.warnings
        assert sub.p_in == 0.0
        assert sub.p_out == 0.0

    def test_port_voltage_falls_back_to_nominal_input(self):
        inner = ProjectParser().parse(make_project(
            nodes=[{"id": "in", "type": "SubsystemInput"}, {"id": "l", "type": "Load", "Vreq": 24, "I_typ": 1}],
            edges=[edge("e", "in", "l")],
        ))
        node = SubsystemNode(id="sub", input_v_nom=24.0, project=inner)
        working, port_voltages = prepare_embedded_project(node, Scenario.MAX)
        assert port_voltages == {"in": 24.0}
        assert working.get_node("in").v_nom == 24.0
        assert working.current_scenario is Scenario.MAX
        # The caller's embedded project is left untouched.
        assert inner.current_scenario is Scenario.TYPICAL
        assert not isinstance(inner.get_node("in"), SourceNode)

    def test_nested_subsystems_roll_up(self):
        document = make_project(
            nodes=[{"id": "s", "type": "Source", "V_nom": 12},
                   {"id": "sub", "type": "Subsystem", "inputV_nom": 12, "project": _nested(2)}],
            edges=[edge("e1", "s", "sub")],
        )
        result = compute(document)
        assert result.nodes["sub"].p_out == pytest.approx(12.0)
        assert result.nodes["s"].p_out == pytest.approx(12.0)

    def test_depth_guard_stops_runaway_nesting(self):
        document = make_project(
            nodes=[{"id": "s", "type": "Source", "V_nom": 12},
                   {"id": "sub", "type": "Subsystem", "inputV_nom": 12, "project": _nested(MAX_SUBSYSTEM_DEPTH + 4)}],
            edges=[edge("e1", "s", "sub")],
        )
        result = compute(document)

        computed = result.nodes["sub"]
        depth = 1
        while computed.inner_result is not None:
            computed = computed.inner_result.nodes["sub"]
            depth += 1
        assert depth == MAX_SUBSYSTEM_DEPTH + 1
        assert f"Subsystem nesting deeper than {MAX_SUBSYSTEM_DEPTH} levels; embedded project not computed." in computed.warnings
        assert result.nodes["sub"].p_in == 0.0

    def test_cycle_inside_embedded_project_warns_on_subsystem(self):
        converter = {"type": "Converter", "Vin_min": 4, "Vin_max": 14, "Vout": 5,
                     "efficiency": {"type": "fixed", "value": 0.9}}
        inner = make_project(
            nodes=[
                {"id": "in", "type": "SubsystemInput", "Vout": 12},
                dict(converter, id="c1"),
                dict(converter, id="c2"),
            ],
            edges=[edge("ie1", "in", "c1"), edge("ie2", "c1", "c2"), edge("ie3", "c2", "c1")],
            project_id="looped",
        )
        document = make_project(
            nodes=[{"id": "s", "type": "Source", "V_nom": 12},
                   {"id": "sub", "type": "Subsystem", "inputV_nom": 12, "project": inner}],
            edges=[edge("e1", "s", "sub")],
        )
        result = compute(document)
        sub = result.nodes["sub"]
        assert "Cycle detected: computation blocked." in sub.warnings
        assert "sub: Cycle detected: computation blocked." in result.all_warnings
        assert sub.p_in == 0.0
        assert result.global_warnings == []
