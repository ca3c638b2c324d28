# tests/components/test_components.py
from dataclasses import dataclass

import pytest

from powertree_core.components import (
    NODE_REGISTRY, BusNode, DualOutputConverterNode, LoadNode, NodeBase, NodeRegistrationError,
    OutputBranch, SourceNode, SubsystemNode, register_node,
)
from powertree_core.constants import DEFAULT_DUAL_OUTPUT_HANDLE
from powertree_core.data_structures import Scenario


@pytest.fixture
def scratch_registry():
    """Removes any type string a test registers."""
    before = dict(NODE_REGISTRY)
    yield NODE_REGISTRY
    NODE_REGISTRY.clear()
    NODE_REGISTRY.update(before)


class TestRegistry:

    def test_builtin_types_registered(self):
        for type_str in ("Source", "Converter", "DualOutputConverter", "Load", "Bus", "Subsystem", "SubsystemInput", "Note"):
            assert type_str in NODE_REGISTRY
        assert NODE_REGISTRY["Efuse/Resistor"] is BusNode
        assert BusNode.node_type == "Bus"
        assert BusNode.type_aliases == ("Efuse/Resistor",)

    def test_register_new_variant(self, scratch_registry):
        @register_node("Gauge")
        @dataclass(frozen=True)
        class GaugeNode(NodeBase):
            channel: int = 0

        assert scratch_registry["Gauge"] is GaugeNode
        assert GaugeNode.node_type == "Gauge"

    def test_rejects_non_node_class(self, scratch_registry):
        with pytest.raises(NodeRegistrationError, match="must subclass NodeBase"):
            @register_node("Plain")
            class Plain:
                pass

    def test_rejects_taken_type_string(self, scratch_registry):
        with pytest.raises(NodeRegistrationError) as excinfo:
            @register_node("Source")
            @dataclass(frozen=True)
            class OtherSource(NodeBase):
                pass
        assert "already registered to 'SourceNode'" in str(excinfo.value)
        assert "Node Registration Error" in excinfo.value.get_diagnostic_report()
        assert scratch_registry["Source"] is SourceNode


class TestLoadScenarioCurrent:

    @pytest.fixture
    def load(self):
        return LoadNode(
            id="l", v_req=5.0, i_typ=2.0, i_max=4.0, utilization_typical=50.0, utilization_max=100.0,
            num_paralleled_devices=3,
        )

    @pytest.mark.parametrize("scenario, expected", [
        (Scenario.TYPICAL, 3.0),
        (Scenario.MAX, 12.0),
        (Scenario.IDLE, 1.2),
    ])
    def test_scenarios(self, load, scenario, expected):
        assert load.scenario_current(scenario) == pytest.approx(expected)

    def test_explicit_idle_current(self, load):
        idle = LoadNode(id="l", v_req=5.0, i_typ=2.0, i_idle=0.05)
        assert idle.scenario_current(Scenario.IDLE) == pytest.approx(0.05)

    def test_utilization_is_clamped(self):
        load = LoadNode(id="l", v_req=5.0, i_typ=2.0, utilization_typical=150.0)
        assert load.scenario_current(Scenario.TYPICAL) == pytest.approx(2.0)

    def test_device_count_floor(self):
        assert LoadNode(id="l", num_paralleled_devices=0).device_count == 1
        assert LoadNode(id="l", num_paralleled_devices=2.6).device_count == 3


class TestDualOutputHandles:

    def test_configured_handles(self):
        node = DualOutputConverterNode(id="d", outputs=(
            OutputBranch(id="outA", label="Rail A", vout=12.0),
            OutputBranch(id="outB", vout=5.0),
        ))
        assert list(node.branch_handles()) == ["outA", "outB"]
        assert node.resolve_handle("outB") == "outB"
        assert node.resolve_handle("bogus") == "outA"
        assert node.resolve_handle(None) == "outA"
        assert node.branch_label("outA") == "Rail A"
        assert node.branch_label("outB") == "outB"

    def test_branches_without_ids(self):
        node = DualOutputConverterNode(id="d", outputs=(OutputBranch(vout=12.0), OutputBranch(vout=5.0)))
        assert node.fallback_handle == DEFAULT_DUAL_OUTPUT_HANDLE == "outputA"
        assert list(node.branch_handles()) == ["outputA", "outputA-1"]

    def test_nominal_input_voltage(self):
        node = DualOutputConverterNode(id="d", vin_min=36.0, vin_max=60.0)
        assert node.nominal_input_voltage == 48.0


class TestNodeValues:

    def test_display_name(self):
        assert SourceNode(id="s").display_name == "s"
        assert SourceNode(id="s", name="Bulk").display_name == "Bulk"

    def test_source_unit_count(self):
        assert SourceNode(id="s", count=0).unit_count == 1
        assert SourceNode(id="s", count=4).unit_count == 4

    def test_subsystem_parallel_count(self):
        assert SubsystemNode(id="sub").parallel_count == 1
        assert SubsystemNode(id="sub", num_paralleled_systems=0).parallel_count == 1
        assert SubsystemNode(id="sub", num_paralleled_systems=3).parallel_count == 3

    def test_bus_resistance(self):
        assert BusNode(id="b", r_milliohm=50.0).resistance_ohm == pytest.approx(0.05)
