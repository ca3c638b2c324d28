# src/powertree_core/components/elements.py
"""
Leaf node variants of a power tree.

Each class carries only its own electrical attributes, in canonical units
(volts, amperes, watts, milliohms). Behaviour that depends on nothing but a node's
own attributes (scenario current selection, rated-voltage helpers) lives here; every
graph-dependent calculation lives in the simulation engine.
"""
import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..constants import DEFAULT_DUAL_OUTPUT_HANDLE, IDLE_CURRENT_FRACTION
from ..data_structures import Scenario, milliohm_to_ohm
from ..efficiency import DEFAULT_EFFICIENCY_MODEL, EfficiencyModel, EfficiencyRatings
from .base import NodeBase, register_node
from .base_enums import RedundancyMode

logger = logging.getLogger(__name__)


def _positive_count(value: Optional[float]) -> int:
    """Rounds a replication count, never returning less than 1."""
    if value is None or not math.isfinite(value):
        return 1
    return max(1, int(round(value)))


@register_node("Source")
@dataclass(frozen=True)
class SourceNode(NodeBase):
    v_nom: float = 0.0
    i_max: Optional[float] = None
    p_max: Optional[float] = None
    redundancy: RedundancyMode = RedundancyMode.N
    count: int = 1

    @property
    def unit_count(self) -> int:
        return _positive_count(self.count)


@register_node("Converter")
@dataclass(frozen=True)
class ConverterNode(NodeBase):
    vin_min: float = 0.0
    vin_max: float = 0.0
    vout: float = 0.0
    iout_max: Optional[float] = None
    pout_max: Optional[float] = None
    phase_count: int = 1
    topology: str = "buck"
    efficiency: EfficiencyModel = DEFAULT_EFFICIENCY_MODEL

    @property
    def nominal_input_voltage(self) -> float:
        """Midpoint of the input range, used until a real upstream voltage is known."""
        return (self.vin_min + self.vin_max) / 2.0

    @property
    def ratings(self) -> EfficiencyRatings:
        return EfficiencyRatings(
            vout=self.vout, iout_max=self.iout_max, pout_max=self.pout_max, phase_count=self.phase_count,
        )


@dataclass(frozen=True)
class OutputBranch:
    """One output rail of a DualOutputConverter."""
    id: Optional[str] = None
    label: Optional[str] = None
    vout: float = 0.0
    iout_max: Optional[float] = None
    pout_max: Optional[float] = None
    phase_count: int = 1
    efficiency: EfficiencyModel = DEFAULT_EFFICIENCY_MODEL

    @property
    def ratings(self) -> EfficiencyRatings:
        return EfficiencyRatings(
            vout=self.vout, iout_max=self.iout_max, pout_max=self.pout_max, phase_count=self.phase_count,
        )


@register_node("DualOutputConverter")
@dataclass(frozen=True)
class DualOutputConverterNode(NodeBase):
    vin_min: float = 0.0
    vin_max: float = 0.0
    topology: str = "buck"
    outputs: Tuple[OutputBranch, ...] = ()

    @property
    def nominal_input_voltage(self) -> float:
        return (self.vin_min + self.vin_max) / 2.0

    @property
    def fallback_handle(self) -> str:
        """Handle that edges with an unknown or missing source handle attach to."""
        if self.outputs and self.outputs[0].id:
            return self.outputs[0].id
        return DEFAULT_DUAL_OUTPUT_HANDLE

    def branch_handles(self) -> Dict[str, OutputBranch]:
        """Branches keyed by their edge handle, in declaration order."""
        fallback = self.fallback_handle
        handles: Dict[str, OutputBranch] = {}
        for idx, branch in enumerate(self.outputs):
            handle = branch.id or (fallback if idx == 0 else f"{fallback}-{idx}")
            handles.setdefault(handle, branch)
        return handles

    def resolve_handle(self, from_handle: Optional[str]) -> str:
        if from_handle and from_handle in self.branch_handles():
            return from_handle
        return self.fallback_handle

    def branch_label(self, handle: str) -> str:
        branch = self.branch_handles().get(handle)
        if branch is not None and branch.label:
            return branch.label
        return handle


@register_node("Load")
@dataclass(frozen=True)
class LoadNode(NodeBase):
    v_req: float = 0.0
    i_typ: float = 0.0
    i_max: float = 0.0
    i_idle: Optional[float] = None
    utilization_typical: float = 100.0
    utilization_max: float = 100.0
    num_paralleled_devices: int = 1
    critical: bool = True

    @property
    def device_count(self) -> int:
        return _positive_count(self.num_paralleled_devices)

    def scenario_current(self, scenario: Scenario) -> float:
        """Total current drawn by all paralleled devices in `scenario`."""
        if scenario is Scenario.MAX:
            per_device = self.i_max * _utilization(self.utilization_max)
        elif scenario is Scenario.IDLE:
            if self.i_idle is not None and math.isfinite(self.i_idle) and self.i_idle > 0:
                per_device = self.i_idle
            else:
                per_device = self.i_typ * IDLE_CURRENT_FRACTION
        else:
            per_device = self.i_typ * _utilization(self.utilization_typical)
        return per_device * self.device_count


def _utilization(pct: Optional[float]) -> float:
    if pct is None or not math.isfinite(pct):
        return 1.0
    return min(100.0, max(0.0, pct)) / 100.0


@register_node("Bus", aliases=("Efuse/Resistor",))
@dataclass(frozen=True)
class BusNode(NodeBase):
    """Resistive pass-through (eFuse, shunt or series resistor)."""
    v_bus: float = 0.0
    r_milliohm: float = 0.0

    @property
    def resistance_ohm(self) -> float:
        return milliohm_to_ohm(self.r_milliohm)


@register_node("SubsystemInput")
@dataclass(frozen=True)
class SubsystemInputNode(NodeBase):
    """Input port of an embedded project; replaced by a Source when its Subsystem is expanded."""
    vout: float = 0.0


@register_node("Note")
@dataclass(frozen=True)
class NoteNode(NodeBase):
    text: str = ""
