# src/powertree_core/data_structures.py
"""
Core, immutable data structures of a power-tree project.

A `Project` is the unit the engine computes: an ordered set of typed nodes
(see `powertree_core.components`), the directed `Edge` interconnects between them,
margin configuration and the active `Scenario`. Subsystem nodes embed further
`Project` values, forming a tree of independent id spaces.

Instances are frozen. Changing a scenario or swapping a node produces a new Project
via `dataclasses.replace`, so a Project shared between callers is never modified by
a computation.
"""
import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Optional, Tuple

if TYPE_CHECKING:
    from .components.base import NodeBase
    from .validation import ValidationIssue

logger = logging.getLogger(__name__)


def usable_resistance(r_milliohm: Optional[float]) -> bool:
    """True when `r_milliohm` is a finite, non-negative resistance."""
    return r_milliohm is not None and math.isfinite(r_milliohm) and r_milliohm >= 0


def milliohm_to_ohm(r_milliohm: Optional[float]) -> float:
    """Ohms for a milliohm value; negative, missing or non-finite values count as 0."""
    return r_milliohm / 1000.0 if usable_resistance(r_milliohm) else 0.0


class Scenario(Enum):
    """Current-selection policy applied to every Load of a project."""
    TYPICAL = "Typical"
    MAX = "Max"
    IDLE = "Idle"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class Margins:
    """Percentage safety buffers subtracted from rated maxima before a warning triggers."""
    current_pct: float = 10.0
    power_pct: float = 10.0
    voltage_drop_pct: float = 5.0
    voltage_margin_pct: float = 3.0


@dataclass(frozen=True)
class UnitLabels:
    """Display labels only; values are always stored in V, A, W and milliohms."""
    voltage: str = "V"
    current: str = "A"
    power: str = "W"
    resistance: str = "mΩ"


@dataclass(frozen=True)
class Edge:
    """
    A directed interconnect from `from_id` to `to_id` within one project. Handles
    select a port on nodes exposing several (DualOutputConverter outputs,
    multi-input Subsystems).
    """
    id: str
    from_id: str
    to_id: str
    from_handle: Optional[str] = None
    to_handle: Optional[str] = None
    r_milliohm: float = 0.0

    @property
    def resistance_ohm(self) -> float:
        return milliohm_to_ohm(self.r_milliohm)


@dataclass(frozen=True)
class Project:
    """
    A named electrical system.

    `nodes` and `edges` may be `None` when a caller hands the engine an incomplete
    project; the engine then computes an empty list and reports the substitution.
    `load_issues` holds structural problems found while loading the document and is
    carried into the computed result.
    """
    id: str = "project"
    name: str = ""
    nodes: Optional[Tuple["NodeBase", ...]] = ()
    edges: Optional[Tuple[Edge, ...]] = ()
    units: UnitLabels = field(default_factory=UnitLabels)
    default_margins: Margins = field(default_factory=Margins)
    scenarios: Tuple[Scenario, ...] = (Scenario.TYPICAL, Scenario.MAX, Scenario.IDLE)
    current_scenario: Scenario = Scenario.TYPICAL
    load_issues: Tuple["ValidationIssue", ...] = ()

    def with_scenario(self, scenario: Scenario) -> "Project":
        if scenario is self.current_scenario:
            return self
        return replace(self, current_scenario=scenario)

    def get_node(self, node_id: str) -> Optional["NodeBase"]:
        for node in self.nodes or ():
            if node.id == node_id:
                return node
        return None
