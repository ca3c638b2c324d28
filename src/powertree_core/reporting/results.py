# src/powertree_core/reporting/results.py
"""
Data contracts read by reporting collaborators after a computation: the flattened
converter summary (`SummaryEntry`, `SummaryBranch`) and the tree-wide
`DeepAggregates`.
"""
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class SummaryBranch:
    """Per-output figures of a DualOutputConverter summary entry."""
    id: str
    label: str
    vout: Optional[float]
    i_out: float
    p_in: float
    p_out: float
    loss: float
    efficiency: float
    phase_count: int
    loss_per_phase: Optional[float]
    edge_loss: float


@dataclass(frozen=True)
class SummaryEntry:
    """
    One Converter, DualOutputConverter or Bus anywhere in the project tree.

    Electrical figures are per instance. `multiplier` is the product of the
    `num_paralleled_systems` of every enclosing Subsystem; `total_loss` applies it.
    `key` joins the enclosing Subsystem ids and the node id with '>', and
    `location_path` holds the enclosing Subsystem names (empty at top level).
    """
    id: str
    key: str
    name: str
    node_type: str
    topology: Optional[str]
    vin_min: Optional[float]
    vin_max: Optional[float]
    vout: Optional[float]
    vouts: Tuple[Tuple[str, Optional[float]], ...]
    i_out: float
    p_in: float
    p_out: float
    loss: float
    efficiency: float
    phase_count: int
    loss_per_phase: Optional[float]
    edge_loss: float
    location_path: Tuple[str, ...]
    location: str
    multiplier: int
    outputs: Tuple[SummaryBranch, ...] = ()

    @property
    def dotted_path(self) -> str:
        """Enclosing Subsystem ids and the node id joined with '.'."""
        return self.key.replace(">", ".")

    @property
    def total_loss(self) -> float:
        return (self.loss + self.edge_loss) * self.multiplier


@dataclass(frozen=True)
class DeepAggregates:
    """Power and loss totals over a whole project tree, Subsystem replicas included."""
    critical_load_power: float
    non_critical_load_power: float
    edge_loss: float
    converter_loss: float

    @property
    def total_load_power(self) -> float:
        return self.critical_load_power + self.non_critical_load_power
