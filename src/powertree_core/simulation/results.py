# src/powertree_core/simulation/results.py
"""
Data contracts of a power-flow computation.

`ComputedNode` and `ComputedEdge` are filled in by the engine while it runs and are
handed to the caller inside a frozen `ComputeResult`. The caller treats the result as
an immutable snapshot of one scenario; a new computation always builds new objects.

Warnings are kept as structured `ValidationIssue` objects (`issues`,
`global_issues`) and exposed as plain strings (`warnings`, `global_warnings`).
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..components import NodeBase
from ..constants import DEFAULT_EFFICIENCY
from ..data_structures import Edge, Scenario
from ..validation import ValidationIssue


@dataclass
class BranchMetrics:
    """Computed figures of one DualOutputConverter output."""
    handle: str
    label: str
    vout: float
    i_out: float = 0.0
    p_out: float = 0.0
    p_in: float = 0.0
    eta: float = DEFAULT_EFFICIENCY
    loss: float = 0.0


@dataclass
class SubsystemPort:
    """
    One input port of an expanded Subsystem, for a single instance. `power`
    includes the losses of the port's inner interconnects and is what the upstream
    node must deliver.
    """
    id: str
    voltage: float
    power: float = 0.0


@dataclass
class ComputedNode:
    node: NodeBase
    p_in: float = 0.0
    p_out: float = 0.0
    i_in: float = 0.0
    i_out: float = 0.0
    loss: float = 0.0
    eta: Optional[float] = None
    v_upstream: Optional[float] = None
    outputs: Dict[str, BranchMetrics] = field(default_factory=dict)
    ports: Dict[str, SubsystemPort] = field(default_factory=dict)
    p_in_single: Optional[float] = None
    inner_result: Optional["ComputeResult"] = None
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.node.id

    @property
    def name(self) -> str:
        return self.node.name

    @property
    def node_type(self) -> str:
        return type(self.node).node_type

    @property
    def warnings(self) -> List[str]:
        return [issue.message for issue in self.issues]

    def add_issue(self, issue: ValidationIssue) -> None:
        self.issues.append(issue)


@dataclass
class ComputedEdge:
    edge: Edge
    i_edge: float = 0.0
    v_drop: float = 0.0
    p_loss_edge: float = 0.0
    r_total: float = 0.0
    v_source: Optional[float] = None

    @property
    def id(self) -> str:
        return self.edge.id


@dataclass(frozen=True)
class Totals:
    """Project-level totals. `load_power` counts critical Loads and Subsystems."""
    load_power: float = 0.0
    source_input: float = 0.0
    overall_eta: float = 0.0


@dataclass(frozen=True)
class ComputeResult:
    """
    The result of computing one project level for one scenario.

    Attributes:
        project_id: Id of the computed project.
        scenario: The scenario the loads were evaluated in.
        nodes: Node id to computed node, in project order.
        edges: Edge id to computed edge, in project order.
        totals: Aggregated load/source power and overall efficiency.
        global_issues: Graph-level issues (structural substitutions, cycles).
        order: Topological order used for the computation (parents first).
    """
    project_id: str
    scenario: Scenario
    nodes: Dict[str, ComputedNode]
    edges: Dict[str, ComputedEdge]
    totals: Totals
    global_issues: Tuple[ValidationIssue, ...] = ()
    order: Tuple[str, ...] = ()

    @property
    def global_warnings(self) -> List[str]:
        return [issue.message for issue in self.global_issues]

    @property
    def all_warnings(self) -> List[str]:
        """Global warnings followed by every node warning, prefixed with the node id."""
        messages = list(self.global_warnings)
        for node_id, computed in self.nodes.items():
            messages.extend(f"{node_id}: {message}" for message in computed.warnings)
        return messages
