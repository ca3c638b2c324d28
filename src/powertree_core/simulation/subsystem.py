# src/powertree_core/simulation/subsystem.py
"""
Expansion of Subsystem nodes.

A Subsystem is computed by running the whole engine on a private working copy of
its embedded project, in which every SubsystemInput node has been replaced by a
synthetic Source at the port's voltage. The parent level then sees the Subsystem as
a black box whose input power is what those synthetic sources had to deliver.
"""
import copy
import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Tuple

from ..components import SourceNode, SubsystemInputNode, SubsystemNode
from ..constants import MAX_SUBSYSTEM_DEPTH
from ..data_structures import Project, Scenario
from ..validation import PowerIssueCode, ValidationIssue
from .results import ComputeResult, SubsystemPort

logger = logging.getLogger(__name__)

ProjectRunner = Callable[[Project, int], ComputeResult]


@dataclass(frozen=True)
class SubsystemExpansion:
    """Outcome of expanding one Subsystem node; port figures are per instance."""
    count: int
    ports: Dict[str, SubsystemPort]
    inner_result: Optional[ComputeResult] = None
    issues: Tuple[ValidationIssue, ...] = ()

    @property
    def input_power_single(self) -> float:
        return sum(port.power for port in self.ports.values())

    @property
    def load_power_single(self) -> float:
        return self.inner_result.totals.load_power if self.inner_result is not None else 0.0


def prepare_embedded_project(node: SubsystemNode, scenario: Scenario) -> Tuple[Project, Dict[str, float]]:
    """
    Returns a deep-cloned working copy of the embedded project with each
    SubsystemInput replaced by a Source, plus the resolved voltage of every port.

    A port's voltage is its own `vout` when positive, otherwise the Subsystem's
    nominal input voltage.
    """
    embedded = node.project if node.project is not None else Project(id=f"{node.id}:embedded", name=node.name)
    working = copy.deepcopy(embedded)

    fallback_voltage = node.input_v_nom or 0.0
    port_voltages: Dict[str, float] = {}
    nodes = working.nodes
    if isinstance(nodes, (list, tuple)):
        substituted = []
        for inner in nodes:
            if isinstance(inner, SubsystemInputNode):
                voltage = inner.vout if inner.vout and inner.vout > 0 else fallback_voltage
                port_voltages[inner.id] = voltage
                substituted.append(SourceNode(id=inner.id, name=inner.name, x=inner.x, y=inner.y, v_nom=voltage))
            else:
                substituted.append(inner)
        nodes = tuple(substituted)

    return replace(working, nodes=nodes).with_scenario(scenario), port_voltages


def expand_subsystem(node: SubsystemNode, scenario: Scenario, depth: int, run_project: ProjectRunner) -> SubsystemExpansion:
    """
    Recursively computes one Subsystem at nesting level `depth + 1`.

    Args:
        node: The Subsystem to expand.
        scenario: The parent's active scenario, imposed on the embedded project.
        depth: Nesting depth of the level that contains `node`.
        run_project: Computes a project at a given depth (the engine entry point).
    """
    issues: List[ValidationIssue] = []
    count = node.parallel_count

    if depth + 1 > MAX_SUBSYSTEM_DEPTH:
        logger.warning(f"Subsystem '{node.id}' exceeds the maximum nesting depth {MAX_SUBSYSTEM_DEPTH}; not expanded.")
        issues.append(PowerIssueCode.RULE_SUBSYSTEM_DEPTH.issue(node_id=node.id, max_depth=MAX_SUBSYSTEM_DEPTH))
        return SubsystemExpansion(count=count, ports={}, issues=tuple(issues))

    if node.project is None:
        issues.append(PowerIssueCode.RULE_SUBSYSTEM_NO_PROJECT.issue(node_id=node.id))
    else:
        input_count = sum(1 for inner in node.project.nodes or () if isinstance(inner, SubsystemInputNode))
        if input_count != 1:
            issues.append(PowerIssueCode.RULE_SUBSYSTEM_INPUT_COUNT.issue(node_id=node.id, count=input_count))

    working, port_voltages = prepare_embedded_project(node, scenario)
    logger.debug(f"Expanding subsystem '{node.id}' (depth {depth + 1}, x{count}) with ports {list(port_voltages)}.")
    inner_result = run_project(working, depth + 1)
    # Structural problems and cycles of the embedded level are reported on this node.
    issues.extend(replace(issue, node_id=node.id) for issue in inner_result.global_issues)

    ports: Dict[str, SubsystemPort] = {}
    for port_id, voltage in port_voltages.items():
        computed = inner_result.nodes.get(port_id)
        ports[port_id] = SubsystemPort(
            id=port_id,
            voltage=voltage,
            power=computed.p_out if computed is not None else 0.0,
        )

    return SubsystemExpansion(count=count, ports=ports, inner_result=inner_result, issues=tuple(issues))


def select_port_id(port_voltages: Dict[str, float], to_handle: Optional[str], upstream: Optional[float]) -> Optional[str]:
    """
    Picks the Subsystem port an interconnect feeds: the port named by its target
    handle, else the only port, else the port whose voltage is nearest `upstream`.
    """
    if not port_voltages:
        return None
    if to_handle and to_handle in port_voltages:
        return to_handle
    if len(port_voltages) == 1:
        return next(iter(port_voltages))
    target = upstream or 0.0
    return min(port_voltages, key=lambda port_id: abs(port_voltages[port_id] - target))
