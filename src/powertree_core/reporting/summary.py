# src/powertree_core/reporting/summary.py
"""
Read-only aggregation over a computed project tree.

`build_converter_summary` flattens every Converter, DualOutputConverter and Bus of
the tree (nested Subsystems included) into `SummaryEntry` records, each carrying the
interconnect loss downstream of it. The downstream walk passes through relay nodes
(Bus, SubsystemInput, Note) and re-enters a Subsystem's recomputed inner graph at
the port the interconnect feeds, scaled by that Subsystem's parallel count.

`compute_deep_aggregates` totals load power and losses over the same tree.

Both recompute embedded projects from scratch on every call.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from ..analysis import ProjectGraph, build_project_graph
from ..components import (
    BusNode, ConverterNode, DualOutputConverterNode, LoadNode, NoteNode,
    SubsystemInputNode, SubsystemNode,
)
from ..constants import MAX_SUBSYSTEM_DEPTH, SINGLE_OUTPUT_HANDLES
from ..data_structures import Edge, Project
from ..parser import ProjectParser
from ..simulation import (
    ComputedNode, ComputeResult, compute, compute_project, prepare_embedded_project,
    select_port_id, upstream_voltage,
)
from .results import DeepAggregates, SummaryBranch, SummaryEntry

logger = logging.getLogger(__name__)

BUS_SUMMARY_TYPE = "Efuse/Resistor"
RELAY_TYPES = (BusNode, SubsystemInputNode, NoteNode)


@dataclass
class _Level:
    """One computed project level of the tree, addressed by its Subsystem id path."""
    scope: Tuple[str, ...]
    names: Tuple[str, ...]
    multiplier: int
    project: Project
    result: ComputeResult
    graph: ProjectGraph
    port_voltages: Dict[str, float] = field(default_factory=dict)


class _TreeWalker:
    """Lazily computes and remembers the levels of one project tree for one call."""

    def __init__(self, project: Project, result: ComputeResult):
        self.root = _Level(
            scope=(), names=(), multiplier=1, project=project, result=result,
            graph=build_project_graph(project),
        )
        self._levels: Dict[Tuple[str, ...], Optional[_Level]] = {(): self.root}

    def inner_level(self, level: _Level, node: SubsystemNode) -> Optional[_Level]:
        scope = level.scope + (node.id,)
        if scope in self._levels:
            return self._levels[scope]

        inner: Optional[_Level] = None
        if node.project is None:
            logger.debug(f"Subsystem '{node.id}' has no embedded project; nothing to summarize.")
        elif len(scope) > MAX_SUBSYSTEM_DEPTH:
            logger.warning(f"Subsystem '{'>'.join(scope)}' exceeds the maximum nesting depth; not summarized.")
        else:
            working, port_voltages = prepare_embedded_project(node, level.project.current_scenario)
            inner = _Level(
                scope=scope,
                names=level.names + (node.display_name or "Subsystem",),
                multiplier=level.multiplier * node.parallel_count,
                project=working,
                result=compute_project(working, depth=len(scope)),
                graph=build_project_graph(working),
                port_voltages=port_voltages,
            )
        self._levels[scope] = inner
        return inner

    def levels(self) -> Iterable[_Level]:
        """Depth-first over the tree, parents before their Subsystems."""
        stack = [self.root]
        while stack:
            level = stack.pop()
            yield level
            children = []
            for node in level.graph.nodes.values():
                if isinstance(node, SubsystemNode):
                    inner = self.inner_level(level, node)
                    if inner is not None:
                        children.append(inner)
            stack.extend(reversed(children))

    def downstream_edge_loss(self, level: _Level, edges: Iterable[Edge], visited: Set[Tuple[str, str]], scale: float = 1.0) -> float:
        """
        Interconnect loss on `edges` and on everything reachable from them through
        relay nodes and Subsystem ports. Each (level, edge) pair counts once.
        """
        total = 0.0
        for edge in edges:
            visit_key = (">".join((level.project.id,) + level.scope), edge.id)
            if visit_key in visited:
                continue
            visited.add(visit_key)

            computed_edge = level.result.edges.get(edge.id)
            if computed_edge is not None:
                total += computed_edge.p_loss_edge * scale

            target = level.graph.nodes.get(edge.to_id)
            if isinstance(target, BusNode):
                total += self.downstream_edge_loss(level, _single_output_edges(level, target.id), visited, scale)
            elif isinstance(target, RELAY_TYPES):
                total += self.downstream_edge_loss(level, level.graph.outgoing.get(target.id, ()), visited, scale)
            elif isinstance(target, SubsystemNode):
                inner = self.inner_level(level, target)
                if inner is None:
                    continue
                upstream = upstream_voltage(level.graph.nodes[edge.from_id], edge.from_handle)
                port_id = select_port_id(inner.port_voltages, edge.to_handle, upstream)
                if port_id is not None:
                    total += self.downstream_edge_loss(
                        inner, inner.graph.outgoing.get(port_id, ()), visited, scale * target.parallel_count,
                    )
        return total


def build_converter_summary(
    project: Union[Project, Mapping[str, Any]],
    result: Optional[ComputeResult] = None,
) -> List[SummaryEntry]:
    """
    Flattens every Converter, DualOutputConverter and Bus in the project tree into
    summary entries, sorted by output power (descending) then name.

    Args:
        project: The project (or project document) to summarize.
        result: A result of `compute(project)`; computed here when omitted.
    """
    if not isinstance(project, Project):
        project = ProjectParser(strict=False).parse(project)
    if result is None:
        result = compute(project)

    walker = _TreeWalker(project, result)
    entries: List[SummaryEntry] = []
    for level in walker.levels():
        for node_id, node in level.graph.nodes.items():
            computed = level.result.nodes.get(node_id)
            if computed is None:
                continue
            if isinstance(node, ConverterNode):
                entries.append(_converter_entry(walker, level, node, computed))
            elif isinstance(node, DualOutputConverterNode):
                entries.append(_dual_output_entry(walker, level, node, computed))
            elif isinstance(node, BusNode):
                entries.append(_bus_entry(walker, level, node, computed))

    entries.sort(key=lambda entry: (-entry.p_out, entry.name))
    logger.info(f"Built converter summary for project '{project.id}': {len(entries)} entries.")
    return entries


def compute_deep_aggregates(
    project: Union[Project, Mapping[str, Any]],
    result: Optional[ComputeResult] = None,
) -> DeepAggregates:
    """
    Totals critical and non-critical load power, interconnect loss and
    converter/bus loss over the whole tree, multiplying each Subsystem's
    contribution by its parallel count.
    """
    if not isinstance(project, Project):
        project = ProjectParser(strict=False).parse(project)
    if result is None:
        result = compute(project)

    walker = _TreeWalker(project, result)
    critical = non_critical = edge_loss = converter_loss = 0.0
    for level in walker.levels():
        scale = level.multiplier
        for computed in level.result.nodes.values():
            node = computed.node
            if isinstance(node, LoadNode):
                if node.critical is False:
                    non_critical += computed.p_out * scale
                else:
                    critical += computed.p_out * scale
            elif isinstance(node, (ConverterNode, DualOutputConverterNode, BusNode)):
                converter_loss += computed.loss * scale
        edge_loss += sum(edge.p_loss_edge for edge in level.result.edges.values()) * scale

    return DeepAggregates(
        critical_load_power=critical,
        non_critical_load_power=non_critical,
        edge_loss=edge_loss,
        converter_loss=converter_loss,
    )


# --- Entry builders ---

def _efficiency(p_out: float, p_in: float) -> float:
    if p_in <= 0:
        return 0.0
    return min(1.0, max(0.0, p_out / p_in))


def _per_phase(loss: float, phase_count: int) -> Optional[float]:
    return loss / phase_count if phase_count > 1 else None


def _phase_count(value: Optional[float]) -> int:
    if value is None or value <= 0:
        return 1
    return max(1, int(round(value)))


def _location(level: _Level) -> str:
    return " / ".join(level.names) if level.names else "System"


def _key(level: _Level, node_id: str) -> str:
    return ">".join(level.scope + (node_id,))


def _single_output_edges(level: _Level, node_id: str) -> List[Edge]:
    # Only edges the engine folds into a single-output node's demand.
    return [e for e in level.graph.outgoing.get(node_id, ()) if e.from_handle in SINGLE_OUTPUT_HANDLES]


def _converter_entry(walker: _TreeWalker, level: _Level, node: ConverterNode, computed: ComputedNode) -> SummaryEntry:
    phases = _phase_count(node.phase_count)
    return SummaryEntry(
        id=node.id,
        key=_key(level, node.id),
        name=node.display_name,
        node_type=ConverterNode.node_type,
        topology=node.topology,
        vin_min=node.vin_min,
        vin_max=node.vin_max,
        vout=node.vout,
        vouts=((node.display_name, node.vout),),
        i_out=computed.i_out,
        p_in=computed.p_in,
        p_out=computed.p_out,
        loss=computed.loss,
        efficiency=_efficiency(computed.p_out, computed.p_in),
        phase_count=phases,
        loss_per_phase=_per_phase(computed.loss, phases),
        edge_loss=walker.downstream_edge_loss(level, _single_output_edges(level, node.id), set()),
        location_path=level.names,
        location=_location(level),
        multiplier=level.multiplier,
    )


def _dual_output_entry(walker: _TreeWalker, level: _Level, node: DualOutputConverterNode, computed: ComputedNode) -> SummaryEntry:
    handles = node.branch_handles()
    visited: Set[Tuple[str, str]] = set()
    branches = []
    for handle, metrics in computed.outputs.items():
        branch = handles[handle]
        phases = _phase_count(branch.phase_count)
        branch_edges = [e for e in level.graph.outgoing[node.id] if node.resolve_handle(e.from_handle) == handle]
        branches.append(SummaryBranch(
            id=handle,
            label=metrics.label,
            vout=branch.vout,
            i_out=metrics.i_out,
            p_in=metrics.p_in,
            p_out=metrics.p_out,
            loss=metrics.loss,
            efficiency=_efficiency(metrics.p_out, metrics.p_in),
            phase_count=phases,
            loss_per_phase=_per_phase(metrics.loss, phases),
            edge_loss=walker.downstream_edge_loss(level, branch_edges, visited),
        ))
    branches.sort(key=lambda b: (-b.p_out, b.label))

    phases = max((b.phase_count for b in branches), default=1)
    return SummaryEntry(
        id=node.id,
        key=_key(level, node.id),
        name=node.display_name,
        node_type=DualOutputConverterNode.node_type,
        topology=node.topology,
        vin_min=node.vin_min,
        vin_max=node.vin_max,
        vout=None,
        vouts=tuple((b.label, b.vout) for b in branches),
        i_out=computed.i_out,
        p_in=computed.p_in,
        p_out=computed.p_out,
        loss=computed.loss,
        efficiency=_efficiency(computed.p_out, computed.p_in),
        phase_count=phases,
        loss_per_phase=_per_phase(computed.loss, phases),
        edge_loss=sum(b.edge_loss for b in branches),
        location_path=level.names,
        location=_location(level),
        multiplier=level.multiplier,
        outputs=tuple(branches),
    )


def _bus_entry(walker: _TreeWalker, level: _Level, node: BusNode, computed: ComputedNode) -> SummaryEntry:
    return SummaryEntry(
        id=node.id,
        key=_key(level, node.id),
        name=node.display_name,
        node_type=BUS_SUMMARY_TYPE,
        topology=None,
        vin_min=None,
        vin_max=None,
        vout=node.v_bus,
        vouts=((node.display_name, node.v_bus),),
        i_out=computed.i_out,
        p_in=computed.p_in,
        p_out=computed.p_out,
        loss=computed.loss,
        efficiency=_efficiency(computed.p_out, computed.p_in),
        phase_count=1,
        loss_per_phase=None,
        edge_loss=walker.downstream_edge_loss(level, _single_output_edges(level, node.id), set()),
        location_path=level.names,
        location=_location(level),
        multiplier=level.multiplier,
    )
