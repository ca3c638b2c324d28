# src/powertree_core/simulation/engine.py

"""
Defines the `PowerFlowEngine`, the service that computes one project level.

The engine holds no state between runs. It is created for a single `ComputeContext`,
fills in one `ComputedNode` per node and one `ComputedEdge` per interconnect, and
hands them back inside a `ComputeResult`. Stages, in order:

1. Propagation over the reverse topological order (children before parents), with
   Subsystems expanded recursively through the injected project runner.
2. Edge resolution (current, voltage drop and dissipation per interconnect).
3. Reconciliation: pass one refreshes converter efficiency from the known operating
   point; pass two folds every outgoing interconnect loss into the upstream
   converter or bus, re-resolving that node's outgoing edges first so the figures it
   folds are final. Sources and Subsystem inputs are then totalled one last time.
4. Design-rule checks and totals.

The correction is a fixed two-pass sequence, not an iteration to convergence.
"""
import logging
import math
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from ..components import (
    BusNode, ConverterNode, DualOutputConverterNode, LoadNode, NodeBase, NoteNode,
    SourceNode, SubsystemInputNode, SubsystemNode, RedundancyMode,
)
from ..constants import EPSILON, SINGLE_OUTPUT_HANDLES, VOLTAGE_MATCH_TOLERANCE
from ..data_structures import Edge
from ..efficiency import EfficiencyModel, EfficiencyRatings, evaluate_efficiency
from ..errors import FrameworkLogicError
from ..validation import PowerIssueCode, ValidationIssue
from .context import ComputeContext
from .results import (
    BranchMetrics, ComputedEdge, ComputedNode, ComputeResult, SubsystemPort, Totals,
)
from .subsystem import ProjectRunner, expand_subsystem, select_port_id

logger = logging.getLogger(__name__)


def upstream_voltage(parent: NodeBase, from_handle: Optional[str]) -> Optional[float]:
    """Output voltage of `parent` at the port an interconnect leaves from, if it has one."""
    if isinstance(parent, SourceNode):
        return parent.v_nom
    if isinstance(parent, ConverterNode):
        return parent.vout
    if isinstance(parent, DualOutputConverterNode):
        branch = parent.branch_handles().get(parent.resolve_handle(from_handle))
        return branch.vout if branch is not None else None
    if isinstance(parent, BusNode):
        return parent.v_bus
    if isinstance(parent, SubsystemInputNode):
        return parent.vout
    return None


class PowerFlowEngine:
    """
    Computes power, current and losses for every node and edge of one project level.
    """
    def __init__(self, context: ComputeContext, run_project: ProjectRunner):
        """
        Args:
            context: The immutable context of this run.
            run_project: Callable computing an embedded project at a given depth; used
                         to expand Subsystems.
        """
        self.context = context
        self.graph = context.graph
        self.scenario = context.scenario
        self.margins = context.margins
        self._run_project = run_project

        self.nodes: Dict[str, ComputedNode] = {
            node_id: ComputedNode(node=node) for node_id, node in self.graph.nodes.items()
        }
        self.edges: Dict[str, ComputedEdge] = {
            edge_id: ComputedEdge(edge=edge) for edge_id, edge in self.graph.edges.items()
        }
        # Only the most recent evaluation of each model is reported.
        self._efficiency_issues: Dict[Tuple[str, Optional[str]], ValidationIssue] = {}

        self._propagators = {
            SourceNode: self._propagate_source,
            ConverterNode: self._propagate_converter,
            DualOutputConverterNode: self._propagate_dual_output,
            LoadNode: self._propagate_load,
            BusNode: self._propagate_bus,
            SubsystemNode: self._propagate_subsystem,
            SubsystemInputNode: self._propagate_subsystem_input,
            NoteNode: self._propagate_note,
        }

    def run(self) -> ComputeResult:
        """Executes every stage and returns the finished result."""
        ordering = self.context.ordering
        if not ordering.is_acyclic:
            return self._blocked_result()

        reverse_order = list(reversed(ordering.order))
        logger.debug(f"Propagating '{self.context.project.id}' over {len(reverse_order)} nodes.")
        for node_id in reverse_order:
            self._dispatch(node_id)

        for edge in self.graph.edges.values():
            self._resolve_edge(edge)

        self._refresh_converters(reverse_order)
        self._fold_edge_losses(reverse_order)
        self._finalize_sources()

        self._assign_upstream_voltages()
        self._apply_design_rules()
        return self._build_result()

    # --- Propagation ---

    def _dispatch(self, node_id: str) -> None:
        computed = self.nodes[node_id]
        handler = self._propagators.get(type(computed.node))
        if handler is None:
            raise FrameworkLogicError(
                f"No propagation handler for node type '{type(computed.node).__name__}' (node '{node_id}')."
            )
        handler(computed)

    def _propagate_load(self, computed: ComputedNode) -> None:
        load: LoadNode = computed.node
        current = load.scenario_current(self.scenario)
        power = load.v_req * current
        computed.i_in = computed.i_out = current
        computed.p_in = computed.p_out = power
        computed.loss = 0.0

    def _propagate_converter(self, computed: ComputedNode) -> None:
        conv: ConverterNode = computed.node
        p_out = sum(self._edge_demand(edge) for edge in self._single_output_edges(conv.id))
        i_out = p_out / conv.vout if conv.vout > 0 else 0.0
        self._set_converter_operating_point(computed, p_out, i_out)

    def _propagate_dual_output(self, computed: ComputedNode) -> None:
        dual: DualOutputConverterNode = computed.node
        computed.outputs = {}
        for handle, branch in dual.branch_handles().items():
            metrics = BranchMetrics(handle=handle, label=dual.branch_label(handle), vout=branch.vout)
            metrics.p_out = sum(self._edge_demand(edge) for edge in self._branch_edges(dual, handle))
            metrics.i_out = metrics.p_out / branch.vout if branch.vout > 0 else 0.0
            computed.outputs[handle] = metrics
        self._update_dual_branches(computed)

    def _propagate_bus(self, computed: ComputedNode) -> None:
        bus: BusNode = computed.node
        p_out = sum(self._edge_demand(edge) for edge in self._single_output_edges(bus.id))
        i_out = p_out / bus.v_bus if bus.v_bus > 0 else 0.0
        self._set_bus_operating_point(computed, p_out, i_out)

    def _propagate_subsystem(self, computed: ComputedNode) -> None:
        node: SubsystemNode = computed.node
        expansion = expand_subsystem(node, self.scenario, self.context.depth, self._run_project)
        for issue in expansion.issues:
            computed.add_issue(issue)

        count = expansion.count
        computed.ports = expansion.ports
        computed.inner_result = expansion.inner_result
        computed.p_in_single = expansion.input_power_single
        computed.p_in = expansion.input_power_single * count
        computed.p_out = expansion.load_power_single * count
        computed.loss = max(0.0, computed.p_in - computed.p_out)
        computed.i_in = sum(
            port.power * count / port.voltage for port in expansion.ports.values() if port.voltage > 0
        )
        computed.i_out = 0.0

    def _propagate_source(self, computed: ComputedNode) -> None:
        src: SourceNode = computed.node
        current = sum(self.nodes[edge.to_id].i_in for edge in self.graph.outgoing[src.id])
        computed.i_in = computed.i_out = current
        computed.p_in = computed.p_out = current * src.v_nom
        computed.loss = 0.0

    def _propagate_subsystem_input(self, computed: ComputedNode) -> None:
        port: SubsystemInputNode = computed.node
        current = sum(self.nodes[edge.to_id].i_in for edge in self.graph.outgoing[port.id])
        computed.i_in = computed.i_out = current
        computed.p_in = computed.p_out = current * port.vout
        computed.loss = 0.0

    def _propagate_note(self, computed: ComputedNode) -> None:
        pass

    # --- Converter / Bus operating points ---

    def _set_converter_operating_point(self, computed: ComputedNode, p_out: float, i_out: float) -> None:
        conv: ConverterNode = computed.node
        eta = self._evaluate(conv.id, None, conv.efficiency, p_out, i_out, conv.ratings)
        computed.p_out = p_out
        computed.i_out = i_out
        computed.eta = eta
        computed.p_in = p_out / max(eta, EPSILON)
        computed.loss = computed.p_in - p_out
        computed.i_in = self._input_current(conv.id, computed.p_in, conv.nominal_input_voltage)

    def _update_dual_branches(self, computed: ComputedNode) -> None:
        """Evaluates every branch from its p_out/i_out and sums the node totals."""
        dual: DualOutputConverterNode = computed.node
        handles = dual.branch_handles()
        for handle, metrics in computed.outputs.items():
            branch = handles[handle]
            metrics.eta = self._evaluate(dual.id, handle, branch.efficiency, metrics.p_out, metrics.i_out, branch.ratings)
            metrics.p_in = metrics.p_out / max(metrics.eta, EPSILON)
            metrics.loss = metrics.p_in - metrics.p_out

        branches = computed.outputs.values()
        computed.p_out = sum(m.p_out for m in branches)
        computed.p_in = sum(m.p_in for m in branches)
        computed.i_out = sum(m.i_out for m in branches)
        computed.loss = computed.p_in - computed.p_out
        computed.eta = computed.p_out / computed.p_in if computed.p_in > 0 else None
        computed.i_in = self._input_current(dual.id, computed.p_in, dual.nominal_input_voltage)

    def _set_bus_operating_point(self, computed: ComputedNode, p_out: float, i_out: float) -> None:
        bus: BusNode = computed.node
        computed.p_out = p_out
        computed.i_out = computed.i_in = i_out
        computed.loss = i_out * i_out * bus.resistance_ohm
        computed.p_in = p_out + computed.loss

    def _evaluate(
        self,
        node_id: str,
        handle: Optional[str],
        model: EfficiencyModel,
        p_out: float,
        i_out: float,
        ratings: EfficiencyRatings,
    ) -> float:
        evaluation = evaluate_efficiency(model, p_out, i_out, ratings)
        key = (node_id, handle)
        if evaluation.issue is not None:
            self._efficiency_issues[key] = evaluation.issue
        else:
            self._efficiency_issues.pop(key, None)
        return evaluation.eta

    def _input_current(self, node_id: str, p_in: float, nominal_voltage: float) -> float:
        """
        Input current at the voltage actually supplied by the first upstream node, or
        at the nominal (mid-range) input voltage while the node is unconnected.
        """
        voltage = None
        for edge in self.graph.incoming[node_id]:
            voltage = self._upstream_voltage(edge)
            if voltage is not None and voltage > 0:
                break
        if voltage is None or voltage <= 0:
            voltage = nominal_voltage
        return p_in / voltage if voltage > 0 else 0.0

    # --- Edge helpers ---

    def _single_output_edges(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.graph.outgoing[node_id] if edge.from_handle in SINGLE_OUTPUT_HANDLES]

    def _branch_edges(self, dual: DualOutputConverterNode, handle: str) -> List[Edge]:
        return [edge for edge in self.graph.outgoing[dual.id] if dual.resolve_handle(edge.from_handle) == handle]

    def _upstream_voltage(self, edge: Edge) -> Optional[float]:
        return upstream_voltage(self.graph.nodes[edge.from_id], edge.from_handle)

    def _select_port(self, computed: ComputedNode, edge: Edge) -> Optional[SubsystemPort]:
        """Subsystem port fed by `edge`: by target handle, the only port, or the nearest voltage."""
        port_id = select_port_id(
            {port.id: port.voltage for port in computed.ports.values()},
            edge.to_handle,
            self._upstream_voltage(edge),
        )
        return computed.ports[port_id] if port_id is not None else None

    def _edge_demand(self, edge: Edge) -> float:
        """Power the edge's child draws through this edge, excluding the edge's own loss."""
        child = self.nodes[edge.to_id]
        if isinstance(child.node, SubsystemNode):
            port = self._select_port(child, edge)
            count = child.node.parallel_count
            return port.power * count if port is not None else 0.0
        return child.p_in

    def _resolve_edge(self, edge: Edge) -> None:
        computed_edge = self.edges[edge.id]
        child = self.nodes[edge.to_id]
        upstream = self._upstream_voltage(edge)
        r_total = edge.resistance_ohm

        if isinstance(child.node, (ConverterNode, DualOutputConverterNode, SubsystemNode)) and upstream and upstream > 0:
            current = self._edge_demand(edge) / upstream
        else:
            current = child.i_in

        computed_edge.r_total = r_total
        computed_edge.i_edge = current
        computed_edge.v_drop = current * r_total
        computed_edge.p_loss_edge = current * current * r_total
        computed_edge.v_source = upstream

    # --- Reconciliation ---

    def _refresh_converters(self, reverse_order: List[str]) -> None:
        """Pass one: re-evaluate efficiency and input power at the known operating point."""
        for node_id in reverse_order:
            computed = self.nodes[node_id]
            if isinstance(computed.node, ConverterNode):
                self._set_converter_operating_point(computed, computed.p_out, computed.i_out)
            elif isinstance(computed.node, DualOutputConverterNode):
                self._update_dual_branches(computed)

    def _fold_edge_losses(self, reverse_order: List[str]) -> None:
        """
        Pass two: each converter/bus output becomes its children's input plus the loss
        on every interconnect it drives.
        """
        for node_id in reverse_order:
            for edge in self.graph.outgoing[node_id]:
                self._resolve_edge(edge)

            computed = self.nodes[node_id]
            node = computed.node
            if isinstance(node, ConverterNode):
                p_out, i_out = self._delivered(self._single_output_edges(node_id))
                if i_out <= 0 and node.vout > 0:
                    i_out = p_out / node.vout
                self._set_converter_operating_point(computed, p_out, i_out)
            elif isinstance(node, DualOutputConverterNode):
                for handle, metrics in computed.outputs.items():
                    metrics.p_out, metrics.i_out = self._delivered(self._branch_edges(node, handle))
                    if metrics.i_out <= 0 and metrics.vout > 0:
                        metrics.i_out = metrics.p_out / metrics.vout
                self._update_dual_branches(computed)
            elif isinstance(node, BusNode):
                p_out, i_out = self._delivered(self._single_output_edges(node_id))
                if i_out <= 0 and node.v_bus > 0:
                    i_out = p_out / node.v_bus
                self._set_bus_operating_point(computed, p_out, i_out)

    def _delivered(self, edges: List[Edge]) -> Tuple[float, float]:
        """Total power (children plus interconnect loss) and current sent down `edges`."""
        power = sum(self._edge_demand(edge) + self.edges[edge.id].p_loss_edge for edge in edges)
        current = sum(self.edges[edge.id].i_edge for edge in edges)
        return power, current

    def _finalize_sources(self) -> None:
        for node_id, computed in self.nodes.items():
            if isinstance(computed.node, (SourceNode, SubsystemInputNode)):
                power, current = self._delivered(self.graph.outgoing[node_id])
                computed.p_in = computed.p_out = power
                computed.i_in = computed.i_out = current
                computed.loss = 0.0

    def _assign_upstream_voltages(self) -> None:
        """The first interconnect feeding a node sets its upstream voltage (after drop)."""
        for computed_edge in self.edges.values():
            child = self.nodes[computed_edge.edge.to_id]
            if child.v_upstream is None and computed_edge.v_source is not None:
                child.v_upstream = computed_edge.v_source - computed_edge.v_drop

    # --- Design rules ---

    def _apply_design_rules(self) -> None:
        for (node_id, _handle), issue in self._efficiency_issues.items():
            self.nodes[node_id].add_issue(replace(issue, node_id=node_id))

        for computed_edge in self.edges.values():
            self._check_voltage_compatibility(computed_edge)

        for computed in self.nodes.values():
            node = computed.node
            if isinstance(node, ConverterNode):
                self._check_output_limits(computed, "", computed.i_out, computed.p_out, node.iout_max, node.pout_max)
            elif isinstance(node, DualOutputConverterNode):
                handles = node.branch_handles()
                for handle, metrics in computed.outputs.items():
                    branch = handles[handle]
                    self._check_output_limits(
                        computed, f"{metrics.label}: ", metrics.i_out, metrics.p_out, branch.iout_max, branch.pout_max,
                    )
            elif isinstance(node, SourceNode):
                self._check_source(computed)
            elif isinstance(node, LoadNode):
                self._check_load_margin(computed)

    def _check_output_limits(
        self,
        computed: ComputedNode,
        prefix: str,
        i_out: float,
        p_out: float,
        iout_max: Optional[float],
        pout_max: Optional[float],
    ) -> None:
        if iout_max and i_out > iout_max * (1 - self.margins.current_pct / 100):
            computed.add_issue(PowerIssueCode.RULE_CONV_OVERCURRENT.issue(
                node_id=computed.id, prefix=prefix, i_out=i_out, limit=iout_max,
            ))
        if pout_max and p_out > pout_max * (1 - self.margins.power_pct / 100):
            computed.add_issue(PowerIssueCode.RULE_CONV_OVERPOWER.issue(
                node_id=computed.id, prefix=prefix, p_out=p_out, limit=pout_max,
            ))

    def _check_source(self, computed: ComputedNode) -> None:
        src: SourceNode = computed.node
        if src.redundancy is RedundancyMode.N_PLUS_1:
            unit_power = src.p_max or (src.i_max or 0.0) * src.v_nom
            available = (src.unit_count - 1) * unit_power
            if available < computed.p_out:
                computed.add_issue(PowerIssueCode.RULE_REDUNDANCY_SHORTFALL.issue(
                    node_id=src.id, available=available, required=computed.p_out,
                ))
        if src.p_max and computed.p_out > src.p_max * (1 - self.margins.power_pct / 100):
            computed.add_issue(PowerIssueCode.RULE_SOURCE_OVERPOWER.issue(
                node_id=src.id, p_out=computed.p_out, limit=src.p_max,
            ))
        if src.i_max and computed.i_out > src.i_max * (1 - self.margins.current_pct / 100):
            computed.add_issue(PowerIssueCode.RULE_SOURCE_OVERCURRENT.issue(
                node_id=src.id, i_out=computed.i_out, limit=src.i_max,
            ))

    def _check_load_margin(self, computed: ComputedNode) -> None:
        load: LoadNode = computed.node
        upstream = computed.v_upstream if computed.v_upstream is not None else load.v_req
        allowed = load.v_req * (1 - self.margins.voltage_margin_pct / 100)
        if upstream < allowed:
            computed.add_issue(PowerIssueCode.RULE_VOLTAGE_MARGIN.issue(
                node_id=load.id, upstream=upstream, allowed=allowed,
            ))

    def _check_voltage_compatibility(self, computed_edge: ComputedEdge) -> None:
        upstream = computed_edge.v_source
        if upstream is None:
            return
        child = self.nodes[computed_edge.edge.to_id]
        node = child.node
        if isinstance(node, (ConverterNode, DualOutputConverterNode)):
            if upstream < node.vin_min or upstream > node.vin_max:
                child.add_issue(PowerIssueCode.VCOMPAT_CONVERTER_INPUT.issue(
                    node_id=node.id, upstream=upstream, vin_min=node.vin_min, vin_max=node.vin_max,
                ))
        elif isinstance(node, LoadNode):
            if abs(upstream - node.v_req) > VOLTAGE_MATCH_TOLERANCE:
                child.add_issue(PowerIssueCode.VCOMPAT_LOAD.issue(node_id=node.id, upstream=upstream, v_req=node.v_req))
        elif isinstance(node, BusNode):
            if abs(upstream - node.v_bus) > VOLTAGE_MATCH_TOLERANCE:
                child.add_issue(PowerIssueCode.VCOMPAT_BUS.issue(node_id=node.id, upstream=upstream, v_bus=node.v_bus))
        elif isinstance(node, SubsystemNode):
            ports = child.ports
            port = None
            if computed_edge.edge.to_handle in ports:
                port = ports[computed_edge.edge.to_handle]
            elif len(ports) == 1:
                port = next(iter(ports.values()))
            if port is not None and abs(upstream - port.voltage) > VOLTAGE_MATCH_TOLERANCE:
                child.add_issue(PowerIssueCode.VCOMPAT_SUBSYSTEM.issue(
                    node_id=node.id, upstream=upstream, v_port=port.voltage,
                ))

    # --- Results ---

    def _build_result(self) -> ComputeResult:
        load_power = 0.0
        source_input = 0.0
        for computed in self.nodes.values():
            node = computed.node
            if isinstance(node, LoadNode) and node.critical is not False:
                load_power += computed.p_out
            elif isinstance(node, SubsystemNode):
                load_power += computed.p_out
            elif isinstance(node, (SourceNode, SubsystemInputNode)):
                source_input += computed.p_in

        totals = Totals(
            load_power=load_power,
            source_input=source_input,
            overall_eta=load_power / source_input if source_input > 0 else 0.0,
        )
        if not all(math.isfinite(v) for v in (totals.load_power, totals.source_input, totals.overall_eta)):
            logger.warning(f"Non-finite totals for project '{self.context.project.id}': {totals}")

        return ComputeResult(
            project_id=self.context.project.id,
            scenario=self.scenario,
            nodes=self.nodes,
            edges=self.edges,
            totals=totals,
            global_issues=tuple(self.context.global_issues),
            order=self.context.ordering.order,
        )

    def _blocked_result(self) -> ComputeResult:
        """All-zero result returned when the level contains a cycle."""
        issues = list(self.context.global_issues)
        issues.append(PowerIssueCode.TOPO_CYCLE.issue(cycle=list(self.context.ordering.cycle_nodes)))
        return ComputeResult(
            project_id=self.context.project.id,
            scenario=self.scenario,
            nodes=self.nodes,
            edges=self.edges,
            totals=Totals(),
            global_issues=tuple(issues),
            order=self.context.ordering.order,
        )
