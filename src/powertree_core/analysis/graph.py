# src/powertree_core/analysis/graph.py
"""
Graph construction and topological ordering for a single project level.

Neither function recurses into Subsystems: each embedded project is ordered when the
engine expands it. Malformed input (missing lists, duplicate ids, edges to unknown
nodes) is recorded as issues on the `ProjectGraph` rather than raised.
"""
import logging
from collections import deque
from typing import Dict, List, Tuple

import networkx as nx

from ..components import BusNode, NodeBase
from ..data_structures import Edge, Project, usable_resistance
from ..validation import PowerIssueCode, ValidationIssue
from .results import ProjectGraph, TopologicalOrder

logger = logging.getLogger(__name__)


def build_project_graph(project: Project) -> ProjectGraph:
    """Indexes a project's nodes and edges and builds its adjacency."""
    issues: List[ValidationIssue] = []

    raw_nodes = project.nodes
    if not isinstance(raw_nodes, (list, tuple)):
        issues.append(PowerIssueCode.STRUCT_NODES_MISSING.issue())
        raw_nodes = ()
    raw_edges = project.edges
    if not isinstance(raw_edges, (list, tuple)):
        issues.append(PowerIssueCode.STRUCT_EDGES_MISSING.issue())
        raw_edges = ()

    nodes: Dict[str, NodeBase] = {}
    digraph = nx.MultiDiGraph(project_id=project.id)
    for node in raw_nodes:
        if node.id in nodes:
            issues.append(PowerIssueCode.STRUCT_DUPLICATE_NODE.issue(node_id=node.id))
            continue
        nodes[node.id] = node
        digraph.add_node(node.id)
        if isinstance(node, BusNode) and node.r_milliohm is not None and not usable_resistance(node.r_milliohm):
            issues.append(PowerIssueCode.STRUCT_RESISTANCE_INVALID.issue(
                node_id=node.id, element_id=node.id, r_milliohm=node.r_milliohm,
            ))

    edges: Dict[str, Edge] = {}
    outgoing: Dict[str, List[Edge]] = {node_id: [] for node_id in nodes}
    incoming: Dict[str, List[Edge]] = {node_id: [] for node_id in nodes}
    for edge in raw_edges:
        missing = next((end for end in (edge.from_id, edge.to_id) if end not in nodes), None)
        if missing is not None:
            issues.append(PowerIssueCode.STRUCT_DANGLING_EDGE.issue(edge_id=edge.id, missing_id=missing))
            continue
        if edge.id in edges:
            issues.append(PowerIssueCode.STRUCT_EDGE_INVALID.issue(edge_id=edge.id, reason="duplicate interconnect id"))
            continue
        if edge.r_milliohm is not None and not usable_resistance(edge.r_milliohm):
            issues.append(PowerIssueCode.STRUCT_RESISTANCE_INVALID.issue(element_id=edge.id, r_milliohm=edge.r_milliohm))
        edges[edge.id] = edge
        outgoing[edge.from_id].append(edge)
        incoming[edge.to_id].append(edge)
        digraph.add_edge(edge.from_id, edge.to_id, key=edge.id)

    for issue in issues:
        logger.warning(f"Project '{project.id}': {issue.message}")
    logger.debug(f"Built graph for project '{project.id}': {len(nodes)} nodes, {len(edges)} edges.")
    return ProjectGraph(
        nodes=nodes,
        edges=edges,
        outgoing=outgoing,
        incoming=incoming,
        digraph=digraph,
        issues=tuple(issues),
    )


def topological_order(graph: ProjectGraph) -> TopologicalOrder:
    """
    Kahn's algorithm: in-degree-zero nodes seed a FIFO queue in project order. If
    fewer nodes are emitted than exist, the remainder sits on or behind a cycle.
    """
    digraph = graph.digraph
    in_degree = dict(digraph.in_degree())
    queue = deque(node_id for node_id in digraph.nodes if in_degree[node_id] == 0)
    order: List[str] = []

    while queue:
        node_id = queue.popleft()
        order.append(node_id)
        for _, child, _key in digraph.out_edges(node_id, keys=True):
            in_degree[child] -= 1
            if in_degree[child] == 0:
                queue.append(child)

    if len(order) == digraph.number_of_nodes():
        return TopologicalOrder(order=tuple(order), is_acyclic=True)

    cycle_nodes: Tuple[str, ...] = ()
    try:
        cycle_nodes = tuple(edge[0] for edge in nx.find_cycle(digraph))
    except nx.NetworkXNoCycle:
        logger.error("Kahn ordering stalled but networkx reports no cycle.")
    logger.warning(f"Cycle detected through nodes {list(cycle_nodes)}; computation blocked.")
    return TopologicalOrder(order=tuple(order), is_acyclic=False, cycle_nodes=cycle_nodes)
