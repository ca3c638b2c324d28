# src/powertree_core/analysis/results.py
"""
Formal, immutable data contracts produced by the analysis services.

`ProjectGraph` and `TopologicalOrder` are the contracts between the graph builder,
the topological orderer and the engine.
"""
from dataclasses import dataclass
from typing import Dict, List, Tuple

import networkx as nx

from ..components import NodeBase
from ..data_structures import Edge
from ..validation import ValidationIssue


@dataclass(frozen=True)
class ProjectGraph:
    """
    Id-indexed view of one project level. `outgoing`/`incoming` preserve the
    project's edge order; `digraph` is a networkx MultiDiGraph keyed by edge id
    (parallel interconnects between the same two nodes are allowed).
    """
    nodes: Dict[str, NodeBase]
    edges: Dict[str, Edge]
    outgoing: Dict[str, List[Edge]]
    incoming: Dict[str, List[Edge]]
    digraph: nx.MultiDiGraph
    issues: Tuple[ValidationIssue, ...]


@dataclass(frozen=True)
class TopologicalOrder:
    """
    Result of Kahn ordering. `order` lists every emitted node, parents before
    children; when `is_acyclic` is False it is partial and `cycle_nodes` names one
    offending cycle.
    """
    order: Tuple[str, ...]
    is_acyclic: bool
    cycle_nodes: Tuple[str, ...] = ()

