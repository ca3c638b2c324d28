# src/powertree_core/analysis/__init__.py
from .results import ProjectGraph, TopologicalOrder
from .graph import build_project_graph, topological_order

__all__ = [
    "ProjectGraph",
    "TopologicalOrder",
    "build_project_graph",
    "topological_order",
]
