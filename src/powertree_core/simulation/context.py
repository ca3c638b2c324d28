# src/powertree_core/simulation/context.py
"""
Defines the `ComputeContext`, the immutable input of one engine run.

The context bundles everything the `PowerFlowEngine` needs to compute one project
level: the project itself, its pre-built graph and topological order, and the
Subsystem nesting depth at which this level sits.
"""
from dataclasses import dataclass
from typing import Tuple

from ..analysis.results import ProjectGraph, TopologicalOrder
from ..data_structures import Margins, Project, Scenario
from ..validation import ValidationIssue


@dataclass(frozen=True)
class ComputeContext:
    project: Project
    graph: ProjectGraph
    ordering: TopologicalOrder
    depth: int = 0

    @property
    def scenario(self) -> Scenario:
        return self.project.current_scenario

    @property
    def margins(self) -> Margins:
        return self.project.default_margins

    @property
    def global_issues(self) -> Tuple[ValidationIssue, ...]:
        """Structural issues from loading the document and from building the graph."""
        return tuple(self.project.load_issues) + self.graph.issues
