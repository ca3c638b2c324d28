# src/powertree_core/simulation/execution.py
"""
Public entry point of the power-flow engine.

`compute` is a pure function of its input: it builds a fresh graph, ordering and
engine for every call and never caches. It does not raise for malformed data;
structural problems, cycles and design-rule violations all come back as warnings
on the result.
"""
import logging
from typing import Any, Union, Mapping

from ..analysis.graph import build_project_graph, topological_order
from ..data_structures import Project
from ..parser import ProjectParser
from .context import ComputeContext
from .engine import PowerFlowEngine
from .results import ComputeResult

logger = logging.getLogger(__name__)


def compute(project: Union[Project, Mapping[str, Any]]) -> ComputeResult:
    """
    Computes every node, interconnect and total of `project` for its current scenario.

    Args:
        project: A typed `Project`, or a project document mapping which is loaded
                 leniently first (invalid parts are dropped with a warning).

    Returns:
        A new `ComputeResult` for the top-level project.
    """
    if not isinstance(project, Project):
        project = ProjectParser(strict=False).parse(project)

    result = compute_project(project, depth=0)
    logger.info(
        f"Computed project '{result.project_id}' ({result.scenario}): "
        f"load {result.totals.load_power:.3f} W, source {result.totals.source_input:.3f} W, "
        f"{len(result.global_warnings)} global warning(s)."
    )
    return result


def compute_project(project: Project, depth: int = 0) -> ComputeResult:
    """Computes one project level at Subsystem nesting `depth`, recursing into Subsystems."""
    graph = build_project_graph(project)
    ordering = topological_order(graph)
    context = ComputeContext(project=project, graph=graph, ordering=ordering, depth=depth)
    return PowerFlowEngine(context, compute_project).run()
