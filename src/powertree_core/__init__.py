# src/powertree_core/__init__.py
import logging
from .log_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)
logger.info("PowerTree Core package initialized.")

from .units import ureg, pint, Quantity
from .data_structures import Project, Edge, Scenario, Margins, UnitLabels
from .components import (
    SourceNode,
    ConverterNode,
    OutputBranch,
    DualOutputConverterNode,
    LoadNode,
    BusNode,
    SubsystemNode,
    SubsystemInputNode,
    NoteNode,
    RedundancyMode,
)
from .efficiency import FixedEfficiency, CurveEfficiency, eta_from_model
from .analysis import build_project_graph, topological_order
from .parser import ProjectParser, load_project, parse_project
from .simulation import compute, ComputeResult
from .reporting import build_converter_summary, compute_deep_aggregates, SummaryEntry, DeepAggregates
from .errors import PowerTreeError, ProjectLoadError, FrameworkLogicError

__all__ = [
    # Units
    "ureg", "pint", "Quantity",
    # Data Structures
    "Project", "Edge", "Scenario", "Margins", "UnitLabels",
    # Nodes
    "SourceNode", "ConverterNode", "OutputBranch", "DualOutputConverterNode", "LoadNode",
    "BusNode", "SubsystemNode", "SubsystemInputNode", "NoteNode", "RedundancyMode",
    # Efficiency
    "FixedEfficiency", "CurveEfficiency", "eta_from_model",
    # Graph analysis
    "build_project_graph", "topological_order",
    # Loading
    "ProjectParser", "load_project", "parse_project",
    # Computation and reporting
    "compute", "ComputeResult",
    "build_converter_summary", "compute_deep_aggregates", "SummaryEntry", "DeepAggregates",
    # Top-Level Errors (Actionable Diagnostics)
    "PowerTreeError", "ProjectLoadError", "FrameworkLogicError",
]
