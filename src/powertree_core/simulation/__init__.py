# src/powertree_core/simulation/__init__.py
from .results import (
    BranchMetrics,
    SubsystemPort,
    ComputedNode,
    ComputedEdge,
    Totals,
    ComputeResult,
)
from .context import ComputeContext
from .engine import PowerFlowEngine, upstream_voltage
from .subsystem import SubsystemExpansion, expand_subsystem, prepare_embedded_project, select_port_id
from .execution import compute, compute_project

__all__ = [
    # Result contracts
    "BranchMetrics",
    "SubsystemPort",
    "ComputedNode",
    "ComputedEdge",
    "Totals",
    "ComputeResult",
    # Core classes
    "ComputeContext",
    "PowerFlowEngine",
    "upstream_voltage",
    "SubsystemExpansion",
    "expand_subsystem",
    "prepare_embedded_project",
    "select_port_id",
    # Entry points
    "compute",
    "compute_project",
]
