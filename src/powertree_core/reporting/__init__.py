# src/powertree_core/reporting/__init__.py
from .results import SummaryBranch, SummaryEntry, DeepAggregates
from .summary import build_converter_summary, compute_deep_aggregates

__all__ = [
    "SummaryBranch",
    "SummaryEntry",
    "DeepAggregates",
    "build_converter_summary",
    "compute_deep_aggregates",
]
