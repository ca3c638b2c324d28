# src/powertree_core/errors.py
"""
Exception hierarchy and the diagnostic-report contract.

Callers only ever see `PowerTreeError` subclasses. Internally, every failure that a
user can act on is a `DiagnosableError` that knows how to describe itself; the
public entry points catch those and re-raise a `ProjectLoadError` whose message is
the rendered report.
"""
import logging
from typing import Any, Dict, Protocol, abstractmethod, runtime_checkable

logger = logging.getLogger(__name__)


class PowerTreeError(Exception):
    """Base class of every user-facing PowerTree Core error."""


class ProjectLoadError(PowerTreeError):
    """
    A project document could not be turned into a typed Project (file access,
    syntax or schema). The message is a formatted diagnostic report.
    """


class FrameworkLogicError(PowerTreeError):
    """
    The engine broke one of its own contracts, e.g. a node variant without a
    propagation handler. Never caused by project data.
    """


@runtime_checkable
class Diagnosable(Protocol):
    def get_diagnostic_report(self) -> str:
        ...


class DiagnosableError(Exception, Diagnosable):
    """Concrete base of internal exceptions; subclasses must render their own report."""

    @abstractmethod
    def get_diagnostic_report(self) -> str:
        raise NotImplementedError


REPORT_TITLE = "============== PowerTree Core: Actionable Diagnostic Report =============="
LABEL_WIDTH = 16

# Context keys shown in the report header, in display order.
CONTEXT_LABELS = (
    ("project_id", "Project"),
    ("node_id", "Node"),
    ("source_file", "Source File"),
    ("user_input", "User Input"),
)


def format_diagnostic_report(
    error_type: str,
    details: str,
    suggestion: str,
    context: Dict[str, Any]
) -> str:
    """
    Renders the multi-line report shown to users for any diagnosable error.

    Args:
        error_type: Short category, e.g. "Project Schema Validation Error".
        details: Description of the problem; may span several lines.
        suggestion: What the user should change. Omitted when empty.
        context: Optional header values keyed as in `CONTEXT_LABELS`; empty values
                 are skipped.
    """
    lines = ["", "", REPORT_TITLE, f"{'Error Type:':<{LABEL_WIDTH}}{error_type}"]
    for key, label in CONTEXT_LABELS:
        value = context.get(key)
        if not value:
            continue
        if key == "user_input":
            value = f"'{value}'"
        lines.append(f"{label + ':':<{LABEL_WIDTH}}{value}")

    lines.extend(["", "Details:"])
    lines.extend(f"  {line}" for line in details.splitlines())
    if suggestion:
        lines.extend(["", "Suggestion:"])
        lines.extend(f"  {line}" for line in suggestion.splitlines())
    lines.append("=" * len(REPORT_TITLE))
    return "\n".join(lines)
