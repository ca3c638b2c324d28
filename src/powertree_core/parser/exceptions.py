# src/powertree_core/parser/exceptions.py
"""
Diagnosable exceptions of the project loading stage.

`ParsingError` covers file access and document syntax; `SchemaValidationError`
covers documents that are well-formed but do not match the project schema. Both
derive from `DiagnosableError`, so `load_project` can turn any of them into a single
`ProjectLoadError` carrying the formatted report.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import DiagnosableError, format_diagnostic_report


def flatten_cerberus_errors(errors: Any, prefix: str = "") -> List[str]:
    """
    Turns a (possibly nested) cerberus error tree into 'field.path: message' lines.
    """
    lines: List[str] = []
    if isinstance(errors, dict):
        for key in sorted(errors, key=str):
            path = f"{prefix}.{key}" if prefix else str(key)
            lines.extend(flatten_cerberus_errors(errors[key], path))
    elif isinstance(errors, (list, tuple)):
        for item in errors:
            lines.extend(flatten_cerberus_errors(item, prefix))
    else:
        lines.append(f"{prefix}: {errors}" if prefix else str(errors))
    return lines


class BaseParsingError(DiagnosableError):
    """Local base of every loading-stage error."""
    def get_diagnostic_report(self) -> str:
        return format_diagnostic_report(
            error_type="Generic Project Loading Error",
            details=str(self),
            suggestion="Please check the format and content of the project document.",
            context={}
        )


@dataclass(frozen=True)
class ParsingError(BaseParsingError):
    """
    The document could not be read at all: missing file, unreadable file, invalid
    YAML/JSON syntax, or a root that is not a mapping.
    """
    details: str
    file_path: Optional[Path] = None

    def __str__(self):
        if self.file_path is None:
            return f"Parsing error: {self.details}"
        return f"Parsing error in file '{self.file_path}': {self.details}"

    def get_diagnostic_report(self) -> str:
        return format_diagnostic_report(
            error_type="Project Document Parsing Error",
            details=self.details,
            suggestion="Ensure the file exists, is readable, and contains a single YAML or JSON mapping.",
            context={'source_file': self.file_path}
        )


@dataclass(frozen=True)
class SchemaValidationError(BaseParsingError):
    """
    The document is well-formed but violates the project schema. `location` names the
    offending part of the document (e.g. "nodes[3]"); `errors` is the cerberus error tree.
    """
    errors: Dict[str, Any]
    location: str = "project"
    project_id: Optional[str] = None
    node_id: Optional[str] = None
    file_path: Optional[Path] = None

    @property
    def error_lines(self) -> List[str]:
        return flatten_cerberus_errors(self.errors)

    def __str__(self):
        lines = [f"  - {line}" for line in self.error_lines]
        where = f" in file '{self.file_path}'" if self.file_path else ""
        return f"Schema validation failed at {self.location}{where}:\n" + "\n".join(lines)

    def get_diagnostic_report(self) -> str:
        lines = self.error_lines
        details = (
            f"The project document does not conform to the required schema at {self.location}.\n"
            f"See details for {len(lines)} issue(s) below:\n\n"
            + "\n".join(f"  - {line}" for line in lines)
        )
        return format_diagnostic_report(
            error_type="Project Schema Validation Error",
            details=details,
            suggestion=(
                "Correct the listed fields. Electrical values accept plain numbers in V, A, W or "
                "milliohms, or unit strings such as '12 V', '2.5 kW' or '50 mohm'."
            ),
            context={
                'project_id': self.project_id,
                'node_id': self.node_id,
                'source_file': self.file_path,
            }
        )
