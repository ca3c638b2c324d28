# src/powertree_core/validation/issues.py
"""
Structured warnings.

Neither the engine nor the lenient loader raises for bad project data. Both record a
`ValidationIssue` and carry on, and results expose the rendered `message` strings.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ValidationIssueLevel(Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class ValidationIssue:
    """
    One anomaly found while loading or computing a project. `details` keeps the
    arguments the message template was rendered with.
    """
    level: ValidationIssueLevel
    code: str
    message: str
    node_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        where = f" at node '{self.node_id}'" if self.node_id else ""
        return f"{self.level} {self.code}{where}: {self.message}"
