# src/powertree_core/validation/__init__.py
from .issues import ValidationIssue, ValidationIssueLevel
from .issue_codes import PowerIssueCode

__all__ = [
    "ValidationIssue",
    "ValidationIssueLevel",
    "PowerIssueCode",
]
