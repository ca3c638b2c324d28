# src/powertree_core/components/exceptions.py
from ..errors import DiagnosableError, format_diagnostic_report


class NodeRegistrationError(DiagnosableError):
    """
    Raised at import time when a node class breaks the registration contract
    (not a frozen dataclass, wrong base class, or a type string registered twice).
    """
    def __init__(self, node_class_name: str, details: str):
        self.node_class_name = node_class_name
        self.details = details
        super().__init__(f"Cannot register node class '{node_class_name}': {details}")

    def get_diagnostic_report(self) -> str:
        return format_diagnostic_report(
            error_type="Node Registration Error",
            details=self.details,
            suggestion="Node classes must subclass NodeBase, be frozen dataclasses and use a unique type string.",
            context={'user_input': self.node_class_name},
        )
