# src/powertree_core/parser/__init__.py
from .parser import (
    EnhancedValidator,
    ProjectParser,
    load_project,
    parse_project,
    NODE_SCHEMAS,
    EDGE_SCHEMA,
)
from .exceptions import ParsingError, SchemaValidationError, flatten_cerberus_errors

__all__ = [
    # Parser and entry points
    "EnhancedValidator",
    "ProjectParser",
    "load_project",
    "parse_project",
    "NODE_SCHEMAS",
    "EDGE_SCHEMA",
    # Exceptions
    "ParsingError",
    "SchemaValidationError",
    "flatten_cerberus_errors",
]
