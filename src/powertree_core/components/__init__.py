# src/powertree_core/components/__init__.py
from .base import NodeBase, NODE_REGISTRY, register_node
from .base_enums import RedundancyMode
from .elements import (
    SourceNode,
    ConverterNode,
    OutputBranch,
    DualOutputConverterNode,
    LoadNode,
    BusNode,
    SubsystemInputNode,
    NoteNode,
)
from .subsystem import SubsystemNode
from .exceptions import NodeRegistrationError

__all__ = [
    "NodeBase",
    "NODE_REGISTRY",
    "register_node",
    "RedundancyMode",
    "SourceNode",
    "ConverterNode",
    "OutputBranch",
    "DualOutputConverterNode",
    "LoadNode",
    "BusNode",
    "SubsystemInputNode",
    "NoteNode",
    "SubsystemNode",
    "NodeRegistrationError",
]
