# src/powertree_core/components/base.py
"""
Base contract and registry for power-tree node variants.

Every node kind is a frozen dataclass deriving from `NodeBase` and registered under
its document type string with `@register_node`. The registry is the closed set of
variants: the parser builds nodes through it and the engine dispatches on the
concrete classes it contains.
"""
import dataclasses
import logging
from dataclasses import dataclass
from typing import ClassVar, Dict, Optional, Tuple, Type

from .exceptions import NodeRegistrationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NodeBase:
    """
    Fields shared by every node variant. Coordinates are canvas-only and never used
    by the computation.
    """
    node_type: ClassVar[str] = "Node"
    type_aliases: ClassVar[Tuple[str, ...]] = ()

    id: str
    name: str = ""
    x: Optional[float] = None
    y: Optional[float] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


NODE_REGISTRY: Dict[str, Type[NodeBase]] = {}


def register_node(type_str: str, aliases: Tuple[str, ...] = ()):
    """
    Class decorator registering a node variant under its document type string
    (and any alias display strings).
    """
    def decorator(cls: Type[NodeBase]) -> Type[NodeBase]:
        if not (isinstance(cls, type) and issubclass(cls, NodeBase)):
            raise NodeRegistrationError(getattr(cls, "__name__", repr(cls)), "must subclass NodeBase.")
        if not dataclasses.is_dataclass(cls) or not cls.__dataclass_params__.frozen:
            raise NodeRegistrationError(cls.__name__, "must be declared with @dataclass(frozen=True).")
        for key in (type_str, *aliases):
            existing = NODE_REGISTRY.get(key)
            if existing is not None and existing is not cls:
                raise NodeRegistrationError(
                    cls.__name__, f"type string '{key}' is already registered to '{existing.__name__}'."
                )
            NODE_REGISTRY[key] = cls
        cls.node_type = type_str
        cls.type_aliases = tuple(aliases)
        logger.debug(f"Registered node type '{type_str}' -> {cls.__name__}")
        return cls
    return decorator
