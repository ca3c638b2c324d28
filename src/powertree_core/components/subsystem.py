# src/powertree_core/components/subsystem.py
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .base import NodeBase, register_node

if TYPE_CHECKING:
    from ..data_structures import Project

logger = logging.getLogger(__name__)


@register_node("Subsystem")
@dataclass(frozen=True)
class SubsystemNode(NodeBase):
    """
    A node whose behaviour is an entire embedded Project, replicated
    `num_paralleled_systems` times in parallel.

    The embedded project keeps its own id space; its SubsystemInput nodes are the
    electrical ports through which the parent graph feeds it.
    """
    input_v_nom: Optional[float] = None
    num_paralleled_systems: int = 1
    project: Optional["Project"] = None

    @property
    def parallel_count(self) -> int:
        n = self.num_paralleled_systems
        if n is None or not math.isfinite(n):
            return 1
        return max(1, int(round(n)))
