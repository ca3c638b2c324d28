# src/powertree_core/components/base_enums.py
from enum import Enum


class RedundancyMode(Enum):
    """Redundancy policy of a Source bank."""
    N = "N"
    N_PLUS_1 = "N+1"
