# src/powertree_core/efficiency/__init__.py
from .models import (
    EfficiencyBase,
    CurveMode,
    CurvePoint,
    EfficiencyTable,
    FixedEfficiency,
    CurveEfficiency,
    EfficiencyModel,
    EfficiencyRatings,
    DEFAULT_EFFICIENCY_MODEL,
    efficiency_model_from_raw,
)
from .evaluator import EfficiencyEvaluation, evaluate_efficiency, eta_from_model

__all__ = [
    "EfficiencyBase",
    "CurveMode",
    "CurvePoint",
    "EfficiencyTable",
    "FixedEfficiency",
    "CurveEfficiency",
    "EfficiencyModel",
    "EfficiencyRatings",
    "DEFAULT_EFFICIENCY_MODEL",
    "efficiency_model_from_raw",
    "EfficiencyEvaluation",
    "evaluate_efficiency",
    "eta_from_model",
]
