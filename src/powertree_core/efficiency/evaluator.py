# src/powertree_core/efficiency/evaluator.py
"""
Efficiency evaluation at an operating point.

`evaluate_efficiency` is the internal, Result-style entry point: it returns the
efficiency together with an optional `ValidationIssue` describing any substitution
it had to make. `eta_from_model` is the public convenience wrapper returning only the
number, for callers that want to preview an efficiency without a full graph.

Neither function raises for malformed models: an unusable model degrades to
`DEFAULT_EFFICIENCY`.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from ..constants import (
    DEFAULT_EFFICIENCY, MIN_CURVE_EFFICIENCY, MAX_CURVE_EFFICIENCY,
)
from ..validation import PowerIssueCode, ValidationIssue
from .models import (
    CurveEfficiency, CurveMode, EfficiencyBase, EfficiencyModel, EfficiencyRatings,
    EfficiencyTable, FixedEfficiency, efficiency_model_from_raw,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EfficiencyEvaluation:
    """The efficiency at one operating point plus the issue, if any, behind a fallback."""
    eta: float
    issue: Optional[ValidationIssue] = None


def eta_from_model(model: Any, p_out: float, i_out: float, ratings: Any = None) -> float:
    """
    Returns the efficiency of `model` at output power `p_out` (W) and output current
    `i_out` (A).

    Args:
        model: A typed efficiency model or its document mapping. `None` means the
               default fixed efficiency.
        p_out: Operating output power in watts.
        i_out: Operating output current in amperes.
        ratings: The owning node's ratings; see `EfficiencyRatings.coerce`.

    Returns:
        The efficiency as a float in (0, 1].
    """
    return evaluate_efficiency(
        efficiency_model_from_raw(model), p_out, i_out, EfficiencyRatings.coerce(ratings)
    ).eta


def evaluate_efficiency(
    model: EfficiencyModel,
    p_out: float,
    i_out: float,
    ratings: EfficiencyRatings,
) -> EfficiencyEvaluation:
    if isinstance(model, FixedEfficiency):
        return _evaluate_fixed(model)
    if isinstance(model, CurveEfficiency):
        if model.mode is CurveMode.TWO_D:
            return _evaluate_table(model, i_out, ratings)
        return _evaluate_curve(model, p_out, i_out, ratings)
    logger.debug(f"Unrecognized efficiency model '{type(model).__name__}'; using default.")
    return EfficiencyEvaluation(DEFAULT_EFFICIENCY)


def _evaluate_fixed(model: FixedEfficiency) -> EfficiencyEvaluation:
    value = model.value
    if isinstance(value, (int, float)) and math.isfinite(value) and 0.0 < value <= 1.0:
        return EfficiencyEvaluation(float(value))
    return EfficiencyEvaluation(
        DEFAULT_EFFICIENCY,
        PowerIssueCode.EFF_FIXED_INVALID.issue(value=value, default=DEFAULT_EFFICIENCY),
    )


def _evaluate_curve(
    model: CurveEfficiency, p_out: float, i_out: float, ratings: EfficiencyRatings
) -> EfficiencyEvaluation:
    if not model.points:
        return EfficiencyEvaluation(
            DEFAULT_EFFICIENCY,
            PowerIssueCode.EFF_POINTS_MISSING.issue(default=DEFAULT_EFFICIENCY),
        )

    divisor = ratings.effective_phase_count if model.per_phase else 1
    if model.base is EfficiencyBase.IOUT_MAX:
        rating, operating = ratings.iout_max, i_out
    else:
        rating, operating = ratings.pout_max, p_out

    if rating is None or not math.isfinite(rating) or rating <= 0:
        return EfficiencyEvaluation(
            DEFAULT_EFFICIENCY,
            PowerIssueCode.EFF_RATING_MISSING.issue(base=model.base.value, default=DEFAULT_EFFICIENCY),
        )
    max_base = rating / divisor

    # Normalize every point onto the load-percentage axis.
    axis, etas = [], []
    for point in model.points:
        if point.load_pct is not None:
            pct = point.load_pct
        elif point.current is not None:
            pct = point.current / max_base * 100.0
        else:
            continue
        axis.append(float(np.clip(pct, 0.0, 100.0)))
        etas.append(point.eta)

    if not axis:
        return EfficiencyEvaluation(_clamp_curve_eta(model.points[0].eta))

    order = np.argsort(axis, kind="stable")
    xs = np.asarray(axis, dtype=float)[order]
    ys = np.asarray(etas, dtype=float)[order]

    operating_value = (operating or 0.0) / divisor
    load_pct = float(np.clip(operating_value / max_base * 100.0, 0.0, 100.0))

    # np.interp holds the end values outside the point range.
    eta = float(np.interp(load_pct, xs, ys))
    logger.debug(f"1-D curve lookup at {load_pct:.2f}% load -> eta={eta:.4f}")
    return EfficiencyEvaluation(_clamp_curve_eta(eta))


def _evaluate_table(
    model: CurveEfficiency, i_out: float, ratings: EfficiencyRatings
) -> EfficiencyEvaluation:
    table = model.table
    reason = _table_shape_problem(table)
    if reason:
        return EfficiencyEvaluation(
            DEFAULT_EFFICIENCY,
            PowerIssueCode.EFF_TABLE_SHAPE.issue(reason=reason, default=DEFAULT_EFFICIENCY),
        )

    voltages = np.asarray(table.output_voltages, dtype=float)
    currents = np.asarray(table.output_currents, dtype=float)
    values = np.array(
        [[np.nan if cell is None else cell for cell in row] for row in table.values],
        dtype=float,
    )

    v_order = np.argsort(voltages, kind="stable")
    c_order = np.argsort(currents, kind="stable")
    voltages, currents = voltages[v_order], currents[c_order]
    values = values[v_order][:, c_order]

    divisor = ratings.effective_phase_count if model.per_phase else 1
    current = (i_out or 0.0) / divisor
    vout = ratings.vout if ratings.vout is not None else 0.0

    # Collapse every voltage row at the operating current, then interpolate across rows.
    row_etas = np.array([_interpolate_present(currents, row, current) for row in values])
    eta = _interpolate_present(voltages, row_etas, vout)
    if math.isnan(eta):
        return EfficiencyEvaluation(
            DEFAULT_EFFICIENCY,
            PowerIssueCode.EFF_TABLE_EMPTY.issue(default=DEFAULT_EFFICIENCY),
        )
    logger.debug(f"2-D table lookup at Vout={vout}V, I={current}A -> eta={eta:.4f}")
    return EfficiencyEvaluation(_clamp_curve_eta(eta))


def _interpolate_present(axis: np.ndarray, values: np.ndarray, x: float) -> float:
    """
    Linear interpolation along one table axis using only the cells that hold a value,
    so an absent bracketing cell is replaced by the nearest present one on that side.
    Outside the present range the end value is held. Returns NaN if nothing is present.
    """
    present = ~np.isnan(values)
    if not present.any():
        return math.nan
    return float(np.interp(x, axis[present], values[present]))


def _table_shape_problem(table: Optional[EfficiencyTable]) -> Optional[str]:
    if table is None:
        return "no table"
    if not table.output_voltages or not table.output_currents:
        return "empty voltage or current axis"
    if any(math.isnan(v) for v in table.output_voltages + table.output_currents):
        return "non-numeric axis value"
    if len(table.values) != len(table.output_voltages):
        return f"{len(table.values)} rows for {len(table.output_voltages)} voltages"
    for idx, row in enumerate(table.values):
        if len(row) != len(table.output_currents):
            return f"row {idx} has {len(row)} cells for {len(table.output_currents)} currents"
    return None


def _clamp_curve_eta(eta: float) -> float:
    if not math.isfinite(eta):
        return DEFAULT_EFFICIENCY
    return min(MAX_CURVE_EFFICIENCY, max(MIN_CURVE_EFFICIENCY, eta))
