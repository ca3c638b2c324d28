# src/powertree_core/efficiency/models.py
"""
Typed efficiency models.

A converter (or a DualOutputConverter branch) describes its conversion efficiency
either as a constant (`FixedEfficiency`) or as a lookup (`CurveEfficiency`), which is
a 1-D list of points along a load axis or a 2-D table indexed by output voltage and
output current. `EfficiencyRatings` carries the owning node's ratings that the
evaluator needs to normalize an operating point.

`efficiency_model_from_raw` and `EfficiencyRatings.coerce` translate the document
form (camelCase mappings) into these types. Both are lenient: unusable input maps to
the default model instead of raising.
"""
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Tuple, Union

from ..constants import DEFAULT_EFFICIENCY

logger = logging.getLogger(__name__)


class EfficiencyBase(Enum):
    """The node rating that normalizes the load axis of a 1-D curve."""
    POUT_MAX = "Pout_max"
    IOUT_MAX = "Iout_max"


class CurveMode(Enum):
    ONE_D = "1d"
    TWO_D = "2d"


@dataclass(frozen=True)
class CurvePoint:
    """One point of a 1-D curve, keyed either by load percentage or by output current."""
    eta: float
    load_pct: Optional[float] = None
    current: Optional[float] = None


@dataclass(frozen=True)
class EfficiencyTable:
    """
    A 2-D efficiency table. `values[i][j]` is the efficiency at `output_voltages[i]`
    and `output_currents[j]`; `None` marks a cell with no measurement.
    """
    output_voltages: Tuple[float, ...]
    output_currents: Tuple[float, ...]
    values: Tuple[Tuple[Optional[float], ...], ...]


@dataclass(frozen=True)
class FixedEfficiency:
    value: float = DEFAULT_EFFICIENCY
    per_phase: bool = False


@dataclass(frozen=True)
class CurveEfficiency:
    base: EfficiencyBase = EfficiencyBase.POUT_MAX
    mode: CurveMode = CurveMode.ONE_D
    per_phase: bool = False
    points: Tuple[CurvePoint, ...] = ()
    table: Optional[EfficiencyTable] = None


EfficiencyModel = Union[FixedEfficiency, CurveEfficiency]

DEFAULT_EFFICIENCY_MODEL = FixedEfficiency()


@dataclass(frozen=True)
class EfficiencyRatings:
    """Ratings of the node or branch whose efficiency is being evaluated."""
    vout: Optional[float] = None
    iout_max: Optional[float] = None
    pout_max: Optional[float] = None
    phase_count: Optional[float] = None

    @property
    def effective_phase_count(self) -> int:
        """Phase count as a positive integer (1 when unset or nonsensical)."""
        if _is_finite(self.phase_count) and self.phase_count > 0:
            return max(1, int(round(self.phase_count)))
        return 1

    @classmethod
    def coerce(cls, ratings: Any) -> "EfficiencyRatings":
        """
        Accepts an `EfficiencyRatings`, any object exposing a `ratings` attribute
        (typed converter nodes and output branches) or a document-style mapping with
        `Vout`/`Iout_max`/`Pout_max`/`phaseCount` keys.
        """
        if isinstance(ratings, EfficiencyRatings):
            return ratings
        if ratings is None:
            return cls()
        nested = getattr(ratings, "ratings", None)
        if isinstance(nested, EfficiencyRatings):
            return nested
        if isinstance(ratings, Mapping):
            return cls(
                vout=_number_or_none(ratings.get("Vout", ratings.get("vout"))),
                iout_max=_number_or_none(ratings.get("Iout_max", ratings.get("iout_max"))),
                pout_max=_number_or_none(ratings.get("Pout_max", ratings.get("pout_max"))),
                phase_count=_number_or_none(ratings.get("phaseCount", ratings.get("phase_count"))),
            )
        logger.debug(f"Cannot read efficiency ratings from '{type(ratings).__name__}'; using empty ratings.")
        return cls()


def efficiency_model_from_raw(raw: Any) -> EfficiencyModel:
    """
    Builds a typed efficiency model from its document form. Never raises: anything
    unreadable becomes the default fixed model.
    """
    if isinstance(raw, (FixedEfficiency, CurveEfficiency)):
        return raw
    if not isinstance(raw, Mapping):
        return DEFAULT_EFFICIENCY_MODEL

    per_phase = bool(raw.get("perPhase", False))
    if raw.get("type", "fixed") != "curve":
        value = _number_or_none(raw.get("value"))
        return FixedEfficiency(value=DEFAULT_EFFICIENCY if value is None else value, per_phase=per_phase)

    try:
        base = EfficiencyBase(raw.get("base", EfficiencyBase.POUT_MAX.value))
    except ValueError:
        base = EfficiencyBase.POUT_MAX
    try:
        mode = CurveMode(raw.get("mode", CurveMode.ONE_D.value))
    except ValueError:
        mode = CurveMode.ONE_D

    points = []
    for point in raw.get("points") or ():
        if not isinstance(point, Mapping):
            continue
        eta = _number_or_none(point.get("eta"))
        if eta is None:
            continue
        points.append(CurvePoint(
            eta=eta,
            load_pct=_number_or_none(point.get("loadPct")),
            current=_number_or_none(point.get("current")),
        ))

    return CurveEfficiency(
        base=base,
        mode=mode,
        per_phase=per_phase,
        points=tuple(points),
        table=_table_from_raw(raw.get("table")),
    )


def _table_from_raw(raw: Any) -> Optional[EfficiencyTable]:
    if isinstance(raw, EfficiencyTable):
        return raw
    if not isinstance(raw, Mapping):
        return None
    voltages = raw.get("outputVoltages") or ()
    currents = raw.get("outputCurrents") or ()
    rows = raw.get("values") or ()
    # Shape problems are kept as-is and reported by the evaluator.
    return EfficiencyTable(
        output_voltages=tuple(_number_or_nan(v) for v in voltages),
        output_currents=tuple(_number_or_nan(c) for c in currents),
        values=tuple(
            tuple(_number_or_none(cell) for cell in row) if isinstance(row, (list, tuple)) else ()
            for row in rows
        ),
    )


def _is_finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _number_or_none(value: Any) -> Optional[float]:
    return float(value) if _is_finite(value) else None


def _number_or_nan(value: Any) -> float:
    return float(value) if _is_finite(value) else math.nan
