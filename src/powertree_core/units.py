# --- src/powertree_core/units.py ---
"""
Unit handling for project documents.

Electrical values in a project document may be written either as bare numbers
(interpreted in the field's canonical unit) or as unit-bearing strings such as
``"12 V"``, ``"2.5 kW"`` or ``"50 mohm"``. The engine itself works on plain floats
in volts, amperes, watts and milliohms; this module is the only place where
Pint quantities appear.
"""
import logging
import math
from typing import Union

import pint

logger = logging.getLogger(__name__)
ureg = pint.UnitRegistry()
Quantity = ureg.Quantity
logger.debug("Pint Unit Registry initialized.")

# Canonical units for each electrical field family of the data model.
VOLTAGE_UNIT = "volt"
CURRENT_UNIT = "ampere"
POWER_UNIT = "watt"
RESISTANCE_UNIT = "milliohm"


def to_canonical_magnitude(value: Union[int, float, str, Quantity], canonical_unit: str) -> float:
    """
    Converts a number, unit-bearing string or Quantity into a float expressed in
    `canonical_unit`.

    Bare numbers (and dimensionless strings such as ``"12"``) are taken to already be
    in the canonical unit.

    Raises:
        ValueError: If the value cannot be parsed, has the wrong dimensionality, or
                    is not finite.
    """
    magnitude = _magnitude_in(value, canonical_unit)
    if not math.isfinite(magnitude):
        raise ValueError(f"Value '{value}' is not a finite number.")
    return magnitude


def _magnitude_in(value: Union[int, float, str, Quantity], canonical_unit: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"Boolean '{value}' is not an electrical quantity.")
    if isinstance(value, (int, float)):
        return float(value)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("Empty string is not an electrical quantity.")
        try:
            parsed = ureg.parse_expression(text)
        except (pint.errors.PintError, SyntaxError, TypeError, AttributeError) as e:
            raise ValueError(f"Cannot parse '{value}' as a quantity: {e}") from e
    elif isinstance(value, Quantity):
        parsed = value
    else:
        raise ValueError(f"Unsupported value type '{type(value).__name__}' for an electrical quantity.")

    if not isinstance(parsed, Quantity):
        # parse_expression returns a plain number for unitless input.
        return float(parsed)
    if parsed.dimensionless:
        return float(parsed.magnitude)

    target = ureg.parse_expression(canonical_unit)
    if parsed.dimensionality != target.dimensionality:
        raise ValueError(
            f"Value '{value}' has dimensionality {parsed.dimensionality}, "
            f"expected {target.dimensionality} ({canonical_unit})."
        )
    return float(parsed.to(canonical_unit).magnitude)
