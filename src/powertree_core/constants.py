# --- src/powertree_core/constants.py ---
import logging

logger = logging.getLogger(__name__)

# --- Efficiency Evaluation ---

#: Efficiency substituted whenever a model is missing, malformed or cannot be evaluated.
DEFAULT_EFFICIENCY: float = 0.9

#: Bounds applied to every interpolated (curve) efficiency.
MIN_CURVE_EFFICIENCY: float = 0.01
MAX_CURVE_EFFICIENCY: float = 0.999

# --- Numerical Guards ---

#: Floor used wherever a divisor (efficiency, voltage, interpolation span) may be zero.
EPSILON: float = 1e-9

#: Two voltages closer than this are considered equal by compatibility checks.
VOLTAGE_MATCH_TOLERANCE: float = 1e-6

# --- Scenario Policy ---

#: Fraction of the typical current drawn by a load in the Idle scenario when no
#: explicit idle current is configured.
IDLE_CURRENT_FRACTION: float = 0.2

# --- Hierarchy ---

#: Maximum Subsystem nesting depth expanded by the engine. Deeper (or self-referential)
#: nesting is reported on the offending node and computed as zero power.
MAX_SUBSYSTEM_DEPTH: int = 16

#: Default output handle of a DualOutputConverter with no configured branch ids.
DEFAULT_DUAL_OUTPUT_HANDLE: str = "outputA"

#: Source handle names meaning "the node's single output".
SINGLE_OUTPUT_HANDLES = (None, "output")

logger.debug("Defined core constants: DEFAULT_EFFICIENCY, EPSILON, MAX_SUBSYSTEM_DEPTH")
