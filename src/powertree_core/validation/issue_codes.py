# src/powertree_core/validation/issue_codes.py
import logging
from enum import Enum
from typing import Optional

from .issues import ValidationIssue, ValidationIssueLevel

logger = logging.getLogger(__name__)


class PowerIssueCode(Enum):
    """
    Registry of issue codes and their message templates.
    Each enum member's value is a tuple: (code_str, level, message_template_str).
    The rendered template is the plain warning string surfaced to callers.
    """

    # --- Structural Issues (STRUCT_...) ---
    STRUCT_NODES_MISSING = ("STRUCT_NODES_MISSING", ValidationIssueLevel.WARNING, "Project nodes were missing; using an empty node list.")
    STRUCT_EDGES_MISSING = ("STRUCT_EDGES_MISSING", ValidationIssueLevel.WARNING, "Project interconnects were missing; using an empty edge list.")
    STRUCT_NODE_INVALID = ("STRUCT_NODE_INVALID", ValidationIssueLevel.WARNING, "Node '{node_id}' was ignored: {reason}")
    STRUCT_EDGE_INVALID = ("STRUCT_EDGE_INVALID", ValidationIssueLevel.WARNING, "Interconnect '{edge_id}' was ignored: {reason}")
    STRUCT_DUPLICATE_NODE = ("STRUCT_DUPLICATE_NODE", ValidationIssueLevel.WARNING, "Duplicate node id '{node_id}'; only the first occurrence is used.")
    STRUCT_DANGLING_EDGE = ("STRUCT_DANGLING_EDGE", ValidationIssueLevel.WARNING, "Interconnect '{edge_id}' references unknown node '{missing_id}' and was ignored.")
    STRUCT_FIELD_INVALID = ("STRUCT_FIELD_INVALID", ValidationIssueLevel.WARNING, "Project field '{field}' was ignored: {reason}")
    STRUCT_RESISTANCE_INVALID = ("STRUCT_RESISTANCE_INVALID", ValidationIssueLevel.WARNING, "Resistance {r_milliohm} mΩ on '{element_id}' is not a finite non-negative value; using 0 mΩ.")
    STRUCT_UNKNOWN_SCENARIO = ("STRUCT_UNKNOWN_SCENARIO", ValidationIssueLevel.WARNING, "Unknown scenario '{scenario}'; using Typical.")

    # --- Topology Issues (TOPO_...) ---
    TOPO_CYCLE = ("TOPO_CYCLE", ValidationIssueLevel.ERROR, "Cycle detected: computation blocked.")

    # --- Efficiency Model Issues (EFF_...) ---
    EFF_TABLE_SHAPE = ("EFF_TABLE_SHAPE", ValidationIssueLevel.WARNING, "Efficiency table is malformed ({reason}); using default efficiency {default}.")
    EFF_TABLE_EMPTY = ("EFF_TABLE_EMPTY", ValidationIssueLevel.WARNING, "Efficiency table has no usable values near the operating point; using default efficiency {default}.")
    EFF_RATING_MISSING = ("EFF_RATING_MISSING", ValidationIssueLevel.WARNING, "Efficiency curve needs a positive {base} rating; using default efficiency {default}.")
    EFF_POINTS_MISSING = ("EFF_POINTS_MISSING", ValidationIssueLevel.WARNING, "Efficiency curve has no points; using default efficiency {default}.")
    EFF_FIXED_INVALID = ("EFF_FIXED_INVALID", ValidationIssueLevel.WARNING, "Fixed efficiency {value} is outside (0, 1]; using default efficiency {default}.")

    # --- Design Rule Violations (RULE_...) ---
    RULE_CONV_OVERCURRENT = ("RULE_CONV_OVERCURRENT", ValidationIssueLevel.WARNING, "{prefix}I_out {i_out:.3f}A exceeds limit {limit:g}A (incl. margin).")
    RULE_CONV_OVERPOWER = ("RULE_CONV_OVERPOWER", ValidationIssueLevel.WARNING, "{prefix}P_out {p_out:.2f}W exceeds limit {limit:g}W (incl. margin).")
    RULE_SOURCE_OVERCURRENT = ("RULE_SOURCE_OVERCURRENT", ValidationIssueLevel.WARNING, "Source overcurrent {i_out:.2f}A > {limit:g}A")
    RULE_SOURCE_OVERPOWER = ("RULE_SOURCE_OVERPOWER", ValidationIssueLevel.WARNING, "Source overpower {p_out:.1f}W > {limit:g}W")
    RULE_REDUNDANCY_SHORTFALL = ("RULE_REDUNDANCY_SHORTFALL", ValidationIssueLevel.WARNING, "Redundancy shortfall: available {available:.1f}W < required {required:.1f}W")
    RULE_VOLTAGE_MARGIN = ("RULE_VOLTAGE_MARGIN", ValidationIssueLevel.WARNING, "Voltage margin shortfall at load: upstream {upstream:.3f}V < allowed {allowed:.3f}V")
    RULE_SUBSYSTEM_INPUT_COUNT = ("RULE_SUBSYSTEM_INPUT_COUNT", ValidationIssueLevel.WARNING, "Subsystem embedded project should contain exactly one Subsystem Input node (found {count}).")
    RULE_SUBSYSTEM_NO_PROJECT = ("RULE_SUBSYSTEM_NO_PROJECT", ValidationIssueLevel.WARNING, "Subsystem has no embedded project; assuming empty project.")
    RULE_SUBSYSTEM_DEPTH = ("RULE_SUBSYSTEM_DEPTH", ValidationIssueLevel.WARNING, "Subsystem nesting deeper than {max_depth} levels; embedded project not computed.")

    # --- Voltage Compatibility (VCOMPAT_...) ---
    VCOMPAT_CONVERTER_INPUT = ("VCOMPAT_CONVERTER_INPUT", ValidationIssueLevel.WARNING, "Upstream voltage {upstream:.3f}V outside converter Vin range [{vin_min:.3f}, {vin_max:.3f}]V")
    VCOMPAT_LOAD = ("VCOMPAT_LOAD", ValidationIssueLevel.WARNING, "Voltage mismatch: upstream {upstream:.3f}V != load Vreq {v_req:.3f}V")
    VCOMPAT_BUS = ("VCOMPAT_BUS", ValidationIssueLevel.WARNING, "Voltage mismatch: upstream {upstream:.3f}V != bus {v_bus:.3f}V")
    VCOMPAT_SUBSYSTEM = ("VCOMPAT_SUBSYSTEM", ValidationIssueLevel.WARNING, "Voltage mismatch: upstream {upstream:.3f}V != subsystem port {v_port:.3f}V")

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def level(self) -> ValidationIssueLevel:
        return self.value[1]

    @property
    def template(self) -> str:
        return self.value[2]

    def format_message(self, **kwargs) -> str:
        """Formats the message template with provided keyword arguments."""
        try:
            return self.template.format(**kwargs)
        except (KeyError, ValueError) as e:
            logger.error(f"Cannot format message template of {self.name} (code: {self.code}): '{self.template}'. Provided args: {kwargs}. Error: {e}")
            return f"Error formatting message for {self.code}: {e}. Template: '{self.template}' Args: {kwargs}"

    def issue(self, node_id: Optional[str] = None, **kwargs) -> ValidationIssue:
        """Builds a `ValidationIssue` carrying this code and its rendered message."""
        return ValidationIssue(
            level=self.level,
            code=self.code,
            message=self.format_message(node_id=node_id, **kwargs),
            node_id=node_id,
            details=dict(kwargs),
        )
