# src/powertree_core/parser/parser.py
import logging
import math
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type, Union

import cerberus
import yaml

from ..components import (
    NODE_REGISTRY, BusNode, ConverterNode, DualOutputConverterNode, LoadNode, NodeBase,
    NoteNode, OutputBranch, RedundancyMode, SourceNode, SubsystemInputNode, SubsystemNode,
)
from ..data_structures import Edge, Margins, Project, Scenario, UnitLabels
from ..efficiency import efficiency_model_from_raw
from ..errors import DiagnosableError, ProjectLoadError
from ..units import (
    CURRENT_UNIT, POWER_UNIT, RESISTANCE_UNIT, VOLTAGE_UNIT, to_canonical_magnitude,
)
from ..validation import PowerIssueCode, ValidationIssue
from .exceptions import ParsingError, SchemaValidationError, flatten_cerberus_errors

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".yaml", ".yml", ".json")


class EnhancedValidator(cerberus.Validator):
    """
    Cerberus validator with the project's custom rules and coercers.

    Electrical fields name a coercer ('voltage', 'current', 'power', 'resistance')
    that accepts plain numbers or unit strings and yields a float in the canonical
    unit of the field.
    """
    def __init__(self, *args, **kwargs):
        super(EnhancedValidator, self).__init__(*args, **kwargs)
        self.rules['unique_elements_by_key'] = {'schema': {'type': 'string'}}

    def _validate_unique_elements_by_key(self, key_for_uniqueness: str, field: str, value: List[Dict]):
        """
        Validates that all dictionaries in a list have a unique value for a given key.
        The rule's arguments are validated against this schema:
        {'type': 'string'}
        """
        if not isinstance(value, list):
            return

        seen_keys = set()
        duplicates = []
        for item in value:
            if not isinstance(item, dict):
                continue
            item_key = item.get(key_for_uniqueness)
            if item_key is not None:
                if item_key in seen_keys:
                    duplicates.append(item_key)
                else:
                    seen_keys.add(item_key)

        if duplicates:
            unique_duplicates = sorted(set(map(str, duplicates)))
            self._error(field, f"Duplicate values found for key '{key_for_uniqueness}': {unique_duplicates}")

    def _normalize_coerce_voltage(self, value):
        return to_canonical_magnitude(value, VOLTAGE_UNIT)

    def _normalize_coerce_current(self, value):
        return to_canonical_magnitude(value, CURRENT_UNIT)

    def _normalize_coerce_power(self, value):
        return to_canonical_magnitude(value, POWER_UNIT)

    def _normalize_coerce_resistance(self, value):
        return to_canonical_magnitude(value, RESISTANCE_UNIT)

    def _normalize_coerce_count(self, value):
        if isinstance(value, bool):
            raise ValueError(f"Boolean '{value}' is not a count.")
        number = float(value)
        if not math.isfinite(number):
            raise ValueError(f"Count '{value}' is not finite.")
        return int(round(number))

    def _normalize_coerce_identifier(self, value):
        # Documents exported from spreadsheets sometimes carry numeric ids.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


def _quantity(coercer: str) -> Dict[str, Any]:
    return {"type": "number", "nullable": True, "coerce": coercer}


_number = {"type": "number", "nullable": True}
_count = {"type": "integer", "nullable": True, "coerce": "count"}
_text = {"type": "string", "nullable": True}
_id_rule = {"type": "string", "required": True, "empty": False, "coerce": "identifier"}

_efficiency_schema = {
    "type": "dict", "nullable": True, "allow_unknown": True, "schema": {
        "type": {"type": "string", "allowed": ["fixed", "curve"]},
        "value": _number,
        "perPhase": {"type": "boolean", "nullable": True},
        "base": {"type": "string", "allowed": ["Pout_max", "Iout_max"]},
        "mode": {"type": "string", "allowed": ["1d", "2d"]},
        "points": {
            "type": "list", "nullable": True, "schema": {
                "type": "dict", "allow_unknown": True, "schema": {
                    "loadPct": _number,
                    "current": _quantity("current"),
                    "eta": {"type": "number", "required": True},
                },
            },
        },
        # Table shape problems are reported by the evaluator, not here.
        "table": {"type": "dict", "nullable": True, "allow_unknown": True},
    },
}

_node_common_schema = {
    "id": _id_rule,
    "type": {"type": "string", "required": True},
    "name": {"type": "string", "nullable": True, "coerce": "identifier"},
    "x": _number,
    "y": _number,
}

_output_branch_schema = {
    "id": {"type": "string", "nullable": True, "coerce": "identifier"},
    "label": _text,
    "Vout": _quantity("voltage"),
    "Iout_max": _quantity("current"),
    "Pout_max": _quantity("power"),
    "phaseCount": _count,
    "efficiency": _efficiency_schema,
}

NODE_SCHEMAS: Dict[Type[NodeBase], Dict[str, Any]] = {
    SourceNode: {
        "V_nom": _quantity("voltage"),
        "Vout": _quantity("voltage"),
        "I_max": _quantity("current"),
        "P_max": _quantity("power"),
        "redundancy": {"type": "string", "nullable": True, "allowed": [m.value for m in RedundancyMode]},
        "count": _count,
    },
    ConverterNode: {
        "Vin_min": _quantity("voltage"),
        "Vin_max": _quantity("voltage"),
        "Vout": _quantity("voltage"),
        "Iout_max": _quantity("current"),
        "Pout_max": _quantity("power"),
        "phaseCount": _count,
        "topology": _text,
        "efficiency": _efficiency_schema,
    },
    DualOutputConverterNode: {
        "Vin_min": _quantity("voltage"),
        "Vin_max": _quantity("voltage"),
        "topology": _text,
        "outputs": {
            "type": "list", "nullable": True, "unique_elements_by_key": "id",
            "schema": {"type": "dict", "allow_unknown": True, "schema": _output_branch_schema},
        },
    },
    LoadNode: {
        "Vreq": _quantity("voltage"),
        "I_typ": _quantity("current"),
        "I_max": _quantity("current"),
        "I_idle": _quantity("current"),
        "Utilization_typ": _number,
        "Utilization_max": _number,
        "utilizationTypical": _number,
        "utilizationMax": _number,
        "numParalleledDevices": _count,
        "critical": {"type": "boolean", "nullable": True},
    },
    BusNode: {
        "V_bus": _quantity("voltage"),
        "R_milliohm": _quantity("resistance"),
    },
    SubsystemNode: {
        "inputV_nom": _quantity("voltage"),
        "numParalleledSystems": _count,
        # Checked by the parser itself so that lenient loading keeps the node.
        "project": {"nullable": True},
    },
    SubsystemInputNode: {
        "Vout": _quantity("voltage"),
    },
    NoteNode: {
        "text": _text,
    },
}

EDGE_SCHEMA = {
    "id": _id_rule,
    "from": {"type": "string", "required": True, "empty": False, "coerce": "identifier"},
    "to": {"type": "string", "required": True, "empty": False, "coerce": "identifier"},
    "fromHandle": {"type": "string", "nullable": True, "coerce": "identifier"},
    "toHandle": {"type": "string", "nullable": True, "coerce": "identifier"},
    "interconnect": {
        "type": "dict", "nullable": True, "allow_unknown": True,
        "schema": {"R_milliohm": _quantity("resistance")},
    },
}


def _project_schema(strict: bool) -> Dict[str, Any]:
    nodes_rule: Dict[str, Any] = {"type": "list", "nullable": True, "required": strict}
    edges_rule: Dict[str, Any] = {"type": "list", "nullable": True, "required": strict}
    if strict:
        nodes_rule.update(nullable=False, unique_elements_by_key="id")
        edges_rule.update(nullable=False, unique_elements_by_key="id")
    return {
        "id": {"type": "string", "nullable": True, "coerce": "identifier"},
        "name": _text,
        "nodes": nodes_rule,
        "edges": edges_rule,
        "units": {
            "type": "dict", "nullable": True, "allow_unknown": True,
            "schema": {key: _text for key in ("voltage", "current", "power", "resistance")},
        },
        "defaultMargins": {
            "type": "dict", "nullable": True, "allow_unknown": True,
            "schema": {key: _number for key in ("currentPct", "powerPct", "voltageDropPct", "voltageMarginPct")},
        },
        "scenarios": {"type": "list", "nullable": True, "schema": {"type": "string"}},
        "currentScenario": _text,
    }


class ProjectParser:
    """
    Validates project documents and turns them into typed `Project` values, including
    every embedded Subsystem project.

    In strict mode any schema violation raises a `SchemaValidationError`. In lenient
    mode nothing raises: invalid nodes, interconnects and project fields are dropped
    and reported as issues carried on `Project.load_issues`, missing node or
    interconnect lists are left for the engine to substitute, and an unusable embedded
    project is treated as missing.
    """

    def __init__(self, strict: bool = True):
        self.strict = strict
        self._project_validator = EnhancedValidator(_project_schema(strict), allow_unknown=True)
        self._edge_validator = EnhancedValidator(EDGE_SCHEMA, allow_unknown=True)
        self._node_validators: Dict[Type[NodeBase], EnhancedValidator] = {
            cls: EnhancedValidator({**_node_common_schema, **schema}, allow_unknown=True)
            for cls, schema in NODE_SCHEMAS.items()
        }
        self._builders: Dict[Type[NodeBase], Callable[..., NodeBase]] = {
            SourceNode: self._build_source,
            ConverterNode: self._build_converter,
            DualOutputConverterNode: self._build_dual_output,
            LoadNode: self._build_load,
            BusNode: self._build_bus,
            SubsystemNode: self._build_subsystem,
            SubsystemInputNode: self._build_subsystem_input,
            NoteNode: self._build_note,
        }
        logger.debug(f"ProjectParser initialized (strict={strict}).")

    def parse(self, raw: Mapping[str, Any], source_path: Optional[Path] = None) -> Project:
        """Builds a typed Project (and every embedded project) from a document mapping."""
        if not isinstance(raw, Mapping):
            if self.strict:
                raise ParsingError(
                    details=f"A project document must be a mapping, got {type(raw).__name__}.",
                    file_path=source_path,
                )
            logger.warning(f"Project document is a {type(raw).__name__}, not a mapping; loading an empty project.")
            raw = {}
        project = self._parse_project(raw, location="project", default_id="project", source_path=source_path)
        logger.info(
            f"Loaded project '{project.id}': {len(project.nodes or ())} nodes, "
            f"{len(project.edges or ())} interconnects, {len(project.load_issues)} load issue(s)."
        )
        return project

    def parse_file(self, path: Union[str, Path]) -> Project:
        """Reads a `.yaml`, `.yml` or `.json` project file and parses it."""
        source = Path(path).resolve()
        logger.info(f"Loading project file: {source}")
        return self.parse(self._load_document(source), source_path=source)

    # --- Project level ---

    def _parse_project(self, raw: Mapping[str, Any], location: str, default_id: str, source_path: Optional[Path]) -> Project:
        issues: List[ValidationIssue] = []
        doc = self._validate_project_fields(dict(raw), location, source_path, issues)
        project_id = doc.get("id") or default_id

        raw_nodes = doc.get("nodes")
        nodes: Optional[Tuple[NodeBase, ...]] = None
        if raw_nodes is not None:
            nodes = tuple(self._parse_nodes(raw_nodes, project_id, location, source_path, issues))

        raw_edges = doc.get("edges")
        edges: Optional[Tuple[Edge, ...]] = None
        if raw_edges is not None:
            edges = tuple(self._parse_edges(raw_edges, project_id, location, source_path, issues))

        current_scenario = self._parse_scenario(doc.get("currentScenario"), issues)
        scenarios = tuple(
            scenario for scenario in (_scenario_or_none(s) for s in doc.get("scenarios") or ()) if scenario is not None
        ) or (Scenario.TYPICAL, Scenario.MAX, Scenario.IDLE)

        for issue in issues:
            logger.warning(f"Project '{project_id}': {issue.message}")

        return Project(
            id=project_id,
            name=doc.get("name") or "",
            nodes=nodes,
            edges=edges,
            units=_unit_labels(doc.get("units")),
            default_margins=_margins(doc.get("defaultMargins")),
            scenarios=scenarios,
            current_scenario=current_scenario,
            load_issues=tuple(issues),
        )

    def _validate_project_fields(self, doc: Dict[str, Any], location: str, source_path: Optional[Path], issues: List[ValidationIssue]) -> Dict[str, Any]:
        validator = self._project_validator
        if validator.validate(doc):
            return validator.document
        if self.strict:
            raise SchemaValidationError(
                errors=validator.errors, location=location, project_id=doc.get("id"), file_path=source_path,
            )

        # Lenient: drop every offending top-level field and fall back to its default.
        for field_name, errors in validator.errors.items():
            issues.append(PowerIssueCode.STRUCT_FIELD_INVALID.issue(
                field=field_name, reason="; ".join(flatten_cerberus_errors(errors)),
            ))
            doc.pop(field_name, None)
        if validator.validate(doc):
            return validator.document
        logger.error(f"{location}: project fields still invalid after dropping offenders; using an empty document.")
        return {}

    def _parse_scenario(self, value: Optional[str], issues: List[ValidationIssue]) -> Scenario:
        if value is None:
            return Scenario.TYPICAL
        scenario = _scenario_or_none(value)
        if scenario is None:
            issues.append(PowerIssueCode.STRUCT_UNKNOWN_SCENARIO.issue(scenario=value))
            return Scenario.TYPICAL
        return scenario

    # --- Nodes ---

    def _parse_nodes(self, raw_nodes: List[Any], project_id: str, location: str, source_path: Optional[Path], issues: List[ValidationIssue]) -> List[NodeBase]:
        nodes: List[NodeBase] = []
        for idx, raw_node in enumerate(raw_nodes):
            node_location = f"{location}.nodes[{idx}]"
            if not isinstance(raw_node, Mapping):
                self._reject_node(f"#{idx}", "node entry is not a mapping", node_location, project_id, source_path, issues)
                continue

            node_id = raw_node.get("id")
            node_type = raw_node.get("type")
            cls = NODE_REGISTRY.get(node_type) if isinstance(node_type, str) else None
            if cls is None:
                self._reject_node(
                    node_id if node_id is not None else f"#{idx}",
                    f"unknown node type '{node_type}'", node_location, project_id, source_path, issues,
                )
                continue

            validator = self._node_validators[cls]
            if not validator.validate(dict(raw_node)):
                if self.strict:
                    raise SchemaValidationError(
                        errors=validator.errors, location=node_location, project_id=project_id,
                        node_id=None if node_id is None else str(node_id), file_path=source_path,
                    )
                issues.append(PowerIssueCode.STRUCT_NODE_INVALID.issue(
                    node_id=None if node_id is None else str(node_id),
                    reason="; ".join(flatten_cerberus_errors(validator.errors)),
                ))
                continue

            doc = validator.document
            nodes.append(self._builders[cls](doc, node_location, project_id, source_path, issues))
        return nodes

    def _reject_node(self, node_id: Any, reason: str, node_location: str, project_id: str, source_path: Optional[Path], issues: List[ValidationIssue]) -> None:
        if self.strict:
            raise SchemaValidationError(
                errors={"type": [reason]}, location=node_location, project_id=project_id,
                node_id=str(node_id), file_path=source_path,
            )
        issues.append(PowerIssueCode.STRUCT_NODE_INVALID.issue(node_id=str(node_id), reason=reason))

    @staticmethod
    def _common(doc: Mapping[str, Any]) -> Dict[str, Any]:
        return {"id": doc["id"], "name": doc.get("name") or "", "x": doc.get("x"), "y": doc.get("y")}

    def _build_source(self, doc, *_) -> SourceNode:
        v_nom = doc.get("V_nom")
        if v_nom is None:
            v_nom = doc.get("Vout")
        return SourceNode(
            **self._common(doc),
            v_nom=_or_default(v_nom, 0.0),
            i_max=doc.get("I_max"),
            p_max=doc.get("P_max"),
            redundancy=RedundancyMode(doc.get("redundancy") or RedundancyMode.N.value),
            count=_or_default(doc.get("count"), 1),
        )

    def _build_converter(self, doc, *_) -> ConverterNode:
        return ConverterNode(
            **self._common(doc),
            vin_min=_or_default(doc.get("Vin_min"), 0.0),
            vin_max=_or_default(doc.get("Vin_max"), 0.0),
            vout=_or_default(doc.get("Vout"), 0.0),
            iout_max=doc.get("Iout_max"),
            pout_max=doc.get("Pout_max"),
            phase_count=_or_default(doc.get("phaseCount"), 1),
            topology=doc.get("topology") or "buck",
            efficiency=efficiency_model_from_raw(doc.get("efficiency")),
        )

    def _build_dual_output(self, doc, *_) -> DualOutputConverterNode:
        outputs = tuple(
            OutputBranch(
                id=branch.get("id"),
                label=branch.get("label"),
                vout=_or_default(branch.get("Vout"), 0.0),
                iout_max=branch.get("Iout_max"),
                pout_max=branch.get("Pout_max"),
                phase_count=_or_default(branch.get("phaseCount"), 1),
                efficiency=efficiency_model_from_raw(branch.get("efficiency")),
            )
            for branch in doc.get("outputs") or ()
        )
        return DualOutputConverterNode(
            **self._common(doc),
            vin_min=_or_default(doc.get("Vin_min"), 0.0),
            vin_max=_or_default(doc.get("Vin_max"), 0.0),
            topology=doc.get("topology") or "buck",
            outputs=outputs,
        )

    def _build_load(self, doc, *_) -> LoadNode:
        utilization_typical = _first_present(doc, "Utilization_typ", "utilizationTypical")
        utilization_max = _first_present(doc, "Utilization_max", "utilizationMax")
        return LoadNode(
            **self._common(doc),
            v_req=_or_default(doc.get("Vreq"), 0.0),
            i_typ=_or_default(doc.get("I_typ"), 0.0),
            i_max=_or_default(doc.get("I_max"), 0.0),
            i_idle=doc.get("I_idle"),
            utilization_typical=_or_default(utilization_typical, 100.0),
            utilization_max=_or_default(utilization_max, 100.0),
            num_paralleled_devices=_or_default(doc.get("numParalleledDevices"), 1),
            critical=_or_default(doc.get("critical"), True),
        )

    def _build_bus(self, doc, *_) -> BusNode:
        return BusNode(
            **self._common(doc),
            v_bus=_or_default(doc.get("V_bus"), 0.0),
            r_milliohm=_or_default(doc.get("R_milliohm"), 0.0),
        )

    def _build_subsystem(self, doc, node_location: str, project_id: str, source_path: Optional[Path], issues: List[ValidationIssue]) -> SubsystemNode:
        raw_project = doc.get("project")
        embedded: Optional[Project] = None
        if isinstance(raw_project, Mapping):
            embedded = self._parse_project(
                raw_project, location=f"{node_location}.project", default_id=doc["id"], source_path=source_path,
            )
        elif raw_project is not None:
            reason = f"embedded project must be a mapping, got {type(raw_project).__name__}"
            if self.strict:
                raise SchemaValidationError(
                    errors={"project": [reason]}, location=node_location, project_id=project_id,
                    node_id=doc["id"], file_path=source_path,
                )
            issues.append(PowerIssueCode.STRUCT_FIELD_INVALID.issue(field=f"{doc['id']}.project", reason=reason))

        return SubsystemNode(
            **self._common(doc),
            input_v_nom=doc.get("inputV_nom"),
            num_paralleled_systems=_or_default(doc.get("numParalleledSystems"), 1),
            project=embedded,
        )

    def _build_subsystem_input(self, doc, *_) -> SubsystemInputNode:
        return SubsystemInputNode(**self._common(doc), vout=_or_default(doc.get("Vout"), 0.0))

    def _build_note(self, doc, *_) -> NoteNode:
        return NoteNode(**self._common(doc), text=doc.get("text") or "")

    # --- Interconnects ---

    def _parse_edges(self, raw_edges: List[Any], project_id: str, location: str, source_path: Optional[Path], issues: List[ValidationIssue]) -> List[Edge]:
        edges: List[Edge] = []
        validator = self._edge_validator
        for idx, raw_edge in enumerate(raw_edges):
            edge_location = f"{location}.edges[{idx}]"
            if not isinstance(raw_edge, Mapping) or not validator.validate(dict(raw_edge)):
                errors = validator.errors if isinstance(raw_edge, Mapping) else {"edge": ["entry is not a mapping"]}
                edge_id = raw_edge.get("id") if isinstance(raw_edge, Mapping) else None
                if self.strict:
                    raise SchemaValidationError(
                        errors=errors, location=edge_location, project_id=project_id, file_path=source_path,
                    )
                issues.append(PowerIssueCode.STRUCT_EDGE_INVALID.issue(
                    edge_id=str(edge_id) if edge_id is not None else f"#{idx}",
                    reason="; ".join(flatten_cerberus_errors(errors)),
                ))
                continue

            doc = validator.document
            interconnect = doc.get("interconnect") or {}
            edges.append(Edge(
                id=doc["id"],
                from_id=doc["from"],
                to_id=doc["to"],
                from_handle=doc.get("fromHandle"),
                to_handle=doc.get("toHandle"),
                r_milliohm=_or_default(interconnect.get("R_milliohm"), 0.0),
            ))
        return edges

    # --- Files ---

    def _load_document(self, source: Path) -> Dict[str, Any]:
        """Loads a YAML or JSON file (JSON is read through the YAML loader)."""
        if source.suffix.lower() not in SUPPORTED_SUFFIXES:
            raise ParsingError(
                details=f"Unsupported project file type '{source.suffix}'; expected one of {list(SUPPORTED_SUFFIXES)}.",
                file_path=source,
            )
        if not source.is_file():
            raise ParsingError(details=f"Project file not found at path: {source}", file_path=source)
        try:
            with source.open("r", encoding="utf-8") as f:
                content = yaml.safe_load(f)
        except PermissionError as e:
            raise ParsingError(details=f"Permission denied when trying to read file: {e}", file_path=source) from e
        except yaml.YAMLError as e:
            raise ParsingError(details=f"Invalid YAML/JSON syntax: {e}", file_path=source) from e
        if content is None:
            raise ParsingError(details="The project file is empty or contains no valid content.", file_path=source)
        if not isinstance(content, dict):
            raise ParsingError(details="The root of the project file must be a mapping.", file_path=source)
        return content


def load_project(path: Union[str, Path], strict: bool = True) -> Project:
    """
    Reads and parses a project file. Any loading failure surfaces as a
    `ProjectLoadError` whose message is the full diagnostic report.
    """
    try:
        return ProjectParser(strict=strict).parse_file(path)
    except DiagnosableError as e:
        raise ProjectLoadError(e.get_diagnostic_report()) from e


def parse_project(raw: Mapping[str, Any], strict: bool = True) -> Project:
    """Parses an in-memory project document, reporting failures like `load_project`."""
    try:
        return ProjectParser(strict=strict).parse(raw)
    except DiagnosableError as e:
        raise ProjectLoadError(e.get_diagnostic_report()) from e


# --- Helpers ---

def _or_default(value, default):
    return default if value is None else value


def _first_present(doc: Mapping[str, Any], *keys: str):
    for key in keys:
        if doc.get(key) is not None:
            return doc[key]
    return None


def _scenario_or_none(value: Any) -> Optional[Scenario]:
    if isinstance(value, Scenario):
        return value
    if not isinstance(value, str):
        return None
    for scenario in Scenario:
        if scenario.value.lower() == value.strip().lower():
            return scenario
    return None


def _unit_labels(raw: Optional[Mapping[str, Any]]) -> UnitLabels:
    if not raw:
        return UnitLabels()
    defaults = UnitLabels()
    return UnitLabels(
        voltage=raw.get("voltage") or defaults.voltage,
        current=raw.get("current") or defaults.current,
        power=raw.get("power") or defaults.power,
        resistance=raw.get("resistance") or defaults.resistance,
    )


def _margins(raw: Optional[Mapping[str, Any]]) -> Margins:
    defaults = Margins()
    if not raw:
        return defaults
    return Margins(
        current_pct=_or_default(raw.get("currentPct"), defaults.current_pct),
        power_pct=_or_default(raw.get("powerPct"), defaults.power_pct),
        voltage_drop_pct=_or_default(raw.get("voltageDropPct"), defaults.voltage_drop_pct),
        voltage_margin_pct=_or_default(raw.get("voltageMarginPct"), defaults.voltage_margin_pct),
    )
