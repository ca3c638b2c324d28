# tests/test_efficiency.py
import numpy as np
import pytest

from powertree_core.efficiency import (
    CurveEfficiency, CurveMode, CurvePoint, EfficiencyBase, EfficiencyRatings, EfficiencyTable,
    FixedEfficiency, efficiency_model_from_raw, eta_from_model, evaluate_efficiency,
)
from powertree_core.constants import DEFAULT_EFFICIENCY, MAX_CURVE_EFFICIENCY, MIN_CURVE_EFFICIENCY

TABLE_2X2 = {
    "type": "curve",
    "mode": "2d",
    "table": {
        "outputVoltages": [1, 2],
        "outputCurrents": [0, 10],
        "values": [[0.8, 0.9], [0.82, 0.94]],
    },
}


class TestFixedEfficiency:

    def test_fixed_value_is_returned(self):
        assert eta_from_model({"type": "fixed", "value": 0.92}, 5.0, 1.0) == pytest.approx(0.92)

    def test_missing_model_uses_default(self):
        assert eta_from_model(None, 10.0, 1.0) == pytest.approx(DEFAULT_EFFICIENCY)

    @pytest.mark.parametrize("value", [0.0, -0.5, 1.5, float("nan")])
    def test_out_of_range_value_falls_back_with_issue(self, value):
        evaluation = evaluate_efficiency(FixedEfficiency(value=value), 10.0, 1.0, EfficiencyRatings())
        assert evaluation.eta == pytest.approx(DEFAULT_EFFICIENCY)
        assert evaluation.issue is not None
        assert evaluation.issue.code == "EFF_FIXED_INVALID"

    def test_unity_efficiency_is_valid(self):
        evaluation = evaluate_efficiency(FixedEfficiency(value=1.0), 10.0, 1.0, EfficiencyRatings())
        assert evaluation.eta == 1.0
        assert evaluation.issue is None


class TestOneDimensionalCurve:

    def test_midpoint_hit_on_pout_base(self):
        model = {
            "type": "curve", "base": "Pout_max",
            "points": [{"loadPct": 0, "eta": 0.8}, {"loadPct": 50, "eta": 0.9}, {"loadPct": 100, "eta": 0.95}],
        }
        assert eta_from_model(model, 50.0, 0.0, {"Pout_max": 100}) == pytest.approx(0.90)

    def test_sweep_interpolates_linearly_between_points(self):
        model = {
            "type": "curve", "base": "Pout_max",
            "points": [{"loadPct": 0, "eta": 0.8}, {"loadPct": 50, "eta": 0.9}, {"loadPct": 100, "eta": 0.95}],
        }
        sweep = [eta_from_model(model, p_out, 0.0, {"Pout_max": 100}) for p_out in (0, 25, 50, 75, 100)]
        np.testing.assert_allclose(sweep, [0.8, 0.85, 0.9, 0.925, 0.95])

    def test_per_phase_current_curve_uses_total_current_and_phase_count(self):
        model = {
            "type": "curve", "base": "Iout_max", "perPhase": True,
            "points": [{"current": 0, "eta": 0.88}, {"current": 20, "eta": 0.93}, {"current": 40, "eta": 0.96}],
        }
        eta = eta_from_model(model, 0.0, 90.0, {"Iout_max": 120, "phaseCount": 3})
        assert eta == pytest.approx(0.945, abs=1e-3)

    def test_overall_current_curve_when_not_per_phase(self):
        model = {
            "type": "curve", "base": "Iout_max",
            "points": [{"current": 0, "eta": 0.9}, {"current": 60, "eta": 0.95}, {"current": 120, "eta": 0.97}],
        }
        eta = eta_from_model(model, 0.0, 90.0, {"Iout_max": 120, "phaseCount": 3})
        assert eta == pytest.approx(0.96, abs=1e-3)

    def test_per_phase_power_curve_scales_output_power(self):
        model = {
            "type": "curve", "base": "Pout_max", "perPhase": True,
            "points": [{"loadPct": 50, "eta": 0.94}, {"loadPct": 100, "eta": 0.97}],
        }
        eta = eta_from_model(model, 1500.0, 0.0, {"Pout_max": 2000, "phaseCount": 2})
        assert eta == pytest.approx(0.955, abs=1e-3)

    def test_load_beyond_rating_holds_last_point(self):
        model = CurveEfficiency(points=(CurvePoint(eta=0.8, load_pct=0), CurvePoint(eta=0.93, load_pct=100)))
        ratings = EfficiencyRatings(pout_max=10.0)
        assert evaluate_efficiency(model, 50.0, 0.0, ratings).eta == pytest.approx(0.93)

    def test_unsorted_points_are_ordered(self):
        model = CurveEfficiency(points=(CurvePoint(eta=0.95, load_pct=100), CurvePoint(eta=0.85, load_pct=0)))
        eta = evaluate_efficiency(model, 5.0, 0.0, EfficiencyRatings(pout_max=10.0)).eta
        assert eta == pytest.approx(0.90)

    def test_result_is_clamped(self):
        model = CurveEfficiency(points=(CurvePoint(eta=1.2, load_pct=0), CurvePoint(eta=1.4, load_pct=100)))
        assert evaluate_efficiency(model, 5.0, 0.0, EfficiencyRatings(pout_max=10.0)).eta == MAX_CURVE_EFFICIENCY
        model = CurveEfficiency(points=(CurvePoint(eta=0.0, load_pct=0), CurvePoint(eta=0.0, load_pct=100)))
        assert evaluate_efficiency(model, 5.0, 0.0, EfficiencyRatings(pout_max=10.0)).eta == MIN_CURVE_EFFICIENCY

    def test_missing_rating_falls_back_with_issue(self):
        model = CurveEfficiency(base=EfficiencyBase.IOUT_MAX, points=(CurvePoint(eta=0.9, current=1.0),))
        evaluation = evaluate_efficiency(model, 5.0, 1.0, EfficiencyRatings())
        assert evaluation.eta == pytest.approx(DEFAULT_EFFICIENCY)
        assert evaluation.issue.code == "EFF_RATING_MISSING"

    def test_empty_points_fall_back_with_issue(self):
        evaluation = evaluate_efficiency(CurveEfficiency(), 5.0, 1.0, EfficiencyRatings(pout_max=10.0))
        assert evaluation.eta == pytest.approx(DEFAULT_EFFICIENCY)
        assert evaluation.issue.code == "EFF_POINTS_MISSING"


class TestTwoDimensionalTable:

    @pytest.mark.parametrize("vout, current, expected", [
        (1.5, 5.0, 0.865),    # bilinear
        (2.0, 5.0, 0.88),     # exact voltage row
        (1.5, 10.0, 0.92),    # exact current column
        (0.5, 10.0, 0.90),    # voltage below range
        (3.0, 10.0, 0.94),    # voltage above range
    ])
    def test_bilinear_lookup(self, vout, current, expected):
        assert eta_from_model(TABLE_2X2, 0.0, current, {"Vout": vout}) == pytest.approx(expected, abs=1e-3)

    def test_current_is_held_at_table_edges(self):
        model = {
            "type": "curve", "mode": "2d",
            "table": {"outputVoltages": [1.2], "outputCurrents": [0, 10], "values": [[0.81, 0.9]]},
        }
        assert eta_from_model(model, 0.0, -5.0, {"Vout": 1.2}) == pytest.approx(0.81, abs=1e-3)
        assert eta_from_model(model, 0.0, 25.0, {"Vout": 1.2}) == pytest.approx(0.9, abs=1e-3)

    def test_per_phase_table_divides_current(self):
        model = {
            "type": "curve", "mode": "2d", "perPhase": True,
            "table": {"outputVoltages": [1.0], "outputCurrents": [0, 20, 40], "values": [[0.88, 0.93, 0.96]]},
        }
        assert eta_from_model(model, 0.0, 90.0, {"Vout": 1.0, "phaseCount": 3}) == pytest.approx(0.945, abs=1e-3)

    def test_empty_cells_are_skipped_not_zero(self):
        model = {
            "type": "curve", "mode": "2d",
            "table": {
                "outputVoltages": [1.0, 1.8],
                "outputCurrents": [0, 10, 20],
                "values": [[0.8, None, 0.9], [0.82, 0.9, None]],
            },
        }
        eta = eta_from_model(model, 0.0, 10.0, {"Vout": 1.8})
        assert eta == pytest.approx(0.9, abs=1e-3)
        assert eta > 0.1

    def test_ragged_table_falls_back_with_issue(self):
        table = EfficiencyTable(output_voltages=(1.0, 2.0), output_currents=(0.0, 10.0), values=((0.8, 0.9),))
        model = CurveEfficiency(mode=CurveMode.TWO_D, table=table)
        evaluation = evaluate_efficiency(model, 0.0, 5.0, EfficiencyRatings(vout=1.5))
        assert evaluation.eta == pytest.approx(DEFAULT_EFFICIENCY)
        assert evaluation.issue.code == "EFF_TABLE_SHAPE"

    def test_table_without_values_falls_back_with_issue(self):
        table = EfficiencyTable(output_voltages=(1.0,), output_currents=(0.0, 10.0), values=((None, None),))
        evaluation = evaluate_efficiency(CurveEfficiency(mode=CurveMode.TWO_D, table=table), 0.0, 5.0, EfficiencyRatings(vout=1.0))
        assert evaluation.eta == pytest.approx(DEFAULT_EFFICIENCY)
        assert evaluation.issue.code == "EFF_TABLE_EMPTY"


class TestModelCoercion:

    def test_raw_fixed_model(self):
        assert efficiency_model_from_raw({"type": "fixed", "value": 0.93}) == FixedEfficiency(value=0.93)

    def test_unknown_input_becomes_default(self):
        assert efficiency_model_from_raw("ninety percent") == FixedEfficiency()

    def test_ratings_from_typed_node(self):
        from powertree_core.components import ConverterNode

        node = ConverterNode(id="c", vout=1.0, iout_max=120.0, phase_count=3)
        ratings = EfficiencyRatings.coerce(node)
        assert ratings.vout == 1.0
        assert ratings.effective_phase_count == 3
