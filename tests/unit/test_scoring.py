import pytest

from app.core.exceptions import InvalidKpiKeyError, MissingKpiValueError, MissingSubKpiError
from app.schemas.kpi.entry_schema import MetricValue
from app.services.kpi.scoring import (
    build_skeleton_values, calculate_score, calculate_value, find_metric_value, kpi_summary,
    match_metric, normalize_key, score_entry
)

METRICS = [
    {"name": "A", "max_marks": 60, "sub_metrics": [{"name": "Target", "key": "darj"}, {"name": "Done", "key": "nirakrit"}]},
    {"name": "B", "max_marks": 40, "sub_metrics": []},
]


def test_score_entry_totals_weighted_scores():
    result = score_entry(METRICS, [
        {"key": "A", "sub_metric_values": [{"key": "nirakrit", "value": 80}, {"key": "darj", "value": 100}]},
        {"key": "B", "value": 45},
    ])

    assert [m.value for m in result.metric_values] == [80.0, 45.0]
    assert result.metric_values[0].score == pytest.approx(48.0)
    assert result.metric_values[1].score == pytest.approx(18.0)
    assert result.total_score == pytest.approx(66.0)


def test_worked_example_sixty_forty():
    result = score_entry(METRICS, [
        {"key": "A", "sub_metric_values": [{"key": "darj", "value": 10}, {"key": "nirakrit", "value": 5}]},
        {"key": "B", "value": 90},
    ])

    assert result.metric_values[0].value == pytest.approx(50.0)
    assert result.metric_values[0].score == pytest.approx(30.0)
    assert result.metric_values[1].score == pytest.approx(36.0)
    assert result.total_score == pytest.approx(66.0)


def test_calculate_value_with_zero_total_is_zero():
    value = calculate_value({"key": "A", "sub_metric_values": [{"key": "nirakrit", "value": 5}, {"key": "darj", "value": 0}]})
    assert value == 0.0


def test_calculate_value_is_not_clamped():
    value = calculate_value({"key": "A", "sub_metric_values": [{"key": "nirakrit", "value": 150}, {"key": "darj", "value": 100}]})
    assert value == pytest.approx(150.0)
    assert calculate_score(value, 60) == pytest.approx(90.0)


def test_calculate_value_without_sub_values_uses_direct_value():
    assert calculate_value({"key": "B", "value": 37.5}) == 37.5
    assert calculate_value({"key": "B"}) == 0.0


@pytest.mark.parametrize("key", ["Home Visits", "home-visits", "HOME VISITS", "homevisits"])
def test_match_metric_accepts_key_variants(key):
    metrics = [{"name": "Home Visits", "max_marks": 10}, {"name": "Other", "max_marks": 5}]
    assert match_metric(key, metrics)["name"] == "Home Visits"


def test_exact_match_wins_over_normalized_match():
    metrics = [{"name": "a-b", "max_marks": 1}, {"name": "ab", "max_marks": 2}]
    assert match_metric("ab", metrics)["max_marks"] == 2


def test_unknown_key_lists_available_metrics():
    with pytest.raises(InvalidKpiKeyError) as exc:
        score_entry(METRICS, [{"key": "Z", "value": 10}, {"key": "B", "value": 10}])
    assert exc.value.status_code == 400
    assert exc.value.detail == "KPI key not found in template: Z. Available KPIs: A, B"


def test_missing_metric_value():
    with pytest.raises(MissingKpiValueError) as exc:
        score_entry(METRICS, [{"key": "B", "value": 10}])
    assert "A" in exc.value.detail


def test_missing_declared_sub_metric():
    metrics = [
        {"name": "A", "max_marks": 60, "sub_metrics": [
            {"name": "Target", "key": "darj"}, {"name": "Done", "key": "nirakrit"}, {"name": "Visits", "key": "visits"},
        ]},
        {"name": "B", "max_marks": 40},
    ]
    with pytest.raises(MissingSubKpiError) as exc:
        score_entry(metrics, [
            {"key": "A", "sub_metric_values": [{"key": "nirakrit", "value": 1}, {"key": "darj", "value": 2}]},
            {"key": "B", "value": 10},
        ])
    assert exc.value.missing == ["visits"]


def test_skeleton_values():
    skeleton = build_skeleton_values([
        {"name": "Home Visits", "max_marks": 60, "sub_metrics": [{"name": "x", "key": "x"}, {"name": "y", "key": "y"}]},
        {"name": "B", "max_marks": 40, "sub_metrics": []},
    ])

    assert skeleton[0]["key"] == "homevisits"
    assert [sub["key"] for sub in skeleton[0]["sub_metric_values"]] == ["darj", "nirakrit", "x", "y"]
    assert [sub["key"] for sub in skeleton[1]["sub_metric_values"]] == ["darj", "nirakrit"]
    # every skeleton value passes the same validation as a submitted value
    assert [MetricValue(**item).key for item in skeleton] == ["homevisits", "b"]
    assert all(item["value"] == 0 and item["score"] == 0 for item in skeleton)


def test_kpi_summary_and_lookup():
    values = [{"key": "A", "score": 48}, {"key": "B", "score": 18.456}]
    assert kpi_summary(values) == "A: 48.00 | B: 18.46"
    assert find_metric_value(values, "b")["key"] == "B"
    assert find_metric_value(values, "C") is None
    assert normalize_key(" Home-Visits #1 ") == "homevisits1"
