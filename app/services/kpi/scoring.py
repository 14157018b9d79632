"""
KPI scoring.

Pure functions that turn the metric values submitted for an entry into
calculated values (0-100 scale), per-metric scores and a total score,
using the metric definitions of the entry's template.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from app.core.exceptions import InvalidKpiKeyError, MissingKpiValueError, MissingSubKpiError

COMPLETED_KEY = "nirakrit"
TOTAL_KEY = "darj"

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_key(value: str) -> str:
    """Lowercase and strip everything that is not a letter or digit"""
    return _NON_ALNUM.sub("", (value or "").lower())


def _exact(key: str, name: str) -> bool:
    return key == name


def _normalized(key: str, name: str) -> bool:
    return normalize_key(key) == normalize_key(name)


def _case_insensitive(key: str, name: str) -> bool:
    return (key or "").lower() == (name or "").lower()


# Tried in order, first hit wins
KEY_MATCHERS: Sequence[Callable[[str, str], bool]] = (_exact, _normalized, _case_insensitive)


@dataclass
class ScoredMetric:
    key: str
    value: float
    score: float
    sub_metric_values: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "score": self.score,
            "sub_metric_values": list(self.sub_metric_values),
        }


@dataclass
class ScoreResult:
    metric_values: List[ScoredMetric]
    total_score: float

    def metric_values_as_dicts(self) -> List[Dict[str, Any]]:
        return [metric.as_dict() for metric in self.metric_values]


def _get(item: Any, name: str, default=None):
    if isinstance(item, Mapping):
        return item.get(name, default)
    return getattr(item, name, default)


def match_metric(key: str, metrics: Sequence[Any], matchers: Sequence[Callable[[str, str], bool]] = KEY_MATCHERS):
    """Find the template metric for an entry key, or raise InvalidKpiKeyError"""
    for matcher in matchers:
        for metric in metrics:
            if matcher(key, _get(metric, "name")):
                return metric
    raise InvalidKpiKeyError(key, [_get(metric, "name") for metric in metrics])


def _sub_values(metric_value: Any) -> List[Dict[str, Any]]:
    return [
        {"key": _get(sub, "key"), "value": _get(sub, "value", 0) or 0}
        for sub in (_get(metric_value, "sub_metric_values") or [])
    ]


def calculate_value(metric_value: Any) -> float:
    """
    Calculated value on the 0-100 scale.

    With sub-metric values this is nirakrit / darj * 100 (0 when darj is 0),
    otherwise the direct value. The result is never clamped.
    """
    sub_values = _sub_values(metric_value)
    if sub_values:
        lookup = {sub["key"]: float(sub["value"]) for sub in sub_values}
        total = lookup.get(TOTAL_KEY, 0.0)
        completed = lookup.get(COMPLETED_KEY, 0.0)
        if total == 0:
            return 0.0
        return (completed / total) * 100
    value = _get(metric_value, "value")
    return float(value) if value is not None else 0.0


def calculate_score(value: float, max_marks: float) -> float:
    return (value / 100) * float(max_marks or 0)


def validate_coverage(metrics: Sequence[Any], metric_values: Iterable[Any]) -> None:
    """Every template metric needs a value; declared sub-metrics must all be supplied"""
    metric_values = list(metric_values)
    for metric in metrics:
        name = _get(metric, "name")
        supplied = None
        for matcher in KEY_MATCHERS:
            supplied = next((mv for mv in metric_values if matcher(_get(mv, "key"), name)), None)
            if supplied is not None:
                break
        if supplied is None:
            raise MissingKpiValueError(name)

        declared = [_get(sub, "key") for sub in (_get(metric, "sub_metrics") or [])]
        sub_values = _sub_values(supplied)
        if declared and sub_values:
            present = {sub["key"] for sub in sub_values}
            missing = [key for key in declared if key not in present]
            if missing:
                raise MissingSubKpiError(name, missing)


def score_entry(metrics: Sequence[Any], metric_values: Iterable[Any]) -> ScoreResult:
    """
    Score every submitted metric value against the template metrics.

    Raises InvalidKpiKeyError for an unknown key, MissingKpiValueError when a
    template metric has no value and MissingSubKpiError when declared
    sub-metrics are missing.
    """
    metric_values = list(metric_values)
    scored: List[ScoredMetric] = []
    for metric_value in metric_values:
        key = _get(metric_value, "key")
        metric = match_metric(key, metrics)
        value = calculate_value(metric_value)
        scored.append(ScoredMetric(
            key=key,
            value=value,
            score=calculate_score(value, _get(metric, "max_marks", 0)),
            sub_metric_values=_sub_values(metric_value),
        ))

    validate_coverage(metrics, metric_values)

    return ScoreResult(metric_values=scored, total_score=sum(item.score for item in scored))


def build_skeleton_values(metrics: Sequence[Any]) -> List[Dict[str, Any]]:
    """Zero-valued metric values for a freshly materialized entry; darj and nirakrit always lead the sub-values"""
    skeleton = []
    for metric in metrics:
        declared = [_get(sub, "key") for sub in (_get(metric, "sub_metrics") or [])]
        keys = [TOTAL_KEY, COMPLETED_KEY] + [key for key in declared if key not in (TOTAL_KEY, COMPLETED_KEY)]
        skeleton.append({
            "key": normalize_key(_get(metric, "name")),
            "value": 0,
            "score": 0,
            "sub_metric_values": [{"key": key, "value": 0} for key in keys],
        })
    return skeleton


def kpi_summary(metric_values: Iterable[Any], separator: str = " | ") -> str:
    """'key: score' pairs, two decimals"""
    return separator.join(
        f"{_get(mv, 'key')}: {float(_get(mv, 'score', 0) or 0):.2f}" for mv in metric_values or []
    )


def find_metric_value(metric_values: Iterable[Any], name: str) -> Optional[Any]:
    metric_values = list(metric_values or [])
    for matcher in KEY_MATCHERS:
        for mv in metric_values:
            if matcher(_get(mv, "key"), name):
                return mv
    return None
