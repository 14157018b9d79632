"""
Ranking and statistics.

Pure functions over entries that were already fetched from the database:
period defaults, stable ranking, per-page rank numbering, top/bottom tiers,
score normalization and the aggregate statistics built on top of them.
"""
import math
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from app.models.shared.enums import PerformanceBucket, PerformanceTier

# (lower bound on the 0-10 scale, bucket), checked top down
BUCKET_THRESHOLDS: Sequence[Tuple[float, PerformanceBucket]] = (
    (9, PerformanceBucket.EXCELLENT),
    (7, PerformanceBucket.GOOD),
    (4, PerformanceBucket.AVERAGE),
)


def resolve_period(now: datetime) -> Tuple[int, int]:
    """Previous calendar month for the given moment, as (month, year)"""
    month_index = now.month - 1
    if month_index == 0:
        return 12, now.year - 1
    return month_index, now.year


def top_bottom_counts(total: int) -> Tuple[int, int]:
    """How many entries make the top and the bottom tier of a cohort"""
    if total <= 0:
        return 0, 0
    if total == 1:
        return 1, 0
    if total < 5:
        return 1, 1
    if total < 10:
        return 2, 2
    if total > 15:
        return 5, 5
    count = max(1, math.ceil(total * 0.05))
    return count, count


def _score_of(item: Any) -> float:
    if isinstance(item, Mapping):
        return float(item.get("total_score") or 0)
    return float(getattr(item, "total_score", 0) or 0)


def rank_entries(items: Iterable[Any], key: Callable[[Any], float] = _score_of) -> List[Any]:
    """Descending by score; ties keep their incoming order"""
    return sorted(items, key=key, reverse=True)


def paginate(ranked: Sequence[Any], page_index: int, page_size: int) -> List[Tuple[int, Any]]:
    """Slice a ranked list; rank numbering starts at 1 on every page"""
    page_index = max(page_index, 1)
    start = (page_index - 1) * page_size
    return [(position + 1, item) for position, item in enumerate(ranked[start:start + page_size])]


def split_tiers(ranked: Sequence[Any]) -> Tuple[List[Any], List[Any], List[Any]]:
    """(top, middle, bottom) slices of a ranked list"""
    top_count, bottom_count = top_bottom_counts(len(ranked))
    top = list(ranked[:top_count])
    bottom = list(ranked[len(ranked) - bottom_count:]) if bottom_count else []
    middle = list(ranked[top_count:len(ranked) - bottom_count])
    return top, middle, bottom


def normalize_score(score: float, top_score: float) -> float:
    if not top_score:
        return 0.0
    return (score / top_score) * 10


def bucket_for(score: float, top_score: float) -> PerformanceBucket:
    if not top_score:
        return PerformanceBucket.POOR
    normalized = normalize_score(score, top_score)
    for threshold, bucket in BUCKET_THRESHOLDS:
        if normalized >= threshold:
            return bucket
    return PerformanceBucket.POOR


def bucket_distribution(scores: Sequence[float]) -> Dict[str, Dict[str, float]]:
    top_score = max(scores) if scores else 0
    counts = OrderedDict((bucket.value, 0) for bucket in PerformanceBucket)
    for score in scores:
        counts[bucket_for(score, top_score).value] += 1
    total = len(scores)
    return {
        bucket: {
            "count": count,
            "percentage": round(count / total * 100, 2) if total else 0.0,
        }
        for bucket, count in counts.items()
    }


def summarize_scores(scores: Sequence[float]) -> Dict[str, float]:
    if not scores:
        return {"count": 0, "average_score": 0.0, "min_score": 0.0, "max_score": 0.0}
    return {
        "count": len(scores),
        "average_score": round(sum(scores) / len(scores), 2),
        "min_score": min(scores),
        "max_score": max(scores),
    }


def group_breakdown(rows: Iterable[Tuple[Optional[str], float]], label: str) -> List[Dict[str, Any]]:
    """Count, average and top score per group, groups in first-seen order"""
    groups: "OrderedDict[str, List[float]]" = OrderedDict()
    for group, score in rows:
        if not group:
            continue
        groups.setdefault(group, []).append(score)
    return [
        {
            label: group,
            "total_entries": len(scores),
            "average_score": round(sum(scores) / len(scores), 2),
            "top_score": max(scores),
        }
        for group, scores in groups.items()
    ]


@dataclass
class Resolved:
    entry: Any
    employee: Any
    template: Any = None


@dataclass
class Orphaned:
    entry: Any
    reason: str


JoinResult = Union[Resolved, Orphaned]


def join_entries(
    entries: Iterable[Any],
    employees: Mapping[int, Any],
    templates: Optional[Mapping[int, Any]] = None,
) -> List[JoinResult]:
    """
    Tag every entry as Resolved or Orphaned.

    An entry is orphaned when its employee is missing, or when a template
    lookup is given and its template is missing. Nothing is dropped here.
    """
    results: List[JoinResult] = []
    for entry in entries:
        employee = employees.get(entry.employee_id)
        if employee is None:
            results.append(Orphaned(entry=entry, reason="employee_not_found"))
            continue
        template = None
        if templates is not None:
            template = templates.get(entry.template_id)
            if template is None:
                results.append(Orphaned(entry=entry, reason="template_not_found"))
                continue
        results.append(Resolved(entry=entry, employee=employee, template=template))
    return results


def only_resolved(results: Iterable[JoinResult]) -> List[Resolved]:
    return [result for result in results if isinstance(result, Resolved)]


def only_orphaned(results: Iterable[JoinResult]) -> List[Orphaned]:
    return [result for result in results if isinstance(result, Orphaned)]


def tier_of(position: int, total: int) -> PerformanceTier:
    """Tier for a 0-based position in a ranked cohort of the given size"""
    top_count, bottom_count = top_bottom_counts(total)
    if position < top_count:
        return PerformanceTier.TOP
    if bottom_count and position >= total - bottom_count:
        return PerformanceTier.BOTTOM
    return PerformanceTier.MIDDLE


def _row(rank: int, resolved: Resolved, top_score: float) -> Dict[str, Any]:
    entry, employee = resolved.entry, resolved.employee
    score = float(entry.total_score or 0)
    return {
        "rank": rank,
        "entry_id": entry.id,
        "employee": {
            "id": employee.id,
            "name": employee.name,
            "contact": employee.contact,
            "department": employee.department,
            "department_role": employee.department_role,
        },
        "template_id": entry.template_id,
        "month": entry.month,
        "year": entry.year,
        "score": score,
        "normalized_score": round(normalize_score(score, top_score), 2),
        "bucket": bucket_for(score, top_score).value,
        "status": entry.status.value if hasattr(entry.status, "value") else entry.status,
        "metric_labels": entry.metric_labels,
        "metric_values": entry.metric_values,
    }


def build_cohort_report(
    resolved: Sequence[Resolved],
    page_index: int,
    page_size: int,
) -> Dict[str, Any]:
    """Ranking, statistics and top/bottom slices for one department/role cohort"""
    ranked = rank_entries(resolved, key=lambda r: float(r.entry.total_score or 0))
    scores = [float(r.entry.total_score or 0) for r in ranked]
    top_score = max(scores) if scores else 0
    top, _, bottom = split_tiers(ranked)
    total = len(ranked)

    overall_position = {id(item): index + 1 for index, item in enumerate(ranked)}

    return {
        "pagination": {
            "page_index": page_index,
            "page_size": page_size,
            "count": total,
            "total_pages": math.ceil(total / page_size) if page_size else 0,
        },
        "ranking": [_row(rank, item, top_score) for rank, item in paginate(ranked, page_index, page_size)],
        "statistics": {
            **summarize_scores(scores),
            "buckets": bucket_distribution(scores),
        },
        "top_performers": [_row(overall_position[id(item)], item, top_score) for item in top],
        "bottom_performers": [_row(overall_position[id(item)], item, top_score) for item in bottom],
    }
