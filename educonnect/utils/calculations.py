"""
Aggregation and alerting rules over rows read back from the database.

Everything here is pure: callers fetch students and entries, these functions
group, average and derive alerts. Nothing in this module writes.
"""
from collections import OrderedDict, defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple
from ..models.attendance import AttendanceStatus
from ..models.behavior import BehaviorCategory
from ..models.grade import PARTICIPATION
import logging

logger = logging.getLogger(__name__)

MIN_SCORE = 0.0
MAX_SCORE = 10.0


def clamp_score(score) -> float:
    if score is None:
        return MIN_SCORE
    return max(MIN_SCORE, min(MAX_SCORE, float(score)))


def raw_mean(values: Iterable[float]) -> Optional[float]:
    values = list(values)
    if not values:
        return None
    return sum(values) / len(values)


def mean(values: Iterable[float]) -> Optional[float]:
    average = raw_mean(values)
    return None if average is None else round(average, 2)


# Grade averaging

def validate_weights(weights: Dict[str, float]) -> Dict[str, float]:
    """Normalize criterion names and check the percentages sum to at most 100."""
    normalized = {}
    for name, weight in weights.items():
        key = name.strip().lower()
        if not key:
            raise ValueError("Criterion name cannot be empty")
        if weight is None or weight < 0 or weight > 100:
            raise ValueError(f"Weight for '{key}' must be between 0 and 100")
        normalized[key] = float(weight)

    total = sum(normalized.values())
    if total > 100:
        raise ValueError(f"Criterion weights add up to {total:g}%, the maximum is 100%")
    return normalized


def weighted_average(scores: Dict[str, float], weights: Dict[str, float]) -> float:
    """
    Sum of score * weight / 100 over the weighted criteria.

    A criterion without a recorded score counts as 0.
    """
    weights = validate_weights(weights)
    total = 0.0
    for criterion, weight in weights.items():
        score = clamp_score(scores.get(criterion))
        total += score * weight / 100
    return round(total, 2)


def student_weighted_averages(students, entries, weights: Dict[str, float]) -> List[dict]:
    """Weighted average per student from the grade entries of one subject and period."""
    weights = validate_weights(weights)
    scores_by_student: Dict[int, Dict[str, float]] = defaultdict(dict)
    comments: Dict[int, str] = {}

    for entry in entries:
        scores_by_student[entry.student_id][entry.evaluation_type] = clamp_score(entry.score)
        if entry.comment:
            comments[entry.student_id] = entry.comment

    rows = []
    for student in students:
        scores = scores_by_student.get(student.id, {})
        rows.append({
            "student_id": student.id,
            "name": student.full_name,
            "group": student.group_label,
            "scores": {criterion: scores.get(criterion, 0.0) for criterion in weights},
            "average": weighted_average(scores, weights),
            "comment": comments.get(student.id),
        })
    return rows


# Date windows

def week_window(day: date) -> Tuple[date, date]:
    """Sunday through Saturday of the week containing day."""
    start = day - timedelta(days=(day.weekday() + 1) % 7)
    return start, start + timedelta(days=6)


def month_window(day: date) -> Tuple[date, date]:
    start = day.replace(day=1)
    next_month = (start + timedelta(days=32)).replace(day=1)
    return start, next_month - timedelta(days=1)


def window_for(day: date, window: str) -> Tuple[date, date]:
    if window == "day":
        return day, day
    if window == "week":
        return week_window(day)
    if window == "month":
        return month_window(day)
    raise ValueError(f"Unknown window '{window}'")


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def in_window(value, start: date, end: date) -> bool:
    if value is None:
        return False
    return start <= _as_date(value) <= end


# Attendance

def build_attendance_roster(students, records, day: date) -> List[dict]:
    """One row per student for the day; students without a record default to absent."""
    by_student = {r.student_id: r for r in records if r.date == day}
    roster = []
    for student in students:
        record = by_student.get(student.id)
        roster.append({
            "student_id": student.id,
            "name": student.full_name,
            "enrollment_number": student.enrollment_number or "N/A",
            "status": record.status if record else AttendanceStatus.ABSENT.value,
            "note": (record.note if record else None) or "",
            "record_id": record.id if record else None,
        })
    return roster


def summarize_attendance(records) -> Dict[str, int]:
    counts = OrderedDict((status.value, 0) for status in AttendanceStatus)
    for record in records:
        if record.status in counts:
            counts[record.status] += 1
    return dict(counts)


# Behavior

def resolve_behavior_category(category: str, regular_count_today: int, threshold: int = 3) -> str:
    """
    Category to store for a new entry.

    A regular entry that would be the threshold-th (or later) regular entry of
    the day is written as bad.
    """
    if category == BehaviorCategory.REGULAR.value and regular_count_today + 1 >= threshold:
        return BehaviorCategory.BAD.value
    return category


def behavior_alerts(students, records, day: date, threshold: int = 3,
                    flagged_phrase: str = "mal portado") -> List[dict]:
    """
    Advisory alerts for the day.

    warning: threshold or more regular entries, recommend reclassifying as bad.
    danger: threshold or more bad entries, or a note equal to the flagged
    phrase (case-insensitive), recommend contacting the guardians.
    """
    phrase = flagged_phrase.strip().lower()
    alerts = []

    for student in students:
        todays = [r for r in records if r.student_id == student.id and r.date == day]
        regular_count = sum(1 for r in todays if r.category == BehaviorCategory.REGULAR.value)
        bad_count = sum(1 for r in todays if r.category == BehaviorCategory.BAD.value)
        flagged = any((r.note or "").strip().lower() == phrase for r in todays)

        if regular_count >= threshold:
            alerts.append({
                "student_id": student.id,
                "name": student.full_name,
                "level": "warning",
                "message": f"{student.full_name} has {regular_count} regular behavior entries today. "
                           f"Reclassify as bad.",
            })

        if bad_count >= threshold or flagged:
            reason = f"{bad_count} bad behavior entries" if bad_count >= threshold else \
                f"'{flagged_phrase}' in the notes"
            alerts.append({
                "student_id": student.id,
                "name": student.full_name,
                "level": "danger",
                "message": f"Contact the guardians of {student.full_name} due to {reason}.",
            })

    logger.info(f"Computed {len(alerts)} behavior alerts for {day}")
    return alerts


def behavior_distribution(students, records, day: date) -> Dict[str, int]:
    """Students per category, using each student's first entry of the day."""
    counts = OrderedDict((category.value, 0) for category in BehaviorCategory)
    for student in students:
        todays = sorted(
            (r for r in records if r.student_id == student.id and r.date == day),
            key=lambda r: r.id or 0
        )
        if todays and todays[0].category in counts:
            counts[todays[0].category] += 1
    return dict(counts)


# Participation

def participation_summary(students, entries, start: date, end: date, threshold: float = 5.0) -> dict:
    """
    Per-student participation average over the window.

    Students without entries average 0. A student is low when the average is
    strictly below the threshold.
    """
    window_entries = [
        e for e in entries
        if e.evaluation_type == PARTICIPATION and in_window(e.created_at, start, end)
    ]

    rows = []
    exact = {}
    for student in students:
        scores = [clamp_score(e.score) for e in window_entries if e.student_id == student.id]
        exact[student.id] = raw_mean(scores) or 0.0
        rows.append({
            "student_id": student.id,
            "name": student.full_name,
            "group": student.group_label,
            "average": round(exact[student.id], 2),
            "entries": len(scores),
        })

    # compare before rounding: 4.996 is low even though it displays as 5.0
    low = [row for row in rows if exact[row["student_id"]] < threshold]
    ranking = sorted(rows, key=lambda row: exact[row["student_id"]], reverse=True)
    return {
        "start": start,
        "end": end,
        "students": rows,
        "low_participation": low,
        "ranking": [
            {**row, "position": position} for position, row in enumerate(ranking, start=1)
        ],
    }


def group_participation_averages(students, entries, start: date, end: date) -> List[dict]:
    groups = OrderedDict()
    for student in students:
        groups.setdefault(student.group_label, set()).add(student.id)

    result = []
    for group, student_ids in groups.items():
        scores = [
            clamp_score(e.score) for e in entries
            if e.student_id in student_ids and e.evaluation_type == PARTICIPATION
            and in_window(e.created_at, start, end)
        ]
        result.append({"group": group, "average": mean(scores) or 0.0})
    return result


# Reports

def subject_period_averages(entries, subject: Optional[str] = None) -> List[dict]:
    """Plain mean of the recorded evaluation types per subject and period."""
    grouped = OrderedDict()
    for entry in entries:
        if subject and entry.subject != subject:
            continue
        key = (entry.subject, entry.period)
        bucket = grouped.setdefault(key, {"scores": {}, "comments": []})
        bucket["scores"][entry.evaluation_type] = clamp_score(entry.score)
        if entry.comment:
            bucket["comments"].append(entry.comment)

    return [
        {
            "subject": subject_name,
            "period": period,
            "average": mean(bucket["scores"].values()),
            "comments": bucket["comments"],
        }
        for (subject_name, period), bucket in grouped.items()
    ]


def group_performance(students, entries) -> dict:
    """Averages of non-participation scores by group, by subject, and subject by group."""
    group_of = {s.id: s.group_label for s in students}
    graded = [e for e in entries if e.evaluation_type != PARTICIPATION and e.student_id in group_of]

    groups = list(OrderedDict.fromkeys(s.group_label for s in students))
    subjects = list(OrderedDict.fromkeys(e.subject for e in graded))

    by_group = [
        {"group": g, "average": mean(clamp_score(e.score) for e in graded if group_of[e.student_id] == g)}
        for g in groups
    ]
    by_subject = [
        {"subject": s, "average": mean(clamp_score(e.score) for e in graded if e.subject == s)}
        for s in subjects
    ]
    comparison = [
        {
            "group": g,
            "averages": {
                s: mean(
                    clamp_score(e.score) for e in graded
                    if group_of[e.student_id] == g and e.subject == s
                ) or 0.0
                for s in subjects
            },
        }
        for g in groups
    ]
    return {"by_group": by_group, "by_subject": by_subject, "comparison": comparison}


def report_card(entries, period: Optional[str] = None) -> dict:
    """
    Mean score per evaluation type.

    With a period only that period counts; without one every period counts
    and the final average is the mean of the per-criterion means.
    """
    selected = [e for e in entries if period is None or e.period == period]
    per_criterion = OrderedDict()
    for entry in selected:
        per_criterion.setdefault(entry.evaluation_type, []).append(clamp_score(entry.score))

    criteria = [
        {"criterion": criterion, "average": mean(scores)}
        for criterion, scores in per_criterion.items()
    ]
    final_average = mean(c["average"] for c in criteria) if criteria else 0.0
    return {
        "period": period or "Full year",
        "criteria": criteria,
        "final_average": final_average,
    }
