import logging
from collections import Counter
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence

from app.schemas.form import FieldFunnelStats, FormAnalyticsReport, FormField, VisitorSession

logger = logging.getLogger("app.analytics")


def percent(part: int, total: int) -> Optional[int]:
    """Whole percentage, halves rounded up. None when there is nothing to divide by."""
    if total == 0:
        return None
    value = Decimal(part) * 100 / Decimal(total)
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def conversion_rate(submissions: int, views: int) -> float:
    if views == 0:
        return 0
    return submissions / views * 100


def field_funnel(fields: Sequence[FormField], visitors: Sequence[VisitorSession]) -> List[FieldFunnelStats]:
    """
    Per-field view, continue and dropoff counts

    A visitor's position is the index of its last active field in
    ``fields``; visitors whose field is not in the list never count as
    having continued past anything. Tombstoned fields keep their index but
    get no stats of their own.
    """
    positions: Dict[str, int] = {}
    for i, form_field in enumerate(fields):
        positions.setdefault(str(form_field.id), i)

    stalled: Counter = Counter()
    finished: Counter = Counter()
    reached: Counter = Counter()
    for visitor in visitors:
        if visitor.last_active_field_id is None:
            continue
        field_id = str(visitor.last_active_field_id)
        if visitor.is_submitted:
            finished[field_id] += 1
        else:
            stalled[field_id] += 1
        index = positions.get(field_id)
        if index is not None:
            reached[index] += 1

    # beyond[i]: visitors whose last active field comes after field i
    beyond = [0] * len(fields)
    running = 0
    for i in range(len(fields) - 1, -1, -1):
        beyond[i] = running
        running += reached[i]

    last = len(fields) - 1
    stats = []
    for i, form_field in enumerate(fields):
        if form_field.tombstoned:
            continue
        field_id = str(form_field.id)
        dropoff_views = stalled[field_id]
        if i == last:
            continue_views = finished[field_id]
        else:
            continue_views = beyond[i]
        total_views = dropoff_views + continue_views

        stats.append(FieldFunnelStats(
            index=i,
            field=form_field,
            dropoff_views=dropoff_views,
            continue_views=continue_views,
            responses=continue_views,
            total_views=total_views,
            continue_rate=percent(continue_views, total_views),
            dropoff_rate=percent(dropoff_views, total_views),
        ))
    return stats


def compute_form_analytics(
    fields: Sequence[FormField],
    visitors: Sequence[VisitorSession],
    submission_count: int,
) -> FormAnalyticsReport:
    """Funnel report for a form. Recomputed on every call, nothing is stored."""
    views = len(visitors)
    report = FormAnalyticsReport(
        views=views,
        submissions=submission_count,
        conversion_rate=conversion_rate(submission_count, views),
        fields=field_funnel(fields, visitors),
    )
    logger.debug(
        f"Computed funnel over {len(fields)} field(s) and {views} visitor(s)"
    )
    return report
