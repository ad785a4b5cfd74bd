"""
compliance.py — Compare field records against the scheduled SOP activities.

Day classification for a scheduled activity-day (Monday = day 0):
- a matching field record exists on that date   -> done
- no record and the date is before today        -> missed
- no record and the date is today               -> pending
- the date is after today                       -> upcoming
Days without a schedule entry get no status and stay out of every
denominator.

Compliance rate = done / (done + missed) x 100, halves rounded up; None when nothing
is countable yet.

Variance (feeding): (actual - expected) / expected x 100, defined as 0 when
nothing was expected. Score = max(0, 100 - |variance|).
Tiers: score >= 95 green, >= 80 yellow, else red. Budget utilization uses
the same thresholds inverted: >= 100% red (over budget), >= 80% yellow.
"""

import math
from collections import OrderedDict
from datetime import timedelta

from catalog import get_domain
from models import ComplianceEntry
from utils.activity_matcher import normalize
from utils.weeks import to_date, week_end

STATUSES = ('done', 'missed', 'pending', 'upcoming')

GREEN_THRESHOLD = 95
YELLOW_THRESHOLD = 80
OVER_BUDGET_THRESHOLD = 100

DEFAULT_VARIANCE_TOLERANCE = 5.0


# ========================================
# Classification
# ========================================

def classify(day, today, scheduled=True, has_record=False):
    """
    Status of one activity-day.

    Args:
        day: calendar date of the scheduled day
        today: the evaluation date
        scheduled: whether a schedule entry exists for that day
        has_record: whether a matching field record exists on that day

    Returns:
        'done' | 'missed' | 'pending' | 'upcoming', or None when unscheduled.
    """
    if not scheduled:
        return None
    if has_record:
        return 'done'
    day = to_date(day)
    today = to_date(today)
    if day < today:
        return 'missed'
    if day == today:
        return 'pending'
    return 'upcoming'


def compliance_rate(done, missed):
    """Rounded done share of past activity-days; None when there are none."""
    countable = done + missed
    if countable == 0:
        return None
    # halves round up: 1 of 8 is 13, not 12
    return int(math.floor(done / countable * 100 + 0.5))


def _record_index(records, record_type, start, end):
    index = {}
    for record in records:
        if record.record_type != record_type:
            continue
        if record.date < start or record.date > end:
            continue
        index.setdefault((record.phase_id, record.date), []).append(record)
    return index


def evaluate(activities, day_map, records, week_start, today, domain='labor'):
    """
    Classify every scheduled day of every activity.

    Activities without scheduled days produce no entries. Schedule keys that
    no longer resolve to an activity are ignored.

    Returns:
        list of ComplianceEntry, ordered by activity then day.
    """
    domain = get_domain(domain) if isinstance(domain, str) else domain
    week_start = to_date(week_start)
    index = _record_index(records, domain.record_type, week_start, week_end(week_start))

    entries = []
    for activity in activities:
        for day in sorted(day_map.get(activity.key) or ()):
            day_date = week_start + timedelta(days=day)
            candidates = index.get((activity.phase_id, day_date), ())
            has_record = any(domain.record_matcher(r.product_or_task, activity.task) for r in candidates)
            entries.append(ComplianceEntry(
                domain=domain.name,
                phase_id=activity.phase_id,
                procedure_entry_id=activity.procedure_entry_id,
                task=activity.task,
                day_of_week=day,
                date=day_date,
                status=classify(day_date, today, True, has_record),
                phase_label=activity.phase_label,
                farm=activity.farm,
            ))
    return entries


def summarize(entries):
    """Counts per status and the compliance rate."""
    counts = {status: 0 for status in STATUSES}
    for entry in entries:
        status = entry.status if isinstance(entry, ComplianceEntry) else entry['status']
        if status in counts:
            counts[status] += 1
    summary = {'total': sum(counts.values())}
    summary.update(counts)
    summary['compliance_rate'] = compliance_rate(counts['done'], counts['missed'])
    return summary


# ========================================
# Variance & tiers
# ========================================

def variance_pct(actual, expected):
    """Percent deviation of actual from expected; 0 when nothing was expected."""
    if expected <= 0:
        return 0.0
    return (actual - expected) / expected * 100


def compliance_score(variance):
    return max(0.0, 100 - abs(variance))


def score_tier(score):
    """green >= 95, yellow >= 80, red otherwise; None for a missing score."""
    if score is None:
        return None
    if score >= GREEN_THRESHOLD:
        return 'green'
    if score >= YELLOW_THRESHOLD:
        return 'yellow'
    return 'red'


def utilization_tier(pct):
    """Budget utilization: >= 100% red, >= 80% yellow, else green."""
    if pct is None:
        return None
    if pct >= OVER_BUDGET_THRESHOLD:
        return 'red'
    if pct >= YELLOW_THRESHOLD:
        return 'yellow'
    return 'green'


def variance_direction(variance, tolerance=DEFAULT_VARIANCE_TOLERANCE):
    if variance > tolerance:
        return 'over'
    if variance < -tolerance:
        return 'under'
    return 'ok'


def _records_in_week(records, record_type, week_start):
    start = to_date(week_start)
    end = week_end(start)
    return [r for r in records if r.record_type == record_type and start <= r.date <= end]


def feeding_variance(activities, records, phases, week_start, tolerance=DEFAULT_VARIANCE_TOLERANCE):
    """
    Expected vs applied nutrition per (phase, product) for one week.

    Products applied without any SOP expectation are reported with status
    'unplanned', a variance of 0 and no score, and stay out of the average.
    Planned products with no feeding record count as fully under-applied.

    Args:
        activities: resolved nutri activities for the week
        records: field records (non-feeding and out-of-week rows are ignored)
        phases: iterable of Phase, used for the per-hectare rates
        week_start: Monday of the week
        tolerance: +/- variance percent still reported as 'ok'

    Returns:
        dict with 'entries' and 'summary'.
    """
    areas = {p.id: p.area_ha for p in phases}
    rows = OrderedDict()

    for activity in activities:
        key = (activity.phase_id, normalize(activity.task))
        row = rows.get(key)
        if row is None:
            row = rows[key] = {
                'phase_id': activity.phase_id,
                'phase_label': activity.phase_label,
                'crop_code': activity.crop_code,
                'farm': activity.farm,
                'product': activity.task,
                'expected_qty': 0.0,
                'actual_qty': 0.0,
                'records': 0,
            }
        row['expected_qty'] += activity.total_quantity

    for record in _records_in_week(records, 'feeding', week_start):
        key = (record.phase_id, normalize(record.product_or_task))
        row = rows.get(key)
        if row is None:
            row = rows[key] = {
                'phase_id': record.phase_id,
                'phase_label': '',
                'crop_code': '',
                'farm': '',
                'product': record.product_or_task,
                'expected_qty': 0.0,
                'actual_qty': 0.0,
                'records': 0,
            }
        row['actual_qty'] += record.actual_quantity
        row['records'] += 1

    entries = []
    scores = []
    for row in rows.values():
        area = areas.get(row['phase_id'], 0.0)
        planned = row['expected_qty'] > 0
        variance = variance_pct(row['actual_qty'], row['expected_qty'])
        score = compliance_score(variance) if planned else None
        row.update({
            'status': 'planned' if planned else 'unplanned',
            'expected_rate_ha': row['expected_qty'] / area if area > 0 else 0.0,
            'actual_rate_ha': row['actual_qty'] / area if area > 0 else 0.0,
            'variance': variance,
            'compliance_score': score,
            'tier': score_tier(score),
            'direction': variance_direction(variance, tolerance) if planned else None,
        })
        if score is not None:
            scores.append(score)
        entries.append(row)

    average = sum(scores) / len(scores) if scores else None
    summary = {
        'expected_products': sum(1 for e in entries if e['status'] == 'planned'),
        'recorded_products': sum(1 for e in entries if e['records'] > 0),
        'unplanned_products': sum(1 for e in entries if e['status'] == 'unplanned'),
        'average_score': average,
        'tier': score_tier(average),
    }
    return {'entries': entries, 'summary': summary}


def budget_utilization(actual, budget):
    """Percent of the budget used; None when there is no budget."""
    if budget <= 0:
        return None
    return actual / budget * 100


def labor_budget(activities, records, week_start):
    """
    Weekly labor budget vs actual spend, per phase and in total.

    The budget is the SOP mandays x cost/day of the resolved activities;
    the actuals are the labor logs of the week (mandays and cost).
    """
    per_phase = OrderedDict()

    def _row(phase_id, activity=None):
        row = per_phase.get(phase_id)
        if row is None:
            row = per_phase[phase_id] = {
                'phase_id': phase_id,
                'phase_label': activity.phase_label if activity else '',
                'farm': activity.farm if activity else '',
                'expected_mandays': 0.0,
                'budget_cost': 0.0,
                'actual_mandays': 0.0,
                'actual_cost': 0.0,
            }
        return row

    for activity in activities:
        row = _row(activity.phase_id, activity)
        row['expected_mandays'] += activity.total_quantity
        row['budget_cost'] += activity.cost

    for record in _records_in_week(records, 'labor', week_start):
        row = _row(record.phase_id)
        row['actual_mandays'] += record.actual_quantity
        row['actual_cost'] += record.cost

    totals = {'expected_mandays': 0.0, 'budget_cost': 0.0, 'actual_mandays': 0.0, 'actual_cost': 0.0}
    phases = []
    for row in per_phase.values():
        for name in totals:
            totals[name] += row[name]
        _add_utilization(row)
        phases.append(row)
    _add_utilization(totals)
    return {'phases': phases, 'totals': totals}


def _add_utilization(row):
    row['utilization_pct'] = budget_utilization(row['actual_cost'], row['budget_cost'])
    row['manday_utilization_pct'] = budget_utilization(row['actual_mandays'], row['expected_mandays'])
    pct = row['utilization_pct']
    if pct is None:
        pct = row['manday_utilization_pct']
    row['tier'] = utilization_tier(pct)


def harvest_performance(weeks, records):
    """
    Pledged (scheduled harvest) vs actual kg over one or more weeks.

    Only harvest activities with at least one scheduled day count as
    pledged. Fulfilment is 0 when nothing was pledged. Each phase row
    carries a per-week breakdown covering every week of the window.

    Args:
        weeks: list of (week_start, activities, day_map), oldest first
        records: field records (non-harvest and out-of-window rows are ignored)

    Returns:
        dict with 'weeks', 'phases' and 'totals'.
    """
    mondays = [to_date(monday) for monday, _, _ in weeks]
    per_phase = OrderedDict()

    def _row(phase_id, activity=None):
        row = per_phase.get(phase_id)
        if row is None:
            row = per_phase[phase_id] = {
                'phase_id': phase_id,
                'phase_label': activity.phase_label if activity else '',
                'crop_code': activity.crop_code if activity else '',
                'farm': activity.farm if activity else '',
                'pledge_kg': 0.0,
                'actual_kg': 0.0,
                'harvest_dates': set(),
                'weekly': OrderedDict((m, {'pledge_kg': 0.0, 'actual_kg': 0.0}) for m in mondays),
            }
        elif activity is not None and not row['phase_label']:
            row.update(phase_label=activity.phase_label, crop_code=activity.crop_code,
                       farm=activity.farm)
        return row

    for monday, activities, day_map in weeks:
        monday = to_date(monday)
        for activity in activities:
            row = _row(activity.phase_id, activity)
            if day_map.get(activity.key):
                row['pledge_kg'] += activity.total_quantity
                row['weekly'][monday]['pledge_kg'] += activity.total_quantity

    for monday in mondays:
        for record in _records_in_week(records, 'harvest', monday):
            row = _row(record.phase_id)
            row['actual_kg'] += record.actual_quantity
            row['weekly'][monday]['actual_kg'] += record.actual_quantity
            row['harvest_dates'].add(record.date)

    phases = []
    totals = {'pledge_kg': 0.0, 'actual_kg': 0.0}
    for row in per_phase.values():
        dates = row.pop('harvest_dates')
        weekly = row.pop('weekly')
        row['days_harvested'] = len(dates)
        row['variance'] = variance_pct(row['actual_kg'], row['pledge_kg'])
        row['fulfillment_rate'] = fulfillment_rate(row['actual_kg'], row['pledge_kg'])
        row['weekly_breakdown'] = [
            {
                'week_start': monday.isoformat(),
                'pledge_kg': week['pledge_kg'],
                'actual_kg': week['actual_kg'],
                'variance': variance_pct(week['actual_kg'], week['pledge_kg']),
            }
            for monday, week in weekly.items()
        ]
        totals['pledge_kg'] += row['pledge_kg']
        totals['actual_kg'] += row['actual_kg']
        phases.append(row)

    totals['variance'] = variance_pct(totals['actual_kg'], totals['pledge_kg'])
    totals['fulfillment_rate'] = fulfillment_rate(totals['actual_kg'], totals['pledge_kg'])
    return {'weeks': [m.isoformat() for m in mondays], 'phases': phases, 'totals': totals}


def fulfillment_rate(actual, pledged):
    return actual / pledged * 100 if pledged > 0 else 0.0
