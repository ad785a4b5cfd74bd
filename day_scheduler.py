"""
day_scheduler.py — Gantt day distribution for resolved activities.

Each activity's weekly total is spread evenly across the days an operator
ticks in the Gantt grid. The grid is a "day map": {activity_key: {day, ...}}
with Monday = 0. It lives in memory while the operator edits and is saved
as a whole: the stored set for (phases, week, domain) is replaced, never
merged, so saving the same map twice is a no-op and the last save wins.

Conservation: for any activity with at least one day ticked, the per-day
quantities add back up to its total. An activity with no days contributes
nothing to the day columns but still counts in the grand total.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Set

from activity_resolver import parse_activity_key
from models import ScheduleEntry
from utils.validators import ValidationError, parse_day
from utils.weeks import DAYS_PER_WEEK, to_date


@dataclass
class ScheduleGrid:
    """Gantt grid for one week: per-activity rows plus day column totals."""
    rows: List[dict] = field(default_factory=list)
    day_totals: List[float] = field(default_factory=lambda: [0.0] * DAYS_PER_WEEK)
    grand_total: float = 0.0
    scheduled_total: float = 0.0
    unscheduled: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'rows': self.rows,
            'day_totals': self.day_totals,
            'grand_total': self.grand_total,
            'scheduled_total': self.scheduled_total,
            'unscheduled': self.unscheduled,
        }


def per_day_quantity(activity, scheduled_days):
    """Even share of the activity total per scheduled day; 0 when none are ticked."""
    count = len(scheduled_days or ())
    if count == 0:
        return 0.0
    return activity.total_quantity / max(1, count)


def toggle_day(day_map, key, day, action='toggle'):
    """
    Add, remove or flip one day for an activity.

    Returns a new day map; the sets of the input map are not modified.
    """
    day = parse_day(day)
    updated = {k: set(v) for k, v in day_map.items()}
    days = updated.setdefault(key, set())
    if action == 'add':
        days.add(day)
    elif action == 'remove':
        days.discard(day)
    elif action == 'toggle':
        if day in days:
            days.discard(day)
        else:
            days.add(day)
    else:
        raise ValidationError(f"Unknown toggle action: {action!r}")
    return updated


def day_totals(activities, day_map):
    """Sum of per-day quantities in each of the seven day columns."""
    totals = [0.0] * DAYS_PER_WEEK
    for activity in activities:
        days = day_map.get(activity.key) or set()
        share = per_day_quantity(activity, days)
        for day in days:
            totals[day] += share
    return totals


def grand_total(activities):
    """Total expected quantity, independent of how days were chosen."""
    return sum(a.total_quantity for a in activities)


def distribute(activities, day_map):
    """Build the Gantt grid for a list of activities and a day map."""
    grid = ScheduleGrid()
    for activity in activities:
        days = sorted(day_map.get(activity.key) or ())
        share = per_day_quantity(activity, days)
        cells = [share if d in days else 0.0 for d in range(DAYS_PER_WEEK)]
        grid.rows.append({
            'key': activity.key,
            'label': activity.label,
            'phase_id': activity.phase_id,
            'procedure_entry_id': activity.procedure_entry_id,
            'crop_code': activity.crop_code,
            'total_quantity': activity.total_quantity,
            'unit': activity.unit,
            'is_added': activity.is_added,
            'days': days,
            'per_day': share,
            'cells': cells,
        })
        if days:
            grid.scheduled_total += activity.total_quantity
        else:
            grid.unscheduled.append(activity.key)
    grid.day_totals = day_totals(activities, day_map)
    grid.grand_total = grand_total(activities)
    return grid


def day_map_from_entries(entries) -> Dict[str, Set[int]]:
    """Group stored schedule rows into a day map."""
    day_map = {}
    for entry in entries:
        day_map.setdefault(entry.key, set()).add(entry.day_of_week)
    return day_map


def entries_from_day_map(day_map, week_start, domain, allowed_keys=None):
    """
    Flatten a day map into schedule rows for the replace-on-save write.

    Keys not in `allowed_keys` (when given) are dropped; empty day sets
    produce no rows.

    Returns:
        (entries, dropped_keys)
    """
    week_start = to_date(week_start)
    entries = []
    dropped = []
    for key in sorted(day_map):
        days = day_map[key]
        if allowed_keys is not None and key not in allowed_keys:
            if days:
                dropped.append(key)
            continue
        phase_id, entry_id = parse_activity_key(key)
        for day in sorted(days):
            entries.append(ScheduleEntry(
                phase_id=phase_id,
                procedure_entry_id=entry_id,
                domain=domain,
                week_start=week_start,
                day_of_week=day,
            ))
    return entries, dropped


def parse_day_map(raw, field_name='dayMap'):
    """
    Validate a JSON day map ({"3-12": [0, 2]}) into {key: set(days)}.

    Raises:
        ValidationError: not an object, malformed key or a day outside 0..6.
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError(f"{field_name} must be an object of activity keys to day lists")
    day_map = {}
    for key, days in raw.items():
        try:
            phase_id, entry_id = parse_activity_key(key)
        except ValueError:
            raise ValidationError(f"{field_name} has a malformed activity key: {key!r}") from None
        if not isinstance(days, (list, tuple, set)):
            raise ValidationError(f"{field_name}[{key}] must be a list of days")
        day_map[f"{phase_id}-{entry_id}"] = {parse_day(d, f"{field_name}[{key}]") for d in days}
    return day_map


def serialize_day_map(day_map):
    """JSON form of a day map: sorted day lists, empty activities omitted."""
    return {key: sorted(days) for key, days in sorted(day_map.items()) if days}
