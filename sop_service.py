"""
sop_service.py — Operations exposed to the routes.

Every operation loads the store snapshot it needs once (phases, catalog,
overrides, schedule, records), then hands typed values to the pure engine
modules: activity_resolver, day_scheduler, compliance and forecast.

Provides:
- Phase / catalog listing and farm scope helpers
- Activity resolution and per-week overrides
- Gantt schedule grid, day toggling and replace-on-save
- Compliance (all domains), feeding variance, labor budget, harvest performance
- Harvest forecast per phase and the farm -> crop overview
- Field record logging
- Compliance snapshots saved as JSON
"""

import logging
from datetime import date, timedelta

import database as db
from activity_resolver import activity_key, available_additions, parse_activity_key, resolve_many
from catalog import DOMAINS, ProcedureCatalog, get_domain
from compliance import (
    DEFAULT_VARIANCE_TOLERANCE, evaluate, feeding_variance, harvest_performance,
    labor_budget, summarize
)
from day_scheduler import (
    day_map_from_entries, distribute, entries_from_day_map, serialize_day_map, toggle_day
)
from forecast import aggregate, project_weekly_tons
from models import FieldRecord, KeyInput, Override, Phase, ProcedureEntry, ScheduleEntry
from utils import snapshots
from utils.validators import (
    ValidationError, parse_date, parse_domain, parse_id_list, parse_int, parse_non_negative,
    parse_week_start
)
from utils.weeks import (
    DAY_LABELS, format_week, forecast_mondays, monday_of, week_days, week_end, week_label
)

logger = logging.getLogger(__name__)

DEFAULT_FORECAST_WEEKS = 8
MAX_FORECAST_WEEKS = 52
MAX_HARVEST_LOOKBACK = 12


class NotFoundError(LookupError):
    """A phase, SOP entry or record referenced by the caller does not exist."""


# ========================================
# Snapshot loading
# ========================================

def _load_phases(phase_ids):
    """Phases in the caller's order; raises NotFoundError for unknown ids."""
    rows = db.get_phases(phase_ids, include_archived=True)
    by_id = {row['id']: Phase.from_row(row) for row in rows}
    missing = [pid for pid in phase_ids if pid not in by_id]
    if missing:
        raise NotFoundError(f"Unknown phase id(s): {', '.join(str(m) for m in missing)}")
    return [by_id[pid] for pid in phase_ids]


def _load_key_inputs():
    return [KeyInput.from_row(row) for row in db.get_key_inputs()]


def _load_catalog(key_inputs=None):
    if key_inputs is None:
        key_inputs = _load_key_inputs()
    entries = [ProcedureEntry.from_row(row) for row in db.get_procedure_entries()]
    return ProcedureCatalog.build(entries, key_inputs)


def _load_overrides(phase_ids, week_start, domain=None):
    return [Override.from_row(row) for row in db.get_overrides(phase_ids, week_start, domain)]


def _load_day_map(phase_ids, week_start, domain):
    rows = db.get_schedule_entries(phase_ids, week_start, domain)
    return day_map_from_entries(ScheduleEntry.from_row(row) for row in rows)


def _load_records(phase_ids, week_start, record_type=None):
    rows = db.get_field_records(phase_ids, week_start, week_end(week_start), record_type)
    return [FieldRecord.from_row(row) for row in rows]


def _resolve_week(phases, week_start, domain, catalog=None):
    """Resolved activities of several phases for one week and domain."""
    domain = get_domain(parse_domain(domain))
    if catalog is None:
        catalog = _load_catalog()
    overrides = _load_overrides([p.id for p in phases], week_start, domain.name) \
        if domain.allows_overrides else []
    labor_rates = db.get_labor_rates() if domain.name == 'labor' else None
    return resolve_many(phases, week_start, catalog, overrides, domain, labor_rates=labor_rates)


def _float_setting(key, default):
    value = db.get_setting(key)
    if value is None:
        return default
    try:
        return parse_non_negative(value, key)
    except ValidationError:
        logger.warning("Setting %s has an invalid value %r, using %s", key, value, default)
        return default


def _week_columns(week_start):
    return [
        {'day': i, 'label': DAY_LABELS[i], 'date': format_week(d)}
        for i, d in enumerate(week_days(week_start))
    ]


# ========================================
# Phases & catalog
# ========================================

def list_phases(farm=None):
    return [Phase.from_row(row) for row in db.get_phases(farm=farm)]


def archive_phase(phase_id):
    """Archive a phase; its logs stay, it leaves every farm scope."""
    _load_phases([phase_id])
    db.archive_phase(phase_id)
    logger.info("Archived phase %s", phase_id)


def phase_ids_for_farm(farm):
    """Ids of the active phases of one farm (empty farm means all farms)."""
    return [row['id'] for row in db.get_phases(farm=farm or None)]


def scope_phase_ids(phase_ids=None, farm=None):
    """
    Phase ids a request works on: an explicit id list, else every active
    phase of `farm`.

    Raises:
        ValidationError: neither ids nor a farm were given.
    """
    if phase_ids not in (None, '', []):
        return parse_id_list(phase_ids)
    if farm:
        return phase_ids_for_farm(farm)
    raise ValidationError("phaseIds or farm is required")


def list_catalog(domain, crop_code=None):
    domain = parse_domain(domain)
    catalog = _load_catalog()
    if crop_code:
        return catalog.for_crop(crop_code, domain)
    return catalog.entries(domain)


# ========================================
# Activities & overrides
# ========================================

def resolve_activities(phase_id, week_start, domain='labor'):
    """Resolve one phase's activities for the week starting `week_start`."""
    week_start = parse_week_start(week_start)
    phase = _load_phases([phase_id])[0]
    return _resolve_week([phase], week_start, domain)


def resolve_week(phase_ids, week_start, domain='labor'):
    """
    Activities of several phases plus the SOP entries still addable per phase.

    Returns:
        dict with 'activities' (list of ResolvedActivity) and 'additions'.
    """
    week_start = parse_week_start(week_start)
    domain = parse_domain(domain)
    phases = _load_phases(phase_ids)
    catalog = _load_catalog()
    activities = _resolve_week(phases, week_start, domain, catalog)
    additions = []
    for phase in phases:
        additions.extend(available_additions(phase, catalog, activities, domain))
    return {'activities': activities, 'additions': additions}


def list_overrides(phase_ids, week_start, domain=None):
    week_start = parse_week_start(week_start)
    domain = parse_domain(domain) if domain else None
    return _load_overrides(phase_ids, week_start, domain)


def set_override(phase_id, procedure_entry_id, domain, action, week_start):
    """
    Add or remove one SOP entry for a phase in one week (last write wins).

    Raises:
        ValidationError: harvest domain, bad action or week.
        NotFoundError: unknown phase or SOP entry.
    """
    domain = parse_domain(domain)
    if not get_domain(domain).allows_overrides:
        raise ValidationError(f"Overrides are not supported for the {domain} domain")
    week_start = parse_week_start(week_start)
    _load_phases([phase_id])
    if _load_catalog(key_inputs=()).get(procedure_entry_id, domain) is None:
        raise NotFoundError(f"Unknown {domain} SOP entry: {procedure_entry_id}")

    row = db.upsert_override(phase_id, procedure_entry_id, domain, action, week_start)
    override = Override.from_row(row)
    logger.info("Override %s %s SOP %s for phase %s, week %s",
                override.action, domain, procedure_entry_id, phase_id, week_start)
    return override


def clear_override(phase_id, procedure_entry_id, domain, week_start):
    """Remove an override; returns False when none existed."""
    return db.delete_override(phase_id, procedure_entry_id, parse_domain(domain),
                              parse_week_start(week_start))


# ========================================
# Gantt schedule
# ========================================

def get_day_map(phase_ids, week_start, domain='labor'):
    return _load_day_map(phase_ids, parse_week_start(week_start), parse_domain(domain))


def toggle_schedule_day(phase_id, procedure_entry_id, week_start, day, action='toggle',
                        domain='labor', day_map=None):
    """
    Flip one day of one activity in a day map.

    When `day_map` is None the stored schedule of the phase is the starting
    point. Nothing is persisted: the caller saves the whole map.
    """
    week_start = parse_week_start(week_start)
    domain = parse_domain(domain)
    if day_map is None:
        day_map = _load_day_map([phase_id], week_start, domain)
    return toggle_day(day_map, activity_key(phase_id, procedure_entry_id), day, action)


def save_schedule(phase_ids, week_start, day_map, domain='labor'):
    """
    Replace the stored schedule of (phases, week, domain) with `day_map`.

    Keys whose activity no longer resolves (SOP changed, override removed)
    are dropped. Saving the same map twice leaves the store unchanged.

    Returns:
        number of schedule rows written.

    Raises:
        ValidationError: a key belongs to a phase outside `phase_ids`.
    """
    week_start = parse_week_start(week_start)
    domain = parse_domain(domain)
    scope = set(phase_ids)
    for key in day_map:
        try:
            phase_id, _ = parse_activity_key(key)
        except ValueError:
            raise ValidationError(f"Invalid schedule key: {key!r}")
        if phase_id not in scope:
            raise ValidationError(f"Schedule key {key} is outside the selected phases")

    phases = _load_phases(phase_ids)
    activities = _resolve_week(phases, week_start, domain)
    entries, dropped = entries_from_day_map(
        day_map, week_start, domain, allowed_keys={a.key for a in activities}
    )
    if dropped:
        logger.warning("Dropping %d %s schedule key(s) with no activity in week %s: %s",
                       len(dropped), domain, week_start, ', '.join(dropped))

    written = db.replace_schedule(phase_ids, week_start, domain, entries)
    logger.info("Saved %s schedule for week %s: %d row(s), %d phase(s)",
                domain, week_start, written, len(phase_ids))
    return written


def get_schedule_grid(phase_ids, week_start, domain='labor', day_map=None):
    """Gantt grid (rows, day columns, totals) for the stored or given day map."""
    week_start = parse_week_start(week_start)
    domain = parse_domain(domain)
    phases = _load_phases(phase_ids)
    activities = _resolve_week(phases, week_start, domain)
    if day_map is None:
        day_map = _load_day_map(phase_ids, week_start, domain)

    grid = distribute(activities, day_map).to_dict()
    grid.update({
        'domain': domain,
        'unit': get_domain(domain).unit,
        'week_start': format_week(week_start),
        'week_label': week_label(week_start),
        'days': _week_columns(week_start),
        'day_map': serialize_day_map(day_map),
    })
    return grid


# ========================================
# Compliance
# ========================================

def evaluate_compliance(phase_ids, week_start, today=None):
    """
    Classify every scheduled activity-day of every domain.

    Returns:
        dict with 'entries', an overall 'summary' and one summary per domain.
    """
    week_start = parse_week_start(week_start)
    today = parse_date(today, 'today') if today is not None else date.today()
    phases = _load_phases(phase_ids)
    catalog = _load_catalog()
    records = _load_records(phase_ids, week_start)

    entries = []
    by_domain = {}
    for name in DOMAINS:
        activities = _resolve_week(phases, week_start, name, catalog)
        day_map = _load_day_map(phase_ids, week_start, name)
        domain_entries = evaluate(activities, day_map, records, week_start, today, name)
        by_domain[name] = summarize(domain_entries)
        entries.extend(domain_entries)

    return {
        'week_start': format_week(week_start),
        'today': today.isoformat(),
        'entries': [e.to_dict() for e in entries],
        'summary': summarize(entries),
        'domains': by_domain,
    }


def evaluate_feeding(phase_ids, week_start, tolerance=None):
    """Expected vs applied nutrition per phase and product for one week."""
    week_start = parse_week_start(week_start)
    if tolerance is None:
        tolerance = _float_setting('variance_tolerance_pct', DEFAULT_VARIANCE_TOLERANCE)
    phases = _load_phases(phase_ids)
    activities = _resolve_week(phases, week_start, 'nutri')
    records = _load_records(phase_ids, week_start, 'feeding')
    result = feeding_variance(activities, records, phases, week_start, tolerance)
    result['week_start'] = format_week(week_start)
    result['tolerance'] = tolerance
    return result


def evaluate_labor_budget(phase_ids, week_start):
    """Labor budget (SOP mandays x rate) vs logged labor for one week."""
    week_start = parse_week_start(week_start)
    phases = _load_phases(phase_ids)
    activities = _resolve_week(phases, week_start, 'labor')
    records = _load_records(phase_ids, week_start, 'labor')
    result = labor_budget(activities, records, week_start)
    result['week_start'] = format_week(week_start)
    return result


def evaluate_harvest_performance(phase_ids, week_start, lookback_weeks=1):
    """
    Scheduled harvest pledges vs harvested kg over the `lookback_weeks`
    weeks ending with `week_start` (clamped to 1..12).
    """
    week_start = parse_week_start(week_start)
    lookback_weeks = min(MAX_HARVEST_LOOKBACK,
                         max(1, parse_int(lookback_weeks, 'lookbackWeeks', default=1)))
    mondays = [week_start - timedelta(weeks=i) for i in reversed(range(lookback_weeks))]
    phases = _load_phases(phase_ids)
    catalog = _load_catalog()

    weeks = []
    for monday in mondays:
        activities = _resolve_week(phases, monday, 'harvest', catalog)
        weeks.append((monday, activities, _load_day_map(phase_ids, monday, 'harvest')))
    rows = db.get_field_records(phase_ids, mondays[0], week_end(week_start), 'harvest')
    records = [FieldRecord.from_row(row) for row in rows]

    result = harvest_performance(weeks, records)
    result['week_start'] = format_week(week_start)
    result['lookback_weeks'] = lookback_weeks
    return result


def save_compliance_snapshot(phase_ids, week_start, today=None):
    """Evaluate compliance and write it to the snapshot directory."""
    result = evaluate_compliance(phase_ids, week_start, today)
    result['phase_ids'] = list(phase_ids)
    filename = snapshots.save_snapshot(result, result['week_start'])
    logger.info("Saved compliance snapshot %s", filename)
    return filename


def load_compliance_snapshot(week_start):
    """Stored compliance snapshot of a week, or None."""
    return snapshots.load_snapshot(format_week(parse_week_start(week_start)))


# ========================================
# Forecast
# ========================================

def _forecast_window(start_monday, number_of_weeks):
    if number_of_weeks is None:
        number_of_weeks = int(_float_setting('forecast_weeks', DEFAULT_FORECAST_WEEKS))
    number_of_weeks = parse_int(number_of_weeks, 'weeks', minimum=1, maximum=MAX_FORECAST_WEEKS)
    if start_monday is None:
        start_monday = monday_of(date.today())
    else:
        start_monday = parse_week_start(start_monday)
    return forecast_mondays(start_monday, number_of_weeks)


def project_forecast(phase_id, number_of_weeks=None, start_monday=None):
    """
    Projected harvest tons of one phase for the coming weeks.

    A phase whose crop has no key input projects zero every week.
    """
    mondays = _forecast_window(start_monday, number_of_weeks)
    phase = _load_phases([phase_id])[0]
    key_input = next((ki for ki in _load_key_inputs() if ki.crop_code == phase.crop_code), None)
    if key_input is None:
        weekly = [0.0] * len(mondays)
    else:
        weekly = project_weekly_tons(phase, key_input, mondays)
    return {
        'phase': phase.to_dict(),
        'has_key_input': key_input is not None,
        'weeks': [{'monday': format_week(m), 'label': week_label(m)} for m in mondays],
        'weekly_tons': weekly,
        'total_tons': sum(weekly),
    }


def forecast_overview(start_monday=None, number_of_weeks=None, farm=None):
    """Farm -> crop -> phase forecast hierarchy with weekly totals."""
    mondays = _forecast_window(start_monday, number_of_weeks)
    return aggregate(list_phases(farm), _load_key_inputs(), mondays)


# ========================================
# Field records
# ========================================

def add_field_record(phase_id, record_type, record_date, product_or_task='',
                     actual_quantity=0, cost=0, notes=None):
    _load_phases([phase_id])
    record_id = db.create_field_record(phase_id, record_type, record_date, product_or_task,
                                       actual_quantity, cost, notes)
    return FieldRecord.from_row(db.get_field_record(record_id))


def remove_field_record(record_id):
    if not db.delete_field_record(record_id):
        raise NotFoundError(f"Unknown field record: {record_id}")


def list_field_records(phase_ids, week_start, record_type=None):
    return _load_records(phase_ids, parse_week_start(week_start), record_type)
