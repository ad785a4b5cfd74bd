"""
activity_resolver.py — Resolve SOP templates into a phase's activities for a week.

Algorithm:
1. week offset = weeks since sowing of the selected Monday; a phase that is
   not sown yet (offset < 0) has no activities
2. default set = catalog entries for the phase's crop whose week offset
   matches (harvest rows count their weeks from the harvest start instead
   of the sowing date)
3. "remove" overrides for (phase, week, domain) drop default entries
4. "add" overrides pull extra entries in, whatever their own week offset
5. every surviving entry is scaled by the phase area through the domain's
   quantity formula

Output order is stable: default matches in catalog order, then additions in
override order. Everything here is pure: the catalog, overrides and phase
are snapshots passed in by the caller.
"""

import logging
from datetime import timedelta

from catalog import get_domain
from models import ResolvedActivity
from utils.weeks import to_date, weeks_since_sowing

logger = logging.getLogger(__name__)


def activity_key(phase_id, procedure_entry_id):
    """Boundary identity of an activity: "{phase_id}-{procedure_entry_id}"."""
    return f"{phase_id}-{procedure_entry_id}"


def parse_activity_key(key):
    """Inverse of activity_key; raises ValueError for malformed keys."""
    phase_part, sep, entry_part = str(key).partition('-')
    if not sep:
        raise ValueError(f"Malformed activity key: {key!r}")
    return int(phase_part), int(entry_part)


def _entry_offset(entry, phase, week_start, sowing_offset):
    if not entry.start_lag_days:
        return sowing_offset
    anchor = to_date(phase.sowing_date) + timedelta(days=entry.start_lag_days)
    return weeks_since_sowing(anchor, week_start)


def _matching_overrides(phase, week_start, overrides, domain):
    if not domain.allows_overrides:
        return []
    return [
        o for o in overrides
        if o.phase_id == phase.id and o.domain == domain.name and o.week_start == week_start
    ]


def resolve(phase, week_start, catalog, overrides, domain='labor', rate_override=None):
    """
    Resolve the activities of one phase for the week starting `week_start`.

    Args:
        phase: Phase snapshot
        week_start: Monday of the target week
        catalog: ProcedureCatalog
        overrides: iterable of Override (any phase/week; filtered here)
        domain: domain name or Domain descriptor
        rate_override: farm labor rate per manday; replaces the SOP cost/day
            when positive

    Returns:
        list of ResolvedActivity (empty when the phase is not active yet or
        the crop has no catalog data).
    """
    domain = get_domain(domain) if isinstance(domain, str) else domain
    week_start = to_date(week_start)

    sowing_offset = weeks_since_sowing(phase.sowing_date, week_start)
    if sowing_offset < 0:
        return []

    relevant = _matching_overrides(phase, week_start, overrides, domain)
    removed = {o.procedure_entry_id for o in relevant if o.action == 'remove'}

    selected = []
    seen = set()
    for entry in catalog.for_crop(phase.crop_code, domain.name):
        if entry.id in removed or entry.id in seen:
            continue
        if _entry_offset(entry, phase, week_start, sowing_offset) != entry.week_offset:
            continue
        selected.append((entry, False))
        seen.add(entry.id)

    for override in relevant:
        if override.action != 'add' or override.procedure_entry_id in seen:
            continue
        entry = catalog.get(override.procedure_entry_id, domain.name)
        if entry is None:
            logger.info("Skipping add override for unknown %s SOP %s (phase %s, week %s)",
                        domain.name, override.procedure_entry_id, phase.id, week_start)
            continue
        selected.append((entry, True))
        seen.add(entry.id)

    activities = []
    for entry, is_added in selected:
        total = domain.quantity_formula(entry, phase.area_ha)
        activities.append(ResolvedActivity(
            phase_id=phase.id,
            procedure_entry_id=entry.id,
            label=f"{phase.phase_label} W{sowing_offset} - {entry.name}",
            task=entry.name,
            domain=domain.name,
            total_quantity=total,
            unit=domain.unit,
            cost=domain.cost_formula(entry, total, rate_override),
            week_offset=sowing_offset,
            crop_code=phase.crop_code,
            phase_label=phase.phase_label,
            farm=phase.farm,
            is_added=is_added,
        ))
    return activities


def resolve_many(phases, week_start, catalog, overrides, domain='labor', labor_rates=None):
    """Resolve a set of phases, concatenating results in phase order."""
    labor_rates = labor_rates or {}
    activities = []
    for phase in phases:
        activities.extend(resolve(
            phase, week_start, catalog, overrides, domain,
            rate_override=labor_rates.get(phase.farm),
        ))
    return activities


def available_additions(phase, catalog, resolved, domain='labor'):
    """
    SOP entries of the phase's crop that could still be added this week.

    Returns:
        list of dicts: {sop_id, phase_id, label}
    """
    domain = get_domain(domain) if isinstance(domain, str) else domain
    if not domain.allows_overrides:
        return []
    present = {a.procedure_entry_id for a in resolved if a.phase_id == phase.id}
    return [
        {
            'sop_id': entry.id,
            'phase_id': phase.id,
            'label': f"W{entry.week_offset} - {entry.name}",
        }
        for entry in catalog.for_crop(phase.crop_code, domain.name)
        if entry.id not in present
    ]
