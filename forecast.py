"""
forecast.py — Harvest tonnage projection (IPP forecast).

For every phase, the crop key input gives the harvest start
(sowing + nursery + outgrowing days), the harvest window and a 16-slot
weekly distribution of the yield. A forecast week contributes

    area_ha x yield_per_ha x distribution[week_index] x (1 - reject_rate/100)

where week_index = floor((monday - harvest_start) / 7 days) + 1 and the
week is inside [1, min(harvest_weeks, 16)]. The distribution is not
required to sum to 1. Aggregation is a plain per-week sum up the
phase -> crop -> farm -> grand total hierarchy.
"""

from datetime import timedelta

from models import ProcedureEntry
from utils.weeks import to_date, week_label, format_week

# Harvest SOP ids are derived from the key input id and the slot number
HARVEST_ID_STRIDE = 100


def harvest_week_index(harvest_start, monday):
    """1-based harvest week of `monday` (<= 0 before the harvest starts)."""
    return (to_date(monday) - to_date(harvest_start)).days // 7 + 1


def project_weekly_tons(phase, key_input, forecast_mondays):
    """
    Projected tons per forecast Monday for one phase.

    Args:
        phase: Phase with sowing_date and area_ha
        key_input: KeyInput for the phase's crop
        forecast_mondays: list of Mondays (usually 8)

    Returns:
        list of floats, one per Monday; 0 outside the harvest window.
    """
    harvest_start = to_date(phase.sowing_date) + timedelta(days=key_input.lead_days)
    keep = 1 - key_input.reject_rate / 100.0

    tons = []
    for monday in forecast_mondays:
        index = harvest_week_index(harvest_start, monday)
        if index < 1 or index > key_input.window:
            tons.append(0.0)
            continue
        tons.append(phase.area_ha * key_input.yield_per_ha * key_input.distribution(index) * keep)
    return tons


def harvest_entries(key_input):
    """
    Harvest-domain SOP rows for a crop: one per non-empty slot of the
    harvest window, numbered from the harvest start.
    """
    entries = []
    base_id = (key_input.id or 0) * HARVEST_ID_STRIDE
    for slot in range(1, key_input.window + 1):
        fraction = key_input.distribution(slot)
        if fraction <= 0:
            continue
        entries.append(ProcedureEntry(
            id=base_id + slot,
            domain='harvest',
            crop_code=key_input.crop_code,
            week_offset=slot - 1,
            name=f"Harvest wk{slot}",
            params={
                'yield_per_ha': key_input.yield_per_ha,
                'fraction': fraction,
                'reject_rate': key_input.reject_rate,
            },
            start_lag_days=key_input.lead_days,
        ))
    return entries


def _add_into(totals, values):
    for i, value in enumerate(values):
        totals[i] += value


def aggregate(phases, key_inputs, forecast_mondays):
    """
    Build the farm -> crop -> phase forecast hierarchy.

    Phases whose crop has no key input are skipped. Farms and crops are
    sorted alphabetically; phases keep their input order.

    Returns:
        dict with 'weeks', 'farms' and 'grand_total' (list of tons per week).
    """
    key_input_map = {ki.crop_code: ki for ki in key_inputs}
    n_weeks = len(forecast_mondays)

    by_farm = {}
    for phase in phases:
        key_input = key_input_map.get(phase.crop_code)
        if key_input is None:
            continue
        weekly = project_weekly_tons(phase, key_input, forecast_mondays)
        crops = by_farm.setdefault(phase.farm, {})
        crops.setdefault(phase.crop_code, []).append({
            'phase_id': phase.id,
            'phase_label': phase.phase_label,
            'crop_code': phase.crop_code,
            'farm': phase.farm,
            'area_ha': phase.area_ha,
            'sowing_date': format_week(phase.sowing_date),
            'weekly_tons': weekly,
        })

    grand_total = [0.0] * n_weeks
    farms = []
    for farm_name in sorted(by_farm):
        farm_weekly = [0.0] * n_weeks
        crops = []
        for crop_code in sorted(by_farm[farm_name]):
            crop_phases = by_farm[farm_name][crop_code]
            crop_weekly = [0.0] * n_weeks
            for pf in crop_phases:
                _add_into(crop_weekly, pf['weekly_tons'])
            _add_into(farm_weekly, crop_weekly)
            crops.append({'crop_code': crop_code, 'phases': crop_phases, 'weekly_tons': crop_weekly})
        _add_into(grand_total, farm_weekly)
        farms.append({'farm': farm_name, 'crops': crops, 'weekly_tons': farm_weekly})

    weeks = [{'monday': format_week(m), 'label': week_label(m)} for m in forecast_mondays]
    return {'weeks': weeks, 'farms': farms, 'grand_total': grand_total}

