"""
tests/test_forecast.py — Harvest tonnage projection and aggregation.
"""

from datetime import date

import pytest

from forecast import aggregate, harvest_entries, harvest_week_index, project_weekly_tons
from models import KeyInput, Phase
from utils.weeks import forecast_mondays


def _key_input(crop='FB', harvest_weeks=2, distribution=(0.5, 0.5), key_id=1):
    weeks = tuple(distribution) + (0.0,) * (16 - len(distribution))
    return KeyInput(id=key_id, crop_code=crop, nursery_days=7, outgrowing_days=7, yield_per_ha=10,
                    harvest_weeks=harvest_weeks, reject_rate=10, week_distribution=weeks)


def _phase(phase_id=1, crop='FB', farm='Farm A', area=2.0):
    return Phase(id=phase_id, crop_code=crop, phase_label=f'{crop}-P{phase_id}',
                 sowing_date=date(2025, 1, 6), farm=farm, area_ha=area)


MONDAYS = forecast_mondays(date(2025, 1, 13), 4)


class TestProjection:

    def test_window_boundaries(self):
        # Harvest starts 2025-01-20; weeks 1-2 are inside the window
        tons = project_weekly_tons(_phase(), _key_input(), MONDAYS)
        assert tons == [0.0, pytest.approx(9.0), pytest.approx(9.0), 0.0]

    def test_zero_harvest_weeks_means_all_slots(self):
        key_input = _key_input(harvest_weeks=0, distribution=(0.25,) * 4)
        tons = project_weekly_tons(_phase(), key_input, MONDAYS)
        assert tons == [0.0, pytest.approx(4.5), pytest.approx(4.5), pytest.approx(4.5)]

    def test_week_index(self):
        assert harvest_week_index(date(2025, 1, 20), date(2025, 1, 13)) == 0
        assert harvest_week_index(date(2025, 1, 20), date(2025, 1, 20)) == 1
        assert harvest_week_index(date(2025, 1, 20), date(2025, 2, 3)) == 3

    def test_harvest_entries(self):
        entries = harvest_entries(_key_input(distribution=(0.5, 0.0, 0.5), harvest_weeks=3))
        assert [e.id for e in entries] == [101, 103]
        assert [e.week_offset for e in entries] == [0, 2]
        assert all(e.start_lag_days == 14 for e in entries)


class TestAggregate:

    def test_farm_crop_hierarchy(self):
        phases = [
            _phase(1, 'FB', 'Farm B'),
            _phase(2, 'FB', 'Farm A', area=1.0),
            _phase(3, 'BR', 'Farm A'),
            _phase(4, 'ZZ', 'Farm A'),
        ]
        key_inputs = [_key_input('FB'), _key_input('BR', key_id=2)]
        result = aggregate(phases, key_inputs, MONDAYS)

        assert [f['farm'] for f in result['farms']] == ['Farm A', 'Farm B']
        farm_a = result['farms'][0]
        assert [c['crop_code'] for c in farm_a['crops']] == ['BR', 'FB']
        assert farm_a['weekly_tons'] == [0.0, pytest.approx(13.5), pytest.approx(13.5), 0.0]
        assert result['grand_total'] == [0.0, pytest.approx(22.5), pytest.approx(22.5), 0.0]
        assert result['weeks'][0] == {'monday': '2025-01-13', 'label': 'W3 (13 Jan)'}

        phase_ids = [p['phase_id'] for f in result['farms'] for c in f['crops'] for p in c['phases']]
        assert 4 not in phase_ids

    def test_no_phases(self):
        result = aggregate([], [], MONDAYS)
        assert result['farms'] == []
        assert result['grand_total'] == [0.0] * 4
