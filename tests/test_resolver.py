"""
tests/test_resolver.py — Unit tests for SOP activity resolution.

Tests the pure resolver against an in-memory catalog:
1. Default entries match on weeks since sowing, scaled by area
2. "remove" overrides drop defaults, "add" overrides pull in other weeks
3. Harvest rows count their weeks from the harvest start
4. Output order: catalog order, then additions in override order
"""

from datetime import date

import pytest

from activity_resolver import (
    activity_key, available_additions, parse_activity_key, resolve, resolve_many
)
from catalog import ProcedureCatalog, get_domain
from models import KeyInput, Override, Phase, ProcedureEntry

WEEK = date(2025, 1, 20)


def _labor(entry_id, week, name, workers=1, days=1, cost_per_day=500):
    return ProcedureEntry(
        id=entry_id, domain='labor', crop_code='FB', week_offset=week, name=name,
        params={'workers': workers, 'days': days, 'cost_per_day': cost_per_day},
    )


@pytest.fixture
def phase():
    return Phase(id=7, crop_code='FB', phase_label='FB-P1', sowing_date=date(2025, 1, 6),
                 farm='Farm A', area_ha=2.0)


@pytest.fixture
def key_input():
    return KeyInput(id=1, crop_code='FB', nursery_days=14, outgrowing_days=0, yield_per_ha=10,
                    harvest_weeks=2, reject_rate=10, week_distribution=(0.5, 0.5) + (0.0,) * 14)


@pytest.fixture
def catalog(key_input):
    entries = [
        _labor(1, 2, 'Weeding', workers=4, days=3),
        _labor(2, 3, 'Spraying/Drenching'),
        _labor(3, 2, 'Irrigation', days=0.5),
        ProcedureEntry(id=10, domain='nutri', crop_code='FB', week_offset=2, name='Calcium nitrate',
                       params={'rate_ha': 50, 'unit_price': 2}),
    ]
    return ProcedureCatalog.build(entries, [key_input])


def _override(entry_id, action, week=WEEK, phase_id=7, domain='labor'):
    return Override(phase_id=phase_id, procedure_entry_id=entry_id, domain=domain,
                    action=action, week_start=week)


# ========================================
# Default resolution
# ========================================

class TestDefaultResolution:

    def test_matches_week_offset_and_scales_by_area(self, phase, catalog):
        activities = resolve(phase, WEEK, catalog, [], 'labor')
        assert [a.procedure_entry_id for a in activities] == [1, 3]

        weeding = activities[0]
        assert weeding.total_quantity == 24
        assert weeding.cost == 24 * 500
        assert weeding.label == 'FB-P1 W2 - Weeding'
        assert weeding.key == '7-1'
        assert weeding.unit == 'mandays'
        assert not weeding.is_added

    def test_phase_not_sown_yet(self, phase, catalog):
        assert resolve(phase, date(2024, 12, 30), catalog, [], 'labor') == []

    def test_crop_without_catalog_data(self, phase, catalog):
        phase.crop_code = 'ZZ'
        assert resolve(phase, WEEK, catalog, [], 'labor') == []

    def test_rate_override_replaces_cost_per_day(self, phase, catalog):
        activities = resolve(phase, WEEK, catalog, [], 'labor', rate_override=600)
        assert activities[0].cost == 24 * 600

    def test_nutri_quantity_and_cost(self, phase, catalog):
        activities = resolve(phase, WEEK, catalog, [], get_domain('nutri'))
        assert len(activities) == 1
        assert activities[0].total_quantity == 100
        assert activities[0].cost == 200
        assert activities[0].task == 'Calcium nitrate'


# ========================================
# Overrides
# ========================================

class TestOverrides:

    def test_remove_drops_template_match(self, phase):
        catalog = ProcedureCatalog([_labor(1, 2, 'Weeding', workers=4, days=3)])
        assert resolve(phase, WEEK, catalog, [_override(1, 'remove')], 'labor') == []

    def test_add_pulls_entry_from_other_week(self, phase, catalog):
        activities = resolve(phase, WEEK, catalog, [_override(2, 'add')], 'labor')
        assert [a.procedure_entry_id for a in activities] == [1, 3, 2]
        added = activities[-1]
        assert added.is_added
        assert added.total_quantity == 2
        assert added.week_offset == 2

    def test_add_of_default_entry_is_not_duplicated(self, phase, catalog):
        activities = resolve(phase, WEEK, catalog, [_override(1, 'add')], 'labor')
        assert [a.procedure_entry_id for a in activities] == [1, 3]

    def test_unknown_add_is_skipped(self, phase, catalog):
        activities = resolve(phase, WEEK, catalog, [_override(99, 'add')], 'labor')
        assert [a.procedure_entry_id for a in activities] == [1, 3]

    def test_other_week_phase_or_domain_ignored(self, phase, catalog):
        overrides = [
            _override(1, 'remove', week=date(2025, 1, 27)),
            _override(1, 'remove', phase_id=8),
            _override(1, 'remove', domain='nutri'),
        ]
        activities = resolve(phase, WEEK, catalog, overrides, 'labor')
        assert [a.procedure_entry_id for a in activities] == [1, 3]

    def test_additions_in_override_order(self, phase):
        catalog = ProcedureCatalog([
            _labor(1, 2, 'Weeding'), _labor(4, 5, 'Staking'), _labor(5, 6, 'Pruning'),
        ])
        overrides = [_override(5, 'add'), _override(4, 'add')]
        activities = resolve(phase, WEEK, catalog, overrides, 'labor')
        assert [a.procedure_entry_id for a in activities] == [1, 5, 4]

    def test_available_additions(self, phase, catalog):
        resolved = resolve(phase, WEEK, catalog, [], 'labor')
        additions = available_additions(phase, catalog, resolved, 'labor')
        assert additions == [{'sop_id': 2, 'phase_id': 7, 'label': 'W3 - Spraying/Drenching'}]


# ========================================
# Harvest domain
# ========================================

class TestHarvest:

    def test_harvest_rows_follow_harvest_start(self, phase, catalog):
        # Harvest starts 14 days after sowing, i.e. on WEEK
        activities = resolve(phase, WEEK, catalog, [], 'harvest')
        assert [a.procedure_entry_id for a in activities] == [101]
        assert activities[0].total_quantity == pytest.approx(9000)
        assert activities[0].unit == 'kg'

    def test_second_harvest_week(self, phase, catalog):
        activities = resolve(phase, date(2025, 1, 27), catalog, [], 'harvest')
        assert [a.procedure_entry_id for a in activities] == [102]

    def test_before_harvest_start(self, phase, catalog):
        assert resolve(phase, date(2025, 1, 13), catalog, [], 'harvest') == []

    def test_overrides_do_not_apply(self, phase, catalog):
        overrides = [_override(101, 'remove', domain='harvest')]
        activities = resolve(phase, WEEK, catalog, overrides, 'harvest')
        assert [a.procedure_entry_id for a in activities] == [101]
        assert available_additions(phase, catalog, activities, 'harvest') == []


# ========================================
# Multiple phases & keys
# ========================================

class TestResolveMany:

    def test_phase_order_and_farm_rates(self, phase, catalog):
        other = Phase(id=8, crop_code='FB', phase_label='FB-P2', sowing_date=date(2025, 1, 13),
                      farm='Farm B', area_ha=1.0)
        activities = resolve_many([other, phase], date(2025, 1, 27), catalog, [], 'labor',
                                  labor_rates={'Farm B': 1000})
        assert [(a.phase_id, a.procedure_entry_id) for a in activities] == [(8, 1), (8, 3), (7, 2)]
        assert activities[0].cost == 12 * 1000
        assert activities[2].cost == 2 * 500

    def test_activity_key_round_trip(self):
        assert activity_key(3, 12) == '3-12'
        assert parse_activity_key('3-12') == (3, 12)
        with pytest.raises(ValueError):
            parse_activity_key('312')
