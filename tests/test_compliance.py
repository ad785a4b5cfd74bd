"""
tests/test_compliance.py — Compliance, variance and budget evaluation.

Tests:
1. Day classification (done / missed / pending / upcoming)
2. Compliance rate is None until something is countable
3. Variance, score and tier boundaries
4. Feeding variance with unplanned products
5. Labor budget utilization and harvest fulfilment
"""

from datetime import date

import pytest

from compliance import (
    classify, compliance_rate, compliance_score, evaluate, feeding_variance,
    harvest_performance, labor_budget, score_tier, summarize, utilization_tier,
    variance_direction, variance_pct
)
from models import FieldRecord, Phase, ResolvedActivity

WEEK = date(2025, 1, 20)
WEDNESDAY = date(2025, 1, 22)


def _activity(entry_id, task, total, domain='labor', cost=0.0):
    return ResolvedActivity(phase_id=7, procedure_entry_id=entry_id, label=f'FB-P1 W2 - {task}',
                            domain=domain, total_quantity=total, task=task, cost=cost,
                            crop_code='FB', phase_label='FB-P1', farm='Farm A')


def _record(record_type, day, what='', qty=0.0, cost=0.0, phase_id=7, record_id=None):
    return FieldRecord(id=record_id, phase_id=phase_id, record_type=record_type, date=day,
                       product_or_task=what, actual_quantity=qty, cost=cost)


# ========================================
# Classification
# ========================================

class TestClassify:

    def test_monday_wednesday_friday_without_records(self):
        activity = _activity(1, 'Weeding', 24)
        entries = evaluate([activity], {'7-1': {0, 2, 4}}, [], WEEK, WEDNESDAY, 'labor')
        assert [e.status for e in entries] == ['missed', 'pending', 'upcoming']
        assert [e.date for e in entries] == [date(2025, 1, 20), WEDNESDAY, date(2025, 1, 24)]

    def test_matching_record_marks_done(self):
        activity = _activity(1, 'Weeding', 24)
        records = [_record('labor', WEEK, 'Weeding and top dressing', 8)]
        entries = evaluate([activity], {'7-1': {0, 2}}, records, WEEK, WEDNESDAY, 'labor')
        assert [e.status for e in entries] == ['done', 'pending']
        assert summarize(entries)['compliance_rate'] == 100

    def test_record_for_other_task_or_phase_does_not_count(self):
        activity = _activity(1, 'Weeding', 24)
        records = [
            _record('labor', WEEK, 'Staking', 2),
            _record('labor', WEEK, 'Weeding', 2, phase_id=8),
            _record('feeding', WEEK, 'Weeding', 2),
        ]
        entries = evaluate([activity], {'7-1': {0}}, records, WEEK, WEDNESDAY, 'labor')
        assert entries[0].status == 'missed'

    def test_unscheduled_activity_has_no_entries(self):
        entries = evaluate([_activity(1, 'Weeding', 24)], {}, [], WEEK, WEDNESDAY, 'labor')
        assert entries == []

    def test_never_missed_in_future_never_upcoming_in_past(self):
        for offset in range(-3, 4):
            day = date(2025, 1, 22 + offset)
            status = classify(day, WEDNESDAY)
            if day > WEDNESDAY:
                assert status == 'upcoming'
            else:
                assert status in ('missed', 'pending')

    def test_record_counts_as_done(self):
        assert classify(WEEK, WEDNESDAY, has_record=True) == 'done'
        assert classify(WEEK, WEDNESDAY, scheduled=False) is None


class TestComplianceRate:

    def test_none_when_nothing_countable(self):
        assert compliance_rate(0, 0) is None
        summary = summarize([])
        assert summary['total'] == 0
        assert summary['compliance_rate'] is None

    def test_rounded_share(self):
        assert compliance_rate(3, 1) == 75
        assert compliance_rate(2, 1) == 67
        assert compliance_rate(0, 4) == 0

    def test_halves_round_up(self):
        assert compliance_rate(1, 7) == 13
        assert compliance_rate(5, 3) == 63
        assert compliance_rate(1, 1) == 50


# ========================================
# Variance & tiers
# ========================================

class TestVariance:

    def test_five_percent_under(self):
        variance = variance_pct(95, 100)
        assert variance == pytest.approx(-5.0)
        assert compliance_score(variance) == pytest.approx(95)
        assert score_tier(compliance_score(variance)) == 'green'

    def test_zero_expected(self):
        assert variance_pct(5, 0) == 0.0

    def test_score_never_negative(self):
        assert compliance_score(-250) == 0.0

    def test_tier_boundaries(self):
        assert score_tier(95) == 'green'
        assert score_tier(94.99) == 'yellow'
        assert score_tier(80) == 'yellow'
        assert score_tier(79.9) == 'red'
        assert score_tier(None) is None

    def test_utilization_tiers(self):
        assert utilization_tier(100) == 'red'
        assert utilization_tier(80) == 'yellow'
        assert utilization_tier(50) == 'green'
        assert utilization_tier(None) is None

    def test_direction(self):
        assert variance_direction(-5.0) == 'ok'
        assert variance_direction(-5.1) == 'under'
        assert variance_direction(12, tolerance=10) == 'over'


# ========================================
# Feeding, labor budget, harvest
# ========================================

class TestFeedingVariance:

    def test_planned_and_unplanned_products(self):
        phase = Phase(id=7, crop_code='FB', phase_label='FB-P1', sowing_date=date(2025, 1, 6),
                      farm='Farm A', area_ha=2.0)
        activities = [_activity(10, 'Calcium nitrate', 100, domain='nutri')]
        records = [
            _record('feeding', date(2025, 1, 21), 'calcium  Nitrate', 95),
            _record('feeding', date(2025, 1, 21), 'Potash', 10),
            _record('feeding', date(2025, 1, 27), 'Calcium nitrate', 50),
        ]
        result = feeding_variance(activities, records, [phase], WEEK)
        planned, unplanned = result['entries']

        assert planned['actual_qty'] == 95
        assert planned['variance'] == pytest.approx(-5.0)
        assert planned['compliance_score'] == pytest.approx(95)
        assert planned['tier'] == 'green'
        assert planned['expected_rate_ha'] == 50

        assert unplanned['status'] == 'unplanned'
        assert unplanned['variance'] == 0.0
        assert unplanned['compliance_score'] is None

        summary = result['summary']
        assert summary['average_score'] == pytest.approx(95)
        assert summary['unplanned_products'] == 1
        assert summary['expected_products'] == 1

    def test_no_record_is_fully_under(self):
        activities = [_activity(10, 'Calcium nitrate', 100, domain='nutri')]
        result = feeding_variance(activities, [], [], WEEK)
        entry = result['entries'][0]
        assert entry['variance'] == pytest.approx(-100)
        assert entry['compliance_score'] == 0
        assert entry['tier'] == 'red'

    def test_empty_week(self):
        result = feeding_variance([], [], [], WEEK)
        assert result['entries'] == []
        assert result['summary']['average_score'] is None


class TestLaborBudget:

    def test_utilization(self):
        activities = [_activity(1, 'Weeding', 24, cost=12000)]
        records = [_record('labor', WEEK, 'Weeding', 20, cost=10000)]
        result = labor_budget(activities, records, WEEK)

        row = result['phases'][0]
        assert row['budget_cost'] == 12000
        assert row['actual_cost'] == 10000
        assert row['utilization_pct'] == pytest.approx(83.333, rel=1e-3)
        assert row['tier'] == 'yellow'
        assert result['totals']['expected_mandays'] == 24

    def test_no_budget(self):
        records = [_record('labor', WEEK, 'Weeding', 2, cost=1000)]
        result = labor_budget([], records, WEEK)
        assert result['totals']['utilization_pct'] is None
        assert result['totals']['tier'] is None


class TestHarvestPerformance:

    def test_pledge_vs_actual(self):
        activities = [_activity(101, 'Harvest wk1', 9000, domain='harvest')]
        records = [
            _record('harvest', date(2025, 1, 21), qty=3000),
            _record('harvest', date(2025, 1, 23), qty=1500),
        ]
        result = harvest_performance([(WEEK, activities, {'7-101': {1, 3}})], records)
        row = result['phases'][0]
        assert row['pledge_kg'] == 9000
        assert row['actual_kg'] == 4500
        assert row['fulfillment_rate'] == pytest.approx(50)
        assert row['variance'] == pytest.approx(-50)
        assert row['days_harvested'] == 2

    def test_unscheduled_harvest_is_not_pledged(self):
        activities = [_activity(101, 'Harvest wk1', 9000, domain='harvest')]
        result = harvest_performance([(WEEK, activities, {})], [])
        assert result['totals']['pledge_kg'] == 0
        assert result['totals']['fulfillment_rate'] == 0

    def test_weekly_breakdown_over_two_weeks(self):
        previous = date(2025, 1, 13)
        weeks = [
            (previous, [_activity(101, 'Harvest wk1', 4000, domain='harvest')], {'7-101': {2}}),
            (WEEK, [_activity(102, 'Harvest wk2', 6000, domain='harvest')], {'7-102': {0}}),
        ]
        records = [
            _record('harvest', date(2025, 1, 15), qty=4400),
            _record('harvest', WEEK, qty=3000),
            _record('harvest', date(2025, 1, 27), qty=999),
        ]
        result = harvest_performance(weeks, records)

        assert result['weeks'] == ['2025-01-13', '2025-01-20']
        row = result['phases'][0]
        assert row['pledge_kg'] == 10000
        assert row['actual_kg'] == 7400
        assert [w['week_start'] for w in row['weekly_breakdown']] == ['2025-01-13', '2025-01-20']
        assert row['weekly_breakdown'][0]['variance'] == pytest.approx(10)
        assert row['weekly_breakdown'][1]['variance'] == pytest.approx(-50)
        assert result['totals']['fulfillment_rate'] == pytest.approx(74)
