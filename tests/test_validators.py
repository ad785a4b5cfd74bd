"""
tests/test_validators.py — Boundary parsing and activity matching.
"""

from datetime import date

import pytest

from utils.activity_matcher import match_activity_to_task, match_product, normalize
from utils.validators import (
    ValidationError, parse_date, parse_day, parse_domain, parse_id_list, parse_int,
    parse_non_negative, parse_number, parse_record_type, parse_week_start
)


# ========================================
# Numbers
# ========================================

class TestNumbers:

    def test_strings_are_cleaned(self):
        assert parse_number('1,200', 'qty') == 1200.0
        assert parse_number(' 5% ', 'qty') == 5.0
        assert parse_number(3, 'qty') == 3.0

    def test_blank_uses_default(self):
        assert parse_number('', 'qty', default=0) == 0.0
        assert parse_number(None, 'qty', default=2) == 2.0

    def test_blank_without_default_rejected(self):
        with pytest.raises(ValidationError, match='qty is required'):
            parse_number(None, 'qty')

    @pytest.mark.parametrize('value', ['abc', True, 'nan', float('inf')])
    def test_invalid_numbers(self, value):
        with pytest.raises(ValidationError):
            parse_number(value, 'qty')

    def test_negative_area_rejected(self):
        with pytest.raises(ValidationError):
            parse_non_negative('-1', 'area_ha')

    def test_int_rejects_fractions_and_bounds(self):
        assert parse_int('4', 'week') == 4
        with pytest.raises(ValidationError):
            parse_int('2.5', 'week')
        with pytest.raises(ValidationError):
            parse_int(11, 'week', maximum=10)

    def test_day_range(self):
        assert parse_day('6') == 6
        with pytest.raises(ValidationError):
            parse_day(7)


# ========================================
# Dates & choices
# ========================================

class TestDatesAndChoices:

    def test_date_formats(self):
        assert parse_date('2025-01-20') == date(2025, 1, 20)
        assert parse_date('20/01/2025') == date(2025, 1, 20)
        assert parse_date('2025-01-20T08:00:00') == date(2025, 1, 20)

    def test_bad_date(self):
        with pytest.raises(ValidationError):
            parse_date('2025-13-40')
        with pytest.raises(ValidationError):
            parse_date('')

    def test_week_start_must_be_monday(self):
        assert parse_week_start('2025-01-20') == date(2025, 1, 20)
        with pytest.raises(ValidationError, match='Monday'):
            parse_week_start('2025-01-21')

    def test_domain_aliases(self):
        assert parse_domain('Nutrition') == 'nutri'
        assert parse_domain('LABOR') == 'labor'
        with pytest.raises(ValidationError):
            parse_domain('water')

    def test_record_type(self):
        assert parse_record_type('feeding') == 'feeding'
        with pytest.raises(ValidationError):
            parse_record_type('spraying')

    def test_id_list(self):
        assert parse_id_list('3, 1,3') == [3, 1]
        assert parse_id_list([2, '5']) == [2, 5]

    @pytest.mark.parametrize('value', ['', 'a', '0', None])
    def test_bad_id_list(self, value):
        with pytest.raises(ValidationError):
            parse_id_list(value)


# ========================================
# Activity matching
# ========================================

class TestActivityMatcher:

    def test_normalize(self):
        assert normalize('  Hand   Weeding ') == 'hand weeding'

    def test_exact_match(self):
        assert match_activity_to_task('Weeding', ' weeding ')

    def test_explicit_mapping(self):
        assert match_activity_to_task('Top dressing', 'Fertiliza application')
        assert match_activity_to_task('Spraying', 'Spraying/Drenching')

    def test_activity_extends_task(self):
        assert match_activity_to_task('Harvesting fine beans', 'Harvesting')
        assert match_activity_to_task('Weeding/hoeing', 'Weeding')

    def test_task_extends_activity(self):
        assert match_activity_to_task('Staking', 'Staking and tying')

    def test_partial_word_does_not_match(self):
        assert not match_activity_to_task('Weed', 'Weeding')
        assert not match_activity_to_task('', 'Weeding')

    def test_product_match(self):
        assert match_product(' Calcium  Nitrate', 'calcium nitrate')
        assert not match_product('Potash', 'calcium nitrate')
