"""
utils/validators.py — Input validation helpers.

Upstream storage and request payloads deliver loosely-typed values
(numbers as strings, dates in two formats). Everything is parsed here
once, so the engine only ever receives typed numbers and dates.

Validates:
- Dates (YYYY-MM-DD or DD/MM/YYYY) and week starts (must be a Monday)
- Quantities (finite, optionally non-negative)
- Domains, override actions, record types and day indexes
- Comma-separated phase id lists
"""

import math
import re
from datetime import date, datetime

DOMAINS = ('labor', 'nutri', 'harvest')
OVERRIDE_ACTIONS = ('add', 'remove')
TOGGLE_ACTIONS = ('add', 'remove', 'toggle')
RECORD_TYPES = ('feeding', 'labor', 'harvest')

_NUMBER_CLEAN_RE = re.compile(r'[\s,%]')


class ValidationError(ValueError):
    """Malformed input caught at the boundary and shown to the user."""


def parse_date(value, field='date'):
    """
    Parse a calendar date.

    Accepts date/datetime objects, 'YYYY-MM-DD' (optionally followed by a
    time part) and 'DD/MM/YYYY'.

    Raises:
        ValidationError: empty or unparseable value.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None or str(value).strip() == '':
        raise ValidationError(f"{field} is required")

    text = str(value).strip()
    try:
        if '/' in text:
            return datetime.strptime(text, '%d/%m/%Y').date()
        return date.fromisoformat(text[:10])
    except ValueError:
        raise ValidationError(f"{field} is not a valid date: {text!r}") from None


def parse_week_start(value, field='weekStart'):
    """Parse a week identifier; it must be the Monday of the week."""
    d = parse_date(value, field)
    if d.weekday() != 0:
        raise ValidationError(f"{field} must be a Monday, got {d.isoformat()}")
    return d


def parse_number(value, field, default=None, minimum=None):
    """
    Parse a string-or-number field into a float.

    Empty values return `default` when one is given. Thousands separators,
    spaces and percent signs are stripped ("1,200" -> 1200.0, "5%" -> 5.0).

    Raises:
        ValidationError: unparseable, non-finite, missing without default,
        or below `minimum`.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if value is None or (isinstance(value, str) and value.strip() == ''):
        if default is None:
            raise ValidationError(f"{field} is required")
        return float(default)

    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(_NUMBER_CLEAN_RE.sub('', str(value)))
        except ValueError:
            raise ValidationError(f"{field} is not a number: {value!r}") from None

    if not math.isfinite(number):
        raise ValidationError(f"{field} must be finite")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be >= {minimum}, got {number:g}")
    return number


def parse_non_negative(value, field, default=None):
    """Parse a quantity that cannot be negative (area, rates, counts)."""
    return parse_number(value, field, default=default, minimum=0)


def parse_int(value, field, default=None, minimum=None, maximum=None):
    """Parse an integer field, rejecting fractional values."""
    number = parse_number(value, field, default=default)
    if not number.is_integer():
        raise ValidationError(f"{field} must be a whole number, got {number:g}")
    result = int(number)
    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}, got {result}")
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be <= {maximum}, got {result}")
    return result


def parse_day(value, field='day'):
    """Day of week index, Monday = 0 ... Sunday = 6."""
    return parse_int(value, field, minimum=0, maximum=6)


def parse_choice(value, choices, field):
    text = str(value or '').strip().lower()
    if text not in choices:
        raise ValidationError(f"{field} must be one of {', '.join(choices)}")
    return text


def parse_domain(value, field='domain'):
    # Front-end tabs still send "nutrition"
    if str(value or '').strip().lower() == 'nutrition':
        return 'nutri'
    return parse_choice(value, DOMAINS, field)


def parse_action(value, field='action', allowed=OVERRIDE_ACTIONS):
    return parse_choice(value, allowed, field)


def parse_record_type(value, field='recordType'):
    return parse_choice(value, RECORD_TYPES, field)


def parse_id_list(value, field='phaseIds'):
    """
    Parse "1,2,3" (or a list) into a list of positive ints, keeping order
    and dropping duplicates.

    Raises:
        ValidationError: empty list or a non-integer item.
    """
    if value is None:
        raise ValidationError(f"{field} is required")
    items = value if isinstance(value, (list, tuple)) else str(value).split(',')

    ids = []
    for item in items:
        if isinstance(item, str) and item.strip() == '':
            continue
        parsed = parse_int(item, field, minimum=1)
        if parsed not in ids:
            ids.append(parsed)
    if not ids:
        raise ValidationError(f"{field} is required")
    return ids
