"""
models.py — Python dataclasses for the farm operations engine.

Maps to the SQLite tables defined in database.py. The `from_row`
constructors are the single parse-and-validate step between loosely typed
storage (string-or-number columns) and the engine, which only ever sees
typed numbers and dates.
"""

import json
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Any, Callable, Dict, Optional, Tuple

from utils.validators import (
    ValidationError, parse_date, parse_non_negative, parse_int, parse_domain,
    parse_action, parse_record_type, parse_day
)

HARVEST_SLOTS = 16

# Numeric SOP parameters per domain; anything else is kept as text.
NUMERIC_PARAMS = {
    'labor': ('workers', 'days', 'cost_per_day'),
    'nutri': ('rate_ha', 'rate_litre', 'unit_price', 'cost'),
    'harvest': ('yield_per_ha', 'fraction', 'reject_rate'),
}


def _jsonable(value):
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass
class Setting:
    """Global application setting (key-value pair)."""
    key: str
    value: str


@dataclass
class Phase:
    """A tracked planting unit: crop + area + sowing date on a farm."""
    id: Optional[int] = None
    crop_code: str = ""
    phase_label: str = ""
    sowing_date: Optional[date] = None
    farm: str = ""
    area_ha: float = 0.0
    archived: bool = False

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row['id'],
            crop_code=str(row['crop_code'] or '').strip(),
            phase_label=str(row['phase_label'] or '').strip(),
            sowing_date=parse_date(row['sowing_date'], 'sowing_date'),
            farm=str(row['farm'] or '').strip(),
            area_ha=parse_non_negative(row['area_ha'], 'area_ha'),
            archived=bool(row['archived']),
        )

    def to_dict(self):
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class ProcedureEntry:
    """One SOP template row: what a crop needs in a given week after sowing."""
    id: int
    domain: str
    crop_code: str
    week_offset: int
    name: str
    params: Dict[str, Any] = field(default_factory=dict)
    # Week numbering for this entry starts this many days after sowing
    start_lag_days: int = 0

    @classmethod
    def from_row(cls, row):
        domain = parse_domain(row['domain'])
        raw = row['params']
        if isinstance(raw, str):
            try:
                raw = json.loads(raw or '{}')
            except json.JSONDecodeError:
                raise ValidationError(f"SOP {row['id']} has malformed params") from None
        return cls(
            id=row['id'],
            domain=domain,
            crop_code=str(row['crop_code'] or '').strip(),
            week_offset=parse_int(row['week_offset'], 'week', minimum=0),
            name=str(row['name'] or '').strip(),
            params=parse_params(domain, raw or {}),
            start_lag_days=parse_int(row['start_lag_days'], 'start_lag_days', default=0, minimum=0),
        )

    def param(self, name, default=0.0):
        value = self.params.get(name)
        return default if value is None else value

    def to_dict(self):
        return _jsonable(asdict(self))


def parse_params(domain, raw):
    """Coerce the numeric parameters of a SOP row; blanks become 0."""
    params = dict(raw)
    for name in NUMERIC_PARAMS.get(domain, ()):
        if name in params:
            params[name] = parse_non_negative(params[name], name, default=0)
    return params


@dataclass(frozen=True)
class KeyInput:
    """Per-crop harvest timing, yield and 16-slot weekly harvest distribution."""
    id: Optional[int] = None
    crop_code: str = ""
    nursery_days: int = 0
    outgrowing_days: int = 0
    yield_per_ha: float = 0.0
    harvest_weeks: int = 0
    reject_rate: float = 0.0
    week_distribution: Tuple[float, ...] = ()

    @classmethod
    def from_row(cls, row):
        weeks = []
        for i in range(1, HARVEST_SLOTS + 1):
            weeks.append(parse_non_negative(row[f'wk{i}'], f'wk{i}', default=0))
        return cls(
            id=row['id'],
            crop_code=str(row['crop_code'] or '').strip(),
            nursery_days=parse_int(row['nursery_days'], 'nursery_days', default=0, minimum=0),
            outgrowing_days=parse_int(row['outgrowing_days'], 'outgrowing_days', default=0, minimum=0),
            yield_per_ha=parse_non_negative(row['yield_per_ha'], 'yield_per_ha', default=0),
            harvest_weeks=parse_int(row['harvest_weeks'], 'harvest_weeks', default=0, minimum=0),
            reject_rate=parse_non_negative(row['reject_rate'], 'reject_rate', default=0),
            week_distribution=tuple(weeks),
        )

    @property
    def lead_days(self):
        """Days from sowing to the first harvest week."""
        return self.nursery_days + self.outgrowing_days

    @property
    def window(self):
        """Number of harvest weeks covered by the distribution (0 means all 16)."""
        return min(self.harvest_weeks or HARVEST_SLOTS, HARVEST_SLOTS)

    def distribution(self, week_index):
        """Fraction of the yield harvested in 1-based harvest week `week_index`."""
        if week_index < 1 or week_index > HARVEST_SLOTS:
            return 0.0
        if week_index > len(self.week_distribution):
            return 0.0
        return self.week_distribution[week_index - 1]


@dataclass(frozen=True)
class Override:
    """Per-phase, per-week exception adding or removing a SOP entry."""
    phase_id: int
    procedure_entry_id: int
    domain: str
    action: str
    week_start: date
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row['id'],
            phase_id=row['phase_id'],
            procedure_entry_id=row['procedure_entry_id'],
            domain=parse_domain(row['domain']),
            action=parse_action(row['action']),
            week_start=parse_date(row['week_start'], 'week_start'),
        )

    def to_dict(self):
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class ScheduleEntry:
    """Presence means the activity is scheduled on that day of the week."""
    phase_id: int
    procedure_entry_id: int
    domain: str
    week_start: date
    day_of_week: int

    @classmethod
    def from_row(cls, row):
        return cls(
            phase_id=row['phase_id'],
            procedure_entry_id=row['procedure_entry_id'],
            domain=parse_domain(row['domain']),
            week_start=parse_date(row['week_start'], 'week_start'),
            day_of_week=parse_day(row['day_of_week']),
        )

    @property
    def key(self):
        return f"{self.phase_id}-{self.procedure_entry_id}"


@dataclass(frozen=True)
class FieldRecord:
    """An actual feeding, labor or harvest log. Append-only."""
    id: Optional[int]
    phase_id: int
    record_type: str
    date: date
    product_or_task: str = ""
    actual_quantity: float = 0.0
    cost: float = 0.0
    notes: Optional[str] = None

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row['id'],
            phase_id=row['phase_id'],
            record_type=parse_record_type(row['record_type']),
            date=parse_date(row['record_date'], 'date'),
            product_or_task=str(row['product_or_task'] or '').strip(),
            actual_quantity=parse_non_negative(row['actual_quantity'], 'actual_quantity', default=0),
            cost=parse_non_negative(row['cost'], 'cost', default=0),
            notes=row['notes'],
        )

    def to_dict(self):
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class Domain:
    """
    Descriptor that makes the resolver/scheduler/evaluator generic over
    labor, nutrition and harvest.
    """
    name: str
    label: str
    unit: str
    record_type: str
    quantity_formula: Callable[[ProcedureEntry, float], float]
    cost_formula: Callable[[ProcedureEntry, float, Optional[float]], float]
    record_matcher: Callable[[str, str], bool]
    allows_overrides: bool = True


@dataclass
class ResolvedActivity:
    """A SOP entry resolved for one phase and one calendar week."""
    phase_id: int
    procedure_entry_id: int
    label: str
    domain: str
    total_quantity: float
    task: str = ""
    unit: str = ""
    cost: float = 0.0
    week_offset: int = 0
    crop_code: str = ""
    phase_label: str = ""
    farm: str = ""
    is_added: bool = False

    @property
    def key(self):
        return f"{self.phase_id}-{self.procedure_entry_id}"

    def to_dict(self):
        data = asdict(self)
        data['key'] = self.key
        return data


@dataclass
class ComplianceEntry:
    """Status of one scheduled activity-day."""
    domain: str
    phase_id: int
    procedure_entry_id: int
    task: str
    day_of_week: int
    date: date
    status: str
    phase_label: str = ""
    farm: str = ""

    def to_dict(self):
        return _jsonable(asdict(self))
