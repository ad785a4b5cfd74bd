"""
catalog.py — SOP procedure catalog and the three activity domains.

The catalog is read-only data: per-crop, per-week-offset template rows for
labor tasks and nutrition applications, plus harvest rows derived from the
crop key inputs. It is built once per request from a store snapshot and
handed to the pure resolver functions.

Domains:
- labor:   total mandays = workers x days x area
- nutri:   total quantity = rate/ha x area
- harvest: total kg = area x yield/ha x week fraction x (1 - reject%) x 1000
"""

from collections import OrderedDict

from models import Domain
from forecast import harvest_entries
from utils.activity_matcher import match_activity_to_task, match_product


def _labor_quantity(entry, area_ha):
    return entry.param('workers') * entry.param('days') * area_ha


def _labor_cost(entry, total_quantity, rate_override=None):
    rate = rate_override if rate_override and rate_override > 0 else entry.param('cost_per_day')
    return total_quantity * rate


def _nutri_quantity(entry, area_ha):
    return entry.param('rate_ha') * area_ha


def _nutri_cost(entry, total_quantity, rate_override=None):
    return total_quantity * entry.param('unit_price')


def _harvest_quantity(entry, area_ha):
    tons = (area_ha * entry.param('yield_per_ha') * entry.param('fraction')
            * (1 - entry.param('reject_rate') / 100.0))
    return tons * 1000.0


def _harvest_cost(entry, total_quantity, rate_override=None):
    return 0.0


def _any_harvest(recorded, label):
    # Any harvest log for the phase that day counts
    return True


LABOR = Domain(
    name='labor',
    label='Labor',
    unit='mandays',
    record_type='labor',
    quantity_formula=_labor_quantity,
    cost_formula=_labor_cost,
    record_matcher=match_activity_to_task,
)

NUTRI = Domain(
    name='nutri',
    label='Nutrition',
    unit='L/kg',
    record_type='feeding',
    quantity_formula=_nutri_quantity,
    cost_formula=_nutri_cost,
    record_matcher=match_product,
)

HARVEST = Domain(
    name='harvest',
    label='Harvest',
    unit='kg',
    record_type='harvest',
    quantity_formula=_harvest_quantity,
    cost_formula=_harvest_cost,
    record_matcher=_any_harvest,
    allows_overrides=False,
)

DOMAINS = OrderedDict((d.name, d) for d in (LABOR, NUTRI, HARVEST))


def get_domain(name):
    """Look up a domain descriptor; raises KeyError for unknown names."""
    return DOMAINS[name]


class ProcedureCatalog:
    """Immutable, indexed view over SOP entries of all domains."""

    def __init__(self, entries=()):
        self._entries = tuple(entries)
        self._by_id = {}
        self._by_crop = {}
        for entry in self._entries:
            self._by_id[(entry.domain, entry.id)] = entry
            self._by_crop.setdefault((entry.domain, entry.crop_code), []).append(entry)

    @classmethod
    def build(cls, entries, key_inputs=()):
        """Catalog of stored SOP rows plus harvest rows derived from key inputs."""
        combined = list(entries)
        for key_input in key_inputs:
            combined.extend(harvest_entries(key_input))
        return cls(combined)

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def entries(self, domain):
        return [e for e in self._entries if e.domain == domain]

    def for_crop(self, crop_code, domain):
        """Entries for a crop in catalog order; empty when the crop has no data."""
        return list(self._by_crop.get((domain, crop_code), ()))

    def get(self, entry_id, domain):
        return self._by_id.get((domain, entry_id))

    def crops(self, domain):
        seen = []
        for entry in self._entries:
            if entry.domain == domain and entry.crop_code not in seen:
                seen.append(entry.crop_code)
        return seen
