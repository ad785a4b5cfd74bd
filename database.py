"""
database.py — SQLite schema creation, seed data, and database operations.

Stores the records the engine reads as snapshots: phases, SOP catalog rows,
crop key inputs, per-week overrides, Gantt schedule entries and field
records. Uses WAL mode for concurrent read performance.

Write policies:
- overrides upsert on (phase, SOP, domain, week): last write wins
- schedules are replaced as a whole set per (phases, week, domain)
- field records are append-only; delete is the only mutation
"""

import json
import logging
import os
import sqlite3

from flask import current_app, has_app_context

from utils.validators import (
    ValidationError, parse_date, parse_week_start, parse_non_negative, parse_int,
    parse_domain, parse_action, parse_record_type, parse_day
)

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data', 'farm_ops.db')

DEFAULT_SETTINGS = {
    'forecast_weeks': '8',
    'variance_tolerance_pct': '5',
}


def get_db_path():
    """Database path: app config DATABASE, then FARM_OPS_DB_PATH, then data/farm_ops.db."""
    if has_app_context() and current_app.config.get('DATABASE'):
        return current_app.config['DATABASE']
    return os.environ.get('FARM_OPS_DB_PATH', DEFAULT_DB_PATH)


def get_db():
    """Get a database connection with WAL mode and foreign keys enabled."""
    db_path = get_db_path()
    db_dir = os.path.dirname(db_path)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def init_db():
    """Create all tables and indexes if they don't exist."""
    conn = get_db()
    cursor = conn.cursor()

    # Table: settings
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
    """)

    # Table: phases
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS phases (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            crop_code TEXT NOT NULL,
            phase_label TEXT NOT NULL,
            sowing_date TEXT NOT NULL,
            farm TEXT NOT NULL DEFAULT '',
            area_ha REAL NOT NULL DEFAULT 0,
            archived BOOLEAN NOT NULL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # Table: procedure_entries (labor + nutri SOP rows)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS procedure_entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            domain TEXT NOT NULL CHECK (domain IN ('labor','nutri')),
            crop_code TEXT NOT NULL,
            week_offset INTEGER NOT NULL CHECK (week_offset >= 0),
            name TEXT NOT NULL,
            params TEXT NOT NULL DEFAULT '{}',
            start_lag_days INTEGER NOT NULL DEFAULT 0
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_procedure_entries_crop
        ON procedure_entries(domain, crop_code, week_offset)
    """)

    # Table: key_inputs (one row per crop)
    week_columns = ",\n".join(f"            wk{i} REAL" for i in range(1, 17))
    cursor.execute(f"""
        CREATE TABLE IF NOT EXISTS key_inputs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            crop_code TEXT UNIQUE NOT NULL,
            nursery_days INTEGER NOT NULL DEFAULT 0,
            outgrowing_days INTEGER NOT NULL DEFAULT 0,
            yield_per_ha REAL NOT NULL DEFAULT 0,
            harvest_weeks INTEGER NOT NULL DEFAULT 0,
            reject_rate REAL NOT NULL DEFAULT 0,
{week_columns}
        )
    """)

    # Table: phase_overrides
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS phase_overrides (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            phase_id INTEGER NOT NULL REFERENCES phases(id),
            procedure_entry_id INTEGER NOT NULL,
            domain TEXT NOT NULL CHECK (domain IN ('labor','nutri')),
            action TEXT NOT NULL CHECK (action IN ('add','remove')),
            week_start TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(phase_id, procedure_entry_id, domain, week_start)
        )
    """)

    # Table: schedule_entries (Gantt ticks)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS schedule_entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            phase_id INTEGER NOT NULL REFERENCES phases(id),
            procedure_entry_id INTEGER NOT NULL,
            domain TEXT NOT NULL CHECK (domain IN ('labor','nutri','harvest')),
            week_start TEXT NOT NULL,
            day_of_week INTEGER NOT NULL CHECK (day_of_week BETWEEN 0 AND 6),
            UNIQUE(phase_id, procedure_entry_id, domain, week_start, day_of_week)
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_schedule_entries_week
        ON schedule_entries(week_start, domain)
    """)

    # Table: field_records (feeding / labor / harvest logs)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS field_records (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            phase_id INTEGER NOT NULL REFERENCES phases(id),
            record_type TEXT NOT NULL CHECK (record_type IN ('feeding','labor','harvest')),
            record_date TEXT NOT NULL,
            product_or_task TEXT NOT NULL DEFAULT '',
            actual_quantity REAL NOT NULL DEFAULT 0,
            cost REAL NOT NULL DEFAULT 0,
            notes TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_field_records_phase_date
        ON field_records(phase_id, record_date)
    """)

    conn.commit()
    conn.close()


def seed_defaults():
    """Populate default settings. Idempotent: existing values are kept."""
    conn = get_db()
    conn.executemany(
        "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)",
        list(DEFAULT_SETTINGS.items())
    )
    conn.commit()
    conn.close()


def _placeholders(values):
    return ','.join('?' for _ in values)


# ========================================
# Settings
# ========================================

def get_setting(key, default=None):
    """Get a setting value by key."""
    conn = get_db()
    row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
    conn.close()
    if row:
        return row['value']
    return default


def update_setting(key, value):
    """Insert or replace a setting value."""
    conn = get_db()
    conn.execute(
        "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
        (key, str(value))
    )
    conn.commit()
    conn.close()


def get_labor_rates():
    """Per-farm labor rate overrides: {farm: rate_per_day}, positive values only."""
    conn = get_db()
    rows = conn.execute(
        "SELECT key, value FROM settings WHERE key LIKE 'labor_rate_per_day:%'"
    ).fetchall()
    conn.close()

    rates = {}
    for row in rows:
        farm = row['key'].split(':', 1)[1]
        try:
            rate = parse_non_negative(row['value'], row['key'])
        except ValidationError:
            logger.warning("Ignoring malformed labor rate setting %s=%r", row['key'], row['value'])
            continue
        if rate > 0:
            rates[farm] = rate
    return rates


# ========================================
# Phases
# ========================================

def create_phase(crop_code, phase_label, sowing_date, farm, area_ha):
    """Insert a phase and return its id. Area and date are validated here."""
    crop_code = str(crop_code or '').strip()
    if not crop_code:
        raise ValidationError("crop_code is required")
    sowing = parse_date(sowing_date, 'sowing_date')
    area = parse_non_negative(area_ha, 'area_ha')

    conn = get_db()
    cursor = conn.execute(
        """INSERT INTO phases (crop_code, phase_label, sowing_date, farm, area_ha)
           VALUES (?, ?, ?, ?, ?)""",
        (crop_code, str(phase_label or '').strip(), sowing.isoformat(), str(farm or '').strip(), area)
    )
    phase_id = cursor.lastrowid
    conn.commit()
    conn.close()
    return phase_id


def get_phase(phase_id):
    """Retrieve a single phase by ID."""
    conn = get_db()
    phase = conn.execute("SELECT * FROM phases WHERE id = ?", (phase_id,)).fetchone()
    conn.close()
    return phase


def get_phases(phase_ids=None, farm=None, include_archived=False):
    """Retrieve phases, optionally restricted to ids and/or a farm."""
    query = "SELECT * FROM phases WHERE 1=1"
    params = []
    if phase_ids is not None:
        if not phase_ids:
            return []
        query += f" AND id IN ({_placeholders(phase_ids)})"
        params.extend(phase_ids)
    if farm:
        query += " AND farm = ?"
        params.append(farm)
    if not include_archived:
        query += " AND archived = 0"
    query += " ORDER BY farm, crop_code, phase_label, id"

    conn = get_db()
    phases = conn.execute(query, params).fetchall()
    conn.close()
    return phases


def get_farms():
    """Distinct farm names of active phases."""
    conn = get_db()
    rows = conn.execute(
        "SELECT DISTINCT farm FROM phases WHERE archived = 0 ORDER BY farm"
    ).fetchall()
    conn.close()
    return [row['farm'] for row in rows]


def archive_phase(phase_id):
    """Archive a phase (phases referenced by logs are never hard-deleted)."""
    conn = get_db()
    cursor = conn.execute("UPDATE phases SET archived = 1 WHERE id = ?", (phase_id,))
    conn.commit()
    conn.close()
    return cursor.rowcount > 0


# ========================================
# SOP catalog & key inputs
# ========================================

def create_procedure_entries(domain, rows):
    """
    Bulk insert SOP rows for one domain.

    Args:
        domain: 'labor' or 'nutri'
        rows: iterable of dicts with crop_code, week, name and the
            domain parameters (labor: workers, days, cost_per_day;
            nutri: rate_ha, rate_litre, unit_price, active_ingredient, category)

    Returns:
        list of new ids, in input order.
    """
    domain = parse_domain(domain)
    if domain == 'harvest':
        raise ValidationError("Harvest SOP rows are derived from key inputs")

    records = []
    for row in rows:
        row = dict(row)
        crop_code = str(row.pop('crop_code', '') or '').strip()
        name = str(row.pop('name', '') or '').strip()
        if not crop_code or not name:
            raise ValidationError("crop_code and name are required for SOP rows")
        week = parse_int(row.pop('week', None), 'week', minimum=0)
        records.append((domain, crop_code, week, name, json.dumps(row)))

    conn = get_db()
    ids = []
    try:
        for record in records:
            cursor = conn.execute(
                """INSERT INTO procedure_entries (domain, crop_code, week_offset, name, params)
                   VALUES (?, ?, ?, ?, ?)""",
                record
            )
            ids.append(cursor.lastrowid)
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        logger.exception("Failed to insert %s SOP rows", domain)
        raise
    finally:
        conn.close()
    return ids


def get_procedure_entries(domain=None, crop_code=None):
    """SOP rows in catalog order (crop, week, insertion)."""
    query = "SELECT * FROM procedure_entries WHERE 1=1"
    params = []
    if domain:
        query += " AND domain = ?"
        params.append(domain)
    if crop_code:
        query += " AND crop_code = ?"
        params.append(crop_code)
    query += " ORDER BY crop_code, week_offset, id"

    conn = get_db()
    rows = conn.execute(query, params).fetchall()
    conn.close()
    return rows


def save_key_input(crop_code, nursery_days=0, outgrowing_days=0, yield_per_ha=0,
                   harvest_weeks=0, reject_rate=0, week_distribution=()):
    """Insert or replace the key input of a crop; returns its id."""
    crop_code = str(crop_code or '').strip()
    if not crop_code:
        raise ValidationError("crop_code is required")
    weeks = list(week_distribution)[:16]
    weeks += [None] * (16 - len(weeks))
    weeks = [None if w is None else parse_non_negative(w, f'wk{i + 1}') for i, w in enumerate(weeks)]

    values = [
        crop_code,
        parse_int(nursery_days, 'nursery_days', default=0, minimum=0),
        parse_int(outgrowing_days, 'outgrowing_days', default=0, minimum=0),
        parse_non_negative(yield_per_ha, 'yield_per_ha', default=0),
        parse_int(harvest_weeks, 'harvest_weeks', default=0, minimum=0),
        parse_non_negative(reject_rate, 'reject_rate', default=0),
    ] + weeks
    week_names = ', '.join(f'wk{i}' for i in range(1, 17))
    columns = ("crop_code, nursery_days, outgrowing_days, yield_per_ha, harvest_weeks, reject_rate, "
               + week_names)
    updates = ', '.join(f"{c.strip()} = excluded.{c.strip()}" for c in columns.split(',')[1:])

    conn = get_db()
    conn.execute(
        f"""INSERT INTO key_inputs ({columns}) VALUES ({_placeholders(values)})
            ON CONFLICT(crop_code) DO UPDATE SET {updates}""",
        values
    )
    row = conn.execute("SELECT id FROM key_inputs WHERE crop_code = ?", (crop_code,)).fetchone()
    conn.commit()
    conn.close()
    return row['id']


def get_key_inputs():
    """All crop key inputs, ordered by crop code."""
    conn = get_db()
    rows = conn.execute("SELECT * FROM key_inputs ORDER BY crop_code").fetchall()
    conn.close()
    return rows


# ========================================
# Overrides
# ========================================

def upsert_override(phase_id, procedure_entry_id, domain, action, week_start):
    """
    Insert or update the override for (phase, SOP, domain, week).

    There is no conflict detection: the last write wins.
    """
    domain = parse_domain(domain)
    if domain == 'harvest':
        raise ValidationError("Overrides are only supported for labor and nutri")
    action = parse_action(action)
    week = parse_week_start(week_start).isoformat()

    conn = get_db()
    try:
        conn.execute(
            """INSERT INTO phase_overrides (phase_id, procedure_entry_id, domain, action, week_start)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(phase_id, procedure_entry_id, domain, week_start)
               DO UPDATE SET action = excluded.action, updated_at = CURRENT_TIMESTAMP""",
            (phase_id, procedure_entry_id, domain, action, week)
        )
        row = conn.execute(
            """SELECT * FROM phase_overrides
               WHERE phase_id = ? AND procedure_entry_id = ? AND domain = ? AND week_start = ?""",
            (phase_id, procedure_entry_id, domain, week)
        ).fetchone()
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        logger.exception("Failed to save override for phase %s SOP %s", phase_id, procedure_entry_id)
        raise
    finally:
        conn.close()
    return row


def delete_override(phase_id, procedure_entry_id, domain, week_start):
    """Delete one override; returns False when there was none."""
    week = parse_week_start(week_start).isoformat()
    conn = get_db()
    cursor = conn.execute(
        """DELETE FROM phase_overrides
           WHERE phase_id = ? AND procedure_entry_id = ? AND domain = ? AND week_start = ?""",
        (phase_id, procedure_entry_id, parse_domain(domain), week)
    )
    conn.commit()
    conn.close()
    return cursor.rowcount > 0


def get_overrides(phase_ids, week_start, domain=None):
    """Overrides of some phases for one week, in creation order."""
    if not phase_ids:
        return []
    query = (f"SELECT * FROM phase_overrides WHERE phase_id IN ({_placeholders(phase_ids)})"
             " AND week_start = ?")
    params = list(phase_ids) + [parse_week_start(week_start).isoformat()]
    if domain:
        query += " AND domain = ?"
        params.append(domain)
    query += " ORDER BY id"

    conn = get_db()
    rows = conn.execute(query, params).fetchall()
    conn.close()
    return rows


# ========================================
# Schedules
# ========================================

def get_schedule_entries(phase_ids, week_start, domain=None):
    """Stored Gantt ticks for some phases and one week."""
    if not phase_ids:
        return []
    query = (f"SELECT * FROM schedule_entries WHERE phase_id IN ({_placeholders(phase_ids)})"
             " AND week_start = ?")
    params = list(phase_ids) + [parse_week_start(week_start).isoformat()]
    if domain:
        query += " AND domain = ?"
        params.append(domain)
    query += " ORDER BY phase_id, procedure_entry_id, day_of_week"

    conn = get_db()
    rows = conn.execute(query, params).fetchall()
    conn.close()
    return rows


def replace_schedule(phase_ids, week_start, domain, entries):
    """
    Replace the whole schedule of (phases, week, domain) with `entries`.

    Delete and insert run in one transaction. Concurrent saves are not
    merged: the last one wins.

    Returns:
        number of rows written.
    """
    week = parse_week_start(week_start).isoformat()
    domain = parse_domain(domain)
    rows = [
        (e.phase_id, e.procedure_entry_id, domain, week, parse_day(e.day_of_week))
        for e in entries
    ]
    if not phase_ids:
        return 0

    conn = get_db()
    try:
        conn.execute(
            f"""DELETE FROM schedule_entries
                WHERE phase_id IN ({_placeholders(phase_ids)}) AND week_start = ? AND domain = ?""",
            list(phase_ids) + [week, domain]
        )
        conn.executemany(
            """INSERT OR IGNORE INTO schedule_entries
               (phase_id, procedure_entry_id, domain, week_start, day_of_week)
               VALUES (?, ?, ?, ?, ?)""",
            rows
        )
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        logger.exception("Failed to save %s schedule for week %s", domain, week)
        raise
    finally:
        conn.close()
    return len(rows)


# ========================================
# Field records
# ========================================

def create_field_record(phase_id, record_type, record_date, product_or_task='',
                        actual_quantity=0, cost=0, notes=None):
    """Append a feeding / labor / harvest record; returns its id."""
    record_type = parse_record_type(record_type)
    day = parse_date(record_date, 'date')
    quantity = parse_non_negative(actual_quantity, 'actualQuantity')
    cost = parse_non_negative(cost, 'cost', default=0)

    conn = get_db()
    cursor = conn.execute(
        """INSERT INTO field_records
           (phase_id, record_type, record_date, product_or_task, actual_quantity, cost, notes)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (phase_id, record_type, day.isoformat(), str(product_or_task or '').strip(),
         quantity, cost, notes)
    )
    record_id = cursor.lastrowid
    conn.commit()
    conn.close()
    return record_id


def get_field_record(record_id):
    conn = get_db()
    row = conn.execute("SELECT * FROM field_records WHERE id = ?", (record_id,)).fetchone()
    conn.close()
    return row


def delete_field_record(record_id):
    """Delete a field record; returns False when it did not exist."""
    conn = get_db()
    cursor = conn.execute("DELETE FROM field_records WHERE id = ?", (record_id,))
    conn.commit()
    conn.close()
    return cursor.rowcount > 0


def get_field_records(phase_ids, start_date, end_date, record_type=None):
    """Records of some phases with start_date <= date <= end_date."""
    if not phase_ids:
        return []
    query = (f"SELECT * FROM field_records WHERE phase_id IN ({_placeholders(phase_ids)})"
             " AND record_date >= ? AND record_date <= ?")
    params = list(phase_ids) + [parse_date(start_date).isoformat(), parse_date(end_date).isoformat()]
    if record_type:
        query += " AND record_type = ?"
        params.append(record_type)
    query += " ORDER BY record_date, id"

    conn = get_db()
    rows = conn.execute(query, params).fetchall()
    conn.close()
    return rows
