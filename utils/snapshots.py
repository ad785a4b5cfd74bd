"""
utils/snapshots.py — JSON snapshots of weekly compliance results.

Saves an evaluated compliance week to the snapshot directory as JSON.
Format: compliance_{week_start}.json (week_start is the Monday, YYYY-MM-DD).
Contains: the evaluated entries, overall and per-domain summaries, the
phase ids in scope and the time of the snapshot.

Saving the same week again overwrites the previous snapshot.
"""

import os
import json
import logging
from datetime import datetime

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
HISTORY_DIR = os.path.join(BASE_DIR, 'history')


def get_snapshot_dir():
    """Snapshot directory: app config SNAPSHOT_DIR, else history/."""
    if has_app_context() and current_app.config.get('SNAPSHOT_DIR'):
        return current_app.config['SNAPSHOT_DIR']
    return HISTORY_DIR


def snapshot_filename(week_start):
    return f"compliance_{week_start}.json"


def save_snapshot(payload, week_start):
    """
    Write a compliance payload for one week as a JSON file.

    Args:
        payload: JSON-serializable compliance result
        week_start: Monday of the week as YYYY-MM-DD

    Returns:
        Filename of the saved snapshot.
    """
    snapshot_dir = get_snapshot_dir()
    os.makedirs(snapshot_dir, exist_ok=True)

    snapshot = dict(payload)
    snapshot['saved_at'] = datetime.now().isoformat(timespec='seconds')

    filename = snapshot_filename(week_start)
    filepath = os.path.join(snapshot_dir, filename)
    try:
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(snapshot, f, ensure_ascii=False, indent=2)
    except OSError:
        logger.exception("Could not write snapshot %s", filepath)
        raise
    return filename


def load_snapshot(week_start):
    """Read the snapshot of a week; None when it was never saved."""
    filepath = os.path.join(get_snapshot_dir(), snapshot_filename(week_start))
    if not os.path.exists(filepath):
        return None
    with open(filepath, 'r', encoding='utf-8') as f:
        return json.load(f)


def list_snapshots():
    """Saved snapshot filenames, newest week first."""
    snapshot_dir = get_snapshot_dir()
    if not os.path.isdir(snapshot_dir):
        return []
    names = [
        name for name in os.listdir(snapshot_dir)
        if name.startswith('compliance_') and name.endswith('.json')
    ]
    return sorted(names, reverse=True)
