"""
routes/schedule.py — Gantt schedule grid.

Provides:
- GET /api/schedule/<domain>?phaseIds=&weekStart= — Grid of the stored schedule
- POST /api/schedule/<domain> — Replace the week's schedule with a day map
- POST /api/schedule/<domain>/toggle — Flip one day and return the new grid

The grid is edited client-side and saved as a whole: {phaseIds, weekStart,
dayMap: {"<phaseId>-<sopId>": [0, 2, 4]}}.
"""

from flask import Blueprint, request, jsonify

from day_scheduler import parse_day_map, serialize_day_map
from sop_service import get_schedule_grid, save_schedule, scope_phase_ids, toggle_schedule_day
from utils.validators import TOGGLE_ACTIONS, parse_action, parse_int, parse_week_start

schedule_bp = Blueprint('schedule', __name__, url_prefix='/api/schedule')


@schedule_bp.route('/<domain>', methods=['GET'])
def grid(domain):
    week_start = parse_week_start(request.args.get('weekStart'))
    phase_ids = scope_phase_ids(request.args.get('phaseIds'), request.args.get('farm'))
    return jsonify(get_schedule_grid(phase_ids, week_start, domain))


@schedule_bp.route('/<domain>', methods=['POST'])
def save(domain):
    """Replace-on-save: the stored set becomes exactly the posted day map."""
    data = request.get_json(silent=True) or {}
    week_start = parse_week_start(data.get('weekStart'))
    phase_ids = scope_phase_ids(data.get('phaseIds'), data.get('farm'))
    day_map = parse_day_map(data.get('dayMap'))

    written = save_schedule(phase_ids, week_start, day_map, domain)
    return jsonify({
        'success': True,
        'saved': written,
        'grid': get_schedule_grid(phase_ids, week_start, domain),
    })


@schedule_bp.route('/<domain>/toggle', methods=['POST'])
def toggle(domain):
    """
    Body: {phaseIds, weekStart, phaseId, sopId, day, action?, dayMap?}.

    The unsaved day map comes back with the recomputed grid; nothing is
    stored until the map is posted to the save endpoint.
    """
    data = request.get_json(silent=True) or {}
    week_start = parse_week_start(data.get('weekStart'))
    phase_id = parse_int(data.get('phaseId'), 'phaseId', minimum=1)
    sop_id = parse_int(data.get('sopId'), 'sopId', minimum=1)
    action = parse_action(data.get('action', 'toggle'), allowed=TOGGLE_ACTIONS)
    phase_ids = scope_phase_ids(data.get('phaseIds') or [phase_id], data.get('farm'))
    day_map = parse_day_map(data['dayMap']) if 'dayMap' in data else None

    day_map = toggle_schedule_day(phase_id, sop_id, week_start, data.get('day'),
                                  action, domain, day_map)
    return jsonify({
        'day_map': serialize_day_map(day_map),
        'grid': get_schedule_grid(phase_ids, week_start, domain, day_map),
    })
