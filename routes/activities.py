"""
routes/activities.py — Weekly activity resolution and overrides.

Provides:
- GET /api/activities/<domain>?phaseIds=1,2&weekStart= — Resolved activities
  plus the SOP entries that can still be added per phase
- GET /api/overrides?phaseIds=&weekStart=&domain= — Overrides of a week
- POST /api/overrides — Add or remove a SOP entry for one phase/week
- DELETE /api/overrides — Clear an override
"""

from flask import Blueprint, request, jsonify

from sop_service import (
    clear_override, list_overrides, resolve_week, scope_phase_ids, set_override
)
from utils.validators import parse_domain, parse_int, parse_week_start
from utils.weeks import format_week, week_label

activities_bp = Blueprint('activities', __name__, url_prefix='/api')


def _override_args(data):
    return (
        parse_int(data.get('phaseId'), 'phaseId', minimum=1),
        parse_int(data.get('sopId'), 'sopId', minimum=1),
        data.get('domain', 'labor'),
    )


@activities_bp.route('/activities/<domain>')
def activities(domain):
    """Activities of the selected phases for one week."""
    week_start = parse_week_start(request.args.get('weekStart'))
    phase_ids = scope_phase_ids(request.args.get('phaseIds'), request.args.get('farm'))
    result = resolve_week(phase_ids, week_start, domain)

    activities_list = result['activities']
    return jsonify({
        'domain': parse_domain(domain),
        'week_start': format_week(week_start),
        'week_label': week_label(week_start),
        'activities': [a.to_dict() for a in activities_list],
        'additions': result['additions'],
        'total_quantity': sum(a.total_quantity for a in activities_list),
        'total_cost': sum(a.cost for a in activities_list),
    })


@activities_bp.route('/overrides', methods=['GET'])
def overrides():
    week_start = parse_week_start(request.args.get('weekStart'))
    phase_ids = scope_phase_ids(request.args.get('phaseIds'), request.args.get('farm'))
    rows = list_overrides(phase_ids, week_start, request.args.get('domain'))
    return jsonify({'overrides': [o.to_dict() for o in rows]})


@activities_bp.route('/overrides', methods=['POST'])
def save_override():
    """Body: {phaseId, sopId, domain, action: add|remove, weekStart}."""
    data = request.get_json(silent=True) or {}
    phase_id, sop_id, domain = _override_args(data)
    override = set_override(phase_id, sop_id, domain, data.get('action'), data.get('weekStart'))
    return jsonify({'success': True, 'override': override.to_dict()})


@activities_bp.route('/overrides', methods=['DELETE'])
def delete_override():
    data = request.get_json(silent=True) or request.args.to_dict()
    phase_id, sop_id, domain = _override_args(data)
    deleted = clear_override(phase_id, sop_id, domain, data.get('weekStart'))
    return jsonify({'success': True, 'deleted': deleted})
