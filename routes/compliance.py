"""
routes/compliance.py — Compliance dashboards.

Provides:
- GET /api/compliance?phaseIds=&weekStart=&today= — Day-level statuses, all domains
- GET /api/compliance/feeding — Nutrition variance per phase and product
- GET /api/compliance/labor-budget — Labor budget vs actual
- GET /api/compliance/harvest?lookbackWeeks= — Harvest pledge vs actual, per week
- GET /api/compliance/snapshot?weekStart= — Saved snapshot of a week
- POST /api/compliance/snapshot — Evaluate and save a snapshot
"""

from flask import Blueprint, request, jsonify

from sop_service import (
    evaluate_compliance, evaluate_feeding, evaluate_harvest_performance,
    evaluate_labor_budget, load_compliance_snapshot, save_compliance_snapshot,
    scope_phase_ids, NotFoundError
)
from utils.validators import parse_non_negative, parse_week_start

compliance_bp = Blueprint('compliance', __name__, url_prefix='/api/compliance')


def _scope():
    week_start = parse_week_start(request.args.get('weekStart'))
    phase_ids = scope_phase_ids(request.args.get('phaseIds'), request.args.get('farm'))
    return phase_ids, week_start


@compliance_bp.route('')
def overview():
    phase_ids, week_start = _scope()
    today = request.args.get('today') or None
    return jsonify(evaluate_compliance(phase_ids, week_start, today))


@compliance_bp.route('/feeding')
def feeding():
    phase_ids, week_start = _scope()
    tolerance = request.args.get('tolerance')
    if tolerance is not None:
        tolerance = parse_non_negative(tolerance, 'tolerance')
    return jsonify(evaluate_feeding(phase_ids, week_start, tolerance))


@compliance_bp.route('/labor-budget')
def labor():
    phase_ids, week_start = _scope()
    return jsonify(evaluate_labor_budget(phase_ids, week_start))


@compliance_bp.route('/harvest')
def harvest():
    phase_ids, week_start = _scope()
    lookback = request.args.get('lookbackWeeks') or 1
    return jsonify(evaluate_harvest_performance(phase_ids, week_start, lookback))


@compliance_bp.route('/snapshot', methods=['GET'])
def get_snapshot():
    week_start = parse_week_start(request.args.get('weekStart'))
    snapshot = load_compliance_snapshot(week_start)
    if snapshot is None:
        raise NotFoundError(f"No compliance snapshot for week {week_start.isoformat()}")
    return jsonify(snapshot)


@compliance_bp.route('/snapshot', methods=['POST'])
def create_snapshot():
    data = request.get_json(silent=True) or {}
    week_start = parse_week_start(data.get('weekStart'))
    phase_ids = scope_phase_ids(data.get('phaseIds'), data.get('farm'))
    filename = save_compliance_snapshot(phase_ids, week_start, data.get('today'))
    return jsonify({'success': True, 'filename': filename})
