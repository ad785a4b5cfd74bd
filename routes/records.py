"""
routes/records.py — Field record logging (feeding, labor, harvest).

Provides:
- GET /api/records?phaseIds=&weekStart=&type= — Records of one week
- POST /api/records/<record_type> — Log a record
- DELETE /api/records/<record_id> — Delete a record
"""

from flask import Blueprint, request, jsonify

from sop_service import add_field_record, list_field_records, remove_field_record, scope_phase_ids
from utils.validators import parse_int, parse_record_type, parse_week_start

records_bp = Blueprint('records', __name__, url_prefix='/api/records')


@records_bp.route('', methods=['GET'])
def records():
    week_start = parse_week_start(request.args.get('weekStart'))
    phase_ids = scope_phase_ids(request.args.get('phaseIds'), request.args.get('farm'))
    record_type = request.args.get('type')
    if record_type:
        record_type = parse_record_type(record_type, 'type')
    rows = list_field_records(phase_ids, week_start, record_type)
    return jsonify({'records': [r.to_dict() for r in rows]})


@records_bp.route('/<record_type>', methods=['POST'])
def create(record_type):
    """Body: {phaseId, date, productOrTask, actualQuantity, cost?, notes?}."""
    data = request.get_json(silent=True) or {}
    record = add_field_record(
        parse_int(data.get('phaseId'), 'phaseId', minimum=1),
        record_type,
        data.get('date'),
        data.get('productOrTask', ''),
        data.get('actualQuantity'),
        data.get('cost', 0),
        data.get('notes'),
    )
    return jsonify({'success': True, 'record': record.to_dict()}), 201


@records_bp.route('/<int:record_id>', methods=['DELETE'])
def delete(record_id):
    remove_field_record(record_id)
    return jsonify({'success': True})
