"""
routes/forecast.py — Harvest forecast (IPP).

Provides:
- GET /api/forecast?weekStart=&weeks=&farm= — Farm -> crop -> phase tonnage
- GET /api/forecast/<phase_id>?weekStart=&weeks= — One phase's weekly tons
"""

from flask import Blueprint, request, jsonify

from sop_service import forecast_overview, project_forecast

forecast_bp = Blueprint('forecast', __name__, url_prefix='/api/forecast')


@forecast_bp.route('')
def overview():
    farm = request.args.get('farm', '').strip() or None
    return jsonify(forecast_overview(
        request.args.get('weekStart') or None,
        request.args.get('weeks') or None,
        farm,
    ))


@forecast_bp.route('/<int:phase_id>')
def phase_forecast(phase_id):
    return jsonify(project_forecast(
        phase_id,
        request.args.get('weeks') or None,
        request.args.get('weekStart') or None,
    ))
