"""
routes/phases.py — Phase and SOP catalog lookups.

Provides:
- GET /api/phases?farm= — Active phases (optionally one farm)
- GET /api/farms — Farm names with active phases
- POST /api/phases/<phase_id>/archive — Archive a phase
- GET /api/catalog/<domain>?crop= — SOP catalog rows of a domain
"""

from flask import Blueprint, request, jsonify

from database import get_farms
from sop_service import archive_phase, list_catalog, list_phases
from utils.validators import parse_domain

phases_bp = Blueprint('phases', __name__, url_prefix='/api')


@phases_bp.route('/phases')
def phases():
    farm = request.args.get('farm', '').strip() or None
    return jsonify({'phases': [p.to_dict() for p in list_phases(farm)]})


@phases_bp.route('/phases/<int:phase_id>/archive', methods=['POST'])
def archive(phase_id):
    archive_phase(phase_id)
    return jsonify({'success': True})


@phases_bp.route('/farms')
def farms():
    return jsonify({'farms': get_farms()})


@phases_bp.route('/catalog/<domain>')
def catalog(domain):
    """SOP rows of one domain; harvest rows are derived from key inputs."""
    crop = request.args.get('crop', '').strip() or None
    entries = list_catalog(domain, crop)
    return jsonify({'domain': parse_domain(domain), 'entries': [e.to_dict() for e in entries]})
