"""
app.py — Flask entry point for the farm operations API.

Initializes the Flask app, registers all route blueprints, calls
init_db() and seed_defaults() on startup, and maps validation errors
to JSON responses.

Run: python app.py → localhost:5000
"""

import logging
import os

from flask import Flask, jsonify
from flask_wtf.csrf import CSRFProtect

from database import init_db, seed_defaults
from sop_service import NotFoundError
from utils.validators import ValidationError
from utils.weeks import InvalidWeekError
from routes.phases import phases_bp
from routes.activities import activities_bp
from routes.schedule import schedule_bp
from routes.compliance import compliance_bp
from routes.forecast import forecast_bp
from routes.records import records_bp

API_BLUEPRINTS = (phases_bp, activities_bp, schedule_bp, compliance_bp, forecast_bp, records_bp)


def create_app(test_config=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    base_dir = os.path.dirname(os.path.abspath(__file__))
    app.config.from_mapping(
        SECRET_KEY=os.environ.get('FARM_OPS_SECRET_KEY', 'farm-ops-local-app-secret-key'),
        DATABASE=os.environ.get('FARM_OPS_DB_PATH', os.path.join(base_dir, 'data', 'farm_ops.db')),
        SNAPSHOT_DIR=os.path.join(base_dir, 'history'),
        WTF_CSRF_CHECK_DEFAULT=True,
    )

    if test_config:
        app.config.update(test_config)

    if not app.debug and not app.testing:
        logging.basicConfig(level=logging.INFO,
                            format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    csrf = CSRFProtect(app)

    # Initialize database and seed defaults
    with app.app_context():
        init_db()
        seed_defaults()
    app.logger.info("Database ready at %s", app.config['DATABASE'])

    # Register blueprints; the JSON API is called by scripts and the SPA, not forms
    for blueprint in API_BLUEPRINTS:
        csrf.exempt(blueprint)
        app.register_blueprint(blueprint)

    @app.errorhandler(ValidationError)
    @app.errorhandler(InvalidWeekError)
    def bad_request(error):
        return jsonify({'error': str(error)}), 400

    @app.errorhandler(NotFoundError)
    def not_found(error):
        return jsonify({'error': str(error)}), 404

    @app.errorhandler(404)
    def unknown_route(error):
        return jsonify({'error': 'Not found'}), 404

    return app


if __name__ == '__main__':
    app = create_app()
    # Debug mode: enabled by default for development (auto-reload on file changes)
    # Set FLASK_DEBUG=0 to disable for production
    debug = os.environ.get('FLASK_DEBUG', '1') != '0'
    app.run(host='localhost', port=5000, debug=debug)
