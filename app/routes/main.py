"""
Main routes for the ALEKS Coins portal.

Public utility routes: service index and health check.
"""

from flask import Blueprint, jsonify, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db

# Create blueprint
main_bp = Blueprint('main', __name__)


@main_bp.route('/')
def home():
    """Describe the service and where its APIs live."""
    return jsonify({
        "status": "success",
        "service": "aleks-coins",
        "studentApi": "/api/student",
        "adminApi": "/admin",
    })


@main_bp.route('/health')
def health_check():
    """Simple health check endpoint for uptime monitoring."""
    try:
        db.session.execute(text('SELECT 1'))
        return 'ok', 200
    except SQLAlchemyError:
        current_app.logger.exception('Health check failed')
        return jsonify(error='Database error'), 500
