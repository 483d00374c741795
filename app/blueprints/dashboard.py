"""Dashboard blueprint."""
from flask import Blueprint, g, jsonify

from app.database import get_session
from app.middleware import require_auth
from app.services import dashboard_service
from app.utils.http import get_payload

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/api/dashboard')


@dashboard_bp.route('/stats', methods=['GET'])
@require_auth
def stats():
    return jsonify(dashboard_service.get_dashboard_stats(get_session(), g.scope))


@dashboard_bp.route('/config', methods=['GET'])
@require_auth
def get_config():
    config = dashboard_service.get_config(get_session(), g.scope)
    return jsonify(config.to_dict())


@dashboard_bp.route('/config', methods=['PUT'])
@require_auth
def update_config():
    data = get_payload()
    config = dashboard_service.update_config(get_session(), g.scope, data.get('sections_visible'))
    return jsonify(config.to_dict())
