"""Optics blueprint - tenant management (admin) and optic-level numbers."""
from flask import Blueprint, current_app, g, jsonify

from app.database import get_session
from app.middleware import require_auth, require_admin
from app.services import optic_service, dashboard_service
from app.utils.http import get_payload, pagination_args, deletion_reason
from app.utils.pagination import build_paginated_response

optics_bp = Blueprint('optics', __name__, url_prefix='/api/optics')


@optics_bp.route('/stats', methods=['GET'])
@require_auth
def stats():
    """Totals for the caller's optic (all optics for admins)."""
    return jsonify(dashboard_service.get_stats(get_session(), g.scope))


@optics_bp.route('/activity', methods=['GET'])
@require_auth
def activity():
    """10 most recent sales."""
    return jsonify(dashboard_service.get_recent_sales(get_session(), g.scope, limit=10))


@optics_bp.route('/low-stock', methods=['GET'])
@require_auth
def low_stock():
    threshold = current_app.config.get('LOW_STOCK_THRESHOLD', 5)
    return jsonify(dashboard_service.get_low_stock_products(get_session(), g.scope, threshold=threshold))


@optics_bp.route('', methods=['GET'])
@require_admin
def list_optics():
    page, limit, search = pagination_args()
    optics, total = optic_service.get_all(get_session(), g.scope, page, limit, search)
    return jsonify(build_paginated_response([o.to_dict() for o in optics], page, limit, total))


@optics_bp.route('', methods=['POST'])
@require_admin
def create_optic():
    optic = optic_service.create(get_session(), get_payload(), g.scope)
    return jsonify(optic.to_dict()), 201


@optics_bp.route('/<int:optic_id>', methods=['GET'])
@require_auth
def get_optic(optic_id):
    optic = optic_service.get_by_id(get_session(), optic_id, g.scope)
    return jsonify(optic.to_dict())


@optics_bp.route('/<int:optic_id>', methods=['PUT'])
@require_admin
def update_optic(optic_id):
    optic = optic_service.update(get_session(), optic_id, get_payload(), g.scope)
    return jsonify(optic.to_dict())


@optics_bp.route('/<int:optic_id>', methods=['DELETE'])
@require_admin
def delete_optic(optic_id):
    optic_service.soft_delete(get_session(), optic_id, g.scope, deletion_reason())
    return jsonify({'message': 'Óptica desactivada correctamente', 'id': optic_id})
