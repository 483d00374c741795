"""
Admin blueprint - registration approvals and the deletion audit trail.

Every route requires an authenticated user with role admin.
"""
from flask import Blueprint, g, jsonify, request

from app.database import get_session
from app.middleware import require_admin
from app.services import registration_service
from app.services.deletion_log_service import list_deletion_logs
from app.utils.http import get_payload, pagination_args
from app.utils.pagination import build_paginated_response

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


@admin_bp.route('/registration-requests', methods=['GET'])
@require_admin
def list_registration_requests():
    """Optional ?status=pending|approved|rejected."""
    status = request.args.get('status', '').strip() or None
    requests = registration_service.list_requests(get_session(), status)
    return jsonify([r.to_dict() for r in requests])


@admin_bp.route('/registration-requests/<int:request_id>/approve', methods=['POST'])
@require_admin
def approve_registration_request(request_id):
    data = get_payload()
    request_row = registration_service.approve(
        get_session(), request_id, g.user.id, data.get('admin_notes')
    )
    return jsonify({
        'message': 'Solicitud aprobada',
        'request': request_row.to_dict(),
    })


@admin_bp.route('/registration-requests/<int:request_id>/reject', methods=['POST'])
@require_admin
def reject_registration_request(request_id):
    data = get_payload()
    request_row = registration_service.reject(
        get_session(), request_id, g.user.id, data.get('admin_notes')
    )
    return jsonify({
        'message': 'Solicitud rechazada',
        'request': request_row.to_dict(),
    })


@admin_bp.route('/deletion-logs', methods=['GET'])
@require_admin
def deletion_logs():
    """Audit trail, newest first. Optional ?table=clients|products|sales|optics."""
    page, limit, _ = pagination_args()
    table_name = request.args.get('table', '').strip() or None
    logs, total = list_deletion_logs(get_session(), table_name, page, limit)
    return jsonify(build_paginated_response([log.to_dict() for log in logs], page, limit, total))
