"""
Sales blueprint.

Thin JSON layer over sales_service; every write is a single transaction
in the service, including the stock adjustment.
"""
from flask import Blueprint, g, jsonify, request

from app.database import get_session
from app.middleware import require_auth
from app.services import sales_service
from app.utils.http import get_payload, pagination_args, deletion_reason
from app.utils.pagination import build_paginated_response

sales_bp = Blueprint('sales', __name__, url_prefix='/api/sales')


@sales_bp.route('', methods=['GET'])
@require_auth
def list_sales():
    """List sales (with items), newest first."""
    page, limit, search = pagination_args()
    sales, total = sales_service.get_all(get_session(), g.scope, page, limit, search)
    return jsonify(build_paginated_response([s.to_dict() for s in sales], page, limit, total))


@sales_bp.route('/search', methods=['GET'])
@require_auth
def search_sales():
    term = request.args.get('q', '').strip()
    if not term:
        return jsonify({'data': []})
    sales = sales_service.search(get_session(), term, g.scope)
    return jsonify({'data': [s.to_dict() for s in sales]})


@sales_bp.route('', methods=['POST'])
@require_auth
def create_sale():
    """
    Record a sale.

    Body: client_id | unregistered_client_name, items[], notes, sale_date,
    prescription fields, optional total_amount (must match the items).
    """
    sale = sales_service.create_sale(get_session(), get_payload(), g.scope)
    return jsonify(sale.to_dict()), 201


@sales_bp.route('/<int:sale_id>', methods=['GET'])
@require_auth
def get_sale(sale_id):
    sale = sales_service.get_by_id(get_session(), sale_id, g.scope)
    return jsonify(sale.to_dict())


@sales_bp.route('/<int:sale_id>', methods=['PUT'])
@require_auth
def update_sale(sale_id):
    sale = sales_service.update_sale(get_session(), sale_id, get_payload(), g.scope)
    return jsonify(sale.to_dict())


@sales_bp.route('/<int:sale_id>', methods=['DELETE'])
@require_auth
def delete_sale(sale_id):
    sales_service.soft_delete_sale(get_session(), sale_id, g.scope, deletion_reason())
    return jsonify({'message': 'Venta eliminada correctamente', 'id': sale_id})
