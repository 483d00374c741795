"""Products blueprint - catalog CRUD (JSON or form data)."""
from flask import Blueprint, g, jsonify, request

from app.database import get_session
from app.middleware import require_auth
from app.services import product_service
from app.utils.http import get_payload, pagination_args, deletion_reason
from app.utils.pagination import build_paginated_response

products_bp = Blueprint('products', __name__, url_prefix='/api/products')


@products_bp.route('', methods=['GET'])
@require_auth
def list_products():
    page, limit, search = pagination_args()
    products, total = product_service.get_all(get_session(), g.scope, page, limit, search)
    return jsonify(build_paginated_response([p.to_dict() for p in products], page, limit, total))


@products_bp.route('/search', methods=['GET'])
@require_auth
def search_products():
    term = request.args.get('q', '').strip()
    if not term:
        return jsonify({'data': []})
    products = product_service.search(get_session(), term, g.scope)
    return jsonify({'data': [p.to_dict() for p in products]})


@products_bp.route('', methods=['POST'])
@require_auth
def create_product():
    product = product_service.create(get_session(), get_payload(allow_form=True), g.scope)
    return jsonify(product.to_dict()), 201


@products_bp.route('/<int:product_id>', methods=['GET'])
@require_auth
def get_product(product_id):
    product = product_service.get_by_id(get_session(), product_id, g.scope)
    return jsonify(product.to_dict())


@products_bp.route('/<int:product_id>', methods=['PUT'])
@require_auth
def update_product(product_id):
    product = product_service.update(get_session(), product_id, get_payload(allow_form=True), g.scope)
    return jsonify(product.to_dict())


@products_bp.route('/<int:product_id>', methods=['DELETE'])
@require_auth
def delete_product(product_id):
    product_service.soft_delete(get_session(), product_id, g.scope, deletion_reason())
    return jsonify({'message': 'Producto eliminado correctamente', 'id': product_id})
