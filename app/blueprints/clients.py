"""Clients blueprint - tenant-scoped client registry (JSON)."""
from flask import Blueprint, g, jsonify, request

from app.database import get_session
from app.middleware import require_auth
from app.services import client_service
from app.utils.http import get_payload, pagination_args, deletion_reason
from app.utils.pagination import build_paginated_response

clients_bp = Blueprint('clients', __name__, url_prefix='/api/clients')


@clients_bp.route('', methods=['GET'])
@require_auth
def list_clients():
    """List clients with page/limit/search."""
    page, limit, search = pagination_args()
    clients, total = client_service.get_all(get_session(), g.scope, page, limit, search)
    return jsonify(build_paginated_response([c.to_dict() for c in clients], page, limit, total))


@clients_bp.route('/search', methods=['GET'])
@require_auth
def search_clients():
    """Autocomplete search (first 20 matches)."""
    term = request.args.get('q', '').strip()
    if not term:
        return jsonify({'data': []})
    clients = client_service.search(get_session(), term, g.scope)
    return jsonify({'data': [c.to_dict() for c in clients]})


@clients_bp.route('', methods=['POST'])
@require_auth
def create_client():
    client = client_service.create(get_session(), get_payload(), g.scope)
    return jsonify(client.to_dict()), 201


@clients_bp.route('/<int:client_id>', methods=['GET'])
@require_auth
def get_client(client_id):
    client = client_service.get_by_id(get_session(), client_id, g.scope)
    return jsonify(client.to_dict())


@clients_bp.route('/<int:client_id>', methods=['PUT'])
@require_auth
def update_client(client_id):
    client = client_service.update(get_session(), client_id, get_payload(), g.scope)
    return jsonify(client.to_dict())


@clients_bp.route('/<int:client_id>', methods=['DELETE'])
@require_auth
def delete_client(client_id):
    client_service.soft_delete(get_session(), client_id, g.scope, deletion_reason())
    return jsonify({'message': 'Cliente eliminado correctamente', 'id': client_id})
