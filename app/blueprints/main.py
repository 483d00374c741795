"""Main blueprint - liveness."""
from datetime import datetime, timezone
from flask import Blueprint, jsonify

main_bp = Blueprint('main', __name__)


@main_bp.route('/health', methods=['GET'])
def health():
    return jsonify({
        'status': 'OK',
        'timestamp': datetime.now(timezone.utc).isoformat(),
    })
