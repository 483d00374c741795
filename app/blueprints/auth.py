"""
Authentication blueprint.

Public: register, request-status, login, forgot/reset password.
Protected: me.
"""
from flask import Blueprint, current_app, g, jsonify

from app.database import get_session
from app.middleware import require_auth
from app.services import auth_service, registration_service
from app.utils.http import get_payload

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


@auth_bp.route('/register', methods=['POST'])
def register():
    """Self-service signup; creates a pending registration request."""
    request_row = registration_service.submit_registration(get_session(), get_payload())
    return jsonify({
        'message': 'Solicitud de registro enviada. Un administrador la revisará.',
        'request': request_row.to_dict(),
    }), 201


@auth_bp.route('/request-status/<username>', methods=['GET'])
def request_status(username):
    data = registration_service.get_registration_status(get_session(), username).to_dict()
    return jsonify({
        key: data[key]
        for key in ('username', 'status', 'admin_notes', 'created_at', 'reviewed_at')
    })


@auth_bp.route('/login', methods=['POST'])
def login():
    session = get_session()
    user = auth_service.authenticate(session, get_payload())
    token = auth_service.issue_token(
        user,
        current_app.config['JWT_SECRET'],
        current_app.config.get('JWT_EXPIRATION_HOURS', 24),
    )
    return jsonify(auth_service.build_session_payload(session, user, token))


@auth_bp.route('/me', methods=['GET'])
@require_auth
def me():
    return jsonify(auth_service.build_session_payload(get_session(), g.user))


@auth_bp.route('/forgot-password', methods=['POST'])
def forgot_password():
    """Issue a reset token. The response is the same whether or not the email exists."""
    token = auth_service.request_password_reset(
        get_session(),
        get_payload(),
        valid_minutes=current_app.config.get('PASSWORD_RESET_EXPIRATION_MINUTES', 60),
    )
    response = {'message': 'Si el email está registrado, recibirá instrucciones para restablecer la contraseña'}
    if token and current_app.config.get('ENV') == 'development':
        response['reset_token'] = token
    return jsonify(response)


@auth_bp.route('/reset-password', methods=['POST'])
def reset_password():
    auth_service.reset_password(get_session(), get_payload())
    return jsonify({'message': 'Contraseña actualizada correctamente'})
