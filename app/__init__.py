"""Flask application factory."""
import logging
import traceback

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from app.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize Sentry for error tracking in production
    if app.config.get('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=app.config.get('ENV', 'production'),
        )

    # Production: Enable ProxyFix for HTTPS behind a reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database (connect with retry, schema sync, bootstrap)
    init_db(app)

    # Load user and access scope before each request
    from app.middleware import load_user_and_scope

    @app.before_request
    def before_request_handler():
        if request.method == 'OPTIONS':
            return None
        load_user_and_scope()

    # CORS for the browser frontend
    allowed_origins = set(app.config.get('CORS_ORIGINS', []))

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get('Origin')
        if origin and (origin in allowed_origins or '*' in allowed_origins):
            response.headers['Access-Control-Allow-Origin'] = origin
            response.headers['Vary'] = 'Origin'
            response.headers['Access-Control-Allow-Credentials'] = 'true'
            response.headers['Access-Control-Allow-Headers'] = 'Content-Type, Authorization'
            response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PUT, DELETE, OPTIONS'
        return response

    # Error Handlers
    from app.exceptions import OpticaError

    @app.errorhandler(OpticaError)
    def handle_optica_error(error):
        """Handle custom application exceptions."""
        app.logger.warning(f"OpticaError [{error.status_code}] {request.method} {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Ruta no encontrada'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Método no permitido'}), 405

    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            return jsonify({'status': 'error', 'message': error.description}), error.code

        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")

        message = 'Error interno del servidor'
        if app.config.get('ENV') == 'development':
            message = f'{message}: {error}'
        return jsonify({'status': 'error', 'message': message}), 500

    # Register blueprints
    from app.blueprints.main import main_bp
    from app.blueprints.auth import auth_bp
    from app.blueprints.clients import clients_bp
    from app.blueprints.products import products_bp
    from app.blueprints.sales import sales_bp
    from app.blueprints.optics import optics_bp
    from app.blueprints.dashboard import dashboard_bp
    from app.blueprints.admin import admin_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(clients_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(optics_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(admin_bp)

    # Register CLI commands
    from app.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"Optica API ready (ENV={app.config.get('ENV')})")
    return app
