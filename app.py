import os
import logging
import uuid
from flask import Flask, jsonify, g, request
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect
from flask_cors import CORS
from flask_compress import Compress
from sqlalchemy.orm import DeclarativeBase
from werkzeug.middleware.proxy_fix import ProxyFix
from flask_login import LoginManager
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass

db = SQLAlchemy(model_class=Base)
login_manager = LoginManager()
csrf = CSRFProtect()
compress = Compress()


def _database_config(database_url):
    """Engine options for PostgreSQL in production, SQLite for development and tests"""
    if database_url.startswith(("postgresql://", "postgres://")):
        # Ensure psycopg2 driver is specified
        if database_url.startswith("postgresql://"):
            database_url = database_url.replace("postgresql://", "postgresql+psycopg2://", 1)
        elif database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql+psycopg2://", 1)

        from urllib.parse import urlparse
        parsed = urlparse(database_url)
        logger.info(f"Connecting to PostgreSQL: host={parsed.hostname}, db={parsed.path[1:]}, user={parsed.username}")

        return database_url, {
            "pool_size": 10,
            "pool_recycle": 280,  # Slightly less than 5 minutes to prevent stale connections
            "pool_pre_ping": True,
            "max_overflow": 15,
            "pool_timeout": 20,
            "connect_args": {
                "connect_timeout": 10,
                "application_name": "fleet_compliance",
            }
        }

    return database_url, {
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }


def create_app(config_overrides=None):
    # Create the app
    app = Flask(__name__)
    config_overrides = dict(config_overrides or {})
    testing = bool(config_overrides.get('TESTING')) or os.environ.get('TESTING', '').lower() == 'true'

    # Enforce SESSION_SECRET requirement
    app.secret_key = os.environ.get("SESSION_SECRET")
    if not app.secret_key:
        if not testing:
            raise RuntimeError("SESSION_SECRET environment variable is required but not set")
        app.secret_key = 'testing-secret-not-for-production'

    # x_for/x_proto/x_host: trust one proxy hop
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    # CORS Configuration for production (restricted origins for security)
    production_origins = os.environ.get('ALLOWED_ORIGINS', '').split(',')
    allowed_origins = [origin.strip() for origin in production_origins if origin.strip()]

    # Fallback to localhost for development only if no production origins set
    if not allowed_origins:
        allowed_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    CORS(app, origins=allowed_origins,
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"])

    app.config['COMPRESS_MIMETYPES'] = [
        'text/html', 'text/plain', 'application/json'
    ]
    app.config['COMPRESS_LEVEL'] = 6
    app.config['COMPRESS_MIN_SIZE'] = 500
    compress.init_app(app)

    # Configure the database - use PostgreSQL in production, SQLite for development
    database_url, engine_options = _database_config(
        os.environ.get("DATABASE_URL") or "sqlite:///fleet_compliance.db"
    )
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    app.config["UPLOAD_FOLDER"] = os.environ.get("UPLOAD_FOLDER", "uploads")
    app.config["MAX_CONTENT_LENGTH"] = 50 * 1024 * 1024  # 50MB across all files of one upload
    app.config["NOTIFICATION_EXPIRY_WINDOW_DAYS"] = int(os.environ.get("NOTIFICATION_EXPIRY_WINDOW_DAYS", 30))
    app.config["RUNTIME_MODE"] = os.environ.get("FLASK_ENV", "production")

    app.config.update(config_overrides)
    if app.config.get("TESTING"):
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {}

    from utils.logging_config import setup_logging, log_request_start, log_request_end
    setup_logging(app)

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    csrf.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        from models import User
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Unauthorized'}), 401

    from errors import ComplianceError, PersistenceError

    @app.errorhandler(ComplianceError)
    def handle_compliance_error(error):
        body = error.to_dict()
        if isinstance(error, PersistenceError) and app.config["RUNTIME_MODE"] == 'production':
            from utils.security import AuditDataSanitizer
            body['error'] = AuditDataSanitizer.sanitize_error_message(body['error'])
        if error.status_code >= 500:
            logger.error(f"{type(error).__name__}: {body['error']}")
        return jsonify(body), error.status_code

    @app.before_request
    def assign_correlation_id():
        g.correlation_id = request.headers.get('X-Correlation-ID') or str(uuid.uuid4())
        log_request_start()

    @app.after_request
    def finish_request(response):
        response.headers['X-Correlation-ID'] = getattr(g, 'correlation_id', '')
        return log_request_end(response)

    # Register blueprints
    from auth import auth_bp
    from compliance_routes import compliance_bp
    from self_service_routes import self_service_bp

    # JSON API: session cookie + SameSite, no form tokens
    csrf.exempt(auth_bp)
    csrf.exempt(compliance_bp)
    csrf.exempt(self_service_bp)

    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(compliance_bp, url_prefix='/api')
    app.register_blueprint(self_service_bp)

    with app.app_context():
        import models  # noqa: F401
        db.create_all()

    from utils.config_validator import get_smtp_config_status
    logger.info(f"SMTP configuration: {get_smtp_config_status()}")

    # Health check endpoint for deployment
    @app.route('/health')
    def health():
        """Simple health check endpoint for deployment readiness"""
        return {'status': 'ok', 'timestamp': datetime.now(timezone.utc).isoformat()}, 200

    return app
