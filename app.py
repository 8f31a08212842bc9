import os
import logging
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect
from flask_cors import CORS
from flask_compress import Compress
from sqlalchemy.orm import DeclarativeBase
from werkzeug.middleware.proxy_fix import ProxyFix
from flask_login import LoginManager

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


db = SQLAlchemy(model_class=Base)
login_manager = LoginManager()
csrf = CSRFProtect()
compress = Compress()


def _database_config(database_url):
    """Engine options for PostgreSQL in production, SQLite for development"""
    if database_url.startswith(("postgresql://", "postgres://")):
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)
        # Ensure psycopg2 driver is specified
        database_url = database_url.replace("postgresql://", "postgresql+psycopg2://", 1)

        from urllib.parse import urlparse
        parsed = urlparse(database_url)
        logger.info(f"Connecting to PostgreSQL: host={parsed.hostname}, db={parsed.path[1:]}, user={parsed.username}")

        return database_url, {
            "pool_size": 10,
            "pool_recycle": 280,
            "pool_pre_ping": True,
            "max_overflow": 15,
            "pool_timeout": 20,
            "connect_args": {
                "connect_timeout": 10,
                "application_name": "fleet_manager",
            }
        }

    return database_url, {
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }


def create_app(config_overrides=None):
    app = Flask(__name__)

    # Enforce SESSION_SECRET requirement
    app.secret_key = os.environ.get("SESSION_SECRET")
    if not app.secret_key:
        raise RuntimeError("SESSION_SECRET environment variable is required but not set")

    from timezone_utils import get_local_time_naive
    from utils.logging_config import setup_logging, log_request_start, log_request_end
    setup_logging(app)

    from utils.config_validator import validate_configuration
    config_ok, issues = validate_configuration()
    for issue in issues:
        logger.warning(f"Configuration issue: {issue}")
    if not config_ok:
        logger.warning("Starting with an incomplete configuration")

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    production_origins = os.environ.get('ALLOWED_ORIGINS', '').split(',')
    allowed_origins = [origin.strip() for origin in production_origins if origin.strip()]

    # Fallback to localhost for development only if no production origins set
    if not allowed_origins:
        allowed_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    CORS(app, origins=allowed_origins,
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"])

    app.config['COMPRESS_MIMETYPES'] = ['application/json', 'text/plain']
    app.config['COMPRESS_LEVEL'] = 6
    app.config['COMPRESS_MIN_SIZE'] = 500
    compress.init_app(app)

    database_url, engine_options = _database_config(
        os.environ.get("DATABASE_URL") or "sqlite:///fleet_manager.db"
    )
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options
    app.config["JSON_SORT_KEYS"] = False

    if config_overrides:
        app.config.update(config_overrides)

    db.init_app(app)
    login_manager.init_app(app)
    csrf.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        from models import User
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'success': False, 'error': 'Unauthorized'}), 401

    app.before_request(log_request_start)
    app.after_request(log_request_end)

    from errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints
    from auth import auth_bp
    from fleet_routes import fleet_bp
    from ledger_routes import ledger_bp
    from report_routes import reports_bp
    from settings_routes import settings_bp

    for blueprint in (auth_bp, fleet_bp, ledger_bp, reports_bp, settings_bp):
        # JSON API: session cookie + CORS allow-list, no form tokens
        csrf.exempt(blueprint)

    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(fleet_bp, url_prefix='/api')
    app.register_blueprint(ledger_bp, url_prefix='/api')
    app.register_blueprint(reports_bp, url_prefix='/api/reports')
    app.register_blueprint(settings_bp, url_prefix='/api')

    with app.app_context():
        import models  # noqa: F401
        db.create_all()

        # Only create demo data if explicitly enabled
        demo_mode = os.environ.get('DEMO_SEED', 'false').lower() == 'true'
        if demo_mode:
            from database_commands import seed_demo_data
            seed_demo_data()

    # Health check endpoint for deployment
    @app.route('/health')
    def health():
        """Simple health check endpoint for deployment readiness"""
        return {'status': 'ok', 'timestamp': get_local_time_naive().isoformat()}, 200

    return app
