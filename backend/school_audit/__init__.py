from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def _engine_options(db_url: str, timeout: float) -> Dict[str, Any]:
    if db_url.startswith('sqlite'):
        opts: Dict[str, Any] = {'connect_args': {'check_same_thread': False, 'timeout': timeout}}
        if db_url.endswith(':memory:'):
            # Ensure a single shared in-memory SQLite database across all sessions
            opts['poolclass'] = StaticPool
        return opts
    return {'pool_pre_ping': True, 'pool_timeout': timeout}


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret-change-me-before-deploying')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['DB_TIMEOUT_SECONDS'] = float(os.getenv('DB_TIMEOUT_SECONDS', '10'))
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')
    app.config['STRUCTURED_LOGGING'] = os.getenv('STRUCTURED_LOGGING', '0') == '1'
    app.config['AUDIT_ROLE_SCOPES'] = None

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    from .logging_setup import configure_logging
    configure_logging(app.config['LOG_LEVEL'], structured=app.config['STRUCTURED_LOGGING'])

    # Database
    db_url = app.config['DATABASE_URL']
    db_engine = create_engine(db_url, echo=False, future=True, **_engine_options(db_url, app.config['DB_TIMEOUT_SECONDS']))
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    from .services.policy import configure_policy
    configure_policy(app.config.get('AUDIT_ROLE_SCOPES'))

    from .routes.audit import audit_bp
    app.register_blueprint(audit_bp, url_prefix='/audit')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    from .errors import AuditError, error_payload

    @app.errorhandler(AuditError)
    def handle_audit_errors(e):  # type: ignore
        if e.status_code >= 500:
            app.logger.error('Audit request failed: %s', e)
        return error_payload(e.status_code, e.title, str(e)), e.status_code

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            return error_payload(e.code, e.name, e.description), e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return error_payload(500, 'Internal Server Error', 'Unexpected error'), 500

    # OpenAPI spec route (minimal)
    from .openapi import build_openapi_spec

    @app.route('/openapi.json')
    def openapi_spec():
        return build_openapi_spec()

    @app.route('/docs')
    def docs_index():
        # Lightweight HTML referencing Redoc CDN (no local install) for quick browsing
        return (
            "<!DOCTYPE html><html><head><title>Audit API Docs</title>"
            "<link rel=\"stylesheet\" href=\"https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.css\" />"
            "</head><body><redoc spec-url='/openapi.json'></redoc>"
            "<script src='https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.js'></script>"
            "</body></html>"
        )

    return app


def get_db():
    return SessionLocal()


def new_session():
    """Session independent of the request-scoped one; the caller must close it."""
    return SessionLocal.session_factory()
