"""
Flask Application Factory - Competitive Market Intelligence API

Serves locality market overviews, snapshot trends, demand-supply reports and
cached AI competitive analyses for a multi-tenant real-estate ERP.

Authentication is handled upstream; the tenant arrives in X-Organization-ID.
"""

import logging
import sys

from flask import Flask, jsonify
from flask_cors import CORS
from flask_migrate import Migrate

from config import Config
from models.database import db
from utils.json_serializer import IsoJSONProvider

# Initialize Flask-Migrate (will be initialized in create_app)
migrate = Migrate()


def configure_logging(level: str = None) -> None:
    """Root logging for the API process and the CLI."""
    logging.basicConfig(
        level=getattr(logging, (level or Config.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stdout,
    )


def create_app(config_overrides=None, reasoning_engine=None, clock=None):
    """
    Args:
        config_overrides: mapping applied after Config (tests pass an SQLite
            SQLALCHEMY_DATABASE_URI, which skips PostgreSQL URL validation)
        reasoning_engine: object implementing complete(); defaults to the
            Anthropic client
        clock: callable returning naive-UTC now; defaults to utc_now
    """
    app = Flask(__name__)
    app.json = IsoJSONProvider(app)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    if not app.config.get('SQLALCHEMY_DATABASE_URI'):
        app.config['SQLALCHEMY_DATABASE_URI'] = Config.database_url()
    if app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite'):
        # Pool sizing is PostgreSQL-only
        app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {}

    configure_logging(app.config.get('LOG_LEVEL'))

    CORS(app,
         resources={r"/api/*": {"origins": "*"}},
         methods=["GET", "POST", "OPTIONS", "PUT", "DELETE"],
         allow_headers=["Content-Type", "Authorization", "X-Request-ID", "X-Organization-ID", "X-User-ID"],
         expose_headers=["X-Request-ID"],
         supports_credentials=False,
         send_wildcard=True)

    # === API MIDDLEWARE ===
    from api.middleware import setup_error_handlers, setup_request_context_middleware
    setup_request_context_middleware(app)
    setup_error_handlers(app)

    # Initialize SQLAlchemy
    db.init_app(app)

    # Initialize Flask-Migrate for database migrations
    migrate.init_app(app, db)

    # Collaborators shared by request handlers
    if reasoning_engine is None:
        from services.reasoning_client import AnthropicReasoningClient
        reasoning_engine = AnthropicReasoningClient(
            api_key=app.config.get('ANTHROPIC_API_KEY'),
            model=app.config.get('AI_MODEL'),
            max_tokens=app.config.get('AI_MAX_TOKENS'),
        )
    app.extensions['reasoning_engine'] = reasoning_engine
    if clock is not None:
        app.extensions['market_clock'] = clock

    with app.app_context():
        # Import all models before create_all to ensure tables are created
        import models  # noqa: F401
        db.create_all()

    from routes.competitive_analysis import competitive_bp
    app.register_blueprint(competitive_bp, url_prefix='/api/competitive-analysis')

    @app.route("/api/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok", "service": "market-intel"})

    return app


def run_app():
    """Main entry point for local development - starts server with Flask's dev server."""
    app = create_app()
    logging.getLogger(__name__).info("Starting market-intel API on :5000")
    app.run(debug=Config.DEBUG, host="0.0.0.0", port=5000)


if __name__ == "__main__":
    run_app()
