"""
IPO Digest delivery server - Flask Application Factory
"""
import logging
import os
from flask import Flask
from dotenv import load_dotenv

# Silence verbose SQLAlchemy logging
logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

MAX_BODY_BYTES = 1024 * 1024  # 1 MB JSON limit


def create_app(config=None):
    """
    Flask application factory

    Args:
        config: Optional configuration dictionary

    Returns:
        Flask application instance
    """
    # Load environment variables
    load_dotenv()

    app = Flask(__name__)

    # Default configuration
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key')
    app.config['MAX_CONTENT_LENGTH'] = MAX_BODY_BYTES

    # Load custom configuration
    if config:
        app.config.from_mapping(config)

    # Register blueprints
    from ipo_digest.routes import main
    app.register_blueprint(main)

    return app


# Create app instance for WSGI servers (ipo_digest:app)
app = create_app()
