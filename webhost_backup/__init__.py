import os
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask


def configure_logging(app):
    """Configure application logging"""

    # Create logs directory if it doesn't exist
    log_dir = app.config.get('LOG_DIR') or os.path.join(
        os.path.dirname(os.path.dirname(__file__)), 'data', 'logs'
    )
    os.makedirs(log_dir, exist_ok=True)

    # Set log level based on environment
    log_level = logging.DEBUG if app.config.get('DEBUG', False) else logging.INFO

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    # File handler
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'webhost_backup.log'),
        maxBytes=10485760,  # 10MB
        backupCount=10
    )
    file_handler.setLevel(log_level)
    file_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
    )
    file_handler.setFormatter(file_formatter)

    # Configure root logger
    logging.basicConfig(level=log_level, handlers=[console_handler, file_handler])

    # Configure Flask app logger
    app.logger.setLevel(log_level)
    app.logger.addHandler(console_handler)
    app.logger.addHandler(file_handler)

    app.logger.info(f"Logging configured (level: {logging.getLevelName(log_level)})")


def create_app(config_name=None, overrides=None):
    """Flask application factory"""

    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'production')

    from webhost_backup.config import config
    app.config.from_object(config[config_name])
    if overrides:
        app.config.update(overrides)

    # Configure logging
    configure_logging(app)

    # Ensure the backup directory exists
    os.makedirs(app.config['BACKUP_TARGET_DIR'], exist_ok=True)

    # Register blueprints
    from webhost_backup.routes import run_routes
    app.register_blueprint(run_routes.bp)

    # Health check endpoint
    @app.route('/health')
    def health():
        return {'status': 'healthy'}, 200

    app.logger.info(
        f"Backups go to {app.config['BACKUP_TARGET_DIR']} "
        f"(quota {app.config['BACKUP_QUOTA']} bytes, {app.config['COMPRESSION_ALGORITHM']})"
    )

    return app
