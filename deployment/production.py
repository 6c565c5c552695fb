#!/usr/bin/env python3
"""
Production deployment configuration for Apparel Studio.

This module provides production-ready WSGI server configuration,
environment setup, and deployment utilities.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict

from loguru import logger


# Production WSGI application
def create_production_app():
    """Create production Flask application with proper configuration."""
    # Set production environment
    os.environ['FLASK_ENV'] = 'production'

    # Import after setting environment
    from apparel_studio import create_app

    # Production configuration
    config = {
        'DEBUG': False,
        'TESTING': False,
        'LOG_FILE': os.environ.get('LOG_FILE', '/var/log/apparel_studio/app.log'),
        'LOG_LEVEL': os.environ.get('LOG_LEVEL', 'INFO'),
        'ASSETS_DIRECTORY': os.environ.get('ASSETS_DIRECTORY', '/opt/apparel_studio/assets'),
    }
    if os.environ.get('SECRET_KEY'):
        config['SECRET_KEY'] = os.environ['SECRET_KEY']

    # Create application
    app = create_app(config, environment='production')

    # Quiet the WSGI server loggers
    setup_production_logging(app)

    return app


def setup_production_logging(app):
    """Configure production logging."""
    logging.getLogger('werkzeug').setLevel(logging.WARNING)
    logging.getLogger('waitress').setLevel(logging.WARNING)
    logger.info(f"Production logging to {app.config.get('LOG_FILE')} at {app.config.get('LOG_LEVEL')}")


def check_production_requirements() -> list:
    """Check that production requirements are met."""
    errors = []

    # Check Python version
    if sys.version_info < (3, 9):
        errors.append("Python 3.9 or higher required")

    # Check environment variables
    required_env_vars = ['SECRET_KEY', 'CLOUDINARY_CLOUD_NAME']
    for var in required_env_vars:
        if not os.environ.get(var):
            errors.append(f"Environment variable {var} is required")

    # Check base garment assets
    assets = Path(os.environ.get('ASSETS_DIRECTORY', '/opt/apparel_studio/assets'))
    if not (assets / 'base-shirts').is_dir():
        errors.append(f"Base garment images not found under: {assets / 'base-shirts'}")

    # Check write permissions
    log_dir = Path(os.environ.get('LOG_FILE', '/var/log/apparel_studio/app.log')).parent
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        test_file = log_dir / 'test_write'
        test_file.write_text('test')
        test_file.unlink()
    except OSError:
        errors.append(f"No write permission to log folder: {log_dir}")

    return errors


def server_settings() -> Dict[str, Any]:
    return {
        'host': os.environ.get('HOST', '0.0.0.0'),
        'port': int(os.environ.get('PORT', '8000')),
        'threads': int(os.environ.get('THREADS', '4')),
        'channel_timeout': 120,
        'cleanup_interval': 30,
        'connection_limit': 1000,
        'url_scheme': 'https' if os.environ.get('HTTPS', '').lower() == 'true' else 'http',
    }


if __name__ == '__main__':
    # Check requirements
    errors = check_production_requirements()
    if errors:
        print("❌ Production requirements not met:")
        for error in errors:
            print(f"  - {error}")
        sys.exit(1)

    print("✅ Production requirements check passed")

    from waitress import serve

    app = create_production_app()
    settings = server_settings()

    print(f"🚀 Starting Apparel Studio on {settings['host']}:{settings['port']}")
    print(f"   Threads: {settings['threads']}")

    try:
        serve(app, **settings)
    except KeyboardInterrupt:
        print("\n👋 Shutting down gracefully...")
