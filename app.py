"""
LuckyVault IMS - Inventory and sales management for a trading card business
Main application entry point with Flask blueprints
"""

from flask import Flask, jsonify, request
import logging
import logging.config
import os

import database
from config import Config, LOGGING
from database import init_database, has_page_access, is_admin

# Import blueprints
from routes import (
    auth_bp,
    dashboard_bp,
    users_bp,
    products_bp,
    inventory_bp,
    purchases_bp,
    sales_bp,
    platform_sales_bp,
    stream_counts_bp,
    expenses_bp,
    high_value_bp,
    reports_bp,
    settings_bp,
    logs_bp
)
from routes.auth import get_current_user

logger = logging.getLogger(__name__)


def create_app(config_overrides=None):
    """Build the Flask application, initializing the database it points at"""
    logging.config.dictConfig(LOGGING)

    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
    app.secret_key = app.config['SECRET_KEY']

    database.DATABASE_PATH = app.config['DATABASE_PATH']
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)
    init_database(app.config['ADMIN_PIN'])
    logger.info("Using database %s", app.config['DATABASE_PATH'])

    # Register blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(platform_sales_bp)
    app.register_blueprint(stream_counts_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(high_value_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(logs_bp)

    @app.context_processor
    def inject_access():
        user = get_current_user()
        return {
            'current_user': user,
            'can_access': lambda page: has_page_access(user, page),
            'user_is_admin': is_admin(user)
        }

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({'error': 'Upload is too large'}), 413

    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith('/api/'):
            return jsonify({'error': 'Not found'}), 404
        return e

    return app


if __name__ == '__main__':
    app = create_app()
    app.run(debug=True, host='127.0.0.1', port=5000)
