"""
Routes package for LuckyVault IMS
Contains Flask blueprints for modular routing.
"""

from routes.auth import auth_bp, login_required, admin_required, page_access_required
from routes.dashboard import dashboard_bp
from routes.users import users_bp
from routes.products import products_bp
from routes.inventory import inventory_bp
from routes.purchases import purchases_bp
from routes.sales import sales_bp
from routes.platform_sales import platform_sales_bp
from routes.stream_counts import stream_counts_bp
from routes.expenses import expenses_bp
from routes.high_value import high_value_bp
from routes.reports import reports_bp
from routes.settings import settings_bp
from routes.logs import logs_bp

__all__ = [
    'auth_bp',
    'dashboard_bp',
    'users_bp',
    'products_bp',
    'inventory_bp',
    'purchases_bp',
    'sales_bp',
    'platform_sales_bp',
    'stream_counts_bp',
    'expenses_bp',
    'high_value_bp',
    'reports_bp',
    'settings_bp',
    'logs_bp',
    'login_required',
    'admin_required',
    'page_access_required'
]
