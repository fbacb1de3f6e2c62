"""
Dashboard routes for LuckyVault IMS
"""

import logging
from flask import Blueprint, render_template, jsonify
from routes.auth import login_required, get_current_user
from database import get_dashboard_stats, has_page_access

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint('dashboard', __name__)

# Navigation tiles: (page key, endpoint, label)
NAV_TILES = [
    ('stream-counts', 'stream_counts.stream_counts_page', 'Stream Counts'),
    ('platform-sales', 'platform_sales.platform_sales_page', 'Platform Sales'),
    ('add-product', 'products.add_product_page', 'Add Product'),
    ('manual-inventory', 'inventory.manual_inventory_page', 'Manual Inventory'),
    ('purchased-items', 'purchases.purchases_page', 'Purchased Items'),
    ('expenses', 'expenses.expenses_page', 'Expenses'),
    ('intake', 'purchases.intake_page', 'Intake'),
    ('move-inventory', 'inventory.move_inventory_page', 'Move Inventory'),
    ('break-box', 'inventory.break_box_page', 'Break Box'),
    ('grading', 'inventory.grading_page', 'Grading'),
    ('storefront-sale', 'sales.storefront_page', 'Storefront Sale'),
    ('inventory', 'inventory.inventory_page', 'View Inventory'),
    ('high-value', 'high_value.high_value_page', 'High Value Items'),
    ('reports', 'reports.reports_page', 'Reports'),
    ('product-mapping', 'products.product_mapping_page', 'Product Mapping'),
    ('users', 'users.manage_users', 'Users'),
    ('logs', 'logs.logs_page', 'Activity Logs'),
    ('settings', 'settings.settings', 'Settings'),
]


def visible_tiles(user):
    return [{'page': page, 'endpoint': endpoint, 'label': label}
            for page, endpoint, label in NAV_TILES if has_page_access(user, page)]


@dashboard_bp.route('/dashboard')
@login_required
def dashboard():
    """Display the dashboard with navigation tiles"""
    user = get_current_user()
    return render_template('dashboard.html', user=user, tiles=visible_tiles(user))


@dashboard_bp.route('/api/dashboard/stats', methods=['GET'])
@login_required
def dashboard_stats():
    """Get headline counts for the dashboard"""
    try:
        return jsonify({'success': True, 'stats': get_dashboard_stats()})
    except Exception as e:
        logger.exception("Failed to load dashboard stats")
        return jsonify({'error': str(e)}), 500
