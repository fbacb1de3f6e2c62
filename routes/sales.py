"""
Storefront sales routes for LuckyVault IMS
"""

import logging
from datetime import datetime
from flask import Blueprint, render_template, request, jsonify
from routes.auth import login_required, page_access_required, get_current_user, request_data
from database import (
    log_bulk_sale,
    log_product_sale,
    get_storefront_sales,
    get_inventory,
    log_activity,
    BRANDS,
    PRODUCT_TYPES
)

logger = logging.getLogger(__name__)

sales_bp = Blueprint('sales', __name__)


@sales_bp.route('/storefront-sale')
@page_access_required('storefront-sale')
def storefront_page():
    """Display the storefront sale form"""
    return render_template('storefront_sale.html',
                           user=get_current_user(),
                           inventory=get_inventory(),
                           sales=get_storefront_sales(limit=20),
                           brands=BRANDS,
                           product_types=PRODUCT_TYPES,
                           today=datetime.now().strftime('%Y-%m-%d'))


@sales_bp.route('/api/storefront/sale', methods=['POST'])
@page_access_required('storefront-sale')
def storefront_sale():
    """Log a bulk or product storefront sale"""
    try:
        data = request_data()
        sale_type = data.get('sale_type') or 'Product'
        user = get_current_user()

        if sale_type == 'Bulk':
            success, result = log_bulk_sale(data, user['id'])
            if not success:
                return jsonify({'error': result}), 400
            log_activity(user['name'], 'sale', 'storefront_sale', result,
                         f"Bulk sale of {data.get('quantity') or 1} for ${float(data.get('sale_price')):.2f}")
            return jsonify({'success': True, 'id': result, 'message': 'Sale logged successfully'})

        success, result = log_product_sale(data, user['id'])
        if not success:
            return jsonify({'error': result}), 400

        log_activity(user['name'], 'sale', 'storefront_sale', result['id'],
                     f"Sold {data.get('quantity') or 1} from inventory row {data.get('inventory_id')}",
                     after_data={'cost_basis': result['cost_basis'], 'profit': result['profit']})
        return jsonify({'success': True, 'id': result['id'], 'cost_basis': result['cost_basis'],
                        'profit': result['profit'], 'message': 'Sale logged successfully'})
    except Exception as e:
        logger.exception("Failed to log storefront sale")
        return jsonify({'error': str(e)}), 500


@sales_bp.route('/api/storefront/sales', methods=['GET'])
@login_required
def list_sales():
    """List storefront sales in a date range"""
    try:
        sales = get_storefront_sales(request.args.get('date_from'), request.args.get('date_to'))
        return jsonify({'success': True, 'sales': sales})
    except Exception as e:
        logger.exception("Failed to list storefront sales")
        return jsonify({'error': str(e)}), 500
