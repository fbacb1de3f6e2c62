"""
Catalog and product mapping routes for LuckyVault IMS
"""

import logging
from flask import Blueprint, render_template, request, jsonify
from routes.auth import login_required, page_access_required, get_current_user, request_data
from database import (
    get_products,
    add_product as db_add_product,
    get_locations,
    get_vendors,
    add_vendor as db_add_vendor,
    get_payment_methods,
    get_aliases,
    add_alias as db_add_alias,
    delete_alias as db_delete_alias,
    resolve_alias,
    get_product,
    log_activity,
    BRANDS,
    PRODUCT_TYPES,
    LANGUAGES,
    CATEGORY_OPTIONS,
    PLATFORMS
)

logger = logging.getLogger(__name__)

products_bp = Blueprint('products', __name__)


def _truthy(value):
    if isinstance(value, str):
        return value.lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


@products_bp.route('/add-product')
@page_access_required('add-product')
def add_product_page():
    """Display the add product form"""
    return render_template('add_product.html',
                           user=get_current_user(),
                           brands=BRANDS,
                           product_types=PRODUCT_TYPES,
                           languages=LANGUAGES,
                           category_options=CATEGORY_OPTIONS)


@products_bp.route('/product-mapping')
@page_access_required('product-mapping')
def product_mapping_page():
    """Display external product name mappings"""
    return render_template('product_mapping.html',
                           user=get_current_user(),
                           aliases=get_aliases(request.args.get('search')),
                           products=get_products(),
                           platforms=list(PLATFORMS.keys()))


@products_bp.route('/api/products', methods=['GET'])
@login_required
def list_products():
    """List active products with optional brand/type/language/breakable filters"""
    try:
        filters = {
            'brand': request.args.get('brand'),
            'type': request.args.get('type'),
            'language': request.args.get('language')
        }
        if request.args.get('breakable') is not None:
            filters['breakable'] = _truthy(request.args.get('breakable'))
        return jsonify({'success': True, 'products': get_products(filters)})
    except Exception as e:
        logger.exception("Failed to list products")
        return jsonify({'error': str(e)}), 500


@products_bp.route('/api/products/categories', methods=['GET'])
@login_required
def category_options():
    """Category choices for each product type"""
    return jsonify({'success': True, 'categories': CATEGORY_OPTIONS})


@products_bp.route('/api/products/add', methods=['POST'])
@page_access_required('add-product')
def add_product():
    """Add a product to the catalog"""
    try:
        data = request_data()
        breakable = _truthy(data.get('breakable'))
        append_category = _truthy(data.get('append_category', True))

        success, result = db_add_product(
            data.get('brand') or 'Pokemon',
            data.get('type') or 'Sealed',
            data.get('category') or None,
            data.get('name'),
            data.get('language') or 'EN',
            breakable,
            data.get('packs_per_box'),
            append_category
        )
        if not success:
            status = 409 if result == 'This product already exists' else 400
            return jsonify({'error': result}), status

        product = get_product(result)
        log_activity(get_current_user()['name'], 'add', 'product', result, f"Added product {product['name']}",
                     after_data=product)
        return jsonify({'success': True, 'id': result, 'product': product,
                        'message': 'Product added successfully'})
    except Exception as e:
        logger.exception("Failed to add product")
        return jsonify({'error': str(e)}), 500


@products_bp.route('/api/locations', methods=['GET'])
@login_required
def list_locations():
    """List active locations"""
    try:
        return jsonify({'success': True, 'locations': get_locations(request.args.get('type'))})
    except Exception as e:
        logger.exception("Failed to list locations")
        return jsonify({'error': str(e)}), 500


@products_bp.route('/api/vendors', methods=['GET'])
@login_required
def list_vendors():
    """List active vendors"""
    try:
        return jsonify({'success': True, 'vendors': get_vendors()})
    except Exception as e:
        logger.exception("Failed to list vendors")
        return jsonify({'error': str(e)}), 500


@products_bp.route('/api/vendors/add', methods=['POST'])
@login_required
def add_vendor():
    """Add a vendor"""
    try:
        data = request_data()
        success, result = db_add_vendor(data.get('name'), data.get('country'))
        if not success:
            return jsonify({'error': result}), 400

        log_activity(get_current_user()['name'], 'add', 'vendor', result, f"Added vendor {data.get('name')}")
        return jsonify({'success': True, 'id': result})
    except Exception as e:
        logger.exception("Failed to add vendor")
        return jsonify({'error': str(e)}), 500


@products_bp.route('/api/payment-methods', methods=['GET'])
@login_required
def list_payment_methods():
    """List active payment methods"""
    try:
        return jsonify({'success': True, 'payment_methods': get_payment_methods()})
    except Exception as e:
        logger.exception("Failed to list payment methods")
        return jsonify({'error': str(e)}), 500


@products_bp.route('/api/aliases', methods=['GET'])
@login_required
def list_aliases():
    """List product mappings, optionally searched"""
    try:
        return jsonify({'success': True, 'aliases': get_aliases(request.args.get('search'))})
    except Exception as e:
        logger.exception("Failed to list aliases")
        return jsonify({'error': str(e)}), 500


@products_bp.route('/api/aliases/add', methods=['POST'])
@page_access_required('product-mapping')
def add_alias():
    """Map an external product name to a catalog product"""
    try:
        data = request_data()
        success, result = db_add_alias(data.get('external_name'), data.get('product_id'), data.get('platform'))
        if not success:
            status = 409 if result == 'This mapping already exists' else 400
            return jsonify({'error': result}), status

        log_activity(get_current_user()['name'], 'add', 'product_alias', result,
                     f"Mapped '{data.get('external_name')}' to product {data.get('product_id')}")
        return jsonify({'success': True, 'id': result, 'message': 'Mapping added'})
    except Exception as e:
        logger.exception("Failed to add alias")
        return jsonify({'error': str(e)}), 500


@products_bp.route('/api/aliases/<int:alias_id>/delete', methods=['POST'])
@page_access_required('product-mapping')
def delete_alias(alias_id):
    """Delete a product mapping"""
    try:
        success, message = db_delete_alias(alias_id)
        if not success:
            return jsonify({'error': message}), 404

        log_activity(get_current_user()['name'], 'delete', 'product_alias', alias_id, message)
        return jsonify({'success': True, 'message': message})
    except Exception as e:
        logger.exception("Failed to delete alias")
        return jsonify({'error': str(e)}), 500


@products_bp.route('/api/aliases/resolve', methods=['GET'])
@login_required
def resolve():
    """Look up the product mapped to an external name"""
    try:
        product_id = resolve_alias(request.args.get('name', ''))
        return jsonify({'success': True, 'product_id': product_id})
    except Exception as e:
        logger.exception("Failed to resolve alias")
        return jsonify({'error': str(e)}), 500
