"""
High value item routes for LuckyVault IMS
Individually tracked slabs and singles with photos.
"""

import logging
import os
import secrets
from flask import Blueprint, render_template, request, jsonify, current_app, send_from_directory
from werkzeug.utils import secure_filename
from routes.auth import login_required, page_access_required, get_current_user, request_data
from database import (
    add_high_value_item,
    get_high_value_items,
    get_high_value_item,
    summarize_high_value,
    update_high_value_item,
    update_high_value_prices,
    move_high_value_item,
    get_high_value_movements,
    mark_high_value_sold,
    delete_high_value_item,
    get_locations,
    get_vendors,
    get_all_users,
    log_activity,
    HIGH_VALUE_TYPES,
    GRADE_OPTIONS,
    GRADING_COMPANIES,
    BRANDS,
    CURRENCIES
)

logger = logging.getLogger(__name__)

high_value_bp = Blueprint('high_value', __name__)


class PhotoError(Exception):
    pass


def save_photo(upload):
    """Save an uploaded photo into the upload folder and return its stored filename"""
    if not upload or not upload.filename:
        return None
    filename = secure_filename(upload.filename)
    extension = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
    if extension not in current_app.config['ALLOWED_PHOTO_EXTENSIONS']:
        raise PhotoError('Photo must be an image file')

    folder = current_app.config['UPLOAD_FOLDER']
    os.makedirs(folder, exist_ok=True)
    stored = f'{secrets.token_hex(8)}_{filename}'
    upload.save(os.path.join(folder, stored))
    return stored


def discard_photo(stored):
    if stored:
        os.remove(os.path.join(current_app.config['UPLOAD_FOLDER'], stored))


@high_value_bp.route('/high-value')
@page_access_required('high-value')
def high_value_page():
    """Display high value items with totals"""
    items = get_high_value_items()
    return render_template('high_value.html',
                           user=get_current_user(),
                           items=items,
                           totals=summarize_high_value(items),
                           locations=get_locations(),
                           vendors=get_vendors(),
                           acquirers=get_all_users(active=True),
                           item_types=HIGH_VALUE_TYPES,
                           grades=GRADE_OPTIONS,
                           grading_companies=GRADING_COMPANIES,
                           brands=BRANDS,
                           currencies=CURRENCIES)


@high_value_bp.route('/uploads/<path:filename>')
@login_required
def photo(filename):
    """Serve an uploaded item photo"""
    return send_from_directory(current_app.config['UPLOAD_FOLDER'], filename)


@high_value_bp.route('/api/high-value', methods=['GET'])
@login_required
def list_items():
    """In-inventory items and their totals"""
    try:
        items = get_high_value_items(request.args.get('status', 'In Inventory'))
        return jsonify({'success': True, 'items': items, 'totals': summarize_high_value(items)})
    except Exception as e:
        logger.exception("Failed to list high value items")
        return jsonify({'error': str(e)}), 500


@high_value_bp.route('/api/high-value/add', methods=['POST'])
@page_access_required('high-value')
def add_item():
    """Add a high value item, with an optional photo"""
    try:
        data = request_data()
        photo_filename = save_photo(request.files.get('photo'))
        success, result = add_high_value_item(data, photo_filename)
        if not success:
            discard_photo(photo_filename)
            return jsonify({'error': result}), 400

        log_activity(get_current_user()['name'], 'add', 'high_value_item', result,
                     f"Added {data.get('card_name')}", after_data=get_high_value_item(result))
        return jsonify({'success': True, 'id': result, 'message': 'Item added successfully'})
    except PhotoError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.exception("Failed to add high value item")
        return jsonify({'error': str(e)}), 500


@high_value_bp.route('/api/high-value/<int:item_id>/edit', methods=['POST'])
@page_access_required('high-value')
def edit_item(item_id):
    """Edit an item's details and optionally replace its photo"""
    try:
        before = get_high_value_item(item_id)
        if not before:
            return jsonify({'error': 'Item not found'}), 404

        photo_filename = save_photo(request.files.get('photo'))
        success, message = update_high_value_item(item_id, request_data(), photo_filename)
        if not success:
            discard_photo(photo_filename)
            return jsonify({'error': message}), 400

        log_activity(get_current_user()['name'], 'update', 'high_value_item', item_id,
                     f"Edited {before['card_name']}", before_data=before, after_data=get_high_value_item(item_id))
        return jsonify({'success': True, 'message': message})
    except PhotoError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.exception("Failed to edit high value item")
        return jsonify({'error': str(e)}), 500


@high_value_bp.route('/api/high-value/<int:item_id>/prices', methods=['POST'])
@page_access_required('high-value')
def update_prices(item_id):
    """Update an item's market and/or paid price"""
    try:
        data = request_data()
        before = get_high_value_item(item_id)
        if not before:
            return jsonify({'error': 'Item not found'}), 404

        success, message = update_high_value_prices(item_id, data.get('current_market_price'),
                                                    data.get('purchase_price'))
        if not success:
            return jsonify({'error': message}), 400

        log_activity(get_current_user()['name'], 'update', 'high_value_item', item_id,
                     f"Updated prices for {before['card_name']}",
                     before_data={'current_market_price': before['current_market_price'],
                                  'purchase_price_usd': before['purchase_price_usd']},
                     after_data={k: data.get(k) for k in ('current_market_price', 'purchase_price')
                                 if data.get(k) is not None})
        return jsonify({'success': True, 'message': message})
    except Exception as e:
        logger.exception("Failed to update high value prices")
        return jsonify({'error': str(e)}), 500


@high_value_bp.route('/api/high-value/<int:item_id>/move', methods=['POST'])
@page_access_required('high-value')
def move_item(item_id):
    """Move an item to another location"""
    try:
        location_id = request_data().get('location_id')
        user = get_current_user()
        success, message = move_high_value_item(item_id, location_id, user['id'])
        if not success:
            return jsonify({'error': message}), 404 if message == 'Item not found' else 400

        log_activity(user['name'], 'move', 'high_value_item', item_id, f'Moved to location {location_id}')
        return jsonify({'success': True, 'message': message})
    except Exception as e:
        logger.exception("Failed to move high value item")
        return jsonify({'error': str(e)}), 500


@high_value_bp.route('/api/high-value/<int:item_id>/movements', methods=['GET'])
@login_required
def item_movements(item_id):
    """Location history of an item"""
    try:
        return jsonify({'success': True, 'movements': get_high_value_movements(item_id)})
    except Exception as e:
        logger.exception("Failed to list high value movements")
        return jsonify({'error': str(e)}), 500


@high_value_bp.route('/api/high-value/<int:item_id>/sold', methods=['POST'])
@page_access_required('high-value')
def mark_sold(item_id):
    """Mark an item as sold"""
    try:
        data = request_data()
        success, message = mark_high_value_sold(item_id, data.get('sale_price'), data.get('date_sold'))
        if not success:
            return jsonify({'error': message}), 404 if message == 'Item not found' else 400

        log_activity(get_current_user()['name'], 'sale', 'high_value_item', item_id, message,
                     after_data={'sale_price': data.get('sale_price')})
        return jsonify({'success': True, 'message': message})
    except Exception as e:
        logger.exception("Failed to mark high value item sold")
        return jsonify({'error': str(e)}), 500


@high_value_bp.route('/api/high-value/<int:item_id>/delete', methods=['POST'])
@page_access_required('high-value')
def delete_item(item_id):
    """Soft delete an item"""
    try:
        before = get_high_value_item(item_id)
        success, message = delete_high_value_item(item_id)
        if not success:
            return jsonify({'error': message}), 404

        log_activity(get_current_user()['name'], 'delete', 'high_value_item', item_id,
                     f"Deleted {before['card_name']}", before_data=before)
        return jsonify({'success': True, 'message': message})
    except Exception as e:
        logger.exception("Failed to delete high value item")
        return jsonify({'error': str(e)}), 500
