"""
Platform sales routes for LuckyVault IMS
Stream session (eBay, Whatnot) and item level (TikTok) sales entry and CSV import.
"""

import csv
import io
import logging
from datetime import datetime
from flask import Blueprint, render_template, request, jsonify
from routes.auth import login_required, page_access_required, get_current_user, request_data
from calculations import map_csv_row
from database import (
    log_session_sale,
    log_item_sale,
    update_platform_sale,
    delete_platform_sale,
    get_platform_sales,
    import_platform_sales,
    get_all_users,
    get_products,
    log_activity,
    PLATFORMS
)

logger = logging.getLogger(__name__)

platform_sales_bp = Blueprint('platform_sales', __name__)


@platform_sales_bp.route('/platform-sales')
@page_access_required('platform-sales')
def platform_sales_page():
    """Display platform sales entry forms"""
    platform = request.args.get('platform', 'eBay')
    if platform not in PLATFORMS:
        platform = 'eBay'
    return render_template('platform_sales.html',
                           user=get_current_user(),
                           platform=platform,
                           platforms=PLATFORMS,
                           recent_sales=get_platform_sales(platform),
                           streamers=get_all_users(active=True),
                           products=get_products(),
                           today=datetime.now().strftime('%Y-%m-%d'))


@platform_sales_bp.route('/api/platform-sales', methods=['GET'])
@login_required
def list_platform_sales():
    """Recent non-deleted platform sales"""
    try:
        sales = get_platform_sales(request.args.get('platform'),
                                   request.args.get('date_from'),
                                   request.args.get('date_to'),
                                   request.args.get('limit', 20, type=int))
        return jsonify({'success': True, 'sales': sales})
    except Exception as e:
        logger.exception("Failed to list platform sales")
        return jsonify({'error': str(e)}), 500


@platform_sales_bp.route('/api/platform-sales/<platform>/add', methods=['POST'])
@page_access_required('platform-sales')
def add_platform_sale(platform):
    """Log a platform sale; a duplicate returns 409 with the existing entry id"""
    try:
        if platform not in PLATFORMS:
            return jsonify({'error': 'Unknown platform'}), 404

        data = request_data()
        user = get_current_user()
        if PLATFORMS[platform]['level'] == 'item':
            success, result, duplicate_id = log_item_sale(data, user['id'])
        else:
            success, result, duplicate_id = log_session_sale(platform, data, user['id'])

        if not success:
            if duplicate_id:
                return jsonify({'error': result, 'duplicate_id': duplicate_id}), 409
            return jsonify({'error': result}), 400

        log_activity(user['name'], 'add', 'platform_sale', result,
                     f"Logged {platform} sale for {data.get('date')}",
                     after_data={k: v for k, v in data.items() if v not in (None, '')})
        return jsonify({'success': True, 'id': result, 'message': 'Sale logged successfully'})
    except Exception as e:
        logger.exception("Failed to log platform sale")
        return jsonify({'error': str(e)}), 500


@platform_sales_bp.route('/api/platform-sales/<int:sale_id>/update', methods=['POST'])
@page_access_required('platform-sales')
def update_sale(sale_id):
    """Overwrite an existing entry with new figures"""
    try:
        data = request_data()
        success, message = update_platform_sale(sale_id, data)
        if not success:
            return jsonify({'error': message}), 404

        log_activity(get_current_user()['name'], 'update', 'platform_sale', sale_id, 'Updated existing entry',
                     after_data={k: v for k, v in data.items() if v not in (None, '')})
        return jsonify({'success': True, 'message': message})
    except Exception as e:
        logger.exception("Failed to update platform sale")
        return jsonify({'error': str(e)}), 500


@platform_sales_bp.route('/api/platform-sales/<int:sale_id>/delete', methods=['POST'])
@page_access_required('platform-sales')
def delete_sale(sale_id):
    """Soft delete a platform sale"""
    try:
        success, message = delete_platform_sale(sale_id)
        if not success:
            return jsonify({'error': message}), 404

        log_activity(get_current_user()['name'], 'delete', 'platform_sale', sale_id, message)
        return jsonify({'success': True, 'message': message})
    except Exception as e:
        logger.exception("Failed to delete platform sale")
        return jsonify({'error': str(e)}), 500


@platform_sales_bp.route('/api/platform-sales/<platform>/import', methods=['POST'])
@page_access_required('platform-sales')
def import_csv(platform):
    """Import a platform export CSV"""
    try:
        if platform not in PLATFORMS:
            return jsonify({'error': 'Unknown platform'}), 404

        upload = request.files.get('file')
        if not upload or not upload.filename:
            return jsonify({'error': 'No file uploaded'}), 400
        if not upload.filename.lower().endswith('.csv'):
            return jsonify({'error': 'Please upload a CSV file'}), 400

        year = request.form.get('year', type=int)
        content = upload.stream.read().decode('utf-8-sig')
        reader = csv.DictReader(io.StringIO(content))

        users = get_all_users()
        entries = [map_csv_row(row, platform, users, year) for row in reader]

        imported, skipped = import_platform_sales(entries, get_current_user()['id'])
        logger.info("Imported %d %s rows (%d skipped)", imported, platform, skipped)

        log_activity(get_current_user()['name'], 'import', 'platform_sale', None,
                     f'Imported {imported} {platform} rows from {upload.filename} ({skipped} skipped)')
        return jsonify({'success': True, 'imported': imported, 'skipped': skipped,
                        'message': f'Imported {imported} rows'})
    except UnicodeDecodeError:
        return jsonify({'error': 'File must be UTF-8 encoded'}), 400
    except Exception as e:
        logger.exception("Failed to import platform sales")
        return jsonify({'error': str(e)}), 500
