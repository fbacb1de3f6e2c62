"""
Inventory management routes for LuckyVault IMS
Stock view, manual additions, moves, box breaks and grading submissions.
"""

import logging
from datetime import datetime
from flask import Blueprint, render_template, request, jsonify
from routes.auth import login_required, page_access_required, get_current_user, request_data
from database import (
    get_inventory,
    summarize_inventory,
    add_manual_inventory,
    move_inventory as db_move_inventory,
    get_movements,
    get_breakable_inventory,
    break_box as db_break_box,
    get_box_breaks,
    send_to_grading,
    get_grading_submissions,
    update_grading_status,
    get_products,
    get_product,
    get_locations,
    get_location,
    get_master_location,
    log_activity,
    MOVABLE_LOCATIONS,
    BRANDS,
    PRODUCT_TYPES,
    GRADING_COMPANIES,
    GRADING_LOCATIONS,
    GRADING_STATUSES
)

logger = logging.getLogger(__name__)

inventory_bp = Blueprint('inventory', __name__)


def _today():
    return datetime.now().strftime('%Y-%m-%d')


def _inventory_filters():
    return {
        'brand': request.args.get('brand'),
        'type': request.args.get('type'),
        'search': request.args.get('search')
    }


@inventory_bp.route('/inventory')
@page_access_required('inventory')
def inventory_page():
    """Display inventory grouped by location"""
    location_id = request.args.get('location_id', type=int)
    rows = get_inventory(location_id, _inventory_filters())
    return render_template('inventory.html',
                           user=get_current_user(),
                           summary=summarize_inventory(rows),
                           locations=get_locations(),
                           brands=BRANDS,
                           product_types=PRODUCT_TYPES)


@inventory_bp.route('/api/inventory', methods=['GET'])
@login_required
def list_inventory():
    """Get inventory rows with totals"""
    try:
        location_id = request.args.get('location_id', type=int)
        rows = get_inventory(location_id, _inventory_filters())
        summary = summarize_inventory(rows)
        return jsonify({
            'success': True,
            'items': rows,
            'total_items': summary['total_items'],
            'total_value': summary['total_value']
        })
    except Exception as e:
        logger.exception("Failed to load inventory")
        return jsonify({'error': str(e)}), 500


@inventory_bp.route('/manual-inventory')
@page_access_required('manual-inventory')
def manual_inventory_page():
    """Display the manual inventory form"""
    return render_template('manual_inventory.html',
                           user=get_current_user(),
                           products=get_products(),
                           locations=get_locations())


@inventory_bp.route('/api/inventory/manual', methods=['POST'])
@page_access_required('manual-inventory')
def manual_inventory():
    """Add stock directly at a location"""
    try:
        data = request_data()
        success, result = add_manual_inventory(
            data.get('product_id'),
            data.get('location_id'),
            data.get('quantity'),
            data.get('avg_cost_basis')
        )
        if not success:
            return jsonify({'error': result}), 400

        product = get_product(data.get('product_id'))
        location = get_location(data.get('location_id'))
        log_activity(get_current_user()['name'], 'add', 'inventory', result,
                     f"Added {data.get('quantity')} x {product['name']} to {location['name']}",
                     after_data={'quantity': data.get('quantity'), 'avg_cost_basis': data.get('avg_cost_basis')})
        return jsonify({'success': True, 'id': result, 'message': 'Inventory added successfully'})
    except Exception as e:
        logger.exception("Failed to add manual inventory")
        return jsonify({'error': str(e)}), 500


@inventory_bp.route('/move-inventory')
@page_access_required('move-inventory')
def move_inventory_page():
    """Display the move inventory form"""
    return render_template('move_inventory.html',
                           user=get_current_user(),
                           locations=get_locations(names=MOVABLE_LOCATIONS),
                           movements=get_movements(limit=20),
                           today=_today())


@inventory_bp.route('/api/inventory/move', methods=['POST'])
@page_access_required('move-inventory')
def move_inventory():
    """Transfer stock between locations or move it out"""
    try:
        data = request_data()
        success, result = db_move_inventory(
            data.get('date') or _today(),
            data.get('product_id'),
            data.get('from_location_id'),
            data.get('to_location_id'),
            data.get('quantity'),
            data.get('notes'),
            get_current_user()['id']
        )
        if not success:
            return jsonify({'error': result}), 400

        product = get_product(data.get('product_id'))
        log_activity(get_current_user()['name'], 'move', 'inventory', result['id'],
                     f"Moved {result['quantity']} x {product['name']} from {result['from_name']} to {result['to_name']}",
                     after_data=result)
        return jsonify({'success': True, 'movement': result,
                        'message': f"Moved {result['quantity']} from {result['from_name']} to {result['to_name']}"})
    except Exception as e:
        logger.exception("Failed to move inventory")
        return jsonify({'error': str(e)}), 500


@inventory_bp.route('/api/movements', methods=['GET'])
@login_required
def list_movements():
    """List inventory movements in a date range"""
    try:
        movements = get_movements(request.args.get('date_from'), request.args.get('date_to'))
        return jsonify({'success': True, 'movements': movements})
    except Exception as e:
        logger.exception("Failed to list movements")
        return jsonify({'error': str(e)}), 500


@inventory_bp.route('/break-box')
@page_access_required('break-box')
def break_box_page():
    """Display breakable boxes in Master Inventory"""
    return render_template('break_box.html',
                           user=get_current_user(),
                           boxes=get_breakable_inventory(),
                           recent_breaks=get_box_breaks(),
                           today=_today())


@inventory_bp.route('/api/inventory/breakable', methods=['GET'])
@login_required
def breakable_inventory():
    """Master Inventory rows that can be broken into packs"""
    try:
        return jsonify({'success': True, 'items': get_breakable_inventory()})
    except Exception as e:
        logger.exception("Failed to load breakable inventory")
        return jsonify({'error': str(e)}), 500


@inventory_bp.route('/api/inventory/break-box', methods=['POST'])
@page_access_required('break-box')
def break_box():
    """Break sealed boxes into packs"""
    try:
        data = request_data()
        override = data.get('override_pack_count', False)
        if isinstance(override, str):
            override = override.lower() in ('1', 'true', 'yes', 'on')

        success, result = db_break_box(
            data.get('date') or _today(),
            data.get('sealed_product_id'),
            data.get('boxes_broken'),
            override,
            data.get('manual_pack_count'),
            data.get('notes'),
            get_current_user()['id']
        )
        if not success:
            return jsonify({'error': result}), 400

        log_activity(get_current_user()['name'], 'break', 'inventory', result['id'],
                     f"Broke {result['boxes_broken']} box(es) into {result['packs_created']} x "
                     f"{result['pack_product']['name']}",
                     after_data={'packs_created': result['packs_created'],
                                 'cost_basis_per_pack': result['cost_basis_per_pack']})
        return jsonify({
            'success': True,
            'packs_created': result['packs_created'],
            'cost_basis_per_pack': result['cost_basis_per_pack'],
            'pack_product': result['pack_product'],
            'message': f"Created {result['packs_created']} packs of {result['pack_product']['name']}"
        })
    except Exception as e:
        logger.exception("Failed to break box")
        return jsonify({'error': str(e)}), 500


@inventory_bp.route('/grading')
@page_access_required('grading')
def grading_page():
    """Display the grading submission form"""
    master = get_master_location()
    return render_template('grading.html',
                           user=get_current_user(),
                           submissions=get_grading_submissions(),
                           locations=get_locations(),
                           default_location_id=master['id'] if master else None,
                           companies=GRADING_COMPANIES,
                           grading_locations=GRADING_LOCATIONS,
                           statuses=GRADING_STATUSES,
                           today=_today())


@inventory_bp.route('/api/grading', methods=['GET'])
@login_required
def list_grading():
    """List grading submissions"""
    try:
        return jsonify({'success': True, 'submissions': get_grading_submissions(request.args.get('status'))})
    except Exception as e:
        logger.exception("Failed to list grading submissions")
        return jsonify({'error': str(e)}), 500


@inventory_bp.route('/api/grading/send', methods=['POST'])
@page_access_required('grading')
def send_grading():
    """Send singles to a grading company"""
    try:
        data = request_data()
        if not data.get('from_location_id'):
            master = get_master_location()
            data['from_location_id'] = master['id'] if master else None

        success, result = send_to_grading(data, get_current_user()['id'])
        if not success:
            return jsonify({'error': result}), 400

        log_activity(get_current_user()['name'], 'send', 'grading', result,
                     f"Sent {data.get('quantity_sent')} card(s) to {data.get('grading_company') or 'PSA'}")
        return jsonify({'success': True, 'id': result, 'message': 'Submission recorded'})
    except Exception as e:
        logger.exception("Failed to send to grading")
        return jsonify({'error': str(e)}), 500


@inventory_bp.route('/api/grading/<int:submission_id>/status', methods=['POST'])
@page_access_required('grading')
def grading_status(submission_id):
    """Update a grading submission's status"""
    try:
        status = request_data().get('status')
        success, message = update_grading_status(submission_id, status)
        if not success:
            return jsonify({'error': message}), 404 if message == 'Submission not found' else 400

        log_activity(get_current_user()['name'], 'update', 'grading', submission_id,
                     f'Status changed to {status}')
        return jsonify({'success': True, 'message': message})
    except Exception as e:
        logger.exception("Failed to update grading status")
        return jsonify({'error': str(e)}), 500
