"""
Purchasing and intake routes for LuckyVault IMS
"""

import logging
from datetime import datetime
from flask import Blueprint, render_template, request, jsonify
from routes.auth import login_required, page_access_required, get_current_user, request_data
from database import (
    log_purchase,
    get_acquisitions,
    get_acquisition,
    get_pending_intake,
    receive_acquisition,
    get_receipts,
    get_products,
    get_vendors,
    get_payment_methods,
    get_all_users,
    get_exchange_rates,
    log_activity,
    CURRENCIES
)

logger = logging.getLogger(__name__)

purchases_bp = Blueprint('purchases', __name__)

SOURCE_COUNTRIES = ['USA', 'Japan', 'China', 'Korea', 'Other']


@purchases_bp.route('/purchased-items')
@page_access_required('purchased-items')
def purchases_page():
    """Display the purchase log form and recent purchases"""
    return render_template('purchases.html',
                           user=get_current_user(),
                           acquisitions=get_acquisitions()[:50],
                           products=get_products(),
                           vendors=get_vendors(),
                           payment_methods=get_payment_methods(),
                           acquirers=get_all_users(active=True),
                           currencies=CURRENCIES,
                           rates=get_exchange_rates(),
                           countries=SOURCE_COUNTRIES,
                           today=datetime.now().strftime('%Y-%m-%d'))


@purchases_bp.route('/api/purchases', methods=['GET'])
@login_required
def list_purchases():
    """List acquisitions with optional status and date filters"""
    try:
        statuses = request.args.getlist('status') or None
        acquisitions = get_acquisitions(statuses, request.args.get('date_from'), request.args.get('date_to'),
                                        request.args.get('country'))
        return jsonify({'success': True, 'acquisitions': acquisitions})
    except Exception as e:
        logger.exception("Failed to list purchases")
        return jsonify({'error': str(e)}), 500


@purchases_bp.route('/api/purchases/add', methods=['POST'])
@page_access_required('purchased-items')
def add_purchase():
    """Log a new purchase awaiting intake"""
    try:
        data = request_data()
        success, result = log_purchase(data, get_current_user()['id'])
        if not success:
            return jsonify({'error': result}), 400

        acquisition = get_acquisition(result)
        log_activity(get_current_user()['name'], 'add', 'acquisition', result,
                     f"Logged purchase of {acquisition['quantity_purchased']} x {acquisition['product_name']}",
                     after_data={'cost': acquisition['cost'], 'currency': acquisition['currency'],
                                 'cost_usd': acquisition['cost_usd']})
        return jsonify({'success': True, 'id': result, 'cost_usd': acquisition['cost_usd'],
                        'message': 'Purchase logged successfully'})
    except Exception as e:
        logger.exception("Failed to log purchase")
        return jsonify({'error': str(e)}), 500


@purchases_bp.route('/intake')
@page_access_required('intake')
def intake_page():
    """Display purchases awaiting receipt"""
    return render_template('intake.html',
                           user=get_current_user(),
                           pending=get_pending_intake())


@purchases_bp.route('/api/intake/pending', methods=['GET'])
@login_required
def pending_intake():
    """List purchases with status Purchased or Partially Received"""
    try:
        return jsonify({'success': True, 'acquisitions': get_pending_intake()})
    except Exception as e:
        logger.exception("Failed to list pending intake")
        return jsonify({'error': str(e)}), 500


@purchases_bp.route('/api/intake/<int:acquisition_id>/receive', methods=['POST'])
@page_access_required('intake')
def receive(acquisition_id):
    """Receive units of a purchase into Master Inventory"""
    try:
        data = request_data()
        before = get_acquisition(acquisition_id)
        if not before:
            return jsonify({'error': 'Acquisition not found'}), 404

        success, result = receive_acquisition(acquisition_id, data.get('quantity'), get_current_user()['id'],
                                              data.get('date_received'))
        if not success:
            return jsonify({'error': result}), 400

        log_activity(get_current_user()['name'], 'receive', 'acquisition', acquisition_id,
                     f"Received {data.get('quantity')} x {before['product_name']}",
                     before_data={'status': before['status'], 'quantity_received': before['quantity_received']},
                     after_data={'status': result['status'], 'quantity_received': result['total_received']})
        return jsonify({'success': True, 'status': result['status'], 'total_received': result['total_received'],
                        'message': f"Status: {result['status']}"})
    except Exception as e:
        logger.exception("Failed to receive acquisition")
        return jsonify({'error': str(e)}), 500


@purchases_bp.route('/api/intake/<int:acquisition_id>/receipts', methods=['GET'])
@login_required
def receipts(acquisition_id):
    """List receipts recorded against a purchase"""
    try:
        return jsonify({'success': True, 'receipts': get_receipts(acquisition_id)})
    except Exception as e:
        logger.exception("Failed to list receipts")
        return jsonify({'error': str(e)}), 500
