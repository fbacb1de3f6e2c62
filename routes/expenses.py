"""
Business expense routes for LuckyVault IMS
"""

import logging
from datetime import datetime
from flask import Blueprint, render_template, request, jsonify
from routes.auth import login_required, page_access_required, get_current_user, request_data
from database import (
    record_expense,
    get_expenses,
    delete_expense as db_delete_expense,
    get_payment_methods,
    log_activity,
    EXPENSE_CATEGORIES,
    CURRENCIES
)

logger = logging.getLogger(__name__)

expenses_bp = Blueprint('expenses', __name__)


@expenses_bp.route('/expenses')
@page_access_required('expenses')
def expenses_page():
    """Display the expense form and recent expenses"""
    return render_template('expenses.html',
                           user=get_current_user(),
                           expenses=get_expenses()[:50],
                           categories=EXPENSE_CATEGORIES,
                           currencies=CURRENCIES,
                           payment_methods=get_payment_methods(),
                           today=datetime.now().strftime('%Y-%m-%d'))


@expenses_bp.route('/api/expenses', methods=['GET'])
@login_required
def list_expenses():
    """List expenses in a date range"""
    try:
        expenses = get_expenses(request.args.get('date_from'), request.args.get('date_to'),
                                request.args.get('category'))
        return jsonify({'success': True, 'expenses': expenses})
    except Exception as e:
        logger.exception("Failed to list expenses")
        return jsonify({'error': str(e)}), 500


@expenses_bp.route('/api/expenses/add', methods=['POST'])
@page_access_required('expenses')
def add_expense():
    """Record a business expense"""
    try:
        data = request_data()
        success, result = record_expense(data, get_current_user()['id'])
        if not success:
            return jsonify({'error': result}), 400

        log_activity(get_current_user()['name'], 'add', 'expense', result,
                     f"{data.get('category')}: {data.get('description')}",
                     after_data={'amount': data.get('amount'), 'currency': data.get('currency') or 'USD'})
        return jsonify({'success': True, 'id': result, 'message': 'Expense recorded successfully'})
    except Exception as e:
        logger.exception("Failed to record expense")
        return jsonify({'error': str(e)}), 500


@expenses_bp.route('/api/expenses/<int:expense_id>/delete', methods=['POST'])
@page_access_required('expenses')
def delete_expense(expense_id):
    """Delete an expense"""
    try:
        success, message = db_delete_expense(expense_id)
        if not success:
            return jsonify({'error': message}), 404

        log_activity(get_current_user()['name'], 'delete', 'expense', expense_id, message)
        return jsonify({'success': True, 'message': message})
    except Exception as e:
        logger.exception("Failed to delete expense")
        return jsonify({'error': str(e)}), 500
