"""
Settings routes for LuckyVault IMS
Own PIN changes for everyone; exchange rates and audit logging for admins.
"""

import logging
from flask import Blueprint, render_template, request, redirect, url_for, flash, jsonify
from routes.auth import login_required, admin_required, get_current_user, request_data
from database import (
    change_own_pin,
    get_exchange_rates,
    set_exchange_rate,
    is_logging_enabled,
    set_logging_enabled,
    is_admin,
    log_activity
)

logger = logging.getLogger(__name__)

settings_bp = Blueprint('settings', __name__)


@settings_bp.route('/settings', methods=['GET', 'POST'])
@login_required
def settings():
    """User settings page; POST changes the user's own PIN"""
    user = get_current_user()

    if request.method == 'POST':
        current_pin = request.form.get('current_pin', '')
        new_pin = request.form.get('new_pin', '')
        confirm_pin = request.form.get('confirm_pin', '')

        if new_pin != confirm_pin:
            flash('New PINs do not match.', 'danger')
        else:
            success, message = change_own_pin(user['id'], current_pin, new_pin)
            if success:
                log_activity(user['name'], 'update', 'user', user['id'], 'Changed own PIN')
                flash(message, 'success')
                return redirect(url_for('settings.settings'))
            flash(message, 'danger')

    return render_template('settings.html',
                           user=user,
                           is_admin=is_admin(user),
                           rates=get_exchange_rates(),
                           logging_enabled=is_logging_enabled())


@settings_bp.route('/api/settings/pin', methods=['POST'])
@login_required
def change_pin():
    """Change the logged-in user's PIN"""
    try:
        data = request_data()
        user = get_current_user()
        success, message = change_own_pin(user['id'], str(data.get('current_pin') or ''),
                                          str(data.get('new_pin') or ''))
        if not success:
            return jsonify({'error': message}), 400

        log_activity(user['name'], 'update', 'user', user['id'], 'Changed own PIN')
        return jsonify({'success': True, 'message': message})
    except Exception as e:
        logger.exception("Failed to change PIN")
        return jsonify({'error': str(e)}), 500


@settings_bp.route('/api/settings/exchange-rates', methods=['GET'])
@login_required
def exchange_rates():
    """Current USD conversion rates"""
    try:
        return jsonify({'success': True, 'rates': get_exchange_rates()})
    except Exception as e:
        logger.exception("Failed to load exchange rates")
        return jsonify({'error': str(e)}), 500


@settings_bp.route('/api/settings/exchange-rates', methods=['POST'])
@admin_required
def update_exchange_rates():
    """Update one or more exchange rates"""
    try:
        data = request_data()
        user = get_current_user()
        before = get_exchange_rates()
        for currency, rate in data.items():
            success, message = set_exchange_rate(currency, rate, user['name'])
            if not success:
                return jsonify({'error': f'{currency}: {message}'}), 400

        after = get_exchange_rates()
        log_activity(user['name'], 'update', 'system', 'exchange_rates', 'Updated exchange rates',
                     before_data=before, after_data=after)
        return jsonify({'success': True, 'rates': after})
    except Exception as e:
        logger.exception("Failed to update exchange rates")
        return jsonify({'error': str(e)}), 500


@settings_bp.route('/api/settings/logging', methods=['GET'])
@admin_required
def get_logging_status():
    """Get the current audit logging status"""
    try:
        return jsonify({'success': True, 'enabled': is_logging_enabled()})
    except Exception as e:
        logger.exception("Failed to read logging status")
        return jsonify({'error': str(e)}), 500


@settings_bp.route('/api/settings/logging', methods=['POST'])
@admin_required
def toggle_logging():
    """Pause or resume audit logging"""
    try:
        enabled = request_data().get('enabled')
        if isinstance(enabled, str):
            enabled = enabled.lower() in ('1', 'true', 'yes', 'on')
        enabled = bool(enabled)
        user = get_current_user()

        # Record the pause before it takes effect
        if not enabled:
            log_activity(user['name'], 'update', 'system', 'logging', 'Audit logging paused')
        set_logging_enabled(enabled, user['name'])
        if enabled:
            log_activity(user['name'], 'update', 'system', 'logging', 'Audit logging resumed')

        return jsonify({'success': True, 'enabled': enabled})
    except Exception as e:
        logger.exception("Failed to toggle logging")
        return jsonify({'error': str(e)}), 500
