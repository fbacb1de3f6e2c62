"""
Authentication routes and decorators for LuckyVault IMS
"""

import logging
from flask import Blueprint, render_template, request, redirect, url_for, flash, session, jsonify, g
from functools import wraps
from database import (
    get_user_by_id,
    verify_pin,
    verify_admin_pin,
    has_page_access,
    is_admin,
    log_activity
)

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


def _wants_json():
    return request.path.startswith('/api/')


def get_current_user():
    """The logged-in user, re-read from the database once per request"""
    if 'current_user' not in g:
        user_id = session.get('user_id')
        user = get_user_by_id(user_id) if user_id else None
        if user and (not user['active'] or not user['can_login']):
            logger.info("Logging out %s: account no longer active", user['name'])
            session.clear()
            user = None
        g.current_user = user
    return g.current_user


def request_data():
    """JSON body or form fields of the current request as a dict"""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def login_required(f):
    """Decorator to require user authentication"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not get_current_user():
            return _login_first()
        return f(*args, **kwargs)
    return decorated_function


def _login_first():
    if _wants_json():
        return jsonify({'error': 'Authentication required'}), 401
    flash('Please log in to access this page.', 'warning')
    return redirect(url_for('auth.login'))


def _access_denied():
    if _wants_json():
        return jsonify({'error': 'You do not have permission to access this page.'}), 403
    return render_template('access_denied.html', user=get_current_user()), 403


def admin_required(f):
    """Decorator to require the users page (admin) permission"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()
        if not user:
            return _login_first()
        if not is_admin(user):
            return _access_denied()
        return f(*args, **kwargs)
    return decorated_function


def page_access_required(page):
    """Decorator to require access to a page key"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = get_current_user()
            if not user:
                return _login_first()
            if not has_page_access(user, page):
                return _access_denied()
            return f(*args, **kwargs)
        return decorated_function
    return decorator


@auth_bp.route('/')
def index():
    """Redirect to dashboard or login based on session state"""
    if get_current_user():
        return redirect(url_for('dashboard.dashboard'))
    return redirect(url_for('auth.login'))


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    """Handle PIN login"""
    if get_current_user():
        return redirect(url_for('dashboard.dashboard'))

    if request.method == 'POST':
        pin = request.form.get('pin', '').strip()

        success, result = verify_pin(pin)
        if success:
            session.clear()
            session['user_id'] = result['id']
            session.permanent = False
            log_activity(result['name'], 'login', 'user', result['id'], f"{result['name']} logged in")
            flash(f"Welcome back, {result['name']}!", 'success')
            return redirect(url_for('dashboard.dashboard'))
        else:
            logger.info("Failed login attempt")
            flash(result, 'danger')
            return render_template('login.html'), 401

    return render_template('login.html')


@auth_bp.route('/logout')
def logout():
    """Handle user logout"""
    user = get_current_user()
    if user:
        log_activity(user['name'], 'logout', 'user', user['id'], f"{user['name']} logged out")
    session.clear()
    flash('You have been logged out successfully.', 'info')
    return redirect(url_for('auth.login'))


@auth_bp.route('/api/auth/me', methods=['GET'])
@login_required
def current_user_info():
    """Return the logged-in user and their page access"""
    user = get_current_user()
    return jsonify({'success': True, 'user': user, 'is_admin': is_admin(user)})


@auth_bp.route('/api/auth/verify-admin-pin', methods=['POST'])
@login_required
def verify_admin_pin_endpoint():
    """Confirm an admin PIN before a sensitive operation"""
    try:
        pin = str(request_data().get('pin') or '')
        if not pin:
            return jsonify({'valid': False, 'error': 'PIN is required'}), 400
        if verify_admin_pin(pin):
            return jsonify({'valid': True})
        return jsonify({'valid': False, 'error': 'Invalid admin PIN'}), 401
    except Exception as e:
        logger.exception("Admin PIN verification failed")
        return jsonify({'valid': False, 'error': str(e)}), 500
