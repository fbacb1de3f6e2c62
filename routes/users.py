"""
User management routes for LuckyVault IMS
"""

import logging
from flask import Blueprint, render_template, jsonify
from routes.auth import login_required, admin_required, get_current_user, request_data
from database import (
    get_all_users,
    get_user_by_id,
    add_user as db_add_user,
    update_user as db_update_user,
    set_user_active,
    set_user_login,
    get_user_rooms,
    assign_room as db_assign_room,
    remove_room as db_remove_room,
    get_or_create_user,
    get_locations,
    log_activity,
    PAGES,
    USER_ROLES
)

logger = logging.getLogger(__name__)

users_bp = Blueprint('users', __name__)


@users_bp.route('/users')
@admin_required
def manage_users():
    """Display user management page"""
    user = get_current_user()
    users = get_all_users()
    rooms = get_user_rooms()
    for u in users:
        u['rooms'] = [r for r in rooms if r['user_id'] == u['id']]
    return render_template('users.html',
                           user=user,
                           active_users=[u for u in users if u['active']],
                           inactive_users=[u for u in users if not u['active']],
                           locations=get_locations(),
                           roles=USER_ROLES,
                           pages=PAGES)


@users_bp.route('/api/users', methods=['GET'])
@login_required
def list_users():
    """List active users (used by streamer / acquirer pickers)"""
    try:
        users = get_all_users(active=True)
        return jsonify({'success': True, 'users': [{'id': u['id'], 'name': u['name'], 'role': u['role']}
                                                   for u in users]})
    except Exception as e:
        logger.exception("Failed to list users")
        return jsonify({'error': str(e)}), 500


@users_bp.route('/api/users/add', methods=['POST'])
@admin_required
def add_user():
    """Create a new team member"""
    try:
        data = request_data()
        room_ids = data.get('room_ids') or []
        success, result = db_add_user(data.get('name'), data.get('role', 'Streamer'), room_ids)
        if not success:
            return jsonify({'error': result}), 400

        name = data.get('name').strip()
        log_activity(get_current_user()['name'], 'add', 'user', result, f'Added user {name}',
                     after_data={'name': name, 'role': data.get('role', 'Streamer')})
        return jsonify({'success': True, 'id': result, 'message': f'User "{name}" has been created.'})
    except Exception as e:
        logger.exception("Failed to add user")
        return jsonify({'error': str(e)}), 500


@users_bp.route('/api/users/quick-add', methods=['POST'])
@login_required
def quick_add_user():
    """Create a user by name, or reuse an existing one with the same name"""
    try:
        name = (request_data().get('name') or '').strip()
        success, result = get_or_create_user(name)
        if not success:
            return jsonify({'error': result}), 400
        return jsonify({'success': True, 'id': result, 'name': name})
    except Exception as e:
        logger.exception("Failed to quick-add user")
        return jsonify({'error': str(e)}), 500


@users_bp.route('/api/users/<int:user_id>/edit', methods=['POST'])
@admin_required
def edit_user(user_id):
    """Update a user's name and role"""
    try:
        data = request_data()
        before = get_user_by_id(user_id)
        if not before:
            return jsonify({'error': 'User not found'}), 404

        success, message = db_update_user(user_id, data.get('name'), data.get('role', before['role']))
        if not success:
            return jsonify({'error': message}), 400

        log_activity(get_current_user()['name'], 'update', 'user', user_id, f"Updated user {before['name']}",
                     before_data={'name': before['name'], 'role': before['role']},
                     after_data={'name': data.get('name'), 'role': data.get('role', before['role'])})
        return jsonify({'success': True, 'message': message})
    except Exception as e:
        logger.exception("Failed to edit user")
        return jsonify({'error': str(e)}), 500


@users_bp.route('/api/users/<int:user_id>/toggle-active', methods=['POST'])
@admin_required
def toggle_active(user_id):
    """Activate or deactivate a user"""
    try:
        target = get_user_by_id(user_id)
        if not target:
            return jsonify({'error': 'User not found'}), 404

        current = get_current_user()
        success, message = set_user_active(user_id, not target['active'], current['id'])
        if not success:
            return jsonify({'error': message}), 400

        action = 'activate' if not target['active'] else 'deactivate'
        log_activity(current['name'], action, 'user', user_id, f"{message}: {target['name']}")
        return jsonify({'success': True, 'message': message, 'active': not target['active']})
    except Exception as e:
        logger.exception("Failed to toggle user")
        return jsonify({'error': str(e)}), 500


@users_bp.route('/api/users/<int:user_id>/login', methods=['POST'])
@admin_required
def update_login(user_id):
    """Set a user's PIN and allowed pages, or revoke login"""
    try:
        data = request_data()
        can_login = data.get('can_login', True)
        if isinstance(can_login, str):
            can_login = can_login.lower() in ('1', 'true', 'yes', 'on')
        pin = str(data.get('pin') or '').strip() or None

        success, message = set_user_login(user_id, pin, data.get('allowed_pages') or [], can_login)
        if not success:
            status = 404 if message == 'User not found' else 400
            return jsonify({'error': message}), status

        log_activity(get_current_user()['name'], 'update', 'user', user_id, 'Updated login access',
                     after_data={'can_login': can_login, 'allowed_pages': data.get('allowed_pages') or [],
                                 'pin_changed': bool(pin)})
        return jsonify({'success': True, 'message': message})
    except Exception as e:
        logger.exception("Failed to update login access")
        return jsonify({'error': str(e)}), 500


@users_bp.route('/api/users/<int:user_id>/rooms', methods=['POST'])
@admin_required
def assign_room(user_id):
    """Assign a stream room to a user"""
    try:
        location_id = request_data().get('location_id')
        if not location_id:
            return jsonify({'error': 'Please select a room'}), 400

        success, result = db_assign_room(user_id, location_id)
        if not success:
            return jsonify({'error': result}), 409

        log_activity(get_current_user()['name'], 'add', 'user_room', result,
                     f'Assigned location {location_id} to user {user_id}')
        return jsonify({'success': True, 'id': result})
    except Exception as e:
        logger.exception("Failed to assign room")
        return jsonify({'error': str(e)}), 500


@users_bp.route('/api/users/rooms/<int:user_room_id>/delete', methods=['POST'])
@admin_required
def remove_room(user_room_id):
    """Remove a room assignment"""
    try:
        success, message = db_remove_room(user_room_id)
        if not success:
            return jsonify({'error': message}), 404

        log_activity(get_current_user()['name'], 'delete', 'user_room', user_room_id, message)
        return jsonify({'success': True, 'message': message})
    except Exception as e:
        logger.exception("Failed to remove room")
        return jsonify({'error': str(e)}), 500
