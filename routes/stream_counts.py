"""
Stream count routes for LuckyVault IMS
Post-stream counts of each room reconcile expected stock against what is left.
"""

import logging
from datetime import datetime
from flask import Blueprint, render_template, request, jsonify
from routes.auth import login_required, page_access_required, get_current_user, request_data
from database import (
    get_stream_rooms,
    get_room_inventory,
    submit_stream_count,
    get_stream_counts,
    get_stream_count,
    resolve_stream_count,
    get_or_create_user,
    get_all_users,
    log_activity
)

logger = logging.getLogger(__name__)

stream_counts_bp = Blueprint('stream_counts', __name__)


def _resolve_person(data, id_field, name_field, missing_message):
    """User id from a picker, or from a typed-in name (the "Other" option)"""
    if data.get(id_field) and data.get(id_field) != 'other':
        try:
            return True, int(data[id_field])
        except (TypeError, ValueError):
            return False, missing_message
    name = (data.get(name_field) or '').strip()
    if not name:
        return True, None
    return get_or_create_user(name)


@stream_counts_bp.route('/stream-counts')
@page_access_required('stream-counts')
def stream_counts_page():
    """Display the stream count sheet"""
    now = datetime.now()
    return render_template('stream_counts.html',
                           user=get_current_user(),
                           rooms=get_stream_rooms(),
                           users=get_all_users(active=True),
                           recent_counts=get_stream_counts(),
                           today=now.strftime('%Y-%m-%d'),
                           now_time=now.strftime('%H:%M'))


@stream_counts_bp.route('/api/stream-counts/rooms', methods=['GET'])
@login_required
def list_rooms():
    """List stream rooms"""
    try:
        return jsonify({'success': True, 'rooms': get_stream_rooms()})
    except Exception as e:
        logger.exception("Failed to list stream rooms")
        return jsonify({'error': str(e)}), 500


@stream_counts_bp.route('/api/stream-counts/room/<int:location_id>', methods=['GET'])
@login_required
def room_inventory(location_id):
    """Expected quantities for a room's count sheet"""
    try:
        items = get_room_inventory(location_id)
        return jsonify({'success': True, 'items': items,
                        'expected': {str(i['product_id']): i['quantity'] for i in items}})
    except Exception as e:
        logger.exception("Failed to load room inventory")
        return jsonify({'error': str(e)}), 500


@stream_counts_bp.route('/api/stream-counts/submit', methods=['POST'])
@page_access_required('stream-counts')
def submit_count():
    """Submit a count sheet and reconcile the room"""
    try:
        data = request_data()

        ok, streamer_id = _resolve_person(data, 'streamer_id', 'streamer_name',
                                          'Please select or enter a streamer name')
        if not ok:
            return jsonify({'error': streamer_id}), 400
        ok, counted_by_id = _resolve_person(data, 'counted_by_id', 'counted_by_name',
                                           'Please select or enter who is counting')
        if not ok:
            return jsonify({'error': counted_by_id}), 400

        now = datetime.now()
        count_date = data.get('date') or now.strftime('%Y-%m-%d')
        count_time = data.get('time') or now.strftime('%H:%M')

        success, result = submit_stream_count(
            data.get('location_id'),
            streamer_id,
            counted_by_id,
            f'{count_date}T{count_time}',
            data.get('counts') or {}
        )
        if not success:
            return jsonify({'error': result}), 400

        log_activity(get_current_user()['name'], 'count', 'stream_count', result['id'],
                     f"Counted {result['location']}: {result['total_sold']} sold, "
                     f"{result['total_discrepancies']} discrepancies",
                     after_data={'status': result['status'], 'total_sold': result['total_sold'],
                                 'total_discrepancies': result['total_discrepancies']})
        return jsonify({'success': True, 'report': result})
    except Exception as e:
        logger.exception("Failed to submit stream count")
        return jsonify({'error': str(e)}), 500


@stream_counts_bp.route('/api/stream-counts', methods=['GET'])
@login_required
def recent_counts():
    """Most recent counts"""
    try:
        counts = get_stream_counts(request.args.get('location_id', type=int),
                                   request.args.get('status'),
                                   request.args.get('limit', 10, type=int))
        return jsonify({'success': True, 'counts': counts})
    except Exception as e:
        logger.exception("Failed to list stream counts")
        return jsonify({'error': str(e)}), 500


@stream_counts_bp.route('/api/stream-counts/<int:count_id>', methods=['GET'])
@login_required
def count_detail(count_id):
    """A count with its differing items"""
    try:
        count = get_stream_count(count_id)
        if not count:
            return jsonify({'error': 'Count not found'}), 404
        return jsonify({'success': True, 'count': count})
    except Exception as e:
        logger.exception("Failed to load stream count")
        return jsonify({'error': str(e)}), 500


@stream_counts_bp.route('/api/stream-counts/<int:count_id>/resolve', methods=['POST'])
@page_access_required('stream-counts')
def resolve_count(count_id):
    """Mark a count's discrepancies as resolved"""
    try:
        notes = request_data().get('notes')
        user = get_current_user()
        success, message = resolve_stream_count(count_id, user['id'], notes)
        if not success:
            return jsonify({'error': message}), 404 if message == 'Count not found' else 400

        log_activity(user['name'], 'resolve', 'stream_count', count_id, message, after_data={'notes': notes})
        return jsonify({'success': True, 'message': message})
    except Exception as e:
        logger.exception("Failed to resolve stream count")
        return jsonify({'error': str(e)}), 500
