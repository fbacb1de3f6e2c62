"""
Activity Logs routes for LuckyVault IMS
Read-only view of the audit trail, shown in the store's timezone.
"""

import logging
from flask import Blueprint, render_template, request, jsonify, current_app
from routes.auth import page_access_required, get_current_user
from calculations import localize_timestamp
from database import (
    get_activity_logs,
    get_activity_log_by_id,
    get_activity_log_stats,
    get_distinct_log_values,
    is_logging_enabled
)

logger = logging.getLogger(__name__)

logs_bp = Blueprint('logs', __name__)

LOG_FILTER_KEYS = ('username', 'action_type', 'target_type', 'date_from', 'date_to')


def _log_filters(args):
    """Non-empty audit filters from the query string, or None"""
    picked = {key: args[key] for key in LOG_FILTER_KEYS if args.get(key)}
    return picked or None


def _with_local_times(entry):
    entry['date_only'], entry['time_only'] = localize_timestamp(entry['created_at'],
                                                                current_app.config['TIMEZONE'])
    return entry


@logs_bp.route('/logs')
@page_access_required('logs')
def logs_page():
    """Display activity logs page"""
    return render_template('logs.html',
                           user=get_current_user(),
                           filters=get_distinct_log_values(),
                           logging_enabled=is_logging_enabled())


@logs_bp.route('/api/logs', methods=['GET'])
@page_access_required('logs')
def list_logs():
    """Newest-first audit entries; `limit` and `offset` page through them"""
    try:
        page_size = request.args.get('limit', 500, type=int)
        skip = request.args.get('offset', 0, type=int)
        entries = [_with_local_times(row)
                   for row in get_activity_logs(_log_filters(request.args), page_size, skip)]

        return jsonify({'success': True, 'logs': entries, 'count': len(entries)})
    except Exception as e:
        logger.exception("Failed to load activity logs")
        return jsonify({'error': str(e)}), 500


@logs_bp.route('/api/logs/stats', methods=['GET'])
@page_access_required('logs')
def log_stats():
    try:
        return jsonify({'success': True, 'stats': get_activity_log_stats()})
    except Exception as e:
        logger.exception("Failed to summarize activity logs")
        return jsonify({'error': str(e)}), 500


@logs_bp.route('/api/logs/filters', methods=['GET'])
@page_access_required('logs')
def log_filter_options():
    """Usernames, actions and targets seen so far, for the dropdowns"""
    try:
        return jsonify({'success': True, 'filters': get_distinct_log_values()})
    except Exception as e:
        logger.exception("Failed to load log filter values")
        return jsonify({'error': str(e)}), 500


@logs_bp.route('/api/logs/<int:log_id>', methods=['GET'])
@page_access_required('logs')
def log_detail(log_id):
    try:
        entry = get_activity_log_by_id(log_id)
        if entry is None:
            return jsonify({'error': 'Log entry not found'}), 404

        return jsonify({'success': True, 'log': _with_local_times(entry)})
    except Exception as e:
        logger.exception("Failed to load log entry")
        return jsonify({'error': str(e)}), 500
