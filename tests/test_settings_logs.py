import pytest

import database


def test_change_own_pin(admin_client, app):
    response = admin_client.post('/api/settings/pin', json={'current_pin': '1234', 'new_pin': '4321'})
    assert response.status_code == 200

    wrong = admin_client.post('/api/settings/pin', json={'current_pin': '1234', 'new_pin': '5555'})
    assert wrong.status_code == 400
    assert wrong.get_json()['error'] == 'Current PIN is incorrect'

    fresh = app.test_client()
    assert fresh.post('/login', data={'pin': '4321'}).status_code == 302


def test_settings_form_rejects_mismatched_pins(admin_client):
    response = admin_client.post('/settings', data={'current_pin': '1234', 'new_pin': '1111',
                                                    'confirm_pin': '2222'})
    assert response.status_code == 200
    assert b'New PINs do not match.' in response.data
    assert database.verify_pin('1234')[0]


def test_exchange_rate_override(admin_client, admin, make_product):
    response = admin_client.post('/api/settings/exchange-rates', json={'JPY': 0.01})
    assert response.status_code == 200
    assert response.get_json()['rates']['JPY'] == 0.01

    success, acquisition_id = database.log_purchase({'acquirer_id': admin['id'], 'product_id': make_product(),
                                                     'cost': 10000, 'currency': 'JPY'})
    assert success
    assert database.get_acquisition(acquisition_id)['cost_usd'] == pytest.approx(100)


def test_exchange_rate_validation(admin_client):
    assert admin_client.post('/api/settings/exchange-rates', json={'EUR': 1.1}).status_code == 400
    assert admin_client.post('/api/settings/exchange-rates', json={'JPY': -1}).status_code == 400


def test_exchange_rates_admin_only(login_user):
    client, _ = login_user('Sam', '5678', ['stream-counts'])
    assert client.get('/api/settings/exchange-rates').status_code == 200
    assert client.post('/api/settings/exchange-rates', json={'JPY': 0.01}).status_code == 403


def test_logging_toggle_pauses_audit_log(admin_client):
    response = admin_client.post('/api/settings/logging', json={'enabled': False})
    assert response.get_json()['enabled'] is False
    paused_total = database.get_activity_log_stats()['total']

    admin_client.post('/api/expenses/add', json={'category': 'office', 'amount': 5, 'description': 'Pens'})
    assert database.get_activity_log_stats()['total'] == paused_total

    admin_client.post('/api/settings/logging', json={'enabled': True})
    assert database.get_activity_logs()[0]['details'] == 'Audit logging resumed'


def test_logs_api_with_filters_and_local_times(admin_client):
    admin_client.post('/api/expenses/add', json={'category': 'office', 'amount': 5, 'description': 'Pens'})

    data = admin_client.get('/api/logs?action_type=add&target_type=expense').get_json()
    assert data['count'] == 1
    log = data['logs'][0]
    assert log['username'] == 'Admin'
    assert log['after_data'] == {'amount': 5, 'currency': 'USD'}
    assert log['date_only'] != 'Unknown'

    detail = admin_client.get(f"/api/logs/{log['id']}").get_json()['log']
    assert detail['details'] == 'office: Pens'
    assert admin_client.get('/api/logs/99999').status_code == 404

    filters = admin_client.get('/api/logs/filters').get_json()['filters']
    assert 'expense' in filters['target_types']
    stats = admin_client.get('/api/logs/stats').get_json()['stats']
    assert stats['by_action']['login'] == 1


def test_logs_need_logs_access(login_user, client):
    streamer, _ = login_user('Sam', '5678', ['stream-counts'])
    assert streamer.get('/logs').status_code == 403
    assert streamer.get('/api/logs').status_code == 403

    auditor, _ = login_user('Jo', '8765', ['logs'])
    assert auditor.get('/logs').status_code == 200
    assert auditor.get('/api/logs').status_code == 200

    assert client.get('/api/logs').status_code == 401
