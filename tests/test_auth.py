import database


def test_login_page_renders(client):
    response = client.get('/login')
    assert response.status_code == 200
    assert b'PIN' in response.data


def test_index_redirects_to_login_when_logged_out(client):
    response = client.get('/')
    assert response.status_code == 302
    assert '/login' in response.headers['Location']


def test_admin_login_with_seeded_pin(admin_client):
    response = admin_client.get('/dashboard')
    assert response.status_code == 200
    assert b'Welcome, Admin' in response.data


def test_invalid_pin_rejected(client):
    response = client.post('/login', data={'pin': '9999'})
    assert response.status_code == 401
    assert b'Invalid PIN' in response.data


def test_pin_must_be_four_digits(client):
    response = client.post('/login', data={'pin': '12'})
    assert response.status_code == 401
    assert b'4-digit PIN' in response.data


def test_pins_are_stored_hashed(app):
    conn = database.get_db_connection()
    row = conn.execute("SELECT pin_hash FROM users WHERE name = 'Admin'").fetchone()
    conn.close()
    assert row['pin_hash'] != '1234'


def test_api_requires_login(client):
    response = client.get('/api/inventory')
    assert response.status_code == 401
    assert response.get_json()['error'] == 'Authentication required'


def test_user_without_login_access_cannot_log_in(app, client):
    success, user_id = database.add_user('Counter Only', 'Counter')
    assert success
    assert database.get_user_by_id(user_id)['can_login'] is False
    response = client.post('/login', data={'pin': '4321'})
    assert response.status_code == 401


def test_page_access_limited_to_allowed_pages(login_user):
    client, _ = login_user('Sam', '5678', ['stream-counts'])

    assert client.get('/stream-counts').status_code == 200
    assert client.get('/dashboard').status_code == 200
    assert client.get('/settings').status_code == 200

    denied = client.get('/inventory')
    assert denied.status_code == 403
    assert b'Access Denied' in denied.data

    api_denied = client.post('/api/inventory/manual', json={})
    assert api_denied.status_code == 403


def test_users_page_grants_everything(login_user):
    client, _ = login_user('Manager Mo', '2468', ['users'])
    assert client.get('/inventory').status_code == 200
    assert client.get('/logs').status_code == 200


def test_dashboard_tiles_filtered_by_access(login_user):
    client, _ = login_user('Sam', '5678', ['stream-counts'])
    page = client.get('/dashboard').data
    assert b'Stream Counts' in page
    assert b'Purchased Items' not in page


def test_deactivated_user_is_logged_out(app, admin, login_user):
    client, user_id = login_user('Sam', '5678', ['stream-counts'])
    success, _ = database.set_user_active(user_id, False, admin['id'])
    assert success

    response = client.get('/stream-counts')
    assert response.status_code == 302
    assert '/login' in response.headers['Location']


def test_logout_clears_session(admin_client):
    admin_client.get('/logout')
    response = admin_client.get('/dashboard')
    assert response.status_code == 302


def test_verify_admin_pin(admin_client, login_user):
    ok = admin_client.post('/api/auth/verify-admin-pin', json={'pin': '1234'})
    assert ok.get_json()['valid'] is True

    login_user('Sam', '5678', ['stream-counts'])
    not_admin = admin_client.post('/api/auth/verify-admin-pin', json={'pin': '5678'})
    assert not_admin.status_code == 401
    assert not_admin.get_json()['valid'] is False


def test_login_is_audit_logged(admin_client):
    logs = database.get_activity_logs({'action_type': 'login'})
    assert logs[0]['username'] == 'Admin'
