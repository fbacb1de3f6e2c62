import pytest

import database
from app import create_app

ADMIN_PIN = '1234'


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'DATABASE_PATH': str(tmp_path / 'test.db'),
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'ADMIN_PIN': ADMIN_PIN,
        'TIMEZONE': 'US/Eastern'
    })
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(client):
    response = client.post('/login', data={'pin': ADMIN_PIN})
    assert response.status_code == 302
    return client


@pytest.fixture
def admin(app):
    return database.get_user_by_name('Admin')


@pytest.fixture
def locations(app):
    return {loc['name']: loc['id'] for loc in database.get_locations()}


@pytest.fixture
def make_product(app):
    def _make(name='Paradigm Trigger', product_type='Pack', brand='Pokemon', language='JP',
              category=None, breakable=False, packs_per_box=None):
        success, product_id = database.add_product(brand, product_type, category, name, language,
                                                   breakable, packs_per_box)
        assert success, product_id
        return product_id
    return _make


@pytest.fixture
def stock(app, locations):
    """Put quantity units of a product at a named location"""
    def _stock(product_id, quantity, unit_cost=0, location=database.MASTER_LOCATION):
        success, inventory_id = database.add_manual_inventory(product_id, locations[location], quantity, unit_cost)
        assert success, inventory_id
        return inventory_id
    return _stock


@pytest.fixture
def login_user(app):
    """Create a user with login access to the given pages and return a logged-in client"""
    def _login(name, pin, pages):
        success, user_id = database.add_user(name, 'Streamer')
        assert success, user_id
        success, message = database.set_user_login(user_id, pin, pages)
        assert success, message
        client = app.test_client()
        response = client.post('/login', data={'pin': pin})
        assert response.status_code == 302
        return client, user_id
    return _login


def quantity_at(product_id, location_id):
    conn = database.get_db_connection()
    row = conn.execute(
        "SELECT quantity, avg_cost_basis FROM inventory WHERE product_id = ? AND location_id = ?",
        (product_id, location_id)
    ).fetchone()
    conn.close()
    return (row['quantity'], row['avg_cost_basis']) if row else (None, None)
