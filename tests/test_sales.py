import pytest

import database
from tests.conftest import quantity_at


def test_product_sale_profit_and_stock(admin_client, make_product, stock, locations):
    product_id = make_product()
    inventory_id = stock(product_id, 5, 4)

    response = admin_client.post('/api/storefront/sale', json={
        'sale_type': 'Product',
        'inventory_id': inventory_id,
        'quantity': 2,
        'sale_price': 20
    })
    assert response.status_code == 200
    data = response.get_json()
    assert data['cost_basis'] == pytest.approx(8)
    assert data['profit'] == pytest.approx(12)
    assert quantity_at(product_id, locations[database.MASTER_LOCATION])[0] == 3


def test_selling_all_units_removes_inventory_row(app, make_product, stock):
    product_id = make_product()
    inventory_id = stock(product_id, 2, 4)

    success, result = database.log_product_sale({'inventory_id': inventory_id, 'quantity': 2, 'sale_price': 10})
    assert success
    assert database.get_inventory_item(inventory_id) is None


def test_product_sale_cannot_exceed_stock(app, make_product, stock):
    inventory_id = stock(make_product(), 1)
    success, message = database.log_product_sale({'inventory_id': inventory_id, 'quantity': 2, 'sale_price': 10})
    assert not success
    assert message == 'Not enough inventory'


def test_bulk_sale_does_not_touch_inventory(admin_client, make_product, stock, locations):
    product_id = make_product()
    stock(product_id, 4)

    response = admin_client.post('/api/storefront/sale', json={
        'sale_type': 'Bulk',
        'brand': 'Pokemon',
        'product_type': 'Single',
        'quantity': 50,
        'sale_price': 25
    })
    assert response.status_code == 200
    assert quantity_at(product_id, locations[database.MASTER_LOCATION])[0] == 4

    sales = admin_client.get('/api/storefront/sales').get_json()['sales']
    assert sales[0]['sale_type'] == 'Bulk'
    assert sales[0]['quantity'] == 50


def test_sale_requires_price(admin_client, make_product, stock):
    inventory_id = stock(make_product(), 1)
    response = admin_client.post('/api/storefront/sale', json={'inventory_id': inventory_id, 'sale_price': ''})
    assert response.status_code == 400


@pytest.mark.parametrize('quantity', [0, -2, 'two'])
def test_product_sale_rejects_bad_quantity(admin_client, make_product, stock, locations, quantity):
    product_id = make_product()
    inventory_id = stock(product_id, 3, 2)

    response = admin_client.post('/api/storefront/sale', json={
        'sale_type': 'Product',
        'inventory_id': inventory_id,
        'quantity': quantity,
        'sale_price': 10
    })
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Please enter a valid quantity'
    assert quantity_at(product_id, locations[database.MASTER_LOCATION])[0] == 3


@pytest.mark.parametrize('quantity', [0, -4])
def test_bulk_sale_rejects_non_positive_quantity(admin_client, quantity):
    response = admin_client.post('/api/storefront/sale', json={'sale_type': 'Bulk', 'quantity': quantity,
                                                                'sale_price': 25})
    assert response.status_code == 400
    assert admin_client.get('/api/storefront/sales').get_json()['sales'] == []


def test_blank_quantity_means_one_unit(app, make_product, stock):
    inventory_id = stock(make_product(), 3, 2)
    success, result = database.log_product_sale({'inventory_id': inventory_id, 'quantity': '', 'sale_price': 10})
    assert success
    assert result['cost_basis'] == pytest.approx(2)
