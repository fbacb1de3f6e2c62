import pytest

import database


def test_expense_converted_to_usd(admin_client):
    response = admin_client.post('/api/expenses/add', json={
        'date': '2025-03-01',
        'category': 'shipping',
        'amount': 1000,
        'currency': 'JPY',
        'description': 'EMS to warehouse'
    })
    assert response.status_code == 200

    expense = database.get_expenses()[0]
    assert expense['amount_usd'] == pytest.approx(6.7)
    assert expense['currency'] == 'JPY'


@pytest.mark.parametrize('payload', [
    {'category': 'shipping', 'amount': 10},
    {'category': 'shipping', 'description': 'Tape'},
    {'amount': 10, 'description': 'Tape'},
])
def test_required_fields(admin_client, payload):
    response = admin_client.post('/api/expenses/add', json=payload)
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Please fill all required fields'


def test_unknown_category(app):
    success, message = database.record_expense({'category': 'yachts', 'amount': 10, 'description': 'Boat'})
    assert not success
    assert message == 'Unknown expense category'


def test_filter_and_delete(admin_client):
    database.record_expense({'date': '2025-03-01', 'category': 'office', 'amount': 20, 'description': 'Sleeves'})
    database.record_expense({'date': '2025-04-01', 'category': 'food', 'amount': 30, 'description': 'Lunch'})

    march = admin_client.get('/api/expenses?date_from=2025-03-01&date_to=2025-03-31').get_json()['expenses']
    assert [e['description'] for e in march] == ['Sleeves']

    response = admin_client.post(f"/api/expenses/{march[0]['id']}/delete")
    assert response.status_code == 200
    assert admin_client.post(f"/api/expenses/{march[0]['id']}/delete").status_code == 404
