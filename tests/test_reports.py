import pytest

import database


@pytest.fixture
def purchases(app, admin, make_product):
    pokemon = make_product('Paradigm Trigger', 'Sealed', category='Booster Box')
    one_piece = make_product('Romance Dawn', 'Sealed', brand='One Piece', category='Booster Box')
    for product_id, country, cost, date in ((pokemon, 'Japan', 100, '2025-03-11'),
                                            (one_piece, 'USA', 50, '2025-03-12'),
                                            (pokemon, 'Japan', 70, '2025-04-01')):
        success, _ = database.log_purchase({'date_purchased': date, 'acquirer_id': admin['id'],
                                            'source_country': country, 'product_id': product_id,
                                            'quantity_purchased': 2, 'cost': cost, 'currency': 'USD'})
        assert success
    database.record_expense({'date': '2025-03-12', 'category': 'shipping', 'amount': 15, 'description': 'Boxes'})


def test_weekly_report(admin_client, purchases):
    response = admin_client.get('/api/reports?mode=weekly&date=2025-03-13')
    assert response.status_code == 200
    report = response.get_json()['report']

    assert (report['start_date'], report['end_date']) == ('2025-03-10', '2025-03-16')
    assert report['total_acquisitions_cost'] == 150
    assert report['total_expenses_cost'] == 15
    assert report['grand_total'] == 165
    assert report['total_items'] == 4
    assert report['by_brand']['One Piece'] == {'count': 2, 'total': 50}
    assert report['countries'] == ['Japan', 'USA']


def test_country_filter_keeps_country_list(admin_client, purchases):
    report = admin_client.get('/api/reports?mode=range&start_date=2025-03-01&end_date=2025-03-31'
                              '&country=Japan').get_json()['report']
    assert report['total_acquisitions_cost'] == 100
    assert report['countries'] == ['Japan', 'USA']
    assert [a['source_country'] for a in report['acquisitions']] == ['Japan']


def test_report_requires_dates(admin_client):
    assert admin_client.get('/api/reports?mode=range&start_date=2025-03-01').status_code == 400
    assert admin_client.get('/api/reports?mode=weekly&date=not-a-date').status_code == 400


def test_csv_export(admin_client, purchases):
    response = admin_client.get('/api/reports/export?mode=single&date=2025-03-11')
    assert response.status_code == 200
    assert response.mimetype == 'text/csv'
    assert 'luckyvault_report_' in response.headers['Content-Disposition']

    body = response.data.decode()
    assert 'Grand Total (USD),100.00' in body
    assert 'Paradigm Trigger Booster Box' in body


def test_reports_need_page_access(login_user):
    client, _ = login_user('Sam', '5678', ['stream-counts'])
    assert client.get('/api/reports?mode=single&date=2025-03-11').status_code == 403
