import io

import pytest

import database
from tests.conftest import quantity_at


@pytest.fixture
def streamer(app):
    success, user_id = database.add_user('Rocket', 'Streamer')
    assert success
    return user_id


def test_ebay_session_with_hourly_net(admin_client, streamer):
    response = admin_client.post('/api/platform-sales/eBay/add', json={
        'date': '2025-03-01',
        'channel': 'SlabbiePatty',
        'streamer_id': streamer,
        'order_count': 40,
        'gross_sales': 400,
        'net_sales': 300,
        'stream_hours': 3
    })
    assert response.status_code == 200

    sale = database.get_platform_sales('eBay')[0]
    assert sale['channel'] == 'SlabbiePatty'
    assert sale['hourly_net'] == pytest.approx(100)
    assert sale['streamer_name'] == 'Rocket'


def test_duplicate_session_returns_existing_id(admin_client, streamer):
    payload = {'date': '2025-03-01', 'channel': 'LuckyVaultUS', 'streamer_id': streamer, 'net_sales': 100}
    first = admin_client.post('/api/platform-sales/eBay/add', json=payload).get_json()['id']

    response = admin_client.post('/api/platform-sales/eBay/add', json=payload)
    assert response.status_code == 409
    body = response.get_json()
    assert body['duplicate_id'] == first
    assert body['error'] == 'Entry already exists for 2025-03-01 - LuckyVaultUS - Rocket'

    other_channel = dict(payload, channel='SlabbiePatty')
    assert admin_client.post('/api/platform-sales/eBay/add', json=other_channel).status_code == 200


def test_update_existing_entry(admin_client, streamer):
    payload = {'date': '2025-03-01', 'streamer_id': streamer, 'net_sales': 100, 'stream_hours': 2}
    sale_id = admin_client.post('/api/platform-sales/Whatnot/add', json=payload).get_json()['id']

    response = admin_client.post(f'/api/platform-sales/{sale_id}/update',
                                 json={'net_sales': 240, 'stream_hours': 2, 'order_count': 0})
    assert response.status_code == 200

    sale = database.get_platform_sales('Whatnot')[0]
    assert sale['net_sales'] == 240
    assert sale['hourly_net'] == pytest.approx(120)
    assert sale['order_count'] is None
    assert sale['channel'] == 'Rockets'


def test_unknown_channel_rejected(admin_client, streamer):
    response = admin_client.post('/api/platform-sales/eBay/add', json={'streamer_id': streamer,
                                                                       'channel': 'NotOurs'})
    assert response.status_code == 400


@pytest.mark.parametrize('platform, message', [('eBay', 'Please select a streamer'),
                                               ('TikTok', 'Please select a seller')])
def test_streamer_must_be_a_user_id(admin_client, platform, message):
    response = admin_client.post(f'/api/platform-sales/{platform}/add', json={'streamer_id': 'Rocket',
                                                                            'external_product_name': 'Pack'})
    assert response.status_code == 400
    assert response.get_json()['error'] == message


def test_tiktok_item_resolves_alias_and_seeds_inventory(admin_client, streamer, make_product, locations):
    product_id = make_product()
    database.add_alias('PTCG Paradigm Pack', product_id, 'TikTok')

    response = admin_client.post('/api/platform-sales/TikTok/add', json={
        'date': '2025-03-02',
        'streamer_id': streamer,
        'external_product_name': 'ptcg paradigm pack',
        'quantity': 2,
        'net_sales': 50,
        'net_income': 50,
        'cost': 30
    })
    assert response.status_code == 200

    sale = database.get_platform_sales('TikTok')[0]
    assert sale['product_id'] == product_id
    assert sale['profit'] == pytest.approx(20)
    assert sale['margin_percent'] == pytest.approx(40.0)
    assert quantity_at(product_id, locations[database.MASTER_LOCATION]) == (0, None)


def test_tiktok_duplicate_on_product_name(admin_client, streamer):
    payload = {'date': '2025-03-02', 'streamer_id': streamer, 'external_product_name': 'Mystery Pack'}
    admin_client.post('/api/platform-sales/TikTok/add', json=payload)
    response = admin_client.post('/api/platform-sales/TikTok/add', json=payload)
    assert response.status_code == 409


def test_soft_delete_hides_entry_and_allows_reentry(admin_client, streamer):
    payload = {'date': '2025-03-01', 'streamer_id': streamer, 'net_sales': 100}
    sale_id = admin_client.post('/api/platform-sales/eBay/add', json=payload).get_json()['id']

    assert admin_client.post(f'/api/platform-sales/{sale_id}/delete').status_code == 200
    assert database.get_platform_sales('eBay') == []
    assert admin_client.post(f'/api/platform-sales/{sale_id}/delete').status_code == 404
    assert admin_client.post('/api/platform-sales/eBay/add', json=payload).status_code == 200


def test_csv_import_counts_imported_and_skipped(admin_client, streamer):
    content = (
        'Date,Seller,Product title,Quantity,Net sales\n'
        '3/14,Rocket,PTCG Pack,2,$40.00\n'
        '3/15,rocket,PTCG Box,1,$120.00\n'
        ',Rocket,No Date,1,$5.00\n'
    )
    response = admin_client.post('/api/platform-sales/TikTok/import', data={
        'file': (io.BytesIO(content.encode('utf-8-sig')), 'tiktok.csv'),
        'year': '2025'
    }, content_type='multipart/form-data')
    assert response.status_code == 200
    body = response.get_json()
    assert (body['imported'], body['skipped']) == (2, 1)

    dates = sorted(s['date'] for s in database.get_platform_sales('TikTok'))
    assert dates == ['2025-03-14', '2025-03-15']


def test_csv_import_rejects_other_files(admin_client):
    response = admin_client.post('/api/platform-sales/eBay/import', data={
        'file': (io.BytesIO(b'not a csv'), 'sales.xlsx')
    }, content_type='multipart/form-data')
    assert response.status_code == 400


def test_unknown_platform(admin_client):
    assert admin_client.post('/api/platform-sales/Mercari/add', json={}).status_code == 404
