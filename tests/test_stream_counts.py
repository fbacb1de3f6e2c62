import pytest

import database
from tests.conftest import quantity_at

ROOM = 'Stream Room - TikTok RocketsHQ'


@pytest.fixture
def room_stock(make_product, stock, locations):
    pack_a = make_product('Paradigm Trigger')
    pack_b = make_product('Shiny Treasure ex')
    stock(pack_a, 5, 2, location=ROOM)
    stock(pack_b, 3, 4, location=ROOM)
    return pack_a, pack_b, locations[ROOM]


def test_count_reconciles_room(app, admin, room_stock):
    pack_a, pack_b, room_id = room_stock

    success, report = database.submit_stream_count(room_id, admin['id'], admin['id'], '2025-03-01T21:00',
                                                   {str(pack_a): 3, str(pack_b): 4})
    assert success, report
    assert report['status'] == 'has_discrepancies'
    assert report['total_sold'] == 2
    assert report['total_discrepancies'] == 1
    assert [i['product_id'] for i in report['sold_items']] == [pack_a]
    assert report['discrepancy_items'][0]['extra'] == 1

    assert quantity_at(pack_a, room_id) == (3, 2)
    assert quantity_at(pack_b, room_id) == (4, 4)

    detail = database.get_stream_count(report['id'])
    assert sorted(i['difference'] for i in detail['items']) == [-2, 1]


def test_blank_counts_mean_nothing_sold(app, admin, room_stock):
    _, _, room_id = room_stock
    success, report = database.submit_stream_count(room_id, admin['id'], admin['id'], '2025-03-01T21:00', {})
    assert success
    assert report['status'] == 'complete'
    assert report['total_sold'] == 0


def test_negative_and_fractional_counts_rejected(app, admin, room_stock):
    pack_a, _, room_id = room_stock
    success, message = database.submit_stream_count(room_id, admin['id'], admin['id'], '2025-03-01T21:00',
                                                    {str(pack_a): -1})
    assert not success
    assert message == 'Counts cannot be negative'

    success, message = database.submit_stream_count(room_id, admin['id'], admin['id'], '2025-03-01T21:00',
                                                    {str(pack_a): 'two'})
    assert message == 'Counts must be whole numbers'
    assert quantity_at(pack_a, room_id)[0] == 5


def test_only_stream_rooms_can_be_counted(app, admin, locations):
    success, message = database.submit_stream_count(locations[database.MASTER_LOCATION], admin['id'],
                                                    admin['id'], '2025-03-01T21:00', {})
    assert not success
    assert message == 'Please select a stream room'


def test_resolve_discrepancy_once(app, admin, room_stock):
    pack_a, pack_b, room_id = room_stock
    _, report = database.submit_stream_count(room_id, admin['id'], admin['id'], '2025-03-01T21:00',
                                             {str(pack_a): 5, str(pack_b): 4})

    success, message = database.resolve_stream_count(report['id'], admin['id'], '')
    assert not success

    success, _ = database.resolve_stream_count(report['id'], admin['id'], 'Found a returned pack')
    assert success
    count = database.get_stream_count(report['id'])
    assert count['status'] == 'resolved'
    assert count['resolved_by_name'] == 'Admin'

    success, message = database.resolve_stream_count(report['id'], admin['id'], 'Again')
    assert not success
    assert message == 'This count has no open discrepancies'


def test_submit_api_with_typed_in_names(admin_client, room_stock):
    pack_a, _, room_id = room_stock

    expected = admin_client.get(f'/api/stream-counts/room/{room_id}').get_json()['expected']
    assert expected[str(pack_a)] == 5

    response = admin_client.post('/api/stream-counts/submit', json={
        'location_id': room_id,
        'streamer_id': 'other',
        'streamer_name': 'New Streamer',
        'counted_by_name': 'Admin',
        'date': '2025-03-01',
        'time': '21:30',
        'counts': {str(pack_a): 4}
    })
    assert response.status_code == 200
    report = response.get_json()['report']
    assert report['streamer'] == 'New Streamer'
    assert report['counted_by'] == 'Admin'
    assert report['count_time'] == '2025-03-01T21:30'
    assert database.get_user_by_name('New Streamer')['can_login'] is False

    counts = admin_client.get(f'/api/stream-counts?location_id={room_id}').get_json()['counts']
    assert counts[0]['id'] == report['id']


def test_submit_api_requires_streamer(admin_client, room_stock):
    _, _, room_id = room_stock
    response = admin_client.post('/api/stream-counts/submit', json={'location_id': room_id,
                                                                    'counted_by_name': 'Admin'})
    assert response.status_code == 400


def test_submit_api_rejects_unreadable_person_id(admin_client, room_stock):
    _, _, room_id = room_stock
    response = admin_client.post('/api/stream-counts/submit', json={'location_id': room_id, 'streamer_id': 'abc',
                                                                    'counted_by_name': 'Admin'})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Please select or enter a streamer name'


def test_failed_count_leaves_no_partial_rows(app, admin, room_stock, monkeypatch):
    pack_a, pack_b, room_id = room_stock
    apply_change = database._apply_inventory_change

    def fail_on_second_product(cursor, product_id, location_id, delta, unit_cost=None):
        if product_id == pack_b:
            raise database.InventoryError("Only 3 available")
        return apply_change(cursor, product_id, location_id, delta, unit_cost)

    monkeypatch.setattr(database, '_apply_inventory_change', fail_on_second_product)
    success, message = database.submit_stream_count(room_id, admin['id'], admin['id'], '2025-03-01T21:00',
                                                    {str(pack_a): 1, str(pack_b): 0})

    assert not success
    assert message == 'Only 3 available'
    assert database.get_stream_counts(room_id) == []
    assert quantity_at(pack_a, room_id)[0] == 5
    assert quantity_at(pack_b, room_id)[0] == 3
