import pytest

import database
from tests.conftest import quantity_at


@pytest.fixture
def booster_box(make_product, stock):
    sealed_id = make_product('Paradigm Trigger', 'Sealed', category='Booster Box', breakable=True,
                             packs_per_box=36)
    pack_id = make_product('Paradigm Trigger', 'Pack', category='Booster Pack')
    stock(sealed_id, 2, 72)
    return sealed_id, pack_id


def test_break_box_creates_packs_at_cost(app, booster_box, locations):
    sealed_id, pack_id = booster_box
    master = locations[database.MASTER_LOCATION]

    success, result = database.break_box('2025-03-01', sealed_id, 1)
    assert success, result
    assert result['packs_created'] == 36
    assert result['cost_basis_per_pack'] == pytest.approx(2.0)
    assert result['pack_product']['id'] == pack_id

    assert quantity_at(sealed_id, master)[0] == 1
    quantity, avg = quantity_at(pack_id, master)
    assert quantity == 36
    assert avg == pytest.approx(2.0)


def test_break_box_with_override_pack_count(app, booster_box):
    sealed_id, _ = booster_box
    success, result = database.break_box('2025-03-01', sealed_id, 1, True, 24)
    assert success
    assert result['packs_created'] == 24
    assert result['cost_basis_per_pack'] == pytest.approx(3.0)


def test_break_more_boxes_than_available(app, booster_box):
    sealed_id, _ = booster_box
    success, message = database.break_box('2025-03-01', sealed_id, 3)
    assert not success
    assert message == 'Only 2 boxes available'


def test_break_box_without_pack_product(app, make_product, stock):
    sealed_id = make_product('Clay Burst', 'Sealed', category='Booster Box', breakable=True, packs_per_box=30)
    stock(sealed_id, 1, 60)
    success, message = database.break_box('2025-03-01', sealed_id, 1)
    assert not success
    assert message.startswith('No matching pack product found')


def test_non_breakable_product(app, make_product, stock):
    sealed_id = make_product('Pikachu Tin', 'Sealed', category='Tin')
    stock(sealed_id, 1, 20)
    success, message = database.break_box('2025-03-01', sealed_id, 1)
    assert not success
    assert message == 'This product cannot be broken into packs'


def test_break_box_api(admin_client, booster_box):
    sealed_id, _ = booster_box
    assert [row['product_id'] for row in admin_client.get('/api/inventory/breakable').get_json()['items']] == [sealed_id]

    response = admin_client.post('/api/inventory/break-box', json={'sealed_product_id': sealed_id, 'boxes_broken': 2})
    assert response.status_code == 200
    assert response.get_json()['packs_created'] == 72
    assert len(database.get_box_breaks()) == 1


def test_failed_break_leaves_no_partial_rows(app, booster_box, locations, monkeypatch):
    sealed_id, pack_id = booster_box
    master = locations[database.MASTER_LOCATION]
    apply_change = database._apply_inventory_change

    def fail_on_pack_credit(cursor, product_id, location_id, delta, unit_cost=None):
        if product_id == pack_id:
            raise database.InventoryError("Pack row locked")
        return apply_change(cursor, product_id, location_id, delta, unit_cost)

    monkeypatch.setattr(database, '_apply_inventory_change', fail_on_pack_credit)
    success, message = database.break_box('2025-03-01', sealed_id, 1)

    assert not success
    assert message == 'Pack row locked'
    assert database.get_box_breaks() == []
    assert quantity_at(sealed_id, master)[0] == 2
    assert quantity_at(pack_id, master) == (None, None)
