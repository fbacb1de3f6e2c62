import database


def test_sealed_products_get_category_suffix(admin_client):
    response = admin_client.post('/api/products/add', json={
        'brand': 'Pokemon', 'type': 'Sealed', 'category': 'Booster Box', 'name': 'Paradigm Trigger',
        'language': 'JP', 'breakable': True, 'packs_per_box': 30
    })
    assert response.status_code == 200
    product = response.get_json()['product']
    assert product['name'] == 'Paradigm Trigger Booster Box'
    assert product['packs_per_box'] == 30


def test_duplicate_product_conflicts(admin_client):
    payload = {'brand': 'Pokemon', 'type': 'Pack', 'category': 'Booster Pack', 'name': 'Paradigm Trigger',
               'language': 'JP'}
    assert admin_client.post('/api/products/add', json=payload).status_code == 200
    response = admin_client.post('/api/products/add', json=payload)
    assert response.status_code == 409
    assert response.get_json()['error'] == 'This product already exists'


def test_same_name_in_another_language_is_allowed(app, make_product):
    make_product('Paradigm Trigger', language='JP')
    make_product('Paradigm Trigger', language='EN')
    assert len(database.get_products({'type': 'Pack'})) == 2


def test_products_filtered_by_breakable(admin_client, make_product):
    box_id = make_product('Clay Burst', 'Sealed', category='Booster Box', breakable=True, packs_per_box=30)
    make_product('Clay Burst', 'Pack', category='Booster Pack')
    products = admin_client.get('/api/products?breakable=1').get_json()['products']
    assert [p['id'] for p in products] == [box_id]


def test_alias_mapping_round_trip(admin_client, make_product):
    product_id = make_product()
    response = admin_client.post('/api/aliases/add', json={'external_name': 'PTCG Paradigm Pack',
                                                           'product_id': product_id, 'platform': 'TikTok'})
    assert response.status_code == 200
    alias_id = response.get_json()['id']

    resolved = admin_client.get('/api/aliases/resolve?name=ptcg paradigm pack').get_json()
    assert resolved['product_id'] == product_id

    duplicate = admin_client.post('/api/aliases/add', json={'external_name': 'PTCG PARADIGM PACK',
                                                            'product_id': product_id})
    assert duplicate.status_code == 409

    assert admin_client.post(f'/api/aliases/{alias_id}/delete').status_code == 200
    assert database.resolve_alias('PTCG Paradigm Pack') is None


def test_alias_for_unknown_product(admin_client):
    response = admin_client.post('/api/aliases/add', json={'external_name': 'PTCG Ghost Pack', 'product_id': 999})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Product not found'
    assert database.get_aliases() == []


def test_vendor_and_lookup_lists(admin_client):
    response = admin_client.post('/api/vendors/add', json={'name': 'Card Rush', 'country': 'Japan'})
    assert response.status_code == 200
    vendors = admin_client.get('/api/vendors').get_json()['vendors']
    assert 'Card Rush' in [v['name'] for v in vendors]

    methods = admin_client.get('/api/payment-methods').get_json()['payment_methods']
    assert 'Cash' in [m['name'] for m in methods]

    rooms = admin_client.get('/api/stream-counts/rooms').get_json()['rooms']
    assert sorted(r['name'] for r in rooms) == sorted(database.STREAM_ROOMS)
