import pytest

from calculations import (
    convert_to_usd,
    weighted_average_cost,
    receipt_status,
    unit_cost_usd,
    reconcile_counts,
    find_pack_product,
    pack_cost_basis,
    sealed_product_name,
    hourly_net,
    profit_and_margin,
    parse_money,
    parse_csv_date,
    map_csv_row,
    week_range,
    report_date_range,
    summarize_acquisitions,
    localize_timestamp
)


def test_convert_to_usd_uses_static_rates():
    assert convert_to_usd(100, 'USD') == 100
    assert convert_to_usd(10000, 'JPY') == pytest.approx(67)
    assert convert_to_usd(100, 'RMB') == pytest.approx(14)


def test_convert_to_usd_unknown_currency_passes_through():
    assert convert_to_usd(42, 'EUR') == 42


def test_convert_to_usd_with_overridden_rates():
    assert convert_to_usd(1000, 'JPY', {'USD': 1, 'JPY': 0.01}) == pytest.approx(10)


def test_weighted_average_blends_costs():
    assert weighted_average_cost(10, 2.0, 10, 4.0) == pytest.approx(3.0)
    assert weighted_average_cost(3, 10.0, 1, 2.0) == pytest.approx(8.0)


def test_weighted_average_empty_stock_takes_unit_cost():
    assert weighted_average_cost(0, 99.0, 5, 4.0) == 4.0
    assert weighted_average_cost(-2, 1.0, 5, 4.0) == 4.0


def test_weighted_average_without_unit_cost_keeps_average():
    assert weighted_average_cost(5, 3.0, 2, None) == 3.0


@pytest.mark.parametrize('purchased, received, expected', [
    (10, 4, 'Partially Received'),
    (10, 10, 'Received'),
    (10, 12, 'Received - Discrepancy'),
])
def test_receipt_status(purchased, received, expected):
    assert receipt_status(purchased, received) == expected


def test_unit_cost_usd():
    assert unit_cost_usd(100.5, 10) == pytest.approx(10.05)
    assert unit_cost_usd(100, 0) == 0


def test_reconcile_counts_sold_and_discrepancies():
    rows = [{'product_id': 1, 'quantity': 5}, {'product_id': 2, 'quantity': 3}, {'product_id': 3, 'quantity': 2}]
    result = reconcile_counts(rows, {'1': 3, 2: '4', '3': ''})

    assert result['total_sold'] == 2
    assert result['total_discrepancies'] == 1
    assert result['status'] == 'has_discrepancies'
    differences = {item['product_id']: item['difference'] for item in result['items']}
    assert differences == {1: -2, 2: 1, 3: 0}


def test_reconcile_counts_all_matching_is_complete():
    rows = [{'product_id': 1, 'quantity': 5}]
    result = reconcile_counts(rows, {})
    assert result['status'] == 'complete'
    assert result['total_sold'] == 0


PACKS = [
    {'id': 1, 'type': 'Pack', 'brand': 'Pokemon', 'language': 'JP', 'name': 'Paradigm Trigger'},
    {'id': 2, 'type': 'Pack', 'brand': 'Pokemon', 'language': 'EN', 'name': 'Paradigm Trigger'},
    {'id': 3, 'type': 'Pack', 'brand': 'Pokemon', 'language': 'JP', 'name': 'Shiny Treasure ex (SV4a)'},
    {'id': 4, 'type': 'Pack', 'brand': 'One Piece', 'language': 'JP', 'name': 'Romance Dawn'},
    {'id': 5, 'type': 'Sealed', 'brand': 'Pokemon', 'language': 'JP', 'name': 'Clay Burst Booster Box'},
]


def test_find_pack_product_exact_name_same_language():
    sealed = {'brand': 'Pokemon', 'language': 'EN', 'name': 'Paradigm Trigger'}
    assert find_pack_product(sealed, PACKS)['id'] == 2


def test_find_pack_product_prefix_match():
    sealed = {'brand': 'Pokemon', 'language': 'JP', 'name': 'Paradigm Trigger Booster Box'}
    assert find_pack_product(sealed, PACKS)['id'] == 1


def test_find_pack_product_core_name_ignores_parentheses():
    sealed = {'brand': 'Pokemon', 'language': 'JP', 'name': 'Shiny Treasure ex Booster Box (JP)'}
    assert find_pack_product(sealed, PACKS)['id'] == 3


def test_find_pack_product_first_word():
    sealed = {'brand': 'One Piece', 'language': 'JP', 'name': 'Romance Box OP-01'}
    assert find_pack_product(sealed, PACKS)['id'] == 4


def test_find_pack_product_no_match():
    sealed = {'brand': 'Pokemon', 'language': 'JP', 'name': 'Clay Burst Booster Box'}
    assert find_pack_product(sealed, PACKS) is None


def test_pack_cost_basis():
    assert pack_cost_basis(72.0, 2, 72) == pytest.approx(2.0)
    assert pack_cost_basis(72.0, 1, 0) == 0


def test_sealed_product_name():
    assert sealed_product_name('Paradigm Trigger', 'Sealed', 'Booster Box') == 'Paradigm Trigger Booster Box'
    assert sealed_product_name('Paradigm Trigger', 'Sealed', 'Booster Box', False) == 'Paradigm Trigger'
    assert sealed_product_name(' Charizard ', 'Single', 'Singles') == 'Charizard'


def test_hourly_net():
    assert hourly_net(300, 3) == 100
    assert hourly_net('', 3) is None
    assert hourly_net(300, 0) is None


def test_profit_and_margin():
    assert profit_and_margin(50, 30) == (20, 40.0)
    assert profit_and_margin(50, None) == (None, None)
    assert profit_and_margin(0, 30) == (None, None)


def test_parse_money_strips_symbols():
    assert parse_money('$1,234.50') == 1234.5
    assert parse_money('45%') == 45
    assert parse_money('') is None
    assert parse_money('n/a') is None


def test_parse_csv_date_completes_month_day_with_year():
    assert parse_csv_date('3/14', 2025) == '2025-03-14'
    assert parse_csv_date('2025-01-02') == '2025-01-02'
    assert parse_csv_date('01/02/2024') == '2024-01-02'
    assert parse_csv_date('not a date') is None


def test_map_csv_row_tiktok():
    users = [{'id': 7, 'name': 'Rocket'}]
    row = {'Date': '3/14', 'Seller': 'rocket', 'Product title': 'PTCG Pack', 'Quantity': '2',
           'Net sales': '$40.00', 'Net Income': '35', 'Cost': '20'}
    entry = map_csv_row(row, 'TikTok', users, 2025)

    assert entry['date'] == '2025-03-14'
    assert entry['streamer_id'] == 7
    assert entry['quantity'] == 2
    assert entry['net_sales'] == 40.0
    assert entry['channel'] == 'RocketsHQ'


def test_map_csv_row_ebay_and_missing_date():
    users = [{'id': 1, 'name': 'Patty'}]
    row = {'Date': '2025-02-01', 'Streamer': 'Patty', 'Channel': 'SlabbiePatty', 'Orders': '12',
           'Total Sales': '1,000', 'Net Sales': '800', 'Stream Hours': '4'}
    entry = map_csv_row(row, 'eBay', users)
    assert entry['channel'] == 'SlabbiePatty'
    assert entry['order_count'] == 12
    assert entry['gross_sales'] == 1000
    assert entry['stream_hours'] == 4

    assert map_csv_row({'Date': ''}, 'eBay', users) is None
    assert map_csv_row({'Date': '2025-02-01'}, 'Mercari', users) is None


def test_map_csv_row_zero_values_are_blank():
    row = {'Date': '2025-02-01', 'Product Type': 'Singles', 'Orders': '0', 'Total Sales': '$0.00',
           'Net': '25', 'Margin': '0%'}
    entry = map_csv_row(row, 'Whatnot', [])
    assert entry['order_count'] is None
    assert entry['gross_sales'] is None
    assert entry['margin_percent'] is None
    assert entry['net_sales'] == 25


def test_week_range_monday_to_sunday():
    assert week_range('2025-03-13') == ('2025-03-10', '2025-03-16')
    assert week_range('2025-03-16') == ('2025-03-10', '2025-03-16')


def test_report_date_range_modes():
    assert report_date_range('single', '2025-03-13') == ('2025-03-13', '2025-03-13')
    assert report_date_range('range', None, '2025-03-01', '2025-03-31') == ('2025-03-01', '2025-03-31')
    assert report_date_range('range', None, '2025-03-01', None) is None
    assert report_date_range('weekly', '2025-03-13') == ('2025-03-10', '2025-03-16')
    assert report_date_range('monthly', '2025-03-13') is None


def test_summarize_acquisitions_groups_units_and_entries():
    acquisitions = [
        {'acquirer_name': 'Ana', 'brand': 'Pokemon', 'source_country': 'Japan', 'quantity_purchased': 3,
         'cost_usd': 30},
        {'acquirer_name': 'Ana', 'brand': 'One Piece', 'source_country': 'USA', 'quantity_purchased': 2,
         'cost_usd': 20},
        {'acquirer_name': 'Ben', 'brand': 'Pokemon', 'source_country': 'Japan', 'quantity_purchased': 1,
         'cost_usd': 5},
    ]
    expenses = [{'category': 'shipping', 'amount_usd': 7}, {'category': 'shipping', 'amount_usd': 3}]
    report = summarize_acquisitions(acquisitions, expenses)

    assert report['total_acquisitions_cost'] == 55
    assert report['total_expenses_cost'] == 10
    assert report['grand_total'] == 65
    assert report['total_items'] == 6
    assert report['by_acquirer']['Ana'] == {'count': 5, 'total': 50}
    assert report['by_brand']['Pokemon'] == {'count': 4, 'total': 35}
    assert report['by_country']['Japan']['count'] == 4
    assert report['expenses_by_category']['shipping'] == {'count': 2, 'total': 10}
    assert report['countries'] == ['Japan', 'USA']


def test_localize_timestamp():
    assert localize_timestamp('2025-01-15 17:30:00', 'US/Eastern') == ('2025-01-15', '12:30:00 PM')
    assert localize_timestamp('garbage') == ('Unknown', 'garbage')
