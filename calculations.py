"""
Business calculations for LuckyVault IMS

Pure functions with no database access: currency conversion, cost basis,
receipt status, stream count reconciliation, pack matching, platform CSV
row mapping and report date ranges / groupings.
"""

import re
import pytz
from datetime import datetime, date, timedelta

# Static exchange rates (1 unit of currency = N USD)
DEFAULT_EXCHANGE_RATES = {
    'USD': 1,
    'JPY': 0.0067,
    'RMB': 0.14
}

STATUS_PURCHASED = 'Purchased'
STATUS_PARTIAL = 'Partially Received'
STATUS_RECEIVED = 'Received'
STATUS_DISCREPANCY = 'Received - Discrepancy'
PENDING_STATUSES = [STATUS_PURCHASED, STATUS_PARTIAL]

COUNT_COMPLETE = 'complete'
COUNT_HAS_DISCREPANCIES = 'has_discrepancies'
COUNT_RESOLVED = 'resolved'

PLATFORMS = {
    'eBay': {
        'channels': ['LuckyVaultUS', 'SlabbiePatty'],
        'level': 'session'
    },
    'TikTok': {
        'channels': ['RocketsHQ'],
        'level': 'item'
    },
    'Whatnot': {
        'channels': ['Rockets'],
        'level': 'session',
        'product_types': ['Slabs', 'Singles', 'Nullifying Zero', 'Other']
    }
}


def convert_to_usd(amount, currency, rates=None):
    """Convert an amount in the given currency to USD. Unknown currencies pass through."""
    rates = rates or DEFAULT_EXCHANGE_RATES
    return float(amount) * rates.get(currency, 1)


def weighted_average_cost(old_quantity, old_avg, added_quantity, unit_cost):
    """
    Blend a stock addition into an existing average cost.

    Args:
        old_quantity: Units on hand before the addition
        old_avg: Current average cost per unit
        added_quantity: Units being added (must be positive)
        unit_cost: Cost per unit of the added stock

    Returns:
        The new average cost per unit
    """
    old_avg = old_avg or 0
    if unit_cost is None:
        return old_avg
    if old_quantity <= 0:
        return float(unit_cost)
    new_quantity = old_quantity + added_quantity
    if new_quantity <= 0:
        return float(unit_cost)
    return (old_quantity * old_avg + added_quantity * unit_cost) / new_quantity


def receipt_status(quantity_purchased, total_received):
    """Status of an acquisition after a receipt brings it to total_received."""
    if total_received < quantity_purchased:
        return STATUS_PARTIAL
    if total_received != quantity_purchased:
        return STATUS_DISCREPANCY
    return STATUS_RECEIVED


def unit_cost_usd(cost_usd, quantity_purchased):
    if not quantity_purchased:
        return 0
    return (cost_usd or 0) / quantity_purchased


def reconcile_counts(inventory_rows, counts):
    """
    Compare a stream room count sheet against expected inventory.

    inventory_rows is a list of dicts with product_id and quantity.
    counts maps product_id to the counted quantity; products missing from
    counts (or counted as blank) are treated as matching expectations.

    Returns a dict with items, total_sold, total_discrepancies and status.
    """
    normalized = {}
    for key, value in (counts or {}).items():
        if value is None or value == '':
            continue
        normalized[str(key)] = int(value)

    items = []
    total_sold = 0
    total_discrepancies = 0

    for row in inventory_rows:
        expected = row['quantity']
        actual = normalized.get(str(row['product_id']), expected)
        difference = actual - expected

        if difference < 0:
            total_sold += abs(difference)
        elif difference > 0:
            total_discrepancies += difference

        items.append({
            'product_id': row['product_id'],
            'expected_qty': expected,
            'actual_qty': actual,
            'difference': difference
        })

    status = COUNT_HAS_DISCREPANCIES if total_discrepancies > 0 else COUNT_COMPLETE

    return {
        'items': items,
        'total_sold': total_sold,
        'total_discrepancies': total_discrepancies,
        'status': status
    }


def _core_name(name):
    return re.sub(r'\s*\([^)]*\)\s*', '', name).strip().lower()


def find_pack_product(sealed_product, products):
    """
    Find the Pack product a sealed product breaks into.

    Candidates are Pack products of the same brand and language. Tries, in
    order: exact name, prefix either way, core name without parenthesised
    text, then the first significant word of the sealed name.
    """
    if not sealed_product:
        return None

    packs = [p for p in products
             if p['type'] == 'Pack'
             and p['brand'] == sealed_product['brand']
             and p['language'] == sealed_product['language']]

    name = sealed_product['name'].lower()

    for p in packs:
        if p['name'].lower() == name:
            return p

    for p in packs:
        pack_name = p['name'].lower()
        if name.startswith(pack_name) or pack_name.startswith(name):
            return p

    core = _core_name(sealed_product['name'])
    for p in packs:
        pack_core = _core_name(p['name'])
        if core == pack_core or core.startswith(pack_core) or pack_core.startswith(core):
            return p

    significant_word = name.split(' ')[0] if name else ''
    if len(significant_word) > 2:
        for p in packs:
            if significant_word in p['name'].lower():
                return p

    return None


def pack_cost_basis(avg_cost_per_box, boxes_broken, total_packs):
    if total_packs <= 0:
        return 0
    return ((avg_cost_per_box or 0) * boxes_broken) / total_packs


def sealed_product_name(name, product_type, category, append_category=True):
    """Final catalog name; Sealed products get their category appended."""
    name = (name or '').strip()
    if product_type == 'Sealed' and append_category and category:
        return f'{name} {category}'
    return name


def hourly_net(net_sales, stream_hours):
    try:
        net = float(net_sales)
        hours = float(stream_hours)
    except (TypeError, ValueError):
        return None
    if not hours:
        return None
    return net / hours


def profit_and_margin(net_income, cost):
    """Profit and margin percent from net income and cost, or (None, None)."""
    try:
        income = float(net_income)
        cost_value = float(cost)
    except (TypeError, ValueError):
        return None, None
    if not income or not cost_value:
        return None, None
    profit = round(income - cost_value, 2)
    margin = round((income - cost_value) / income * 100, 2)
    return profit, margin


def parse_money(value):
    """Parse '$1,234.50' / '45%' style strings. Empty, zero or invalid gives None."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) or None
    cleaned = str(value).replace('$', '').replace(',', '').replace('%', '').strip()
    if not cleaned:
        return None
    try:
        return float(cleaned) or None
    except ValueError:
        return None


def parse_int(value):
    if value is None or value == '':
        return None
    try:
        return int(float(str(value).replace(',', '').strip())) or None
    except ValueError:
        return None


def parse_csv_date(value, year=None):
    """Parse a platform export date; 'M/D' values get the import year appended."""
    if not value:
        return None
    value = str(value).strip()
    year = year or date.today().year

    for fmt in ('%Y-%m-%d', '%m/%d/%Y', '%m/%d/%y'):
        try:
            return datetime.strptime(value, fmt).date().isoformat()
        except ValueError:
            pass

    try:
        return datetime.strptime(f'{value}/{year}', '%m/%d/%Y').date().isoformat()
    except ValueError:
        return None


def _first(row, *keys):
    for key in keys:
        if row.get(key) not in (None, ''):
            return row.get(key)
    return None


def map_csv_row(row, platform, users, year=None):
    """
    Map one platform export CSV row onto a platform_sales entry.

    users is a list of dicts with id and name; the streamer/seller column is
    matched case-insensitively. Returns None when the row has no usable date
    or the platform is unknown.
    """
    streamer_name = _first(row, 'Streamer', 'Seller', 'streamer', 'seller')
    streamer = None
    if streamer_name:
        streamer = next((u for u in users if u['name'].lower() == streamer_name.strip().lower()), None)

    entry_date = parse_csv_date(_first(row, 'Date', 'date'), year)
    if not entry_date:
        return None

    streamer_id = streamer['id'] if streamer else None

    if platform == 'TikTok':
        return {
            'platform': 'TikTok',
            'channel': 'RocketsHQ',
            'date': entry_date,
            'streamer_id': streamer_id,
            'external_product_name': _first(row, 'Product title', 'product'),
            'quantity': parse_int(_first(row, 'Quantity', 'quantity', 'Units')),
            'net_sales': parse_money(row.get('Net sales')),
            'net_income': parse_money(row.get('Net Income')),
            'cost': parse_money(row.get('Cost')),
            'profit': parse_money(row.get('Profit')),
            'margin_percent': parse_money(row.get('Margin')),
            'shipping': parse_money(row.get('Shipping'))
        }
    elif platform == 'eBay':
        return {
            'platform': 'eBay',
            'channel': row.get('Channel') or 'LuckyVaultUS',
            'date': entry_date,
            'streamer_id': streamer_id,
            'order_count': parse_int(_first(row, 'Order Count', 'Orders')),
            'gross_sales': parse_money(_first(row, 'Total Sales', 'Gross Sales')),
            'net_sales': parse_money(_first(row, 'Net sales', 'Net Sales')),
            'profit': parse_money(row.get('Profit')),
            'stream_hours': parse_money(_first(row, 'Stream Time', 'Stream Hours', 'Hours')),
            'hourly_net': parse_money(row.get('Hourly Net Sales'))
        }
    elif platform == 'Whatnot':
        return {
            'platform': 'Whatnot',
            'channel': 'Rockets',
            'date': entry_date,
            'streamer_id': streamer_id,
            'product_type': _first(row, 'Product Type', 'Type'),
            'order_count': parse_int(_first(row, 'Order Count', 'Orders')),
            'gross_sales': parse_money(_first(row, 'Total Sales', 'Gross')),
            'net_sales': parse_money(_first(row, 'Net sales', 'Net')),
            'profit': parse_money(row.get('Profit')),
            'margin_percent': parse_money(row.get('Margin')),
            'stream_hours': parse_money(_first(row, 'Stream Time', 'Hours')),
            'hourly_net': parse_money(row.get('Hourly Net'))
        }

    return None


def week_range(day):
    """Monday..Sunday (ISO strings) of the week containing day."""
    if isinstance(day, str):
        day = datetime.strptime(day, '%Y-%m-%d').date()
    monday = day - timedelta(days=day.weekday())
    sunday = monday + timedelta(days=6)
    return monday.isoformat(), sunday.isoformat()


def report_date_range(mode, single_date=None, start_date=None, end_date=None):
    """
    Resolve a report date selection into (start, end).

    Returns None when the selection is incomplete.
    """
    if mode == 'single':
        if not single_date:
            return None
        return single_date, single_date
    elif mode == 'range':
        if not start_date or not end_date:
            return None
        return start_date, end_date
    elif mode == 'weekly':
        if not single_date:
            return None
        return week_range(single_date)
    return None


def group_totals(rows, key_func, count_func, total_field):
    """Group rows into {key: {'count': n, 'total': usd}}."""
    grouped = {}
    for row in rows:
        key = key_func(row) or 'Unknown'
        if key not in grouped:
            grouped[key] = {'count': 0, 'total': 0}
        grouped[key]['count'] += count_func(row)
        grouped[key]['total'] += row.get(total_field) or 0
    return grouped


def summarize_acquisitions(acquisitions, expenses):
    """Totals and groupings for the purchasing report."""
    total_acquisitions = sum(a.get('cost_usd') or 0 for a in acquisitions)
    total_expenses = sum(e.get('amount_usd') or 0 for e in expenses)
    total_items = sum(a.get('quantity_purchased') or 0 for a in acquisitions)

    units = lambda a: a.get('quantity_purchased') or 0

    return {
        'total_acquisitions_cost': total_acquisitions,
        'total_expenses_cost': total_expenses,
        'grand_total': total_acquisitions + total_expenses,
        'total_items': total_items,
        'by_acquirer': group_totals(acquisitions, lambda a: a.get('acquirer_name'), units, 'cost_usd'),
        'by_brand': group_totals(acquisitions, lambda a: a.get('brand'), units, 'cost_usd'),
        'by_country': group_totals(acquisitions, lambda a: a.get('source_country'), units, 'cost_usd'),
        'expenses_by_category': group_totals(expenses, lambda e: e.get('category') or 'other',
                                             lambda e: 1, 'amount_usd'),
        'countries': sorted({a['source_country'] for a in acquisitions if a.get('source_country')})
    }


def localize_timestamp(created_at, tz_name='US/Eastern'):
    """
    Split a UTC 'YYYY-MM-DD HH:MM:SS' database timestamp into local date and
    12-hour time strings. Unparseable values come back as ('Unknown', value).
    """
    try:
        dt_utc = pytz.utc.localize(datetime.strptime(created_at, '%Y-%m-%d %H:%M:%S'))
        dt_local = dt_utc.astimezone(pytz.timezone(tz_name))
    except (TypeError, ValueError, pytz.UnknownTimeZoneError):
        return 'Unknown', created_at
    return dt_local.strftime('%Y-%m-%d'), dt_local.strftime('%I:%M:%S %p')
