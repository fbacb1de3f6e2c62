import sqlite3
from werkzeug.security import generate_password_hash, check_password_hash
import json
import logging
import re
from datetime import datetime

from calculations import (
    DEFAULT_EXCHANGE_RATES,
    PENDING_STATUSES,
    STATUS_PURCHASED,
    COUNT_HAS_DISCREPANCIES,
    COUNT_RESOLVED,
    PLATFORMS,
    convert_to_usd,
    weighted_average_cost,
    receipt_status,
    unit_cost_usd,
    reconcile_counts,
    find_pack_product,
    pack_cost_basis,
    sealed_product_name,
    hourly_net,
    profit_and_margin
)

logger = logging.getLogger(__name__)

DATABASE_PATH = 'luckyvault.db'

MASTER_LOCATION = 'Master Inventory'
OUT_LOCATION = 'Other/Out'
FRONT_STORE = 'Front Store'

STREAM_ROOMS = [
    'Stream Room - eBay LuckyVaultUS',
    'Stream Room - eBay SlabbiePatty',
    'Stream Room - TikTok RocketsHQ',
    'Stream Room - TikTok Whatnot',
    'Stream Room - Whatnot Rockets'
]

# Locations inventory can be moved between
MOVABLE_LOCATIONS = [MASTER_LOCATION] + STREAM_ROOMS + [FRONT_STORE, OUT_LOCATION]

DEFAULT_PAYMENT_METHODS = ['Cash', 'Credit Card', 'Debit Card', 'PayPal', 'Bank Transfer']

PAGES = [
    'dashboard', 'stream-counts', 'platform-sales', 'add-product', 'manual-inventory',
    'purchased-items', 'expenses', 'intake', 'move-inventory', 'break-box', 'grading',
    'storefront-sale', 'inventory', 'high-value', 'reports', 'product-mapping', 'users',
    'logs', 'settings'
]
ALWAYS_ALLOWED_PAGES = ['dashboard', 'settings']
ADMIN_PAGE = 'users'

USER_ROLES = ['Streamer', 'Counter', 'Admin', 'Manager']
BRANDS = ['Pokemon', 'One Piece', 'Other']
PRODUCT_TYPES = ['Sealed', 'Pack', 'Single', 'Slab']
LANGUAGES = ['EN', 'JP', 'CN', 'KR', 'Other']
CURRENCIES = ['USD', 'JPY', 'RMB']

CATEGORY_OPTIONS = {
    'Sealed': ['Booster Box', 'ETB', 'Booster Bundle', 'UPC', 'Tin', 'Tin Box', 'Blister Pack',
               'Build & Battle', 'Collector Chest', 'Premium Collection', 'Ultra-Premium Collection',
               'Collection Box', 'Figure Collection', 'Starter Deck', 'Deck', 'Packs Set', 'Special',
               'Special Box', 'Collection', 'Other'],
    'Pack': ['Booster Pack'],
    'Single': ['Singles'],
    'Slab': ['PSA', 'CGC', 'Beckett']
}

GRADING_COMPANIES = ['PSA', 'CGC', 'Beckett', 'TAG', 'Other']
GRADING_LOCATIONS = ['USA', 'Japan']
GRADING_STATUSES = ['Sent', 'Received', 'Returned']

EXPENSE_CATEGORIES = ['shipping', 'office', 'utilities', 'food', 'travel', 'other']

HIGH_VALUE_TYPES = ['Single', 'Slab $200-400', 'Slab $400+', 'Other']
GRADE_OPTIONS = ['1', '2', '3', '4', '5', '6', '7', '8', '9', '10', 'Pristine 10', 'Black Label 10']


class InventoryError(Exception):
    """Raised inside a write when the operation cannot be applied; the transaction is rolled back."""


def get_db_connection():
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _rows(cursor):
    return [dict(row) for row in cursor.fetchall()]


def _one(cursor):
    row = cursor.fetchone()
    return dict(row) if row else None


def _parse_quantity(value):
    """Whole positive unit count; blank means 1, anything else unusable is None"""
    if value is None or value == '':
        return 1
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        return None
    return quantity if quantity > 0 else None


def init_database(admin_pin='1234'):
    conn = get_db_connection()
    cursor = conn.cursor()

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT UNIQUE NOT NULL COLLATE NOCASE,
            role TEXT NOT NULL DEFAULT 'Streamer',
            pin_hash TEXT,
            active INTEGER NOT NULL DEFAULT 1,
            can_login INTEGER NOT NULL DEFAULT 0,
            allowed_pages TEXT NOT NULL DEFAULT '[]',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS locations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT UNIQUE NOT NULL,
            type TEXT NOT NULL DEFAULT 'Physical',
            active INTEGER NOT NULL DEFAULT 1
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS user_rooms (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            location_id INTEGER NOT NULL REFERENCES locations(id),
            UNIQUE(user_id, location_id)
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS vendors (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            country TEXT,
            active INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS payment_methods (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT UNIQUE NOT NULL,
            active INTEGER NOT NULL DEFAULT 1
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            brand TEXT NOT NULL,
            type TEXT NOT NULL,
            category TEXT,
            name TEXT NOT NULL,
            language TEXT NOT NULL DEFAULT 'EN',
            breakable INTEGER NOT NULL DEFAULT 0,
            packs_per_box INTEGER,
            active INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(brand, type, name, language)
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS inventory (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            product_id INTEGER NOT NULL REFERENCES products(id),
            location_id INTEGER NOT NULL REFERENCES locations(id),
            quantity INTEGER NOT NULL DEFAULT 0,
            avg_cost_basis REAL,
            last_updated TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(product_id, location_id)
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS acquisitions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            date_purchased TEXT NOT NULL,
            acquirer_id INTEGER NOT NULL REFERENCES users(id),
            source_country TEXT,
            vendor_id INTEGER REFERENCES vendors(id),
            payment_method_id INTEGER REFERENCES payment_methods(id),
            product_id INTEGER NOT NULL REFERENCES products(id),
            quantity_purchased INTEGER NOT NULL,
            quantity_received INTEGER NOT NULL DEFAULT 0,
            cost REAL NOT NULL,
            currency TEXT NOT NULL DEFAULT 'USD',
            cost_usd REAL NOT NULL,
            status TEXT NOT NULL DEFAULT 'Purchased',
            notes TEXT,
            created_by INTEGER,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS receipts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            acquisition_id INTEGER NOT NULL REFERENCES acquisitions(id),
            date_received TEXT NOT NULL,
            quantity_received INTEGER NOT NULL,
            received_by INTEGER,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS movements (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            date TEXT NOT NULL,
            product_id INTEGER NOT NULL REFERENCES products(id),
            from_location_id INTEGER NOT NULL REFERENCES locations(id),
            to_location_id INTEGER REFERENCES locations(id),
            quantity INTEGER NOT NULL,
            cost_basis REAL,
            movement_type TEXT NOT NULL,
            notes TEXT,
            created_by INTEGER,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS box_breaks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            date TEXT NOT NULL,
            sealed_product_id INTEGER NOT NULL REFERENCES products(id),
            pack_product_id INTEGER NOT NULL REFERENCES products(id),
            location_id INTEGER NOT NULL REFERENCES locations(id),
            boxes_broken INTEGER NOT NULL,
            packs_created INTEGER NOT NULL,
            cost_basis_per_pack REAL,
            override_pack_count INTEGER NOT NULL DEFAULT 0,
            notes TEXT,
            created_by INTEGER,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS grading_submissions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            date_sent TEXT NOT NULL,
            grading_company TEXT NOT NULL,
            grading_location TEXT NOT NULL,
            product_id INTEGER NOT NULL REFERENCES products(id),
            from_location_id INTEGER NOT NULL REFERENCES locations(id),
            quantity_sent INTEGER NOT NULL,
            cost_basis REAL,
            status TEXT NOT NULL DEFAULT 'Sent',
            notes TEXT,
            created_by INTEGER,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS storefront_sales (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            date TEXT NOT NULL,
            sale_type TEXT NOT NULL,
            brand TEXT,
            product_type TEXT,
            product_id INTEGER REFERENCES products(id),
            location_id INTEGER REFERENCES locations(id),
            quantity INTEGER NOT NULL,
            sale_price REAL NOT NULL,
            cost_basis REAL,
            profit REAL,
            notes TEXT,
            created_by INTEGER,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS business_expenses (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            date TEXT NOT NULL,
            category TEXT NOT NULL,
            amount REAL NOT NULL,
            currency TEXT NOT NULL DEFAULT 'USD',
            amount_usd REAL NOT NULL,
            payment_method_id INTEGER REFERENCES payment_methods(id),
            description TEXT NOT NULL,
            notes TEXT,
            created_by INTEGER,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS high_value_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            card_name TEXT NOT NULL,
            brand TEXT,
            item_type TEXT NOT NULL,
            grading_company TEXT,
            grade TEXT,
            purchase_price REAL,
            currency TEXT NOT NULL DEFAULT 'USD',
            purchase_price_usd REAL,
            current_market_price REAL,
            sale_price REAL,
            location_id INTEGER NOT NULL REFERENCES locations(id),
            acquirer_id INTEGER REFERENCES users(id),
            vendor_id INTEGER REFERENCES vendors(id),
            date_added TEXT,
            date_sold TEXT,
            photo_filename TEXT,
            status TEXT NOT NULL DEFAULT 'In Inventory',
            deleted INTEGER NOT NULL DEFAULT 0,
            deleted_at TIMESTAMP,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS high_value_movements (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            item_id INTEGER NOT NULL REFERENCES high_value_items(id),
            from_location_id INTEGER REFERENCES locations(id),
            to_location_id INTEGER NOT NULL REFERENCES locations(id),
            moved_by INTEGER,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS stream_counts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            location_id INTEGER NOT NULL REFERENCES locations(id),
            streamer_id INTEGER NOT NULL REFERENCES users(id),
            counted_by_id INTEGER NOT NULL REFERENCES users(id),
            count_time TEXT NOT NULL,
            status TEXT NOT NULL,
            total_sold INTEGER NOT NULL DEFAULT 0,
            total_discrepancies INTEGER NOT NULL DEFAULT 0,
            resolved_by INTEGER REFERENCES users(id),
            resolved_at TIMESTAMP,
            resolution_notes TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS stream_count_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            stream_count_id INTEGER NOT NULL REFERENCES stream_counts(id) ON DELETE CASCADE,
            product_id INTEGER NOT NULL REFERENCES products(id),
            expected_qty INTEGER NOT NULL,
            actual_qty INTEGER NOT NULL,
            difference INTEGER NOT NULL
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS platform_sales (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            platform TEXT NOT NULL,
            channel TEXT NOT NULL,
            date TEXT NOT NULL,
            streamer_id INTEGER REFERENCES users(id),
            order_count INTEGER,
            gross_sales REAL,
            net_sales REAL,
            net_income REAL,
            cost REAL,
            profit REAL,
            margin_percent REAL,
            stream_hours REAL,
            hourly_net REAL,
            product_type TEXT,
            external_product_name TEXT,
            product_id INTEGER REFERENCES products(id),
            quantity INTEGER,
            shipping REAL,
            notes TEXT,
            deleted INTEGER NOT NULL DEFAULT 0,
            created_by INTEGER,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS product_aliases (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            external_name TEXT UNIQUE NOT NULL COLLATE NOCASE,
            product_id INTEGER NOT NULL REFERENCES products(id),
            platform TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    # Audit trail of every business write
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS activity_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL,
            action_type TEXT NOT NULL,
            target_type TEXT NOT NULL,
            target_id TEXT,
            details TEXT,
            before_data TEXT,
            after_data TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS system_settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_by TEXT
        )
    ''')

    default_settings = {
        'logging_enabled': '1',
        'rate_JPY': str(DEFAULT_EXCHANGE_RATES['JPY']),
        'rate_RMB': str(DEFAULT_EXCHANGE_RATES['RMB'])
    }
    for key, value in default_settings.items():
        cursor.execute("INSERT OR IGNORE INTO system_settings (key, value) VALUES (?, ?)", (key, value))

    for name in MOVABLE_LOCATIONS:
        cursor.execute("INSERT OR IGNORE INTO locations (name, type) VALUES (?, 'Physical')", (name,))

    for name in DEFAULT_PAYMENT_METHODS:
        cursor.execute("INSERT OR IGNORE INTO payment_methods (name) VALUES (?)", (name,))

    cursor.execute("SELECT COUNT(*) FROM users WHERE allowed_pages LIKE ?", (f'%"{ADMIN_PAGE}"%',))
    if cursor.fetchone()[0] == 0:
        cursor.execute(
            "INSERT OR IGNORE INTO users (name, role, pin_hash, active, can_login, allowed_pages) VALUES (?, ?, ?, 1, 1, ?)",
            ('Admin', 'Admin', generate_password_hash(admin_pin), json.dumps(PAGES))
        )
        print("Default admin user created successfully.")

    conn.commit()
    conn.close()
    print("Database initialized successfully.")


# =============================================================================
# USER AND ACCESS FUNCTIONS
# =============================================================================

def _user_dict(row):
    if row is None:
        return None
    user = dict(row)
    try:
        user['allowed_pages'] = json.loads(user.get('allowed_pages') or '[]')
    except ValueError:
        user['allowed_pages'] = []
    user['has_pin'] = bool(user.pop('pin_hash', None))
    user['active'] = bool(user['active'])
    user['can_login'] = bool(user['can_login'])
    return user


def is_valid_pin(pin):
    return bool(pin) and bool(re.fullmatch(r'\d{4}', str(pin)))


def get_user_by_id(user_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,))
    user = cursor.fetchone()
    conn.close()
    return _user_dict(user)


def get_user_by_name(name):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM users WHERE name = ?", (name.strip(),))
    user = cursor.fetchone()
    conn.close()
    return _user_dict(user)


def _find_user_id_by_pin(cursor, pin, exclude_user_id=None):
    cursor.execute("SELECT id, pin_hash FROM users WHERE pin_hash IS NOT NULL")
    for row in cursor.fetchall():
        if row['id'] == exclude_user_id:
            continue
        if check_password_hash(row['pin_hash'], str(pin)):
            return row['id']
    return None


def verify_pin(pin):
    """
    Log in with a 4-digit PIN.

    Returns:
        (True, user) or (False, error message)
    """
    if not is_valid_pin(pin):
        return False, "Please enter a 4-digit PIN"

    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM users WHERE active = 1 AND can_login = 1 AND pin_hash IS NOT NULL")
    users = cursor.fetchall()
    conn.close()

    for user in users:
        if check_password_hash(user['pin_hash'], str(pin)):
            return True, _user_dict(user)
    return False, "Invalid PIN"


def has_page_access(user, page):
    if not user:
        return False
    if page in ALWAYS_ALLOWED_PAGES:
        return True
    allowed = user.get('allowed_pages') or []
    if ADMIN_PAGE in allowed:
        return True
    return page in allowed


def is_admin(user):
    return bool(user) and ADMIN_PAGE in (user.get('allowed_pages') or [])


def verify_admin_pin(pin):
    """Check that a PIN belongs to an active admin, for confirming sensitive actions"""
    if not is_valid_pin(pin):
        return False
    conn = get_db_connection()
    cursor = conn.cursor()
    user_id = _find_user_id_by_pin(cursor, pin)
    user = None
    if user_id:
        cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        user = _user_dict(cursor.fetchone())
    conn.close()
    return bool(user) and user['active'] and is_admin(user)


def get_all_users(active=None, can_login=None):
    conn = get_db_connection()
    cursor = conn.cursor()
    query = "SELECT * FROM users WHERE 1=1"
    params = []
    if active is not None:
        query += " AND active = ?"
        params.append(1 if active else 0)
    if can_login is not None:
        query += " AND can_login = ?"
        params.append(1 if can_login else 0)
    query += " ORDER BY name"
    cursor.execute(query, params)
    users = [_user_dict(row) for row in cursor.fetchall()]
    conn.close()
    return users


def add_user(name, role='Streamer', room_ids=None):
    name = (name or '').strip()
    if not name:
        return False, "Please enter a name"
    if role not in USER_ROLES:
        role = 'Streamer'

    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute(
            "INSERT INTO users (name, role, active, can_login) VALUES (?, ?, 1, 0)",
            (name, role)
        )
        user_id = cursor.lastrowid
        for location_id in room_ids or []:
            cursor.execute(
                "INSERT OR IGNORE INTO user_rooms (user_id, location_id) VALUES (?, ?)",
                (user_id, location_id)
            )
        conn.commit()
        return True, user_id
    except sqlite3.IntegrityError:
        conn.rollback()
        return False, "A user with this name already exists"
    finally:
        conn.close()


def get_or_create_user(name):
    """Reuse an existing user with this name (case-insensitive) or create one."""
    name = (name or '').strip()
    if not name:
        return False, "Please enter a name"
    existing = get_user_by_name(name)
    if existing:
        return True, existing['id']
    return add_user(name)


def update_user(user_id, name, role):
    name = (name or '').strip()
    if not name:
        return False, "Name cannot be empty"
    if role not in USER_ROLES:
        role = 'Streamer'

    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute(
            "UPDATE users SET name = ?, role = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (name, role, user_id)
        )
        conn.commit()
        if cursor.rowcount == 0:
            return False, "User not found"
        return True, "User updated successfully"
    except sqlite3.IntegrityError:
        conn.rollback()
        return False, "A user with this name already exists"
    finally:
        conn.close()


def _count_other_admins(cursor, user_id):
    cursor.execute("SELECT id, allowed_pages FROM users WHERE active = 1 AND can_login = 1 AND id != ?", (user_id,))
    count = 0
    for row in cursor.fetchall():
        try:
            if ADMIN_PAGE in json.loads(row['allowed_pages'] or '[]'):
                count += 1
        except ValueError:
            continue
    return count


def set_user_active(user_id, active, current_user_id):
    if user_id == current_user_id and not active:
        return False, "Cannot deactivate your own account"

    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,))
    user = _user_dict(cursor.fetchone())
    if not user:
        conn.close()
        return False, "User not found"

    if not active and is_admin(user) and _count_other_admins(cursor, user_id) == 0:
        conn.close()
        return False, "Cannot deactivate the last admin"

    cursor.execute(
        "UPDATE users SET active = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
        (1 if active else 0, user_id)
    )
    conn.commit()
    conn.close()
    return True, "User activated" if active else "User deactivated"


def set_user_login(user_id, pin=None, allowed_pages=None, can_login=True):
    """
    Grant or revoke login access.

    Args:
        user_id: User to update
        pin: New 4-digit PIN (optional when the user already has one)
        allowed_pages: List of page keys the user may open
        can_login: False revokes login without clearing the PIN

    Returns:
        (success, message)
    """
    if pin and not is_valid_pin(pin):
        return False, "PIN must be exactly 4 digits"

    pages = [p for p in (allowed_pages or []) if p in PAGES]

    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = cursor.fetchone()
        if not row:
            return False, "User not found"

        user = _user_dict(row)
        if can_login and not pin and not user['has_pin']:
            return False, "A PIN is required to enable login"

        if pin and _find_user_id_by_pin(cursor, pin, exclude_user_id=user_id):
            return False, "PIN is already in use"

        removing_admin = is_admin(user) and (not can_login or ADMIN_PAGE not in pages)
        if removing_admin and _count_other_admins(cursor, user_id) == 0:
            return False, "Cannot remove access from the last admin"

        if pin:
            cursor.execute(
                "UPDATE users SET pin_hash = ?, can_login = ?, allowed_pages = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (generate_password_hash(pin), 1 if can_login else 0, json.dumps(pages), user_id)
            )
        else:
            cursor.execute(
                "UPDATE users SET can_login = ?, allowed_pages = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (1 if can_login else 0, json.dumps(pages), user_id)
            )
        conn.commit()
        return True, "Login access updated"
    finally:
        conn.close()


def change_own_pin(user_id, current_pin, new_pin):
    if not is_valid_pin(new_pin):
        return False, "PIN must be exactly 4 digits"

    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT pin_hash FROM users WHERE id = ?", (user_id,))
        row = cursor.fetchone()
        if not row or not row['pin_hash'] or not check_password_hash(row['pin_hash'], str(current_pin)):
            return False, "Current PIN is incorrect"
        if _find_user_id_by_pin(cursor, new_pin, exclude_user_id=user_id):
            return False, "PIN is already in use"
        cursor.execute(
            "UPDATE users SET pin_hash = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (generate_password_hash(new_pin), user_id)
        )
        conn.commit()
        return True, "PIN updated successfully"
    finally:
        conn.close()


def get_user_rooms(user_id=None):
    conn = get_db_connection()
    cursor = conn.cursor()
    query = """
        SELECT ur.id, ur.user_id, ur.location_id, l.name AS location_name
        FROM user_rooms ur JOIN locations l ON l.id = ur.location_id
    """
    params = []
    if user_id is not None:
        query += " WHERE ur.user_id = ?"
        params.append(user_id)
    query += " ORDER BY l.name"
    cursor.execute(query, params)
    rooms = _rows(cursor)
    conn.close()
    return rooms


def assign_room(user_id, location_id):
    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("INSERT INTO user_rooms (user_id, location_id) VALUES (?, ?)", (user_id, location_id))
        conn.commit()
        return True, cursor.lastrowid
    except sqlite3.IntegrityError:
        conn.rollback()
        return False, "User already assigned to this room"
    finally:
        conn.close()


def remove_room(user_room_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("DELETE FROM user_rooms WHERE id = ?", (user_room_id,))
    conn.commit()
    affected = cursor.rowcount
    conn.close()
    if affected == 0:
        return False, "Room assignment not found"
    return True, "Room removed"


# =============================================================================
# SYSTEM SETTINGS
# =============================================================================

def get_system_setting(key, default=None):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT value FROM system_settings WHERE key = ?", (key,))
    row = cursor.fetchone()
    conn.close()
    return row['value'] if row else default


def set_system_setting(key, value, username=None):
    """
    Set a system setting value.

    Args:
        key: The setting key
        value: The value to set
        username: User making the change (optional)

    Returns:
        (success, message)
    """
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("""
        INSERT INTO system_settings (key, value, updated_at, updated_by)
        VALUES (?, ?, CURRENT_TIMESTAMP, ?)
        ON CONFLICT(key) DO UPDATE SET
            value = excluded.value,
            updated_at = CURRENT_TIMESTAMP,
            updated_by = excluded.updated_by
    """, (key, str(value), username))
    conn.commit()
    conn.close()
    return True, "Setting updated"


def is_logging_enabled():
    return get_system_setting('logging_enabled', '1') == '1'


def set_logging_enabled(enabled, username=None):
    return set_system_setting('logging_enabled', '1' if enabled else '0', username)


def get_exchange_rates():
    """Current USD conversion rates, with admin overrides from system settings"""
    rates = dict(DEFAULT_EXCHANGE_RATES)
    for currency in CURRENCIES:
        if currency == 'USD':
            continue
        value = get_system_setting(f'rate_{currency}')
        if value is None:
            continue
        try:
            rates[currency] = float(value)
        except ValueError:
            logger.warning("Ignoring invalid exchange rate %r for %s", value, currency)
    return rates


def set_exchange_rate(currency, rate, username=None):
    if currency not in CURRENCIES or currency == 'USD':
        return False, "Unknown currency"
    try:
        rate = float(rate)
    except (TypeError, ValueError):
        return False, "Rate must be a number"
    if rate <= 0:
        return False, "Rate must be greater than 0"
    return set_system_setting(f'rate_{currency}', rate, username)


def to_usd(amount, currency):
    return convert_to_usd(amount, currency, get_exchange_rates())


# =============================================================================
# ACTIVITY LOGGING FUNCTIONS
# =============================================================================

def log_activity(username, action_type, target_type, target_id=None,
                 details=None, before_data=None, after_data=None):
    """
    Log an activity to the activity_logs table.

    Args:
        username: The user performing the action
        action_type: Type of action (add, update, delete, receive, move, login, etc.)
        target_type: Type of target (inventory, acquisition, sale, user, system, ...)
        target_id: ID of the target record (optional)
        details: Human-readable description of the action
        before_data: Data before the change (optional)
        after_data: Data after the change (optional)

    Returns:
        (success, log_id or error_message)
    """
    if not is_logging_enabled():
        return True, None

    try:
        conn = get_db_connection()
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO activity_logs
            (username, action_type, target_type, target_id, details, before_data, after_data)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            username,
            action_type,
            target_type,
            str(target_id) if target_id is not None else None,
            details,
            json.dumps(before_data) if before_data else None,
            json.dumps(after_data) if after_data else None
        ))
        conn.commit()
        log_id = cursor.lastrowid
        conn.close()
        return True, log_id
    except sqlite3.Error as e:
        logger.error("Failed to write activity log: %s", e)
        return False, str(e)


def get_activity_logs(filters=None, limit=500, offset=0):
    """
    Get activity logs with optional filtering.

    Args:
        filters: Dict with optional keys: username, action_type, target_type,
                 date_from, date_to
        limit: Maximum number of records to return
        offset: Number of records to skip

    Returns:
        List of activity log records
    """
    conn = get_db_connection()
    cursor = conn.cursor()

    query = "SELECT * FROM activity_logs WHERE 1=1"
    params = []

    if filters:
        if filters.get('username'):
            query += " AND username = ?"
            params.append(filters['username'])
        if filters.get('action_type'):
            query += " AND action_type = ?"
            params.append(filters['action_type'])
        if filters.get('target_type'):
            query += " AND target_type = ?"
            params.append(filters['target_type'])
        if filters.get('date_from'):
            query += " AND date(created_at) >= date(?)"
            params.append(filters['date_from'])
        if filters.get('date_to'):
            query += " AND date(created_at) <= date(?)"
            params.append(filters['date_to'])

    query += " ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?"
    params.extend([limit, offset])

    cursor.execute(query, params)
    logs = _rows(cursor)
    conn.close()

    for log in logs:
        for field in ('before_data', 'after_data'):
            if log.get(field):
                try:
                    log[field] = json.loads(log[field])
                except ValueError:
                    pass
    return logs


def get_activity_log_by_id(log_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM activity_logs WHERE id = ?", (log_id,))
    log = _one(cursor)
    conn.close()
    if log:
        for field in ('before_data', 'after_data'):
            if log.get(field):
                try:
                    log[field] = json.loads(log[field])
                except ValueError:
                    pass
    return log


def get_activity_log_stats():
    conn = get_db_connection()
    cursor = conn.cursor()

    cursor.execute("SELECT action_type, COUNT(*) AS count FROM activity_logs GROUP BY action_type")
    action_counts = {row['action_type']: row['count'] for row in cursor.fetchall()}

    cursor.execute("SELECT target_type, COUNT(*) AS count FROM activity_logs GROUP BY target_type")
    target_counts = {row['target_type']: row['count'] for row in cursor.fetchall()}

    cursor.execute("""
        SELECT username, COUNT(*) AS count
        FROM activity_logs
        GROUP BY username
        ORDER BY count DESC
        LIMIT 10
    """)
    user_counts = {row['username']: row['count'] for row in cursor.fetchall()}

    cursor.execute("SELECT COUNT(*) AS total FROM activity_logs")
    total = cursor.fetchone()['total']
    conn.close()

    return {
        'total': total,
        'by_action': action_counts,
        'by_target': target_counts,
        'by_user': user_counts
    }


def get_distinct_log_values():
    """Get distinct values for filter dropdowns"""
    conn = get_db_connection()
    cursor = conn.cursor()

    cursor.execute("SELECT DISTINCT username FROM activity_logs ORDER BY username")
    usernames = [row['username'] for row in cursor.fetchall()]

    cursor.execute("SELECT DISTINCT action_type FROM activity_logs ORDER BY action_type")
    action_types = [row['action_type'] for row in cursor.fetchall()]

    cursor.execute("SELECT DISTINCT target_type FROM activity_logs ORDER BY target_type")
    target_types = [row['target_type'] for row in cursor.fetchall()]

    conn.close()

    return {
        'usernames': usernames,
        'action_types': action_types,
        'target_types': target_types
    }


# =============================================================================
# CATALOG: PRODUCTS, LOCATIONS, VENDORS, PAYMENT METHODS
# =============================================================================

def get_products(filters=None):
    """Active products, optionally filtered by brand, type, language or breakable"""
    conn = get_db_connection()
    cursor = conn.cursor()
    query = "SELECT * FROM products WHERE active = 1"
    params = []
    if filters:
        for field in ('brand', 'type', 'language'):
            if filters.get(field):
                query += f" AND {field} = ?"
                params.append(filters[field])
        if filters.get('breakable') is not None:
            query += " AND breakable = ?"
            params.append(1 if filters['breakable'] else 0)
    query += " ORDER BY brand, type, name"
    cursor.execute(query, params)
    products = _rows(cursor)
    conn.close()
    return products


def get_product(product_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM products WHERE id = ?", (product_id,))
    product = _one(cursor)
    conn.close()
    return product


def add_product(brand, product_type, category, name, language='EN', breakable=False,
                packs_per_box=None, append_category=True):
    """
    Add a product to the catalog.

    Returns:
        (success, product_id or error message)
    """
    if not (name or '').strip():
        return False, "Please enter a product name"
    if product_type not in PRODUCT_TYPES:
        return False, "Invalid product type"

    final_name = sealed_product_name(name, product_type, category, append_category)

    packs = None
    if breakable and packs_per_box not in (None, ''):
        try:
            packs = int(packs_per_box)
        except (TypeError, ValueError):
            return False, "Packs per box must be a whole number"
        if packs <= 0:
            return False, "Packs per box must be greater than 0"

    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO products (brand, type, category, name, language, breakable, packs_per_box)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (brand, product_type, category, final_name, language, 1 if breakable else 0, packs))
        conn.commit()
        return True, cursor.lastrowid
    except sqlite3.IntegrityError:
        conn.rollback()
        return False, "This product already exists"
    finally:
        conn.close()


def get_locations(location_type=None, names=None):
    conn = get_db_connection()
    cursor = conn.cursor()
    query = "SELECT * FROM locations WHERE active = 1"
    params = []
    if location_type:
        query += " AND type = ?"
        params.append(location_type)
    query += " ORDER BY name"
    cursor.execute(query, params)
    locations = _rows(cursor)
    conn.close()
    if names is not None:
        wanted = {n.lower() for n in names}
        locations = [l for l in locations if l['name'].lower() in wanted]
    return locations


def get_location(location_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM locations WHERE id = ?", (location_id,))
    location = _one(cursor)
    conn.close()
    return location


def _get_location_by_name(cursor, name):
    cursor.execute("SELECT * FROM locations WHERE name = ? AND active = 1", (name,))
    return _one(cursor)


def get_master_location():
    conn = get_db_connection()
    location = _get_location_by_name(conn.cursor(), MASTER_LOCATION)
    conn.close()
    return location


def get_stream_rooms():
    return get_locations('Physical', STREAM_ROOMS)


def get_vendors():
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM vendors WHERE active = 1 ORDER BY name")
    vendors = _rows(cursor)
    conn.close()
    return vendors


def add_vendor(name, country=None):
    name = (name or '').strip()
    if not name:
        return False, "Please enter a vendor name"
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("INSERT INTO vendors (name, country) VALUES (?, ?)", (name, country or None))
    conn.commit()
    vendor_id = cursor.lastrowid
    conn.close()
    return True, vendor_id


def get_payment_methods():
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM payment_methods WHERE active = 1 ORDER BY name")
    methods = _rows(cursor)
    conn.close()
    return methods


# =============================================================================
# INVENTORY FUNCTIONS
# =============================================================================

def _apply_inventory_change(cursor, product_id, location_id, delta, unit_cost=None):
    """
    Add delta units of a product at a location inside an open transaction.

    Additions with a unit cost are blended into the weighted average cost;
    removals leave the average untouched. Raises InventoryError when the
    result would be negative.
    """
    cursor.execute(
        "SELECT id, quantity, avg_cost_basis FROM inventory WHERE product_id = ? AND location_id = ?",
        (product_id, location_id)
    )
    row = cursor.fetchone()

    if row is None:
        if delta < 0:
            raise InventoryError("Only 0 available")
        cursor.execute(
            "INSERT INTO inventory (product_id, location_id, quantity, avg_cost_basis) VALUES (?, ?, ?, ?)",
            (product_id, location_id, delta, unit_cost or 0)
        )
        return cursor.lastrowid

    new_quantity = row['quantity'] + delta
    if new_quantity < 0:
        raise InventoryError(f"Only {row['quantity']} available")

    avg_cost = row['avg_cost_basis']
    if delta > 0 and unit_cost is not None:
        avg_cost = weighted_average_cost(row['quantity'], avg_cost or 0, delta, unit_cost)

    cursor.execute(
        "UPDATE inventory SET quantity = ?, avg_cost_basis = ?, last_updated = CURRENT_TIMESTAMP WHERE id = ?",
        (new_quantity, avg_cost, row['id'])
    )
    return row['id']


def _get_inventory_row(cursor, product_id, location_id):
    cursor.execute(
        "SELECT * FROM inventory WHERE product_id = ? AND location_id = ?",
        (product_id, location_id)
    )
    return _one(cursor)


def get_inventory(location_id=None, filters=None, include_empty=False):
    """
    Inventory rows joined with product and location details.

    Args:
        location_id: Restrict to one location (optional)
        filters: Dict with optional brand, type, language, search
        include_empty: Include rows with zero quantity

    Returns:
        List of inventory dicts
    """
    conn = get_db_connection()
    cursor = conn.cursor()
    query = """
        SELECT i.*, p.brand, p.type, p.category, p.name AS product_name, p.language,
               p.breakable, p.packs_per_box, l.name AS location_name
        FROM inventory i
        JOIN products p ON p.id = i.product_id
        JOIN locations l ON l.id = i.location_id
        WHERE 1=1
    """
    params = []
    if not include_empty:
        query += " AND i.quantity > 0"
    if location_id:
        query += " AND i.location_id = ?"
        params.append(location_id)
    if filters:
        for field in ('brand', 'type', 'language'):
            if filters.get(field):
                query += f" AND p.{field} = ?"
                params.append(filters[field])
        if filters.get('search'):
            query += " AND (p.name LIKE ? OR p.brand LIKE ? OR p.type LIKE ? OR p.category LIKE ? OR l.name LIKE ?)"
            params.extend([f"%{filters['search']}%"] * 5)
    query += " ORDER BY l.name, p.brand, p.type, p.name"
    cursor.execute(query, params)
    rows = _rows(cursor)
    conn.close()
    return rows


def get_inventory_item(inventory_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM inventory WHERE id = ?", (inventory_id,))
    row = _one(cursor)
    conn.close()
    return row


def summarize_inventory(rows):
    """Group inventory rows by location and total units and value"""
    grouped = {}
    for row in rows:
        grouped.setdefault(row['location_name'] or 'Unknown', []).append(row)
    total_value = sum(r['quantity'] * (r['avg_cost_basis'] or 0) for r in rows)
    total_items = sum(r['quantity'] for r in rows)
    return {
        'by_location': grouped,
        'total_value': round(total_value, 2),
        'total_items': total_items
    }


def add_manual_inventory(product_id, location_id, quantity, avg_cost_basis=None):
    """Add stock directly (opening balances, found items)"""
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        return False, "Please enter a valid quantity"
    if quantity <= 0:
        return False, "Please enter a valid quantity"
    if not product_id:
        return False, "Please select a product"
    if not location_id:
        return False, "Please select a location"

    unit_cost = float(avg_cost_basis) if avg_cost_basis not in (None, '') else 0

    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        inventory_id = _apply_inventory_change(cursor, product_id, location_id, quantity, unit_cost)
        conn.commit()
        return True, inventory_id
    except InventoryError as e:
        conn.rollback()
        return False, str(e)
    finally:
        conn.close()


def move_inventory(date, product_id, from_location_id, to_location_id, quantity, notes=None, user_id=None):
    """
    Move stock between locations, or out of the business.

    A destination named Other/Out records an 'Out' movement and adds nothing
    anywhere; any other destination is a 'Transfer' that carries the source's
    average cost into the destination.

    Returns:
        (success, movement dict or error message)
    """
    if not from_location_id or not to_location_id or not product_id:
        return False, "Please fill all required fields"
    try:
        from_location_id, to_location_id = int(from_location_id), int(to_location_id)
    except (TypeError, ValueError):
        return False, "Please select a location"
    if from_location_id == to_location_id:
        return False, "Source and destination must be different"
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        return False, "Please enter a valid quantity"
    if quantity <= 0:
        return False, "Please enter a valid quantity"

    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM locations WHERE id IN (?, ?)", (from_location_id, to_location_id))
        locations = {row['id']: dict(row) for row in cursor.fetchall()}
        source = locations.get(from_location_id)
        destination = locations.get(to_location_id)
        if not source or not destination:
            raise InventoryError("Location not found")

        movable = {n.lower() for n in MOVABLE_LOCATIONS}
        if source['name'].lower() not in movable or destination['name'].lower() not in movable:
            raise InventoryError("Inventory cannot be moved to or from this location")

        stock = _get_inventory_row(cursor, product_id, from_location_id)
        available = stock['quantity'] if stock else 0
        if quantity > available:
            raise InventoryError(f"Only {available} available")

        avg_cost = (stock['avg_cost_basis'] or 0) if stock else 0
        outgoing = 'other/out' in destination['name'].lower()
        movement_type = 'Out' if outgoing else 'Transfer'

        cursor.execute("""
            INSERT INTO movements (date, product_id, from_location_id, to_location_id, quantity,
                                   cost_basis, movement_type, notes, created_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (date, product_id, from_location_id, None if outgoing else to_location_id, quantity,
              avg_cost * quantity, movement_type, notes or None, user_id))
        movement_id = cursor.lastrowid

        _apply_inventory_change(cursor, product_id, from_location_id, -quantity)
        if not outgoing:
            _apply_inventory_change(cursor, product_id, to_location_id, quantity, avg_cost)

        conn.commit()
        return True, {
            'id': movement_id,
            'movement_type': movement_type,
            'quantity': quantity,
            'cost_basis': avg_cost * quantity,
            'from_name': source['name'],
            'to_name': destination['name']
        }
    except InventoryError as e:
        conn.rollback()
        return False, str(e)
    finally:
        conn.close()


def get_movements(date_from=None, date_to=None, limit=200):
    conn = get_db_connection()
    cursor = conn.cursor()
    query = """
        SELECT m.*, p.name AS product_name, p.brand, fl.name AS from_name, tl.name AS to_name
        FROM movements m
        JOIN products p ON p.id = m.product_id
        JOIN locations fl ON fl.id = m.from_location_id
        LEFT JOIN locations tl ON tl.id = m.to_location_id
        WHERE 1=1
    """
    params = []
    if date_from:
        query += " AND m.date >= ?"
        params.append(date_from)
    if date_to:
        query += " AND m.date <= ?"
        params.append(date_to)
    query += " ORDER BY m.date DESC, m.id DESC LIMIT ?"
    params.append(limit)
    cursor.execute(query, params)
    movements = _rows(cursor)
    conn.close()
    return movements


# =============================================================================
# PURCHASING AND INTAKE
# =============================================================================

def log_purchase(data, user_id=None):
    """
    Record a purchase awaiting intake.

    Args:
        data: Dict with date_purchased, acquirer_id, source_country, vendor_id,
              payment_method_id, product_id, quantity_purchased, cost,
              currency, notes

    Returns:
        (success, acquisition_id or error message)
    """
    if not data.get('product_id'):
        return False, "Please select a product"
    if not data.get('acquirer_id'):
        return False, "Please select an acquirer"
    try:
        cost = float(data.get('cost') or 0)
    except (TypeError, ValueError):
        cost = 0
    if cost <= 0:
        return False, "Please enter a valid cost"
    quantity = _parse_quantity(data.get('quantity_purchased'))
    if quantity is None:
        return False, "Please enter a valid quantity"

    currency = data.get('currency') or 'USD'
    cost_usd = to_usd(cost, currency)

    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("""
        INSERT INTO acquisitions (date_purchased, acquirer_id, source_country, vendor_id, payment_method_id,
                                  product_id, quantity_purchased, cost, currency, cost_usd, status, notes,
                                  created_by)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, (
        data.get('date_purchased') or datetime.now().strftime('%Y-%m-%d'),
        data['acquirer_id'],
        data.get('source_country') or 'USA',
        data.get('vendor_id') or None,
        data.get('payment_method_id') or None,
        data['product_id'],
        quantity,
        cost,
        currency,
        cost_usd,
        STATUS_PURCHASED,
        data.get('notes') or None,
        user_id
    ))
    conn.commit()
    acquisition_id = cursor.lastrowid
    conn.close()
    return True, acquisition_id


_ACQUISITION_SELECT = """
    SELECT a.*, u.name AS acquirer_name, v.name AS vendor_name, pm.name AS payment_method_name,
           p.brand, p.type, p.name AS product_name, p.language, p.category
    FROM acquisitions a
    JOIN users u ON u.id = a.acquirer_id
    LEFT JOIN vendors v ON v.id = a.vendor_id
    LEFT JOIN payment_methods pm ON pm.id = a.payment_method_id
    JOIN products p ON p.id = a.product_id
"""


def get_acquisitions(statuses=None, date_from=None, date_to=None, source_country=None):
    conn = get_db_connection()
    cursor = conn.cursor()
    query = _ACQUISITION_SELECT + " WHERE 1=1"
    params = []
    if statuses:
        query += f" AND a.status IN ({','.join('?' * len(statuses))})"
        params.extend(statuses)
    if date_from:
        query += " AND a.date_purchased >= ?"
        params.append(date_from)
    if date_to:
        query += " AND a.date_purchased <= ?"
        params.append(date_to)
    if source_country:
        query += " AND a.source_country = ?"
        params.append(source_country)
    query += " ORDER BY a.date_purchased DESC, a.id DESC"
    cursor.execute(query, params)
    acquisitions = _rows(cursor)
    conn.close()
    return acquisitions


def get_pending_intake():
    return get_acquisitions(statuses=PENDING_STATUSES)


def get_acquisition(acquisition_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute(_ACQUISITION_SELECT + " WHERE a.id = ?", (acquisition_id,))
    acquisition = _one(cursor)
    conn.close()
    return acquisition


def receive_acquisition(acquisition_id, quantity, user_id=None, date_received=None):
    """
    Receive units of a purchase into Master Inventory.

    Creates a receipt, advances the acquisition status and blends the
    per-unit USD cost into Master Inventory's average cost.

    Returns:
        (success, dict with status/total_received or error message)
    """
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        return False, "Please enter a valid quantity"
    if quantity <= 0:
        return False, "Please enter a valid quantity"

    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        master = _get_location_by_name(cursor, MASTER_LOCATION)
        if not master:
            raise InventoryError("Master Inventory location not found")

        cursor.execute("SELECT * FROM acquisitions WHERE id = ?", (acquisition_id,))
        acquisition = _one(cursor)
        if not acquisition:
            raise InventoryError("Acquisition not found")
        if acquisition['status'] not in PENDING_STATUSES:
            raise InventoryError("This purchase has already been received")

        total_received = (acquisition['quantity_received'] or 0) + quantity
        new_status = receipt_status(acquisition['quantity_purchased'], total_received)

        cursor.execute("""
            INSERT INTO receipts (acquisition_id, date_received, quantity_received, received_by)
            VALUES (?, ?, ?, ?)
        """, (acquisition_id, date_received or datetime.now().strftime('%Y-%m-%d'), quantity, user_id))

        cursor.execute("""
            UPDATE acquisitions SET status = ?, quantity_received = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        """, (new_status, total_received, acquisition_id))

        cost_per_unit = unit_cost_usd(acquisition['cost_usd'], acquisition['quantity_purchased'])
        _apply_inventory_change(cursor, acquisition['product_id'], master['id'], quantity, cost_per_unit)

        conn.commit()
        return True, {
            'status': new_status,
            'total_received': total_received,
            'unit_cost': cost_per_unit
        }
    except InventoryError as e:
        conn.rollback()
        return False, str(e)
    finally:
        conn.close()


def get_receipts(acquisition_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("""
        SELECT r.*, u.name AS received_by_name
        FROM receipts r LEFT JOIN users u ON u.id = r.received_by
        WHERE r.acquisition_id = ?
        ORDER BY r.id
    """, (acquisition_id,))
    receipts = _rows(cursor)
    conn.close()
    return receipts


# =============================================================================
# BOX BREAKS
# =============================================================================

def get_breakable_inventory():
    master = get_master_location()
    if not master:
        return []
    return [row for row in get_inventory(master['id']) if row['breakable']]


def break_box(date, sealed_product_id, boxes_broken, override_pack_count=False,
              manual_pack_count=None, notes=None, user_id=None):
    """
    Break sealed boxes at Master Inventory into their pack product.

    Returns:
        (success, dict with packs_created/cost_basis_per_pack/pack_product or error message)
    """
    if not sealed_product_id:
        return False, "Please select a product"
    try:
        sealed_product_id = int(sealed_product_id)
    except (TypeError, ValueError):
        return False, "Please select a product"
    try:
        boxes_broken = int(boxes_broken)
    except (TypeError, ValueError):
        return False, "Please enter a valid number of boxes"
    if boxes_broken <= 0:
        return False, "Please enter a valid number of boxes"

    products = get_products()
    sealed = next((p for p in products if p['id'] == sealed_product_id), None)
    if not sealed:
        return False, "Product not found"
    if not sealed['breakable']:
        return False, "This product cannot be broken into packs"

    if override_pack_count:
        try:
            pack_count = int(manual_pack_count or 0)
        except (TypeError, ValueError):
            pack_count = 0
    else:
        pack_count = sealed['packs_per_box'] or 0
    if pack_count <= 0:
        return False, "Pack count must be greater than 0"

    pack_product = find_pack_product(sealed, products)
    if not pack_product:
        return False, "No matching pack product found. Please add the pack product first."

    total_packs = pack_count * boxes_broken

    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        master = _get_location_by_name(cursor, MASTER_LOCATION)
        if not master:
            raise InventoryError("Master Inventory location not found")

        stock = _get_inventory_row(cursor, sealed['id'], master['id'])
        available = stock['quantity'] if stock else 0
        if boxes_broken > available:
            raise InventoryError(f"Only {available} boxes available")

        cost_per_pack = pack_cost_basis(stock['avg_cost_basis'], boxes_broken, total_packs)

        cursor.execute("""
            INSERT INTO box_breaks (date, sealed_product_id, pack_product_id, location_id, boxes_broken,
                                    packs_created, cost_basis_per_pack, override_pack_count, notes, created_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (date, sealed['id'], pack_product['id'], master['id'], boxes_broken, total_packs,
              cost_per_pack, 1 if override_pack_count else 0, notes or None, user_id))
        break_id = cursor.lastrowid

        _apply_inventory_change(cursor, sealed['id'], master['id'], -boxes_broken)
        _apply_inventory_change(cursor, pack_product['id'], master['id'], total_packs, cost_per_pack)

        conn.commit()
        return True, {
            'id': break_id,
            'boxes_broken': boxes_broken,
            'packs_created': total_packs,
            'cost_basis_per_pack': cost_per_pack,
            'pack_product': pack_product
        }
    except InventoryError as e:
        conn.rollback()
        return False, str(e)
    finally:
        conn.close()


def get_box_breaks(limit=50):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("""
        SELECT b.*, sp.name AS sealed_name, pp.name AS pack_name
        FROM box_breaks b
        JOIN products sp ON sp.id = b.sealed_product_id
        JOIN products pp ON pp.id = b.pack_product_id
        ORDER BY b.date DESC, b.id DESC LIMIT ?
    """, (limit,))
    breaks = _rows(cursor)
    conn.close()
    return breaks


# =============================================================================
# GRADING
# =============================================================================

def send_to_grading(data, user_id=None):
    """
    Send singles from a location to a grading company.

    Returns:
        (success, submission_id or error message)
    """
    product_id = data.get('product_id')
    location_id = data.get('from_location_id')
    if not product_id or not location_id:
        return False, "Please fill all required fields"
    try:
        quantity = int(data.get('quantity_sent') or 0)
    except (TypeError, ValueError):
        quantity = 0
    if quantity <= 0:
        return False, "Please enter a valid quantity"

    company = data.get('grading_company') or 'PSA'
    if company not in GRADING_COMPANIES:
        return False, "Unknown grading company"
    grading_location = data.get('grading_location') or 'USA'

    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT type FROM products WHERE id = ?", (product_id,))
        product = cursor.fetchone()
        if not product:
            raise InventoryError("Product not found")
        if product['type'] != 'Single':
            raise InventoryError("Only singles can be sent to grading")

        stock = _get_inventory_row(cursor, product_id, location_id)
        available = stock['quantity'] if stock else 0
        if quantity > available:
            raise InventoryError(f"Only {available} available")

        cost_basis = (stock['avg_cost_basis'] or 0) * quantity

        cursor.execute("""
            INSERT INTO grading_submissions (date_sent, grading_company, grading_location, product_id,
                                             from_location_id, quantity_sent, cost_basis, status, notes,
                                             created_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, 'Sent', ?, ?)
        """, (data.get('date_sent') or datetime.now().strftime('%Y-%m-%d'), company, grading_location,
              product_id, location_id, quantity, cost_basis, data.get('notes') or None, user_id))
        submission_id = cursor.lastrowid

        _apply_inventory_change(cursor, product_id, location_id, -quantity)

        conn.commit()
        return True, submission_id
    except InventoryError as e:
        conn.rollback()
        return False, str(e)
    finally:
        conn.close()


def get_grading_submissions(status=None):
    conn = get_db_connection()
    cursor = conn.cursor()
    query = """
        SELECT g.*, p.name AS product_name, p.brand, l.name AS from_name
        FROM grading_submissions g
        JOIN products p ON p.id = g.product_id
        JOIN locations l ON l.id = g.from_location_id
    """
    params = []
    if status:
        query += " WHERE g.status = ?"
        params.append(status)
    query += " ORDER BY g.date_sent DESC, g.id DESC"
    cursor.execute(query, params)
    submissions = _rows(cursor)
    conn.close()
    return submissions


def update_grading_status(submission_id, status):
    if status not in GRADING_STATUSES:
        return False, "Invalid status"
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute(
        "UPDATE grading_submissions SET status = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
        (status, submission_id)
    )
    conn.commit()
    affected = cursor.rowcount
    conn.close()
    if affected == 0:
        return False, "Submission not found"
    return True, "Status updated"


# =============================================================================
# STOREFRONT SALES
# =============================================================================

def _parse_price(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def log_bulk_sale(data, user_id=None):
    """Log a bulk storefront sale; bulk sales are not tied to tracked inventory"""
    sale_price = _parse_price(data.get('sale_price'))
    if sale_price <= 0:
        return False, "Please enter a valid sale price"
    quantity = _parse_quantity(data.get('quantity'))
    if quantity is None:
        return False, "Please enter a valid quantity"

    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("""
        INSERT INTO storefront_sales (date, sale_type, brand, product_type, quantity, sale_price, notes, created_by)
        VALUES (?, 'Bulk', ?, ?, ?, ?, ?, ?)
    """, (data.get('date') or datetime.now().strftime('%Y-%m-%d'), data.get('brand') or 'Pokemon',
          data.get('product_type') or 'Single', quantity, sale_price, data.get('notes') or None, user_id))
    conn.commit()
    sale_id = cursor.lastrowid
    conn.close()
    return True, sale_id


def log_product_sale(data, user_id=None):
    """
    Sell tracked inventory from a specific inventory row.

    Returns:
        (success, dict with id/cost_basis/profit or error message)
    """
    if not data.get('inventory_id'):
        return False, "Please select a product"
    sale_price = _parse_price(data.get('sale_price'))
    if sale_price <= 0:
        return False, "Please enter a valid sale price"
    quantity = _parse_quantity(data.get('quantity'))
    if quantity is None:
        return False, "Please enter a valid quantity"

    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM inventory WHERE id = ?", (data['inventory_id'],))
        stock = _one(cursor)
        if not stock or stock['quantity'] < quantity:
            raise InventoryError("Not enough inventory")

        cost_basis = (stock['avg_cost_basis'] or 0) * quantity
        profit = sale_price - cost_basis

        cursor.execute("""
            INSERT INTO storefront_sales (date, sale_type, product_id, location_id, quantity, sale_price,
                                          cost_basis, profit, notes, created_by)
            VALUES (?, 'Product', ?, ?, ?, ?, ?, ?, ?, ?)
        """, (data.get('date') or datetime.now().strftime('%Y-%m-%d'), stock['product_id'],
              stock['location_id'], quantity, sale_price, cost_basis, profit, data.get('notes') or None,
              user_id))
        sale_id = cursor.lastrowid

        remaining = stock['quantity'] - quantity
        if remaining <= 0:
            cursor.execute("DELETE FROM inventory WHERE id = ?", (stock['id'],))
        else:
            cursor.execute(
                "UPDATE inventory SET quantity = ?, last_updated = CURRENT_TIMESTAMP WHERE id = ?",
                (remaining, stock['id'])
            )

        conn.commit()
        return True, {'id': sale_id, 'cost_basis': cost_basis, 'profit': profit}
    except InventoryError as e:
        conn.rollback()
        return False, str(e)
    finally:
        conn.close()


def get_storefront_sales(date_from=None, date_to=None, limit=200):
    conn = get_db_connection()
    cursor = conn.cursor()
    query = """
        SELECT s.*, p.name AS product_name, l.name AS location_name
        FROM storefront_sales s
        LEFT JOIN products p ON p.id = s.product_id
        LEFT JOIN locations l ON l.id = s.location_id
        WHERE 1=1
    """
    params = []
    if date_from:
        query += " AND s.date >= ?"
        params.append(date_from)
    if date_to:
        query += " AND s.date <= ?"
        params.append(date_to)
    query += " ORDER BY s.date DESC, s.id DESC LIMIT ?"
    params.append(limit)
    cursor.execute(query, params)
    sales = _rows(cursor)
    conn.close()
    return sales


# =============================================================================
# PRODUCT ALIASES
# =============================================================================

def get_aliases(search=None):
    conn = get_db_connection()
    cursor = conn.cursor()
    query = """
        SELECT a.*, p.name AS product_name, p.brand, p.type, p.language
        FROM product_aliases a JOIN products p ON p.id = a.product_id
    """
    params = []
    if search:
        query += " WHERE a.external_name LIKE ? OR p.name LIKE ?"
        params.extend([f'%{search}%', f'%{search}%'])
    query += " ORDER BY a.external_name"
    cursor.execute(query, params)
    aliases = _rows(cursor)
    conn.close()
    return aliases


def add_alias(external_name, product_id, platform=None):
    external_name = (external_name or '').strip()
    if not external_name:
        return False, "Please enter an external name"
    if not product_id:
        return False, "Please select a product"
    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT id FROM products WHERE id = ?", (product_id,))
        if cursor.fetchone() is None:
            return False, "Product not found"
        cursor.execute(
            "INSERT INTO product_aliases (external_name, product_id, platform) VALUES (?, ?, ?)",
            (external_name, product_id, platform or None)
        )
        conn.commit()
        return True, cursor.lastrowid
    except sqlite3.IntegrityError:
        conn.rollback()
        return False, "This mapping already exists"
    finally:
        conn.close()


def delete_alias(alias_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("DELETE FROM product_aliases WHERE id = ?", (alias_id,))
    conn.commit()
    affected = cursor.rowcount
    conn.close()
    if affected == 0:
        return False, "Mapping not found"
    return True, "Mapping deleted"


def resolve_alias(external_name):
    """Product id mapped to an external product name, matched case-insensitively"""
    if not external_name:
        return None
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT product_id FROM product_aliases WHERE external_name = ?", (external_name.strip(),))
    row = cursor.fetchone()
    conn.close()
    return row['product_id'] if row else None


# =============================================================================
# PLATFORM SALES
# =============================================================================

SESSION_FIELDS = ['order_count', 'gross_sales', 'net_sales', 'profit', 'margin_percent',
                  'stream_hours', 'hourly_net', 'product_type', 'notes']
ITEM_FIELDS = ['external_product_name', 'product_id', 'quantity', 'net_sales', 'net_income', 'cost',
               'profit', 'margin_percent', 'shipping', 'notes']
INT_FIELDS = {'order_count', 'quantity', 'product_id', 'streamer_id'}
TEXT_FIELDS = {'product_type', 'notes', 'external_product_name', 'channel', 'platform', 'date'}


def _clean_number(field, value):
    """Blank or zero numbers are stored as NULL, matching how the entry forms treat them"""
    if value in (None, ''):
        return None
    try:
        number = int(value) if field in INT_FIELDS else float(value)
    except (TypeError, ValueError):
        return None
    return number or None


def _clean_sale_fields(data, fields):
    cleaned = {}
    for field in fields:
        value = data.get(field)
        if field in TEXT_FIELDS:
            cleaned[field] = value.strip() if isinstance(value, str) and value.strip() else None
        else:
            cleaned[field] = _clean_number(field, value)
    return cleaned


def find_duplicate_platform_sale(platform, data):
    """
    Existing non-deleted entry for the same sale.

    TikTok entries match on date + external product name + streamer; session
    platforms on date + channel + streamer.
    """
    conn = get_db_connection()
    cursor = conn.cursor()
    if platform == 'TikTok':
        cursor.execute("""
            SELECT id FROM platform_sales
            WHERE platform = 'TikTok' AND date = ? AND external_product_name = ? AND streamer_id = ?
              AND deleted = 0
        """, (data.get('date'), data.get('external_product_name'), data.get('streamer_id')))
    else:
        cursor.execute("""
            SELECT id FROM platform_sales
            WHERE platform = ? AND date = ? AND channel = ? AND streamer_id = ? AND deleted = 0
        """, (platform, data.get('date'), data.get('channel'), data.get('streamer_id')))
    row = cursor.fetchone()
    conn.close()
    return row['id'] if row else None


def _insert_platform_sale(cursor, entry, user_id=None):
    columns = [k for k in entry.keys()]
    if user_id is not None:
        columns.append('created_by')
    values = [entry[k] for k in entry.keys()]
    if user_id is not None:
        values.append(user_id)
    cursor.execute(
        f"INSERT INTO platform_sales ({', '.join(columns)}) VALUES ({', '.join('?' * len(columns))})",
        values
    )
    return cursor.lastrowid


def _duplicate_message(date, label, streamer_id):
    streamer = get_user_by_id(streamer_id) if streamer_id else None
    name = streamer['name'] if streamer else 'Unknown'
    return f"Entry already exists for {date} - {label} - {name}"


def log_session_sale(platform, data, user_id=None):
    """
    Log an eBay or Whatnot stream session.

    Returns:
        (success, sale_id or error message, duplicate_id)
    """
    if platform not in PLATFORMS or PLATFORMS[platform]['level'] != 'session':
        return False, "Unknown session platform", None
    if not data.get('streamer_id'):
        return False, "Please select a streamer", None
    try:
        streamer_id = int(data['streamer_id'])
    except (TypeError, ValueError):
        return False, "Please select a streamer", None

    channel = data.get('channel') or PLATFORMS[platform]['channels'][0]
    if channel not in PLATFORMS[platform]['channels']:
        return False, "Unknown channel", None

    entry_date = data.get('date') or datetime.now().strftime('%Y-%m-%d')
    lookup = {'date': entry_date, 'channel': channel, 'streamer_id': streamer_id}
    duplicate_id = find_duplicate_platform_sale(platform, lookup)
    if duplicate_id:
        return False, _duplicate_message(entry_date, channel, streamer_id), duplicate_id

    entry = {
        'platform': platform,
        'channel': channel,
        'date': entry_date,
        'streamer_id': streamer_id
    }
    entry.update(_clean_sale_fields(data, SESSION_FIELDS))
    entry['hourly_net'] = hourly_net(data.get('net_sales'), data.get('stream_hours'))

    conn = get_db_connection()
    cursor = conn.cursor()
    sale_id = _insert_platform_sale(cursor, entry, user_id)
    conn.commit()
    conn.close()
    return True, sale_id, None


def _ensure_inventory_history(cursor, product_id):
    """Mapped products with no inventory row get a zero-quantity Master Inventory row"""
    cursor.execute("SELECT id FROM inventory WHERE product_id = ? LIMIT 1", (product_id,))
    if cursor.fetchone():
        return
    master = _get_location_by_name(cursor, MASTER_LOCATION)
    if master:
        cursor.execute(
            "INSERT INTO inventory (product_id, location_id, quantity, avg_cost_basis) VALUES (?, ?, 0, NULL)",
            (product_id, master['id'])
        )


def log_item_sale(data, user_id=None):
    """
    Log a TikTok item-level sale.

    Returns:
        (success, sale_id or error message, duplicate_id)
    """
    external_name = (data.get('external_product_name') or '').strip()
    if not external_name:
        return False, "Please enter a product name", None
    if not data.get('streamer_id'):
        return False, "Please select a seller", None
    try:
        streamer_id = int(data['streamer_id'])
    except (TypeError, ValueError):
        return False, "Please select a seller", None

    entry_date = data.get('date') or datetime.now().strftime('%Y-%m-%d')
    lookup = {'date': entry_date, 'external_product_name': external_name, 'streamer_id': streamer_id}
    duplicate_id = find_duplicate_platform_sale('TikTok', lookup)
    if duplicate_id:
        return False, _duplicate_message(entry_date, external_name, streamer_id), duplicate_id

    fields = _clean_sale_fields(data, ITEM_FIELDS)
    fields['external_product_name'] = external_name
    if not fields['product_id']:
        fields['product_id'] = resolve_alias(external_name)

    if fields['profit'] is None:
        profit, margin = profit_and_margin(data.get('net_income'), data.get('cost'))
        fields['profit'] = profit
        if fields['margin_percent'] is None:
            fields['margin_percent'] = margin

    entry = {
        'platform': 'TikTok',
        'channel': PLATFORMS['TikTok']['channels'][0],
        'date': entry_date,
        'streamer_id': streamer_id
    }
    entry.update(fields)

    conn = get_db_connection()
    cursor = conn.cursor()
    if entry['product_id']:
        _ensure_inventory_history(cursor, entry['product_id'])
    sale_id = _insert_platform_sale(cursor, entry, user_id)
    conn.commit()
    conn.close()
    return True, sale_id, None


def update_platform_sale(sale_id, data):
    """Overwrite an existing entry's figures (used when a duplicate is confirmed)"""
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM platform_sales WHERE id = ? AND deleted = 0", (sale_id,))
    existing = _one(cursor)
    if not existing:
        conn.close()
        return False, "Entry not found"

    if existing['platform'] == 'TikTok':
        updates = _clean_sale_fields(data, ITEM_FIELDS)
        if not updates['external_product_name']:
            updates['external_product_name'] = existing['external_product_name']
        if not updates['product_id']:
            updates['product_id'] = existing['product_id'] or resolve_alias(updates['external_product_name'])
        if updates['profit'] is None:
            profit, margin = profit_and_margin(data.get('net_income'), data.get('cost'))
            updates['profit'] = profit
            if updates['margin_percent'] is None:
                updates['margin_percent'] = margin
    else:
        updates = _clean_sale_fields(data, SESSION_FIELDS)
        updates['hourly_net'] = hourly_net(data.get('net_sales'), data.get('stream_hours'))

    assignments = ', '.join(f"{field} = ?" for field in updates)
    cursor.execute(
        f"UPDATE platform_sales SET {assignments} WHERE id = ?",
        list(updates.values()) + [sale_id]
    )
    conn.commit()
    conn.close()
    return True, "Entry updated"


def delete_platform_sale(sale_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("UPDATE platform_sales SET deleted = 1 WHERE id = ? AND deleted = 0", (sale_id,))
    conn.commit()
    affected = cursor.rowcount
    conn.close()
    if affected == 0:
        return False, "Entry not found"
    return True, "Entry deleted"


def get_platform_sales(platform=None, date_from=None, date_to=None, limit=20):
    conn = get_db_connection()
    cursor = conn.cursor()
    query = """
        SELECT s.*, u.name AS streamer_name, p.name AS product_name
        FROM platform_sales s
        LEFT JOIN users u ON u.id = s.streamer_id
        LEFT JOIN products p ON p.id = s.product_id
        WHERE s.deleted = 0
    """
    params = []
    if platform:
        query += " AND s.platform = ?"
        params.append(platform)
    if date_from:
        query += " AND s.date >= ?"
        params.append(date_from)
    if date_to:
        query += " AND s.date <= ?"
        params.append(date_to)
    query += " ORDER BY s.date DESC, s.created_at DESC, s.id DESC"
    if limit:
        query += " LIMIT ?"
        params.append(limit)
    cursor.execute(query, params)
    sales = _rows(cursor)
    conn.close()
    return sales


def import_platform_sales(entries, user_id=None):
    """
    Insert mapped CSV entries, one at a time.

    Returns:
        (imported, skipped)
    """
    imported = 0
    skipped = 0
    conn = get_db_connection()
    cursor = conn.cursor()
    for entry in entries:
        if not entry:
            skipped += 1
            continue
        try:
            if entry.get('platform') == 'TikTok' and not entry.get('product_id'):
                entry['product_id'] = resolve_alias(entry.get('external_product_name'))
            _insert_platform_sale(cursor, entry, user_id)
            conn.commit()
            imported += 1
        except sqlite3.Error as e:
            conn.rollback()
            logger.warning("Skipping platform sale row: %s", e)
            skipped += 1
    conn.close()
    return imported, skipped


# =============================================================================
# STREAM COUNTS
# =============================================================================

def get_room_inventory(location_id):
    return get_inventory(location_id)


def submit_stream_count(location_id, streamer_id, counted_by_id, count_time, counts):
    """
    Record a post-stream count and reconcile the room's inventory.

    Units counted below expectation are treated as sold; units above it are
    discrepancies. Every non-zero difference is applied to the room's stock.

    Returns:
        (success, report dict or error message)
    """
    if not location_id:
        return False, "Please select a stream room"
    if not streamer_id:
        return False, "Please select or enter a streamer name"
    if not counted_by_id:
        return False, "Please select or enter who is counting"

    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM locations WHERE id = ?", (location_id,))
        room = _one(cursor)
        if not room or room['name'].lower() not in {n.lower() for n in STREAM_ROOMS}:
            raise InventoryError("Please select a stream room")

        cursor.execute("""
            SELECT i.product_id, i.quantity, p.name AS product_name, p.brand, p.type
            FROM inventory i JOIN products p ON p.id = i.product_id
            WHERE i.location_id = ? AND i.quantity > 0
            ORDER BY p.brand, p.name
        """, (location_id,))
        inventory_rows = _rows(cursor)

        for value in (counts or {}).values():
            if value not in (None, '') and int(value) < 0:
                raise InventoryError("Counts cannot be negative")

        result = reconcile_counts(inventory_rows, counts)

        cursor.execute("""
            INSERT INTO stream_counts (location_id, streamer_id, counted_by_id, count_time, status,
                                       total_sold, total_discrepancies)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (location_id, streamer_id, counted_by_id, count_time, result['status'],
              result['total_sold'], result['total_discrepancies']))
        count_id = cursor.lastrowid

        for item in result['items']:
            cursor.execute("""
                INSERT INTO stream_count_items (stream_count_id, product_id, expected_qty, actual_qty, difference)
                VALUES (?, ?, ?, ?, ?)
            """, (count_id, item['product_id'], item['expected_qty'], item['actual_qty'], item['difference']))

        for item in result['items']:
            if item['difference'] != 0:
                _apply_inventory_change(cursor, item['product_id'], location_id, item['difference'])

        cursor.execute("SELECT id, name FROM users WHERE id IN (?, ?)", (streamer_id, counted_by_id))
        names = {row['id']: row['name'] for row in cursor.fetchall()}

        conn.commit()
    except InventoryError as e:
        conn.rollback()
        return False, str(e)
    except ValueError:
        conn.rollback()
        return False, "Counts must be whole numbers"
    finally:
        conn.close()

    products = {row['product_id']: row for row in inventory_rows}
    sold_items = []
    discrepancy_items = []
    for item in result['items']:
        product = products.get(item['product_id'], {})
        entry = {
            'product_id': item['product_id'],
            'product_name': product.get('product_name'),
            'brand': product.get('brand'),
            'expected': item['expected_qty'],
            'actual': item['actual_qty']
        }
        if item['difference'] < 0:
            entry['sold'] = abs(item['difference'])
            sold_items.append(entry)
        elif item['difference'] > 0:
            entry['extra'] = item['difference']
            discrepancy_items.append(entry)

    return True, {
        'id': count_id,
        'location': room['name'],
        'streamer': names.get(int(streamer_id)),
        'counted_by': names.get(int(counted_by_id)),
        'count_time': count_time,
        'status': result['status'],
        'total_sold': result['total_sold'],
        'total_discrepancies': result['total_discrepancies'],
        'sold_items': sold_items,
        'discrepancy_items': discrepancy_items
    }


_COUNT_SELECT = """
    SELECT c.*, l.name AS location_name, s.name AS streamer_name, cb.name AS counted_by_name,
           rb.name AS resolved_by_name
    FROM stream_counts c
    JOIN locations l ON l.id = c.location_id
    JOIN users s ON s.id = c.streamer_id
    JOIN users cb ON cb.id = c.counted_by_id
    LEFT JOIN users rb ON rb.id = c.resolved_by
"""


def get_stream_counts(location_id=None, status=None, limit=10):
    conn = get_db_connection()
    cursor = conn.cursor()
    query = _COUNT_SELECT + " WHERE 1=1"
    params = []
    if location_id:
        query += " AND c.location_id = ?"
        params.append(location_id)
    if status:
        query += " AND c.status = ?"
        params.append(status)
    query += " ORDER BY c.count_time DESC, c.id DESC LIMIT ?"
    params.append(limit)
    cursor.execute(query, params)
    counts = _rows(cursor)
    conn.close()
    return counts


def get_stream_count(count_id):
    """A stream count with the items whose counted quantity differed from expected"""
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute(_COUNT_SELECT + " WHERE c.id = ?", (count_id,))
    count = _one(cursor)
    if count:
        cursor.execute("""
            SELECT i.*, p.name AS product_name, p.brand
            FROM stream_count_items i JOIN products p ON p.id = i.product_id
            WHERE i.stream_count_id = ? AND i.difference != 0
            ORDER BY p.name
        """, (count_id,))
        count['items'] = _rows(cursor)
    conn.close()
    return count


def resolve_stream_count(count_id, resolved_by, notes):
    if not (notes or '').strip():
        return False, "Please describe how the discrepancy was resolved"
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT status FROM stream_counts WHERE id = ?", (count_id,))
    row = cursor.fetchone()
    if not row:
        conn.close()
        return False, "Count not found"
    if row['status'] != COUNT_HAS_DISCREPANCIES:
        conn.close()
        return False, "This count has no open discrepancies"
    cursor.execute("""
        UPDATE stream_counts
        SET status = ?, resolved_by = ?, resolved_at = CURRENT_TIMESTAMP, resolution_notes = ?
        WHERE id = ?
    """, (COUNT_RESOLVED, resolved_by, notes.strip(), count_id))
    conn.commit()
    conn.close()
    return True, "Discrepancy resolved"


# =============================================================================
# BUSINESS EXPENSES
# =============================================================================

def record_expense(data, user_id=None):
    if not data.get('category') or not data.get('amount') or not (data.get('description') or '').strip():
        return False, "Please fill all required fields"
    if data['category'] not in EXPENSE_CATEGORIES:
        return False, "Unknown expense category"
    try:
        amount = float(data['amount'])
    except (TypeError, ValueError):
        return False, "Please enter a valid amount"
    if amount <= 0:
        return False, "Please enter a valid amount"

    currency = data.get('currency') or 'USD'
    amount_usd = to_usd(amount, currency)

    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("""
        INSERT INTO business_expenses (date, category, amount, currency, amount_usd, payment_method_id,
                                       description, notes, created_by)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, (data.get('date') or datetime.now().strftime('%Y-%m-%d'), data['category'], amount, currency,
          amount_usd, data.get('payment_method_id') or None, data['description'].strip(),
          data.get('notes') or None, user_id))
    conn.commit()
    expense_id = cursor.lastrowid
    conn.close()
    return True, expense_id


def get_expenses(date_from=None, date_to=None, category=None):
    conn = get_db_connection()
    cursor = conn.cursor()
    query = """
        SELECT e.*, pm.name AS payment_method_name
        FROM business_expenses e LEFT JOIN payment_methods pm ON pm.id = e.payment_method_id
        WHERE 1=1
    """
    params = []
    if date_from:
        query += " AND e.date >= ?"
        params.append(date_from)
    if date_to:
        query += " AND e.date <= ?"
        params.append(date_to)
    if category:
        query += " AND e.category = ?"
        params.append(category)
    query += " ORDER BY e.date DESC, e.created_at DESC, e.id DESC"
    cursor.execute(query, params)
    expenses = _rows(cursor)
    conn.close()
    return expenses


def delete_expense(expense_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("DELETE FROM business_expenses WHERE id = ?", (expense_id,))
    conn.commit()
    affected = cursor.rowcount
    conn.close()
    if affected == 0:
        return False, "Expense not found"
    return True, "Expense deleted"


# =============================================================================
# HIGH VALUE ITEMS
# =============================================================================

def _optional_price(value):
    if value in (None, ''):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def add_high_value_item(data, photo_filename=None):
    if not (data.get('card_name') or '').strip():
        return False, "Please enter a card name"
    if not data.get('location_id'):
        return False, "Please select a location"
    item_type = data.get('item_type') or 'Slab $400+'
    if item_type not in HIGH_VALUE_TYPES:
        return False, "Unknown item type"

    is_slab = 'Slab' in item_type
    grade = data.get('grade') or None
    if grade and grade not in GRADE_OPTIONS:
        return False, "Unknown grade"

    currency = data.get('currency') or 'USD'
    purchase_price = _optional_price(data.get('purchase_price'))
    purchase_price_usd = to_usd(purchase_price, currency) if purchase_price is not None else None

    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("""
        INSERT INTO high_value_items (card_name, brand, item_type, grading_company, grade, purchase_price,
                                      currency, purchase_price_usd, current_market_price, location_id,
                                      acquirer_id, vendor_id, date_added, photo_filename, status)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'In Inventory')
    """, (
        data['card_name'].strip(),
        data.get('brand') or 'Pokemon',
        item_type,
        (data.get('grading_company') or None) if is_slab else None,
        grade if is_slab else None,
        purchase_price,
        currency,
        purchase_price_usd,
        _optional_price(data.get('current_market_price')),
        data['location_id'],
        data.get('acquirer_id') or None,
        data.get('vendor_id') or None,
        data.get('date_added') or datetime.now().strftime('%Y-%m-%d'),
        photo_filename
    ))
    conn.commit()
    item_id = cursor.lastrowid
    conn.close()
    return True, item_id


def get_high_value_items(status='In Inventory'):
    conn = get_db_connection()
    cursor = conn.cursor()
    query = """
        SELECT h.*, l.name AS location_name, u.name AS acquirer_name, v.name AS vendor_name
        FROM high_value_items h
        JOIN locations l ON l.id = h.location_id
        LEFT JOIN users u ON u.id = h.acquirer_id
        LEFT JOIN vendors v ON v.id = h.vendor_id
        WHERE h.deleted = 0
    """
    params = []
    if status:
        query += " AND h.status = ?"
        params.append(status)
    query += " ORDER BY h.created_at DESC, h.id DESC"
    cursor.execute(query, params)
    items = _rows(cursor)
    conn.close()
    return items


def get_high_value_item(item_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM high_value_items WHERE id = ? AND deleted = 0", (item_id,))
    item = _one(cursor)
    conn.close()
    return item


def summarize_high_value(items):
    """Purchase value, market value (falling back to purchase price) and profit/loss"""
    purchase = sum(i['purchase_price_usd'] or 0 for i in items)
    market = sum(i['current_market_price'] or i['purchase_price_usd'] or 0 for i in items)
    return {
        'total_purchase_value': purchase,
        'total_market_value': market,
        'profit_loss': market - purchase,
        'count': len(items)
    }


def update_high_value_item(item_id, data, photo_filename=None):
    item = get_high_value_item(item_id)
    if not item:
        return False, "Item not found"
    if not (data.get('card_name') or '').strip():
        return False, "Please enter a card name"
    item_type = data.get('item_type') or item['item_type']
    if item_type not in HIGH_VALUE_TYPES:
        return False, "Unknown item type"
    is_slab = 'Slab' in item_type

    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("""
        UPDATE high_value_items
        SET card_name = ?, brand = ?, item_type = ?, grading_company = ?, grade = ?, date_added = ?,
            photo_filename = ?
        WHERE id = ?
    """, (
        data['card_name'].strip(),
        data.get('brand') or item['brand'],
        item_type,
        (data.get('grading_company') or None) if is_slab else None,
        (data.get('grade') or None) if is_slab else None,
        data.get('date_added') or item['date_added'],
        photo_filename or item['photo_filename'],
        item_id
    ))
    conn.commit()
    conn.close()
    return True, "Item updated"


def update_high_value_prices(item_id, market_price=None, paid_price=None):
    """Edit market and/or paid price; paid price is taken as USD"""
    updates = []
    params = []
    if market_price is not None:
        updates.append("current_market_price = ?")
        params.append(_optional_price(market_price))
    if paid_price is not None:
        price = _optional_price(paid_price)
        updates.append("purchase_price = ?")
        updates.append("purchase_price_usd = ?")
        updates.append("currency = 'USD'")
        params.extend([price, price])
    if not updates:
        return False, "No changes to make"

    params.append(item_id)
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute(f"UPDATE high_value_items SET {', '.join(updates)} WHERE id = ? AND deleted = 0", params)
    conn.commit()
    affected = cursor.rowcount
    conn.close()
    if affected == 0:
        return False, "Item not found"
    return True, "Prices updated"


def move_high_value_item(item_id, location_id, user_id=None):
    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM high_value_items WHERE id = ? AND deleted = 0", (item_id,))
        item = _one(cursor)
        if not item:
            raise InventoryError("Item not found")
        if not location_id or str(item['location_id']) == str(location_id):
            raise InventoryError("Please select a different location")
        cursor.execute("SELECT id FROM locations WHERE id = ? AND active = 1", (location_id,))
        if not cursor.fetchone():
            raise InventoryError("Location not found")

        cursor.execute("UPDATE high_value_items SET location_id = ? WHERE id = ?", (location_id, item_id))
        cursor.execute("""
            INSERT INTO high_value_movements (item_id, from_location_id, to_location_id, moved_by)
            VALUES (?, ?, ?, ?)
        """, (item_id, item['location_id'], location_id, user_id))
        conn.commit()
        return True, "Item moved successfully"
    except InventoryError as e:
        conn.rollback()
        return False, str(e)
    finally:
        conn.close()


def get_high_value_movements(item_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("""
        SELECT m.*, fl.name AS from_name, tl.name AS to_name, u.name AS moved_by_name
        FROM high_value_movements m
        LEFT JOIN locations fl ON fl.id = m.from_location_id
        JOIN locations tl ON tl.id = m.to_location_id
        LEFT JOIN users u ON u.id = m.moved_by
        WHERE m.item_id = ?
        ORDER BY m.id
    """, (item_id,))
    movements = _rows(cursor)
    conn.close()
    return movements


def mark_high_value_sold(item_id, sale_price, date_sold=None):
    price = _optional_price(sale_price)
    if price is None or price <= 0:
        return False, "Please enter a valid sale price"
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute("""
        UPDATE high_value_items SET status = 'Sold', sale_price = ?, date_sold = ?
        WHERE id = ? AND deleted = 0 AND status = 'In Inventory'
    """, (price, date_sold or datetime.now().strftime('%Y-%m-%d'), item_id))
    conn.commit()
    affected = cursor.rowcount
    conn.close()
    if affected == 0:
        return False, "Item not found"
    return True, "Item marked as sold"


def delete_high_value_item(item_id):
    conn = get_db_connection()
    cursor = conn.cursor()
    cursor.execute(
        "UPDATE high_value_items SET deleted = 1, deleted_at = CURRENT_TIMESTAMP WHERE id = ? AND deleted = 0",
        (item_id,)
    )
    conn.commit()
    affected = cursor.rowcount
    conn.close()
    if affected == 0:
        return False, "Item not found"
    return True, "Item deleted"


# =============================================================================
# REPORTING
# =============================================================================

def get_sales_summary(date_from, date_to):
    """Storefront and platform sales totals in a date range"""
    conn = get_db_connection()
    cursor = conn.cursor()

    cursor.execute("""
        SELECT COUNT(*) AS count, COALESCE(SUM(sale_price), 0) AS revenue,
               COALESCE(SUM(profit), 0) AS profit, COALESCE(SUM(quantity), 0) AS units
        FROM storefront_sales WHERE date >= ? AND date <= ?
    """, (date_from, date_to))
    storefront = dict(cursor.fetchone())

    cursor.execute("""
        SELECT platform, COUNT(*) AS count, COALESCE(SUM(gross_sales), 0) AS gross_sales,
               COALESCE(SUM(net_sales), 0) AS net_sales, COALESCE(SUM(profit), 0) AS profit
        FROM platform_sales
        WHERE deleted = 0 AND date >= ? AND date <= ?
        GROUP BY platform ORDER BY platform
    """, (date_from, date_to))
    platforms = {row['platform']: dict(row) for row in cursor.fetchall()}

    conn.close()
    return {'storefront': storefront, 'platforms': platforms}


def get_dashboard_stats():
    conn = get_db_connection()
    cursor = conn.cursor()

    cursor.execute(
        f"SELECT COUNT(*) FROM acquisitions WHERE status IN ({','.join('?' * len(PENDING_STATUSES))})",
        PENDING_STATUSES
    )
    pending_intake = cursor.fetchone()[0]

    cursor.execute("""
        SELECT COALESCE(SUM(quantity), 0) AS units,
               COALESCE(SUM(quantity * COALESCE(avg_cost_basis, 0)), 0) AS value
        FROM inventory WHERE quantity > 0
    """)
    inventory = cursor.fetchone()

    cursor.execute("SELECT COUNT(*) FROM stream_counts WHERE status = ?", (COUNT_HAS_DISCREPANCIES,))
    open_discrepancies = cursor.fetchone()[0]

    cursor.execute("SELECT COUNT(*) FROM high_value_items WHERE deleted = 0 AND status = 'In Inventory'")
    high_value = cursor.fetchone()[0]

    conn.close()
    return {
        'pending_intake': pending_intake,
        'inventory_units': inventory['units'],
        'inventory_value': round(inventory['value'], 2),
        'open_discrepancies': open_discrepancies,
        'high_value_items': high_value
    }
