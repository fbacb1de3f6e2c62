#!/usr/bin/env python3
"""
Create (or top up) the LuckyVault SQLite file outside of the web app.

Safe to re-run: tables are created with IF NOT EXISTS and the seed rows
are only inserted when missing.
"""

import sys

import database
from config import Config

RULE = "-" * 60


def seed(path, admin_pin):
    database.DATABASE_PATH = path
    database.init_database(admin_pin)
    return [location['name'] for location in database.get_locations()]


def main():
    print(RULE)
    print(f"LuckyVault IMS :: preparing {Config.DATABASE_PATH}")
    print(RULE)

    try:
        locations = seed(Config.DATABASE_PATH, Config.ADMIN_PIN)
    except Exception as e:
        print(f"✗ Could not prepare the database: {e}")
        return False

    print(f"✓ {len(locations)} locations ready:")
    for name in locations:
        print(f"    - {name}")
    print(f"✓ Admin user 'Admin' can sign in with PIN {Config.ADMIN_PIN}")
    print()
    print("Start the server with `python app.py`, sign in, then change the admin PIN under Settings.")
    return True


if __name__ == '__main__':
    sys.exit(0 if main() else 1)
