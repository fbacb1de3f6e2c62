"""
Configuration for LuckyVault IMS
Values are read from environment variables with development defaults.
"""

import os
import secrets

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


class Config:
    SECRET_KEY = os.getenv('VAULT_SECRET_KEY') or secrets.token_hex(32)
    DATABASE_PATH = os.getenv('VAULT_DATABASE_PATH', os.path.join(BASE_DIR, 'luckyvault.db'))
    UPLOAD_FOLDER = os.getenv('VAULT_UPLOAD_FOLDER', os.path.join(BASE_DIR, 'uploads'))
    TIMEZONE = os.getenv('VAULT_TIMEZONE', 'US/Eastern')
    ADMIN_PIN = os.getenv('VAULT_ADMIN_PIN', '1234')
    LOG_LEVEL = os.getenv('VAULT_LOG_LEVEL', 'INFO')

    # 8 MB cap on photo and CSV uploads
    MAX_CONTENT_LENGTH = 8 * 1024 * 1024
    ALLOWED_PHOTO_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'


LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '[{levelname}] {asctime} {module} - {message}',
            'style': '{',
            'datefmt': '%Y-%m-%d %H:%M:%S',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': Config.LOG_LEVEL,
    },
}
