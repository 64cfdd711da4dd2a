"""
ShoeVerse configuration

Everything environment specific comes from the process environment (or a
.env file next to the app). Business constants live here too so there is
one place to look when the shop changes its tax or shipping rules.
"""

import os
from datetime import timedelta

from dotenv import load_dotenv

PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))

load_dotenv()

# ============== BUSINESS RULES ==============

TAX_RATE = 0.10
SHIPPING_FLAT = 10.0
FREE_SHIPPING_OVER = 100  # strictly greater than
PAGE_SIZE = 12
FEATURED_LIMIT = 8
FEATURED_FALLBACK = 4
LOW_STOCK_THRESHOLD = 10
PASSWORD_MIN_LENGTH = 6
DEFAULT_PAYMENT_METHOD = 'Cash on Delivery'

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
MAX_UPLOAD_FILES = 10

CATEGORIES = ['Running', 'Casual', 'Sports', 'Formal', 'Boots', 'Sneakers']
ORDER_STATUSES = ['Processing', 'Shipped', 'Delivered', 'Cancelled']

# code -> kind; percent coupons take 10% of the subtotal,
# shipping coupons refund whatever shipping was charged
COUPONS = {
    'SAVE10': {'type': 'percent', 'value': 10},
    'FREESHIP': {'type': 'shipping'},
}


def _int_env(name, default):
    raw = os.getenv(name, '')
    try:
        return int(raw)
    except ValueError:
        return default


def load_config(overrides=None):
    """build the flask config mapping from the environment"""
    env = os.getenv('APP_ENV') or os.getenv('NODE_ENV') or 'development'
    origins = [o.strip() for o in os.getenv('CORS_ORIGINS', '*').split(',') if o.strip()]

    config = {
        'ENV_NAME': env,
        'MONGO_URI': os.getenv('MONGO_URI', 'mongodb://localhost:27017/shoeverse'),
        'MONGO_DB_NAME': os.getenv('MONGO_DB_NAME'),
        'MONGO_CLIENT': None,
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET', 'change-me'),
        'JWT_ACCESS_TOKEN_EXPIRES': timedelta(minutes=_int_env('JWT_ACCESS_MINUTES', 60)),
        'JWT_REFRESH_TOKEN_EXPIRES': timedelta(days=_int_env('JWT_REFRESH_DAYS', 30)),
        'PORT': _int_env('PORT', 5000),
        'BASE_URL': os.getenv('BASE_URL', 'http://localhost:5000').rstrip('/'),
        'UPLOAD_FOLDER': os.getenv('UPLOAD_FOLDER') or os.path.join(PACKAGE_DIR, 'uploads'),
        # per request; individual files are checked against MAX_UPLOAD_BYTES
        'MAX_CONTENT_LENGTH': MAX_UPLOAD_BYTES * MAX_UPLOAD_FILES + 1024 * 1024,
        'CORS_ORIGINS': origins or '*',
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO').upper(),
    }
    if overrides:
        config.update(overrides)
    return config
