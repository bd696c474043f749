"""
Configuration constants for the live auction server.
"""

import os

# ===== BID INCREMENTS =====

# Fallback tiers used when a tournament has no increment rules configured
# (or none match the current price).
# (min_price, max_price, increment); max_price None = unbounded
DEFAULT_BID_INCREMENTS = [
    (1, 1000, 100),
    (1001, 5000, 200),
    (5001, None, 500),
]

# Increment used when the price is below every fallback tier (e.g. 0)
DEFAULT_BID_INCREMENT = 100

# ===== CATEGORIES =====

# Implicit category used for tournaments without a category list
IMPLICIT_CATEGORY_ID = '__default__'
IMPLICIT_CATEGORY_NAME = 'General'

# ===== SESSION =====

# False reproduces the one-auction-per-process behaviour: starting or
# selecting a player for another tournament replaces the running session.
# True keeps an independent session per tournament.
MULTI_TOURNAMENT_SESSIONS = False

# ===== BROADCAST =====

ROOM_KEY_PREFIX = 'auction'

# ===== STORAGE =====

DATA_FILE = 'data/auction_data.json'
AUCTION_EVENTS_DIR = 'data/auction_events'

# ===== API SERVER =====

API_HOST = '127.0.0.1'
API_PORT = 5000
API_PREFIX = '/api/auction'

CORS_ORIGINS = [
    os.getenv('FRONTEND_URL', 'http://localhost:3000'),
]

# Write endpoints require this token in the X-Admin-Token header when set
AUCTION_ADMIN_TOKEN = os.getenv('AUCTION_ADMIN_TOKEN', '')

# ===== LOGGING =====

LOG_LEVEL = 'INFO'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
