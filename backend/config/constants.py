# backend/config/constants.py

# -----------------------------
# COD DEFAULTS
# -----------------------------
# Used whenever app_settings.cod_settings is missing or unreadable.

COD_SETTINGS_KEY = "cod_settings"

DEFAULT_COD_MAX_AMOUNT = 75000           # Rp
DEFAULT_COD_MAX_DISTANCE_KM = 3
DEFAULT_COD_SERVICE_FEE = 1000           # Rp
DEFAULT_COD_CONFIRMATION_TIMEOUT_MINUTES = 15
DEFAULT_COD_MIN_TRUST_SCORE = 50
DEFAULT_COD_PENALTY_POINTS = 50
DEFAULT_COD_SUCCESS_BONUS_POINTS = 1

# -----------------------------
# BUYER TRUST
# -----------------------------

TRUST_SCORE_MIN = 0
TRUST_SCORE_MAX = 100
TRUST_SCORE_UPDATE_ATTEMPTS = 3

DEFAULT_FLASH_SALE_DISCOUNT = 50         # % off for rejected COD orders

# -----------------------------
# QUOTA TIERS
# -----------------------------
# (min_price, max_price, credit_cost); max_price None = no upper bound

DEFAULT_QUOTA_TIER_LADDER = [
    (0, 3000, 1),
    (3001, 5000, 2),
    (5001, 8000, 3),
    (8001, 15000, 4),
    (15001, None, 5),
]

FALLBACK_CREDIT_COST = 1

# -----------------------------
# REFUNDS
# -----------------------------

MAX_REFUND_EVIDENCE_IMAGES = 4
