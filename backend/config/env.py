import os
from dotenv import load_dotenv

load_dotenv()

# =====================================================
# APP
# =====================================================
ENV = os.getenv("ENV", "development")
IS_PRODUCTION = ENV.lower() == "production"

# Comma separated; empty falls back to local dev origins in main.py
CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")

# =====================================================
# MONGODB
# =====================================================
MONGO_URI = os.getenv("MONGO_URI") or os.getenv("MONGODB_URI")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "desamart")

# =====================================================
# SESSION TOKENS
# =====================================================
JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_MINUTES = int(os.getenv("ACCESS_TOKEN_MINUTES", 60 * 24))

# =====================================================
# COD POLICY
# =====================================================
COD_SETTINGS_CACHE_TTL_SECONDS = int(os.getenv("COD_SETTINGS_CACHE_TTL_SECONDS", 5 * 60))
COD_CONFIRMATION_CHECK_SECONDS = int(os.getenv("COD_CONFIRMATION_CHECK_SECONDS", 60))

COD_ELIGIBILITY_MAX_REQUESTS = int(os.getenv("COD_ELIGIBILITY_MAX_REQUESTS", 30))
COD_ELIGIBILITY_WINDOW_SECONDS = int(os.getenv("COD_ELIGIBILITY_WINDOW_SECONDS", 60))

# =====================================================
# REFUND EVIDENCE (CLOUDINARY)
# =====================================================
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")
REFUND_EVIDENCE_FOLDER = os.getenv("REFUND_EVIDENCE_FOLDER", "desamart/refund-evidence")

REFUND_REQUEST_MAX_REQUESTS = int(os.getenv("REFUND_REQUEST_MAX_REQUESTS", 5))
REFUND_REQUEST_WINDOW_SECONDS = int(os.getenv("REFUND_REQUEST_WINDOW_SECONDS", 60 * 60))


def validate_production_env() -> None:
    """Refuse to boot a production process with placeholder secrets."""
    if not IS_PRODUCTION:
        return

    secrets = {
        "MONGODB_URI": MONGO_URI,
        "JWT_SECRET": JWT_SECRET,
        "CLOUDINARY_CLOUD_NAME": CLOUDINARY_CLOUD_NAME,
        "CLOUDINARY_API_KEY": CLOUDINARY_API_KEY,
        "CLOUDINARY_API_SECRET": CLOUDINARY_API_SECRET,
    }
    missing = sorted(
        name for name, value in secrets.items()
        if not (value or "").strip() or value.strip().startswith("CHANGE_THIS")
    )

    if COD_SETTINGS_CACHE_TTL_SECONDS <= 0:
        missing.append("COD_SETTINGS_CACHE_TTL_SECONDS")

    if missing:
        raise RuntimeError(f"Production env misconfigured. Invalid keys: {', '.join(missing)}")
