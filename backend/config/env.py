import os
from dotenv import load_dotenv

load_dotenv()

# =====================================================
# ENV
# =====================================================
ENV = os.getenv("ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# =====================================================
# DATABASE
# =====================================================
MONGO_URI = os.getenv("MONGODB_URI") or os.getenv("MONGO_URI")
MONGO_DB_NAME = os.getenv("MONGODB_DB", "marketplace")

# every store call is bounded; timeouts surface as Unavailable
STORE_TIMEOUT_MS = int(os.getenv("STORE_TIMEOUT_MS", 5000))

# =====================================================
# JWT (identity store)
# =====================================================
JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# =====================================================
# PRICING
# =====================================================
SHIPPING_FEE = os.getenv("SHIPPING_FEE", "5.00")
TAX_RATE = os.getenv("TAX_RATE", "0.08")

# =====================================================
# RESERVATIONS
# =====================================================
RESERVATION_STALE_MINUTES = int(os.getenv("RESERVATION_STALE_MINUTES", 10))
RESERVATION_SWEEP_SECONDS = int(os.getenv("RESERVATION_SWEEP_SECONDS", 300))

# =====================================================
# CORS
# =====================================================
CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")


def validate_production_env() -> None:
    if (ENV or "").lower() != "production":
        return

    required = {
        "JWT_SECRET": JWT_SECRET,
        "MONGODB_URI": MONGO_URI,
    }

    invalid = []
    for key, value in required.items():
        val = (value or "").strip()
        if not val or val.startswith("CHANGE_THIS"):
            invalid.append(key)

    if invalid:
        raise RuntimeError(f"Production env misconfigured. Invalid keys: {', '.join(sorted(invalid))}")
