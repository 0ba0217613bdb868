import os

from dotenv import load_dotenv

# Load .env from the project root
load_dotenv()


def env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./food_ordering.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

# Auth (JWT)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me-access-secret")
JWT_REFRESH_SECRET_KEY = os.getenv("JWT_REFRESH_SECRET_KEY", "change-me-refresh-secret")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))
JWT_REFRESH_EXPIRE_MINUTES = int(os.getenv("JWT_REFRESH_EXPIRE_MINUTES", str(60 * 24 * 7)))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))

# Cache
REDIS_URL = os.getenv("REDIS_URL", "").strip()
MENU_CACHE_TTL_SECONDS = int(os.getenv("MENU_CACHE_TTL_SECONDS", "600"))

# Simulated payment gateway
PAYMENT_SUCCESS_RATE = float(os.getenv("PAYMENT_SUCCESS_RATE", "0.9"))
PAYMENT_MIN_DELAY_SECONDS = float(os.getenv("PAYMENT_MIN_DELAY_SECONDS", "1.0"))
PAYMENT_MAX_DELAY_SECONDS = float(os.getenv("PAYMENT_MAX_DELAY_SECONDS", "3.0"))
PAYMENT_SETTLEMENT_MODE = os.getenv("PAYMENT_SETTLEMENT_MODE", "background").strip().lower()
if PAYMENT_SETTLEMENT_MODE not in {"background", "inline"}:
    PAYMENT_SETTLEMENT_MODE = "background"

ORDER_STATUS_STRICT_TRANSITIONS = env_flag("ORDER_STATUS_STRICT_TRANSITIONS")
NOTIFICATIONS_REDIS_ENABLED = env_flag("NOTIFICATIONS_REDIS_ENABLED")

# Rate limits as "limit/window_seconds"
RATE_LIMIT_ENABLED = env_flag("RATE_LIMIT_ENABLED", "1")
RATE_LIMIT_GENERAL = os.getenv("RATE_LIMIT_GENERAL", "100/900")
RATE_LIMIT_AUTH = os.getenv("RATE_LIMIT_AUTH", "5/900")
RATE_LIMIT_USER = os.getenv("RATE_LIMIT_USER", "20/60")
