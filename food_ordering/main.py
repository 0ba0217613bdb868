import logging
import os
import threading
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from food_ordering.core.cache import build_cache_gateway
from food_ordering.core.config import CORS_ORIGINS, DATABASE_URL, RATE_LIMIT_ENABLED
from food_ordering.core.database import Base, SessionLocal, engine
from food_ordering.core.errors import register_exception_handlers
from food_ordering.core.logging_setup import configure_logging
from food_ordering.core.startup_checks import apply_migrations, ensure_migrations_applied, validate_environment
from food_ordering.middleware.observability import ObservabilityMiddleware
from food_ordering.middleware.rate_limit import RateLimitMiddleware, build_rate_limiter
import food_ordering.models  # register models before create_all
from food_ordering.routers.auth import router as auth_router
from food_ordering.routers.menu import router as menu_router
from food_ordering.routers.orders import router as orders_router
from food_ordering.routers.realtime import router as realtime_router
from food_ordering.routers.restaurants import router as restaurants_router
from food_ordering.services.admin_bootstrap import upsert_admin_user
from food_ordering.services.notifications import ChannelHub, build_notification_publisher
from food_ordering.services.order_service import OrderWorkflow
from food_ordering.services.payments import PaymentSimulator

configure_logging()

logger = logging.getLogger(__name__)
BOOTSTRAP_PREFIX = "[ADMIN_BOOTSTRAP]"
DEFAULT_ADMIN_EMAIL = "admin@example.com"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini")))


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Food Ordering API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.state.cache = build_cache_gateway()
app.state.hub = ChannelHub()
app.state.notifications = build_notification_publisher(app.state.hub)
app.state.payment_gateway = PaymentSimulator()

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
if RATE_LIMIT_ENABLED:
    app.add_middleware(RateLimitMiddleware, rate_limiter=build_rate_limiter())
else:
    logger.warning("Rate limiting disabled via RATE_LIMIT_ENABLED=0")
# added last so it wraps everything, including 429s
app.add_middleware(ObservabilityMiddleware)

register_exception_handlers(app)


def _bootstrap_initial_admin() -> None:
    password = os.getenv("DEV_ADMIN_PASSWORD", "").strip()
    if not password:
        logger.info("%s skipped: DEV_ADMIN_PASSWORD not set", BOOTSTRAP_PREFIX)
        return

    email = os.getenv("DEV_ADMIN_EMAIL", DEFAULT_ADMIN_EMAIL).strip() or DEFAULT_ADMIN_EMAIL
    db = SessionLocal()
    try:
        admin, created = upsert_admin_user(
            db,
            email=email,
            first_name="Admin",
            last_name="User",
            password=password,
        )
        logger.info("%s %s id=%s email=%s", BOOTSTRAP_PREFIX, "created" if created else "updated", admin.id, admin.email)
    except Exception:
        logger.exception("%s bootstrap failed", BOOTSTRAP_PREFIX)
        raise
    finally:
        db.close()


def _reconcile_pending_payments() -> int:
    db = SessionLocal()
    try:
        workflow = OrderWorkflow(db, app.state.notifications, SessionLocal, app.state.payment_gateway)
        return workflow.settle_pending_orders()
    except Exception:
        logger.exception("Payment reconciliation failed")
        return 0
    finally:
        db.close()


def _startup_tasks() -> None:
    try:
        validate_environment()
        if DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        else:
            apply_migrations(alembic_config_path=ALEMBIC_CONFIG_PATH)
        ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
        _bootstrap_initial_admin()
    except Exception:
        logger.exception("Startup failed")
        raise

    # Gateway calls can take seconds each; settle leftovers off the startup path.
    threading.Thread(target=_reconcile_pending_payments, name="payment-reconciler", daemon=True).start()


# Routers
app.include_router(auth_router)
app.include_router(restaurants_router)
app.include_router(menu_router)
app.include_router(orders_router)
app.include_router(realtime_router)


def _health_body() -> dict:
    return {
        "success": True,
        "message": "Server is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/")
def root():
    return _health_body()


@app.get("/health")
def health():
    return _health_body()
