from __future__ import annotations

import logging
import subprocess
import sys
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from food_ordering.core.config import DATABASE_URL, ENV_NORMALIZED, IS_PROD, IS_TEST, JWT_SECRET_KEY, env_flag

logger = logging.getLogger(__name__)
MIGRATIONS_PREFIX = "[MIGRATIONS]"

DEFAULT_JWT_SECRET = "change-me-access-secret"


def validate_environment() -> None:
    if IS_PROD and DATABASE_URL.startswith("sqlite"):
        logger.critical("%s SQLite is forbidden in production", MIGRATIONS_PREFIX)
        raise RuntimeError("SQLite is forbidden in production environment")
    if IS_PROD and JWT_SECRET_KEY == DEFAULT_JWT_SECRET:
        logger.critical("JWT_SECRET_KEY must be set in production")
        raise RuntimeError("JWT_SECRET_KEY is not configured")


def apply_migrations(*, alembic_config_path: Path) -> None:
    """Run `alembic upgrade head` when AUTO_APPLY_MIGRATIONS is on (default: production only)."""
    if not env_flag("AUTO_APPLY_MIGRATIONS", "1" if IS_PROD else "0"):
        logger.info("%s auto migration skipped env=%s", MIGRATIONS_PREFIX, ENV_NORMALIZED)
        return

    if not alembic_config_path.exists():
        logger.critical("%s alembic config not found path=%s", MIGRATIONS_PREFIX, alembic_config_path)
        raise RuntimeError("alembic config not found")

    logger.info("%s applying migrations to head", MIGRATIONS_PREFIX)
    try:
        subprocess.run(
            [sys.executable, "-m", "alembic", "-c", str(alembic_config_path), "upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
        )
    except subprocess.CalledProcessError as exc:
        logger.critical(
            "%s migration apply failed returncode=%s stderr=%s",
            MIGRATIONS_PREFIX,
            exc.returncode,
            (exc.stderr or "").strip(),
        )
        raise RuntimeError("Automatic migration failed") from exc

    logger.info("%s migrations applied", MIGRATIONS_PREFIX)


def ensure_migrations_applied(*, engine: Engine, alembic_config_path: Path) -> None:
    """Refuse to start against a database whose alembic head differs from the code's."""
    if IS_TEST or DATABASE_URL.startswith("sqlite"):
        logger.info("%s migration check skipped (test env or sqlite create_all)", MIGRATIONS_PREFIX)
        return

    if not alembic_config_path.exists():
        logger.critical("%s alembic config not found path=%s", MIGRATIONS_PREFIX, alembic_config_path)
        raise RuntimeError("alembic config not found")

    alembic_cfg = Config(str(alembic_config_path))
    expected_heads = set(ScriptDirectory.from_config(alembic_cfg).get_heads())

    with engine.connect() as connection:
        if "alembic_version" not in inspect(connection).get_table_names():
            logger.critical("%s alembic_version table missing", MIGRATIONS_PREFIX)
            raise RuntimeError("Database has no migration state")
        rows = connection.exec_driver_sql("SELECT version_num FROM alembic_version").fetchall()

    current_heads = {row[0] for row in rows if row and row[0]}
    if current_heads != expected_heads:
        logger.critical(
            "%s pending migration detected current=%s expected=%s",
            MIGRATIONS_PREFIX,
            sorted(current_heads),
            sorted(expected_heads),
        )
        raise RuntimeError("Pending migrations detected")

    logger.info("%s migration state verified", MIGRATIONS_PREFIX)
