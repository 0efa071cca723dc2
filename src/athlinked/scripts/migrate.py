# src/athlinked/scripts/migrate.py
"""Database tooling: create the Postgres database if needed and migrate it."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

import psycopg
from alembic import command
from alembic.config import Config
from psycopg import sql

from athlinked.core.logging import configure_logging
from athlinked.core.settings import settings

logger = logging.getLogger(__name__)

CHECKOUT_ROOT = Path(__file__).resolve().parents[3]


def resolve_script_location(config_path: Path | None = None) -> Path:
    """Find the migrations directory named by an ``alembic.ini``.

    The migrations are not part of the installed distribution. Without an
    explicit ``config_path`` the file is looked up through ``ALEMBIC_CONFIG``,
    the working directory and finally the source checkout this module lives in.

    Raises:
        FileNotFoundError: No usable ``alembic.ini`` or migrations directory.
    """
    if config_path is not None:
        candidates = [config_path]
    else:
        candidates = [Path.cwd() / "alembic.ini", CHECKOUT_ROOT / "alembic.ini"]
        if os.getenv("ALEMBIC_CONFIG"):
            candidates.insert(0, Path(os.environ["ALEMBIC_CONFIG"]))

    for ini in candidates:
        if not ini.is_file():
            continue
        location = Config(str(ini)).get_main_option("script_location")
        if not location:
            continue
        path = Path(location)
        if not path.is_absolute():
            path = ini.resolve().parent / path
        if path.is_dir():
            return path

    raise FileNotFoundError(
        "No alembic.ini with a migrations directory found; run from a source "
        "checkout or pass --config"
    )


def alembic_config(database_url: str | None = None, config_path: Path | None = None) -> Config:
    """Build an Alembic config for the migrations named by ``alembic.ini``."""
    cfg = Config()
    cfg.set_main_option("script_location", str(resolve_script_location(config_path)))
    cfg.set_main_option("sqlalchemy.url", database_url or settings.database_url_sync)
    return cfg


def run_upgrade_head(database_url: str | None = None, config_path: Path | None = None) -> None:
    """Apply every pending migration to ``database_url`` (default: settings)."""
    cfg = alembic_config(database_url, config_path)
    logger.info("Upgrading %s to head", _redact(cfg.get_main_option("sqlalchemy.url") or ""))
    command.upgrade(cfg, "head")


def to_psycopg_url(url: str) -> str:
    """Turn a SQLAlchemy Postgres URL into one ``psycopg.connect`` accepts."""
    url = url.strip().strip("'\"")
    if not url:
        raise ValueError("DATABASE_URL is empty")
    parts = urlsplit(url)
    if not parts.scheme.startswith("postgresql"):
        raise ValueError(f"Not a PostgreSQL URL: {_redact(url)}")
    return urlunsplit(("postgresql", parts.netloc, parts.path, parts.query, parts.fragment))


def maintenance_target(url: str) -> tuple[str, str]:
    """Return ``(maintenance_url, database_name)`` for a Postgres URL."""
    parts = urlsplit(to_psycopg_url(url))
    database = parts.path.lstrip("/") or "postgres"
    admin_url = urlunsplit(("postgresql", parts.netloc, "/postgres", parts.query, ""))
    return admin_url, database


def ensure_database_exists(url: str) -> bool:
    """Create the database named in ``url`` if missing; return True if created."""
    admin_url, database = maintenance_target(url)
    with psycopg.connect(admin_url, autocommit=True) as conn, conn.cursor() as cur:
        cur.execute("SELECT 1 FROM pg_database WHERE datname = %s", (database,))
        if cur.fetchone() is not None:
            logger.info("Database %s already exists", database)
            return False
        cur.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(database)))
    logger.info("Created database %s", database)
    return True


def _redact(url: str) -> str:
    parts = urlsplit(url)
    if parts.password:
        netloc = parts.netloc.replace(f":{parts.password}@", ":***@")
        return urlunsplit(parts._replace(netloc=netloc))
    return url


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Migrate the messaging database")
    parser.add_argument(
        "--url",
        default=None,
        help="Override database URL (defaults to the effective settings URL)",
    )
    parser.add_argument(
        "--ensure-db",
        action="store_true",
        help="Create the PostgreSQL database first if it does not exist.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to alembic.ini (defaults to the one in the source checkout)",
    )
    args = parser.parse_args(argv)

    configure_logging()
    url = args.url or settings.database_url_sync
    try:
        if args.ensure_db:
            ensure_database_exists(url)
        run_upgrade_head(url, args.config)
    except Exception:
        logger.exception("Migration failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
