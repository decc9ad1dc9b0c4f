from __future__ import annotations

import os
from pathlib import Path

from sqlalchemy import text
from sqlmodel import SQLModel

from updown_node.db import tables  # noqa: F401  registers every table on SQLModel.metadata
from updown_node.db.session import engine


def tables_to_reset() -> list[str]:
    # children before parents
    return [
        "airdrops",
        "ranking_cursors",
        "rankings",
        "score_entries",
        "predictions",
        "games",
        "alembic_version",
    ]


def _find_alembic_dir() -> Path | None:
    """Locate the Alembic migrations directory.

    Checks ``ALEMBIC_DIR`` first, then the repo-root ``alembic/`` next to the
    package. Returns ``None`` when neither exists; callers fall back to
    ``SQLModel.metadata.create_all()``.
    """
    def _is_valid(p: Path) -> bool:
        return p.is_dir() and (p / "env.py").exists() and (p / "versions").is_dir()

    env_dir = os.getenv("ALEMBIC_DIR")
    if env_dir and _is_valid(Path(env_dir)):
        return Path(env_dir)

    repo_dir = Path(__file__).resolve().parent.parent.parent / "alembic"
    if _is_valid(repo_dir):
        return repo_dir
    return None


def _run_alembic_upgrade(alembic_dir: Path) -> None:
    from alembic.config import Config
    from alembic import command

    if engine.dialect.name == "postgresql":
        # DDL waiting on AccessExclusiveLock gives up instead of hanging
        with engine.connect() as conn:
            conn.execute(text("SET lock_timeout = '30s'"))
            conn.commit()

    alembic_cfg = Config()
    alembic_cfg.set_main_option("script_location", str(alembic_dir))
    alembic_cfg.set_main_option("sqlalchemy.url", str(engine.url))
    command.upgrade(alembic_cfg, "head")


def migrate() -> None:
    """Run Alembic migrations. Safe to run on every boot; never drops data."""
    alembic_dir = _find_alembic_dir()
    if alembic_dir is not None:
        print(f"➡️  Running Alembic migrations from {alembic_dir} ...")
        try:
            _run_alembic_upgrade(alembic_dir)
        except Exception as exc:
            print(f"⚠️  Alembic migration failed ({exc}), falling back to create_all...")
            SQLModel.metadata.create_all(engine)
    else:
        print("➡️  No Alembic migrations directory found, using SQLModel create_all...")
        SQLModel.metadata.create_all(engine)

    print("✅ Database migration complete.")


def reset_db() -> None:
    """Drop all tables and recreate from scratch. Destroys all data."""
    print("⚠️  Dropping all tables...")
    cascade = " CASCADE" if engine.dialect.name == "postgresql" else ""
    with engine.begin() as conn:
        for table in tables_to_reset():
            conn.execute(text(f"DROP TABLE IF EXISTS {table}{cascade}"))

    migrate()
    print("✅ Database reset complete.")


if __name__ == "__main__":
    import sys

    if hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(line_buffering=True)

    if "--reset" in sys.argv:
        reset_db()
    else:
        migrate()
    sys.exit(0)
