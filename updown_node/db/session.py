"""Engine and sessions for the updown store.

``UPDOWN_DATABASE_URL`` names the database outright; otherwise the URL is
assembled from the ``UPDOWN_DB_*`` variables.
"""
from __future__ import annotations

import os

from sqlalchemy.engine import Engine, make_url
from sqlmodel import Session, create_engine

DB_DEFAULTS = {
    "UPDOWN_DB_USER": "updown",
    "UPDOWN_DB_PASSWORD": "updown",
    "UPDOWN_DB_HOST": "localhost",
    "UPDOWN_DB_PORT": "5432",
    "UPDOWN_DB_NAME": "updown_node",
}


def database_url() -> str:
    explicit = os.getenv("UPDOWN_DATABASE_URL")
    if explicit:
        return explicit
    env = {name: os.getenv(name, default) for name, default in DB_DEFAULTS.items()}
    return (
        f"postgresql+psycopg2://{env['UPDOWN_DB_USER']}:{env['UPDOWN_DB_PASSWORD']}"
        f"@{env['UPDOWN_DB_HOST']}:{env['UPDOWN_DB_PORT']}/{env['UPDOWN_DB_NAME']}"
    )


def create_db_engine(url: str | None = None) -> Engine:
    """Engine for ``url``; SQLite files are opened for use from worker threads."""
    url = url or database_url()
    if make_url(url).get_backend_name() == "sqlite":
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


engine = create_db_engine()


def create_session(bind: Engine | None = None) -> Session:
    return Session(bind or engine)
