#!/usr/bin/env python3
"""
SQLAlchemy Database Configuration
==================================

This file sets up the database connection and session management for the
vehicle health store (users, vehicles, readings, alerts, appointments).

WHICH DATABASE?
---------------
The URL comes from ``Settings.database_url``. By default that is a local
SQLite file (vehicle_health.db), which needs no server. Any SQLAlchemy URL
works, so a Postgres URL can be dropped in through ``VHM_DATABASE_URL``.

WHY check_same_thread=False?
-----------------------------
FastAPI runs sync endpoints in a thread pool, so one request may touch the
connection from a different thread than the one that opened it. SQLite
refuses that by default; SQLAlchemy's pool already keeps one connection per
session, so the check is switched off for SQLite URLs only.

WHAT HAPPENS HERE:
------------------
1. ``build_engine`` creates an engine for a URL
2. ``SessionLocal`` is the session factory bound to the configured engine
3. ``Base`` is the declarative class every ORM model inherits from
4. ``get_db`` hands one session to each API request and closes it afterwards
"""

from __future__ import annotations

from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from settings import get_settings


def build_engine(database_url: str, **kwargs) -> Engine:
    """Create an engine, adding the SQLite threading flag when needed."""
    connect_args = kwargs.pop("connect_args", {})
    if database_url.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
    return create_engine(database_url, connect_args=connect_args, **kwargs)


engine = build_engine(get_settings().database_url)

# Each session is one "conversation" with the database; we commit explicitly.
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()


def init_db(bind: Engine | None = None) -> None:
    """Create any missing tables. Safe to call repeatedly."""
    # models must be imported so their tables are registered on Base.metadata
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Iterator[Session]:
    """
    Creates a new database session for each request.
    The session is automatically closed when the request finishes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
