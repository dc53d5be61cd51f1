"""Helpers for frontier database connection strings.

The frontier talks to PostgreSQL twice: through ``asyncpg`` for the queue
operations and through SQLAlchemy (``postgresql+asyncpg://`` scheme) when the
schema is bootstrapped. Operators hand us either form, so both are derived
from whatever was configured.
"""

from __future__ import annotations

import os


def to_postgres_dsn(url: str) -> str:
    """Normalize a SQLAlchemy-style URL into a plain PostgreSQL DSN.

    ``postgresql+psycopg2://`` and ``asyncpg://`` are both rewritten to
    ``postgresql://``; anything else is returned untouched.
    """

    if url.startswith("postgresql+"):
        return "postgresql://" + url.split("://", 1)[1]
    if url.startswith("asyncpg://"):
        return "postgresql://" + url[len("asyncpg://") :]
    return url


def to_sqlalchemy_dsn(url: str) -> str:
    """Convert a PostgreSQL DSN to the ``postgresql+asyncpg://`` scheme for SQLAlchemy."""

    url = to_postgres_dsn(url)
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://") :]
    if url.startswith("postgres://"):
        return "postgresql+asyncpg://" + url[len("postgres://") :]
    return url


def database_url_from_env() -> str:
    """Resolve the frontier database URL from the environment.

    ``FRONTIER_DATABASE_URL`` wins, then ``DATABASE_URL``; otherwise the URL is
    assembled from the ``POSTGRES_*`` variables.
    """

    url = os.getenv("FRONTIER_DATABASE_URL") or os.getenv("DATABASE_URL")
    if url:
        return to_postgres_dsn(url)

    user = os.getenv("POSTGRES_USER", "jooya")
    password = os.getenv("POSTGRES_PASSWORD", "postgres")
    host = os.getenv("POSTGRES_HOST", "postgres")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("POSTGRES_DB", "jooyacrawlerdb")
    return f"postgresql://{user}:{password}@{host}:{port}/{db}"
