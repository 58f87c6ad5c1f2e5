from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from backend.app.core.config import settings


def make_engine(url: str) -> Engine:
    """
    Crée l'engine SQLAlchemy.

    PostgreSQL : verrous de ligne (FOR UPDATE) gérés par le serveur.
    SQLite (dev / tests) : pas de verrou de ligne, donc chaque transaction
    démarre en BEGIN IMMEDIATE et les écritures sont sérialisées.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    engine = create_engine(
        url,
        connect_args={
            "check_same_thread": False,
            "timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS,
        },
    )

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        # pysqlite ne doit plus émettre ses propres BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
