import os

# avant tout import backend : l'engine module-level ne doit jamais viser PostgreSQL
os.environ["DATABASE_URL"] = "sqlite://"

from decimal import Decimal

import pytest
from sqlalchemy.orm import Session, sessionmaker

from backend.app.db.base import Base
from backend.app.db.models import models_v1  # noqa: F401  (enregistre les tables)
from backend.app.db.models.models_v1 import Product, User
from backend.app.db.models.core_types import Role
from backend.app.db.session import make_engine


@pytest.fixture(scope="function")
def engine(tmp_path):
    """Base SQLite fichier propre à chaque test (partagée entre threads)."""
    eng = make_engine(f"sqlite:///{tmp_path / 'retail.db'}")
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Session:
    """
    Session DB isolée par test.

    Utilise une transaction englobante + SAVEPOINT.
    TOUT est rollback à la fin du test, même après commit().
    """
    connection = engine.connect()
    transaction = connection.begin()

    # chaque commit() des services ne libère qu'un SAVEPOINT
    session = Session(bind=connection, autoflush=False, join_transaction_mode="create_savepoint")

    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture(scope="function")
def session_factory(engine):
    """Sessions indépendantes (vrais commits) pour les tests multi-threads."""
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


def _add_product(db, *, sku, price="10.00", stock=10, stock_min=2, name=None, category="General", active=True):
    product = Product(
        sku=sku,
        name=name or f"Product {sku}",
        category=category,
        price=Decimal(price),
        stock=stock,
        stock_min=stock_min,
        active=active,
    )
    db.add(product)
    db.flush()
    return product


def _add_user(db, *, name, role):
    user = User(name=name, role=role, active=True)
    db.add(user)
    db.flush()
    return user


@pytest.fixture
def make_product(db_session):
    def _make(sku, **kwargs):
        product = _add_product(db_session, sku=sku, **kwargs)
        # commit = RELEASE SAVEPOINT : survit aux rollbacks des services
        db_session.commit()
        return product

    return _make


@pytest.fixture
def admin(db_session) -> User:
    user = _add_user(db_session, name="ADMIN", role=Role.admin)
    db_session.commit()
    return user


@pytest.fixture
def employee(db_session) -> User:
    user = _add_user(db_session, name="VENDEDOR", role=Role.employee)
    db_session.commit()
    return user


@pytest.fixture
def seed_committed(session_factory):
    """Insère et COMMIT des données visibles par toutes les sessions."""

    def _seed(products=(), users=()):
        with session_factory() as db:
            created_products = [_add_product(db, **p) for p in products]
            created_users = [_add_user(db, **u) for u in users]
            db.commit()
            return [p.id for p in created_products], [u.id for u in created_users]

    return _seed
