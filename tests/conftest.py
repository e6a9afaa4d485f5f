import os

# Antes de importar sportshub: base de datos en memoria y secreto del cron
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CRON_SECRET"] = "test-cron-secret"

from datetime import date, time
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sportshub import models  # noqa: F401
from sportshub.config import Settings
from sportshub.database import Base, enable_sqlite_savepoints
from sportshub.models.court import Court, CourtRate
from sportshub.models.user import User


@pytest.fixture
def settings():
    return Settings(DATABASE_URL="sqlite://", CRON_SECRET="test-cron-secret")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


def _user(db, name, email, role="CLIENT", balance="0", birth_date=date(1990, 3, 15)):
    user = User(name=name, email=email, role=role, birth_date=birth_date, credits_balance=Decimal(balance))
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def client_user(db):
    return _user(db, "Ana Cliente", "ana@example.com", balance="50")


@pytest.fixture
def other_user(db):
    return _user(db, "Luis Cliente", "luis@example.com", balance="100")


@pytest.fixture
def staff_user(db):
    return _user(db, "Marta Staff", "marta@example.com", role="STAFF")


@pytest.fixture
def admin_user(db):
    return _user(db, "Admin", "admin@example.com", role="ADMIN")


def _court(db, name, day_rate, night_rate=None, sport="padel"):
    court = Court(
        name=name,
        sport=sport,
        opening_time=time(8, 0),
        closing_time=time(23, 0),
        day_starts_at=time(6, 0),
        night_starts_at=time(18, 0),
    )
    court.rates.append(CourtRate(sport=sport, period="DAY", price_per_hour=Decimal(day_rate)))
    if night_rate is not None:
        court.rates.append(CourtRate(sport=sport, period="NIGHT", price_per_hour=Decimal(night_rate)))
    db.add(court)
    db.commit()
    return court


@pytest.fixture
def court(db):
    """Pista de pádel: 20 €/h de día, 30 €/h de noche, abierta de 08:00 a 23:00."""
    return _court(db, "Pista 1", "20.00", "30.00")


@pytest.fixture
def day_only_court(db):
    return _court(db, "Pista 2", "12.00")


@pytest.fixture
def file_engine(tmp_path):
    """SQLite en fichero: varias conexiones reales, escrituras serializadas."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'sportshub.db'}",
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    enable_sqlite_savepoints(engine, immediate=True)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(file_engine):
    return sessionmaker(bind=file_engine, autocommit=False, autoflush=False)
