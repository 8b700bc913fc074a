import pytest
from datetime import date
from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from nashra.core.config import Settings
from nashra.core.security import create_access_token
from nashra.container import Pipeline
from nashra.db.session import configure_engine
from nashra.main import create_app
from nashra.models import Base, Company, User
from nashra.services.alert_service import AlertEvaluator
from nashra.services.providers import (SimulatedIndexSource, SimulatedNewsSource,
                                       SimulatedStockSource)
from nashra.services.refresh_service import DataRefreshService
from nashra.services.runner import RefreshRunner

TRADE_DATE = date(2025, 6, 1)

# Use in-memory SQLite for testing
SQLALCHEMY_DATABASE_URL = "sqlite://"


@pytest.fixture(scope="function")
def engine():
    engine = configure_engine(create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    ))
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def companies(db):
    rows = [
        Company(ticker="2222.SR", name_en="Saudi Aramco", market="saudi", sector="Energy"),
        Company(ticker="1120.SR", name_en="Al Rajhi Bank", market="saudi", sector="Financials"),
    ]
    db.add_all(rows)
    db.commit()
    return rows


@pytest.fixture
def cache():
    cache = MagicMock()
    cache.enabled = True
    return cache


@pytest.fixture
def make_service(session_factory, cache):
    created = []

    def _make(stock_source=None, news_source=None, index_source=None, **kwargs):
        kwargs.setdefault("cache", cache)
        kwargs.setdefault("today", lambda: TRADE_DATE)
        service = DataRefreshService(
            session_factory=session_factory,
            stock_source=stock_source or SimulatedStockSource(today=lambda: TRADE_DATE),
            news_source=news_source or SimulatedNewsSource(),
            index_source=index_source or SimulatedIndexSource(today=lambda: TRADE_DATE),
            **kwargs,
        )
        created.append(service)
        return service

    yield _make
    for service in created:
        service.close()


@pytest.fixture
def settings():
    return Settings(CRON_SECRET="cron-secret", REDIS_URL=None, _env_file=None)


@pytest.fixture
def pipeline(settings, session_factory, cache, make_service):
    service = make_service()
    return Pipeline(
        settings=settings,
        session_factory=session_factory,
        cache=cache,
        refresh_service=service,
        runner=RefreshRunner(service, timeout_seconds=30),
        alert_evaluator=AlertEvaluator(session_factory),
    )


@pytest.fixture(scope="function")
def client(pipeline):
    app = create_app(pipeline=pipeline, enable_scheduler=False)
    with TestClient(app) as c:
        yield c


def _token(role: str, email: str) -> str:
    return create_access_token({"sub": "1", "email": email, "role": role, "tier": "free"})


@pytest.fixture
def admin_token():
    return _token("admin", "admin@nashra-iq.com")


@pytest.fixture
def user_token():
    return _token("registered", "demo@nashra-iq.com")


@pytest.fixture
def user(db):
    user = User(email="alice@example.com", full_name="Alice", role="registered")
    db.add(user)
    db.commit()
    return user
