import os

# Configure the service before any prize_service module reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite:///./prize_service_test.db")
os.environ["EVENTS_ENABLED"] = "false"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "admin"
os.environ["RESERVE_RETRY_DELAY"] = "0"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from prize_service.database import build_engine, get_db
from prize_service.dependencies import get_ledger
from prize_service.ledger import InventoryLedger
from prize_service.main import app
from prize_service.models import Agent, Base, Product


@pytest.fixture()
def engine(tmp_path):
    db_engine = build_engine(f"sqlite:///{tmp_path / 'prizes.db'}")
    Base.metadata.create_all(bind=db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def ledger(session_factory):
    return InventoryLedger(session_factory)


@pytest.fixture()
def seeded(session_factory):
    """Two agents and the three standard wheel products."""
    session = session_factory()
    session.add_all(
        [
            Agent(agent_id="agent_001", name="John Doe", location="Nairobi"),
            Agent(agent_id="agent_002", name="Amina Wanjiru", location="Mombasa"),
            Product(id="water_bottles", name="WATER BOTTLES"),
            Product(id="key_holders", name="KEY HOLDERS"),
            Product(id="umbrellas", name="UMBRELLAS"),
        ]
    )
    session.commit()
    session.close()


@pytest.fixture()
def client(session_factory, ledger):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_ledger] = lambda: ledger
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def admin_headers(client):
    response = client.post("/auth/login", json={"username": "admin", "password": "admin"})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
