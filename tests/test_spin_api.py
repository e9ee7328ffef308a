"""HTTP tests for /spin-results."""
from types import SimpleNamespace

import pytest

from prize_service.dependencies import get_ledger
from prize_service.ledger import TransientStoreError
from prize_service.main import app
from prize_service.models import Product


def _spin(client, prize="UMBRELLAS ☂", is_win=True, agent_id="agent_001", email="jane@example.com"):
    return client.post(
        "/spin-results/",
        json={
            "name": "Jane Akinyi",
            "email": email,
            "location": "Nairobi",
            "agent_id": agent_id,
            "prize": prize,
            "is_win": is_win,
        },
    )


@pytest.fixture()
def stocked(ledger, seeded):
    ledger.assign("agent_001", "umbrellas", 2)
    return ledger


class TestSubmitSpin:
    def test_win_takes_stock_and_records_result(self, client, stocked):
        response = _spin(client)

        assert response.status_code == 201
        body = response.json()
        assert body["remaining_available"] == 1
        assert body["distributed_quantity"] == 1
        assert body["product_name"] == "UMBRELLAS"
        assert body["data"]["is_win"] is True
        assert body["data"]["product_id"] == "umbrellas"
        assert body["data"]["agent_name"] == "John Doe"

    def test_no_prize_available_when_depleted(self, client, stocked):
        assert _spin(client).status_code == 201
        assert _spin(client).status_code == 201

        response = _spin(client)

        assert response.status_code == 400
        assert response.json()["message"] == "No prize available"
        record = stocked.get_record("agent_001", "umbrellas")
        assert record.available_quantity == 0
        assert record.distributed_quantity == 2

    def test_try_again_is_recorded_without_touching_stock(self, client, stocked):
        response = _spin(client, prize="TRY AGAIN", is_win=False)

        assert response.status_code == 201
        assert response.json()["data"]["is_win"] is False
        assert stocked.get_record("agent_001", "umbrellas").available_quantity == 2

    def test_unstocked_product_is_not_found(self, client, stocked):
        response = _spin(client, prize="KEY HOLDERS")
        assert response.status_code == 404

    def test_unknown_agent(self, client, stocked):
        response = _spin(client, agent_id="agent_404")
        assert response.status_code == 404

    def test_win_requires_agent(self, client, stocked):
        response = _spin(client, agent_id=None)
        assert response.status_code == 400

    def test_invalid_email(self, client, stocked):
        response = _spin(client, email="not-an-email")
        assert response.status_code == 422

    def test_transient_errors_surface_as_503(self, client, stocked):
        class Unreachable:
            calls = 0

            def get_agent(self, agent_id):
                return SimpleNamespace(agent_id=agent_id, name="John Doe")

            def reserve_unit(self, agent_id, product_id, spin=None):
                Unreachable.calls += 1
                raise TransientStoreError("reserve_unit", agent_id, product_id)

        app.dependency_overrides[get_ledger] = lambda: Unreachable()

        response = _spin(client)

        assert response.status_code == 503
        assert "try again later" in response.json()["message"]
        assert Unreachable.calls == 3
        assert stocked.get_record("agent_001", "umbrellas").available_quantity == 2

    def test_agent_lookup_failure_is_503(self, client, stocked):
        class LostConnection:
            calls = 0

            def get_agent(self, agent_id):
                LostConnection.calls += 1
                raise TransientStoreError("get_agent", agent_id, None)

        app.dependency_overrides[get_ledger] = lambda: LostConnection()

        response = _spin(client)

        assert response.status_code == 503
        assert response.json()["success"] is False
        assert LostConnection.calls == 3

    def test_win_is_charged_to_the_named_product_only(self, client, stocked, session_factory):
        session = session_factory()
        session.add_all([Product(id="winter_cap", name="WINTER CAP"), Product(id="win", name="WIN")])
        session.commit()
        session.close()
        stocked.assign("agent_001", "winter_cap", 1)
        stocked.assign("agent_001", "win", 5)

        response = _spin(client, prize="Winter Cap")

        assert response.status_code == 201
        assert response.json()["data"]["product_id"] == "winter_cap"
        assert response.json()["product_name"] == "WINTER CAP"
        cap = stocked.get_record("agent_001", "winter_cap")
        assert (cap.available_quantity, cap.distributed_quantity) == (0, 1)
        win = stocked.get_record("agent_001", "win")
        assert (win.available_quantity, win.distributed_quantity) == (5, 0)

        assert _spin(client, prize="Winter Cap").json()["message"] == "No prize available"


class TestSpinAdmin:
    def test_list_stats_and_delete(self, client, stocked, admin_headers):
        _spin(client, email="a@example.com")
        _spin(client, prize="TRY AGAIN", is_win=False, email="a@example.com")
        _spin(client, prize="TRY AGAIN", is_win=False, email="b@example.com")

        results = client.get("/spin-results/", headers=admin_headers).json()
        assert len(results) == 3

        stats = client.get("/spin-results/stats", headers=admin_headers).json()
        assert stats["total_spins"] == 3
        assert stats["wins"] == 1
        assert stats["losses"] == 2
        assert stats["unique_users"] == 2
        assert stats["prize_distribution"]["TRY AGAIN"] == 2
        assert stats["wins_by_agent"] == [{"agent_id": "agent_001", "agent_name": "John Doe", "wins": 1}]

        spin_id = results[0]["id"]
        assert client.delete(f"/spin-results/{spin_id}", headers=admin_headers).status_code == 200
        assert client.delete(f"/spin-results/{spin_id}", headers=admin_headers).status_code == 404

        bulk = client.delete("/spin-results/", headers=admin_headers).json()
        assert bulk["deleted"] == 2
        assert client.get("/spin-results/", headers=admin_headers).json() == []

    def test_date_filter(self, client, stocked, admin_headers):
        _spin(client, prize="TRY AGAIN", is_win=False)

        old = client.get(
            "/spin-results/",
            params={"from_date": "2000-01-01", "to_date": "2000-01-31"},
            headers=admin_headers,
        ).json()
        assert old == []

        recent = client.get("/spin-results/", params={"from_date": "2000-01-01"}, headers=admin_headers).json()
        assert len(recent) == 1

    def test_listing_requires_admin(self, client, stocked):
        assert client.get("/spin-results/").status_code in (401, 403)


def test_login_rejects_wrong_password(client):
    response = client.post("/auth/login", json={"username": "admin", "password": "wrong"})
    assert response.status_code == 401


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"
