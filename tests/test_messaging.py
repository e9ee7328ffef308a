from types import SimpleNamespace

from prize_service import messaging
from prize_service.ledger import Reservation


def _reservation(remaining):
    return Reservation(
        agent_id="agent_001",
        product_id="umbrellas",
        product_name="UMBRELLAS",
        remaining_available=remaining,
        new_distributed=10 - remaining,
        spin_result_id=7,
    )


def _capture(monkeypatch):
    published = []
    monkeypatch.setattr(messaging, "publish_event", lambda key, payload: published.append((key, payload)))
    return published


def test_win_event(monkeypatch):
    published = _capture(monkeypatch)

    messaging.publish_reservation_events(_reservation(8), low_stock_threshold=5)

    assert [key for key, _ in published] == ["prize.won"]
    payload = published[0][1]
    assert payload["event"] == "prize.won"
    assert payload["spin_result_id"] == 7
    assert payload["remaining_available"] == 8
    assert payload["occurred_at"].endswith("Z")


def test_low_and_depleted_events(monkeypatch):
    published = _capture(monkeypatch)

    messaging.publish_reservation_events(_reservation(5), low_stock_threshold=5)
    messaging.publish_reservation_events(_reservation(0), low_stock_threshold=5)

    assert [key for key, _ in published] == [
        "prize.won",
        "inventory.low",
        "prize.won",
        "inventory.depleted",
    ]


def test_broker_failure_is_swallowed(monkeypatch):
    def unreachable(key, payload):
        raise ConnectionError("broker down")

    monkeypatch.setattr(messaging, "publish_event", unreachable)

    assert messaging.try_publish_event("prize.won", {"event": "prize.won"}) is False


def _record(available, total=20):
    return SimpleNamespace(
        agent_id="agent_001",
        product_id="umbrellas",
        product_name="UMBRELLAS",
        available_quantity=available,
        distributed_quantity=total - available,
    )


def test_adjustment_below_threshold_reports_low_stock(monkeypatch):
    published = _capture(monkeypatch)

    messaging.publish_stock_level_events(_record(2), low_stock_threshold=5)
    messaging.publish_stock_level_events(_record(0), low_stock_threshold=5)
    messaging.publish_stock_level_events(_record(12), low_stock_threshold=5)

    assert [key for key, _ in published] == ["inventory.low", "inventory.depleted"]
    assert published[0][1]["remaining_available"] == 2
    assert published[0][1]["threshold"] == 5


def test_adjust_endpoint_publishes_low_stock(monkeypatch, client, seeded, admin_headers, ledger):
    published = _capture(monkeypatch)
    ledger.assign("agent_001", "umbrellas", 20)

    response = client.patch(
        "/inventory/agent_001/umbrellas",
        json={"available_quantity": 3},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert [key for key, _ in published] == ["inventory.low"]
    assert published[0][1]["distributed_quantity"] == 17
