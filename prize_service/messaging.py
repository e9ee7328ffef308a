from __future__ import annotations

import datetime as dt
import json
import logging

import pika

from .config import EVENTS_ENABLED, EVENTS_EXCHANGE, RABBITMQ_URL

logger = logging.getLogger(__name__)


def _connect() -> pika.BlockingConnection:
    params = pika.URLParameters(RABBITMQ_URL)
    params.heartbeat = 30
    params.blocked_connection_timeout = 30
    params.socket_timeout = 5
    return pika.BlockingConnection(params)


def event_payload(event: str, **fields) -> dict:
    return {
        "event": event,
        "occurred_at": dt.datetime.now(dt.timezone.utc).isoformat().replace("+00:00", "Z"),
        **fields,
    }


def publish_event(routing_key: str, payload: dict) -> None:
    if not EVENTS_ENABLED:
        return
    connection = _connect()
    try:
        ch = connection.channel()
        ch.exchange_declare(exchange=EVENTS_EXCHANGE, exchange_type="topic", durable=True)
        body = json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")
        ch.basic_publish(
            exchange=EVENTS_EXCHANGE,
            routing_key=routing_key,
            body=body,
            properties=pika.BasicProperties(
                content_type="application/json",
                delivery_mode=2,
            ),
        )
    finally:
        connection.close()


def try_publish_event(routing_key: str, payload: dict) -> bool:
    """Publish after the database commit; a broker outage never fails the request."""
    try:
        publish_event(routing_key, payload)
        return True
    except Exception:
        logger.exception("Failed to publish %s event", routing_key)
        return False


def publish_reservation_events(reservation, low_stock_threshold: int) -> None:
    fields = {
        "agent_id": reservation.agent_id,
        "product_id": reservation.product_id,
        "product_name": reservation.product_name,
        "remaining_available": reservation.remaining_available,
        "distributed_quantity": reservation.new_distributed,
    }
    try_publish_event("prize.won", event_payload("prize.won", spin_result_id=reservation.spin_result_id, **fields))

    # One unit at a time: equality marks the single crossing of the threshold
    if reservation.remaining_available == 0:
        try_publish_event("inventory.depleted", event_payload("inventory.depleted", **fields))
    elif reservation.remaining_available == low_stock_threshold:
        try_publish_event(
            "inventory.low",
            event_payload("inventory.low", threshold=low_stock_threshold, **fields),
        )


def publish_stock_level_events(record, low_stock_threshold: int) -> None:
    """Report the stock level left by an admin adjustment, which may jump past the threshold."""
    fields = {
        "agent_id": record.agent_id,
        "product_id": record.product_id,
        "product_name": record.product_name,
        "remaining_available": record.available_quantity,
        "distributed_quantity": record.distributed_quantity,
    }
    if record.available_quantity == 0:
        try_publish_event("inventory.depleted", event_payload("inventory.depleted", **fields))
    elif record.available_quantity <= low_stock_threshold:
        try_publish_event(
            "inventory.low",
            event_payload("inventory.low", threshold=low_stock_threshold, **fields),
        )
