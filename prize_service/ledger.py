"""Inventory ledger: authoritative stock counts per (agent, product).

Every mutation here is a single UPDATE (or INSERT) whose WHERE clause
carries the guard, so concurrent callers are serialized by the database's
row lock and never act on a stale read. Nothing is cached between calls.
"""
from __future__ import annotations

import datetime as dt
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Optional, Union

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from .config import DB_LOCK_TIMEOUT_MS
from .models import Agent, InventoryRecord, Product, SpinResult

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    pass


class RecordNotFound(LedgerError):
    def __init__(self, agent_id: str, product_id: str, detail: Optional[str] = None):
        self.agent_id = agent_id
        self.product_id = product_id
        super().__init__(detail or f"No inventory for agent={agent_id} product={product_id}")


class InvalidQuantity(LedgerError, ValueError):
    pass


class TransientStoreError(LedgerError):
    """Lock timeout or lost connection; the whole request may be retried."""

    def __init__(self, operation: str, agent_id: str, product_id: Optional[str]):
        self.operation = operation
        self.agent_id = agent_id
        self.product_id = product_id
        super().__init__(f"{operation} failed for agent={agent_id} product={product_id}")


class RejectionReason(str, Enum):
    INSUFFICIENT_STOCK = "insufficient_stock"
    DUPLICATE_ASSIGNMENT = "duplicate_assignment"


@dataclass(frozen=True)
class Rejection:
    reason: RejectionReason
    agent_id: str
    product_id: str
    available: int = 0


@dataclass(frozen=True)
class Reservation:
    agent_id: str
    product_id: str
    product_name: str
    remaining_available: int
    new_distributed: int
    spin_result_id: Optional[int] = None


@dataclass(frozen=True)
class Availability:
    available: bool
    quantity: int
    product_name: Optional[str] = None


@dataclass(frozen=True)
class SpinEntry:
    """Contact details of the player, stored with the win in the same transaction."""

    name: str
    email: str
    location: str
    prize: str
    agent_name: Optional[str] = None


_TRANSIENT_ERRORS = (OperationalError, PoolTimeoutError)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class InventoryLedger:
    def __init__(self, session_factory: Callable[[], Session], lock_timeout_ms: int = DB_LOCK_TIMEOUT_MS):
        self._session_factory = session_factory
        self._lock_timeout_ms = lock_timeout_ms

    @contextmanager
    def _unit_of_work(self, operation: str, agent_id: str, product_id: Optional[str]) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except _TRANSIENT_ERRORS as exc:
            db.rollback()
            logger.error(
                "Datastore error during %s (agent_id=%s, product_id=%s): %s",
                operation,
                agent_id,
                product_id,
                exc,
            )
            raise TransientStoreError(operation, agent_id, product_id) from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _apply_lock_timeout(self, db: Session) -> None:
        if db.get_bind().dialect.name == "postgresql":
            db.execute(text(f"SET LOCAL lock_timeout = {int(self._lock_timeout_ms)}"))

    @staticmethod
    def _find(db: Session, agent_id: str, product_id: str) -> Optional[InventoryRecord]:
        return (
            db.query(InventoryRecord)
            .filter(
                InventoryRecord.agent_id == agent_id,
                InventoryRecord.product_id == product_id,
            )
            .populate_existing()
            .first()
        )

    @staticmethod
    def _guarded_update(db: Session, agent_id: str, product_id: str, *guards, values: dict) -> int:
        return (
            db.query(InventoryRecord)
            .filter(
                InventoryRecord.agent_id == agent_id,
                InventoryRecord.product_id == product_id,
                *guards,
            )
            .update(values, synchronize_session=False)
        )

    # -----------------------------
    # Distribution
    # -----------------------------

    def reserve_unit(
        self,
        agent_id: str,
        product_id: str,
        spin: Optional[SpinEntry] = None,
    ) -> Union[Reservation, Rejection]:
        """Take one unit out of available stock and, if given, log the win.

        The decrement is a single UPDATE guarded by available_quantity > 0;
        the affected row count decides the outcome. The spin result row is
        inserted in the same transaction.
        """
        with self._unit_of_work("reserve_unit", agent_id, product_id) as db:
            self._apply_lock_timeout(db)
            updated = self._guarded_update(
                db,
                agent_id,
                product_id,
                InventoryRecord.available_quantity > 0,
                values={
                    InventoryRecord.available_quantity: InventoryRecord.available_quantity - 1,
                    InventoryRecord.distributed_quantity: InventoryRecord.distributed_quantity + 1,
                    InventoryRecord.last_updated: _utcnow(),
                },
            )

            if updated == 0:
                db.rollback()
                record = self._find(db, agent_id, product_id)
                if record is None:
                    raise RecordNotFound(agent_id, product_id)
                logger.info(
                    "No stock left for agent_id=%s product_id=%s", agent_id, product_id
                )
                return Rejection(
                    reason=RejectionReason.INSUFFICIENT_STOCK,
                    agent_id=agent_id,
                    product_id=product_id,
                    available=record.available_quantity,
                )

            # Read back inside the transaction; the row is still ours
            record = self._find(db, agent_id, product_id)

            spin_result = None
            if spin is not None:
                spin_result = SpinResult(
                    name=spin.name,
                    email=spin.email,
                    location=spin.location,
                    agent_id=agent_id,
                    agent_name=spin.agent_name or record.agent_name,
                    prize=spin.prize,
                    product_id=product_id,
                    is_win=True,
                    created_at=_utcnow(),
                )
                db.add(spin_result)
                db.flush()

            reservation = Reservation(
                agent_id=agent_id,
                product_id=product_id,
                product_name=record.product_name,
                remaining_available=record.available_quantity,
                new_distributed=record.distributed_quantity,
                spin_result_id=spin_result.id if spin_result is not None else None,
            )
            db.commit()

        logger.info(
            "Reserved one %s at agent_id=%s (remaining=%d, distributed=%d)",
            product_id,
            agent_id,
            reservation.remaining_available,
            reservation.new_distributed,
        )
        return reservation

    def check_availability(self, agent_id: str, product_id: str) -> Availability:
        """Advisory read; may already be stale when the caller acts on it."""
        with self._unit_of_work("check_availability", agent_id, product_id) as db:
            record = self._find(db, agent_id, product_id)
            if record is None or record.available_quantity <= 0:
                return Availability(available=False, quantity=0)
            return Availability(
                available=True,
                quantity=record.available_quantity,
                product_name=record.product_name,
            )

    # -----------------------------
    # Admin adjustments
    # -----------------------------

    def assign(self, agent_id: str, product_id: str, quantity: int) -> Union[InventoryRecord, Rejection]:
        if quantity is None or quantity <= 0:
            raise InvalidQuantity("quantity must be > 0")

        with self._unit_of_work("assign", agent_id, product_id) as db:
            agent = db.query(Agent).filter(Agent.agent_id == agent_id).first()
            if agent is None:
                raise RecordNotFound(agent_id, product_id, f"Agent {agent_id} not found")
            product = db.query(Product).filter(Product.id == product_id).first()
            if product is None:
                raise RecordNotFound(agent_id, product_id, f"Product {product_id} not found")

            if self._find(db, agent_id, product_id) is not None:
                return self._duplicate(agent_id, product_id)

            record = InventoryRecord(
                agent_id=agent_id,
                product_id=product_id,
                product_name=product.name,
                agent_name=agent.name,
                location=agent.location,
                total_quantity=quantity,
                available_quantity=quantity,
                distributed_quantity=0,
                last_updated=_utcnow(),
            )
            db.add(record)
            try:
                db.commit()
            except IntegrityError:
                # Lost a race with a concurrent assign for the same pair
                db.rollback()
                return self._duplicate(agent_id, product_id)
            db.refresh(record)
            db.expunge(record)

        logger.info("Assigned %d x %s to agent_id=%s", quantity, product_id, agent_id)
        return record

    @staticmethod
    def _duplicate(agent_id: str, product_id: str) -> Rejection:
        logger.info("Inventory already assigned for agent_id=%s product_id=%s", agent_id, product_id)
        return Rejection(
            reason=RejectionReason.DUPLICATE_ASSIGNMENT,
            agent_id=agent_id,
            product_id=product_id,
        )

    def restock(self, agent_id: str, product_id: str, delta: int) -> InventoryRecord:
        if delta is None or delta <= 0:
            raise InvalidQuantity("restock quantity must be > 0")

        with self._unit_of_work("restock", agent_id, product_id) as db:
            updated = self._guarded_update(
                db,
                agent_id,
                product_id,
                values={
                    InventoryRecord.total_quantity: InventoryRecord.total_quantity + delta,
                    InventoryRecord.available_quantity: InventoryRecord.available_quantity + delta,
                    InventoryRecord.last_updated: _utcnow(),
                },
            )
            if updated == 0:
                raise RecordNotFound(agent_id, product_id)
            db.commit()
            record = self._detached(db, agent_id, product_id)

        logger.info("Restocked %d x %s for agent_id=%s", delta, product_id, agent_id)
        return record

    def adjust(
        self,
        agent_id: str,
        product_id: str,
        new_available: int,
        new_total: Optional[int] = None,
    ) -> InventoryRecord:
        """Manual correction of the counts; distributed is recomputed.

        Last writer wins against concurrent admins, but the statement is a
        single UPDATE so an in-flight reservation is never clobbered halfway.
        """
        if new_available is None or new_available < 0:
            raise InvalidQuantity("available quantity must be >= 0")
        if new_total is not None:
            if new_total < 0:
                raise InvalidQuantity("total quantity must be >= 0")
            if new_available > new_total:
                raise InvalidQuantity("available quantity cannot exceed total quantity")

        with self._unit_of_work("adjust", agent_id, product_id) as db:
            self._apply_lock_timeout(db)
            values = {
                InventoryRecord.available_quantity: new_available,
                InventoryRecord.last_updated: _utcnow(),
            }
            guards = []
            if new_total is not None:
                values[InventoryRecord.total_quantity] = new_total
                values[InventoryRecord.distributed_quantity] = new_total - new_available
            else:
                values[InventoryRecord.distributed_quantity] = InventoryRecord.total_quantity - new_available
                guards.append(InventoryRecord.total_quantity >= new_available)

            updated = self._guarded_update(db, agent_id, product_id, *guards, values=values)
            if updated == 0:
                db.rollback()
                if self._find(db, agent_id, product_id) is None:
                    raise RecordNotFound(agent_id, product_id)
                raise InvalidQuantity("available quantity cannot exceed total quantity")
            db.commit()
            record = self._detached(db, agent_id, product_id)

        logger.info(
            "Adjusted %s for agent_id=%s: total=%d available=%d distributed=%d",
            product_id,
            agent_id,
            record.total_quantity,
            record.available_quantity,
            record.distributed_quantity,
        )
        return record

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        with self._unit_of_work("get_agent", agent_id, None) as db:
            agent = db.query(Agent).filter(Agent.agent_id == agent_id).first()
            if agent is not None:
                db.expunge(agent)
            return agent

    def get_record(self, agent_id: str, product_id: str) -> InventoryRecord:
        with self._unit_of_work("get_record", agent_id, product_id) as db:
            return self._detached(db, agent_id, product_id)

    def _detached(self, db: Session, agent_id: str, product_id: str) -> InventoryRecord:
        record = self._find(db, agent_id, product_id)
        if record is None:
            raise RecordNotFound(agent_id, product_id)
        db.expunge(record)
        return record
