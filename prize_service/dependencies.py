from .database import SessionLocal
from .ledger import InventoryLedger


def get_ledger() -> InventoryLedger:
    # Each unit of work checks out its own session from the factory
    return InventoryLedger(SessionLocal)
