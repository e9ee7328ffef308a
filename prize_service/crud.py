import datetime as dt
from typing import Optional

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from .models import Agent, InventoryRecord, Product, SpinResult


# -----------------------------
# Agents
# -----------------------------

def create_agent(db: Session, agent_data: dict) -> Agent:
    agent_id = (agent_data.get("agent_id") or "").strip()
    if not agent_id:
        raise ValueError("agent_id_required")
    if get_agent(db, agent_id):
        raise ValueError("duplicate_agent_id")

    db_agent = Agent(**{**agent_data, "agent_id": agent_id})
    db.add(db_agent)
    db.commit()
    db.refresh(db_agent)
    return db_agent


def get_agent(db: Session, agent_id: str) -> Optional[Agent]:
    return db.query(Agent).filter(Agent.agent_id == agent_id).first()


def get_agents(db: Session, skip: int = 0, limit: int = 100):
    return db.query(Agent).order_by(Agent.name).offset(skip).limit(limit).all()


def update_agent(db: Session, agent_id: str, update_data: dict) -> Optional[Agent]:
    db_agent = get_agent(db, agent_id)
    if not db_agent:
        return None

    changes = {k: v for k, v in update_data.items() if v is not None}
    for key, value in changes.items():
        setattr(db_agent, key, value)

    # Keep the denormalized display fields on inventory rows in step
    inventory_changes = {}
    if "name" in changes:
        inventory_changes[InventoryRecord.agent_name] = changes["name"]
    if "location" in changes:
        inventory_changes[InventoryRecord.location] = changes["location"]
    if inventory_changes:
        db.query(InventoryRecord).filter(InventoryRecord.agent_id == agent_id).update(
            inventory_changes, synchronize_session=False
        )

    db.commit()
    db.refresh(db_agent)
    return db_agent


def delete_agent(db: Session, agent_id: str) -> Optional[Agent]:
    """Delete an agent together with its inventory records."""
    db_agent = get_agent(db, agent_id)
    if db_agent:
        db.delete(db_agent)
        db.commit()
    return db_agent


# -----------------------------
# Products
# -----------------------------

def get_product_by_name(db: Session, name: str) -> Optional[Product]:
    normalized = (name or "").strip()
    if not normalized:
        return None
    return (
        db.query(Product)
        .filter(func.lower(Product.name) == normalized.lower())
        .first()
    )


def create_product(db: Session, product_data: dict) -> Product:
    # Enforce unique product name (case-insensitive)
    name = (product_data.get("name") or "").strip()
    if not name:
        raise ValueError("name_required")
    if get_product(db, product_data["id"]):
        raise ValueError("duplicate_product_id")
    if get_product_by_name(db, name):
        raise ValueError("duplicate_product_name")

    db_product = Product(**{**product_data, "name": name})
    db.add(db_product)
    db.commit()
    db.refresh(db_product)
    return db_product


def get_product(db: Session, product_id: str) -> Optional[Product]:
    return db.query(Product).filter(Product.id == product_id).first()


def get_products(db: Session, skip: int = 0, limit: int = 100, search: str = None):
    query = db.query(Product)
    if search:
        search_pattern = f"%{search}%"
        query = query.filter(
            or_(
                Product.name.ilike(search_pattern),
                Product.description.ilike(search_pattern),
            )
        )
    return query.order_by(Product.name).offset(skip).limit(limit).all()


def update_product(db: Session, product_id: str, update_data: dict) -> Optional[Product]:
    db_product = get_product(db, product_id)
    if not db_product:
        return None

    # Enforce unique name on rename (case-insensitive)
    if update_data.get("name") is not None:
        new_name = str(update_data["name"]).strip()
        if not new_name:
            raise ValueError("name_required")
        existing = get_product_by_name(db, new_name)
        if existing and existing.id != product_id:
            raise ValueError("duplicate_product_name")
        update_data["name"] = new_name
        db.query(InventoryRecord).filter(InventoryRecord.product_id == product_id).update(
            {InventoryRecord.product_name: new_name}, synchronize_session=False
        )

    for key, value in update_data.items():
        if value is not None:
            setattr(db_product, key, value)
    db.commit()
    db.refresh(db_product)
    return db_product


def delete_product(db: Session, product_id: str) -> Optional[Product]:
    db_product = get_product(db, product_id)
    if db_product:
        db.delete(db_product)
        db.commit()
    return db_product


# -----------------------------
# Inventory (read-only)
# -----------------------------

def get_inventory(
    db: Session,
    agent_id: Optional[str] = None,
    product_id: Optional[str] = None,
    available_only: bool = False,
):
    query = db.query(InventoryRecord)
    if agent_id:
        query = query.filter(InventoryRecord.agent_id == agent_id)
    if product_id:
        query = query.filter(InventoryRecord.product_id == product_id)
    if available_only:
        query = query.filter(InventoryRecord.available_quantity > 0)
    return query.order_by(InventoryRecord.created_at.desc(), InventoryRecord.id.desc()).all()


def _out_of_stock_count():
    return func.coalesce(
        func.sum(case((InventoryRecord.available_quantity == 0, 1), else_=0)), 0
    )


def inventory_summary(db: Session, agent_id: Optional[str] = None) -> dict:
    totals = db.query(
        func.count(InventoryRecord.id),
        func.coalesce(func.sum(InventoryRecord.total_quantity), 0),
        func.coalesce(func.sum(InventoryRecord.available_quantity), 0),
        func.coalesce(func.sum(InventoryRecord.distributed_quantity), 0),
        _out_of_stock_count(),
    )
    per_product = db.query(
        InventoryRecord.product_id,
        InventoryRecord.product_name,
        func.sum(InventoryRecord.total_quantity),
        func.sum(InventoryRecord.available_quantity),
        func.sum(InventoryRecord.distributed_quantity),
        func.count(InventoryRecord.id),
    )
    if agent_id:
        totals = totals.filter(InventoryRecord.agent_id == agent_id)
        per_product = per_product.filter(InventoryRecord.agent_id == agent_id)

    count, total, available, distributed, out_of_stock = totals.one()
    rows = (
        per_product.group_by(InventoryRecord.product_id, InventoryRecord.product_name)
        .order_by(InventoryRecord.product_name)
        .all()
    )
    return {
        "total_products": int(count),
        "total_quantity": int(total),
        "available_quantity": int(available),
        "distributed_quantity": int(distributed),
        "out_of_stock_products": int(out_of_stock),
        "products": [
            {
                "product_id": pid,
                "product_name": pname,
                "total_quantity": int(p_total),
                "available_quantity": int(p_available),
                "distributed_quantity": int(p_distributed),
                "locations": int(p_count),
            }
            for pid, pname, p_total, p_available, p_distributed, p_count in rows
        ],
    }


def _inventory_row(record: InventoryRecord) -> dict:
    return {
        "product_id": record.product_id,
        "product_name": record.product_name,
        "agent_id": record.agent_id,
        "agent_name": record.agent_name,
        "location": record.location,
        "total_quantity": record.total_quantity,
        "available_quantity": record.available_quantity,
        "distributed_quantity": record.distributed_quantity,
    }


def low_stock_report(db: Session, threshold: int, agent_id: Optional[str] = None) -> dict:
    query = db.query(InventoryRecord)
    if agent_id:
        query = query.filter(InventoryRecord.agent_id == agent_id)

    low = (
        query.filter(
            InventoryRecord.available_quantity > 0,
            InventoryRecord.available_quantity <= threshold,
        )
        .order_by(InventoryRecord.available_quantity, InventoryRecord.product_name)
        .all()
    )
    out = (
        query.filter(InventoryRecord.available_quantity == 0)
        .order_by(InventoryRecord.product_name)
        .all()
    )

    low_items = []
    for record in low:
        item = _inventory_row(record)
        item["stock_percentage"] = (
            round(record.available_quantity / record.total_quantity * 100, 2)
            if record.total_quantity
            else 0.0
        )
        low_items.append(item)

    return {
        "threshold": threshold,
        "low_stock_items": low_items,
        "out_of_stock_items": [_inventory_row(r) for r in out],
        "summary": {
            "low_stock_count": len(low),
            "out_of_stock_count": len(out),
            "total_affected_products": len(low) + len(out),
        },
    }


def prize_distribution(
    db: Session,
    agent_id: Optional[str] = None,
    product_id: Optional[str] = None,
) -> dict:
    query = db.query(InventoryRecord)
    if agent_id:
        query = query.filter(InventoryRecord.agent_id == agent_id)
    if product_id:
        query = query.filter(InventoryRecord.product_id == product_id)
    records = query.order_by(InventoryRecord.product_name, InventoryRecord.agent_name).all()

    products: dict[str, dict] = {}
    for record in records:
        entry = products.setdefault(
            record.product_id,
            {
                "product_id": record.product_id,
                "product_name": record.product_name,
                "total_assigned": 0,
                "total_distributed": 0,
                "remaining_inventory": 0,
                "agent_count": 0,
                "out_of_stock_agents": 0,
                "agents": [],
            },
        )
        entry["total_assigned"] += record.total_quantity
        entry["total_distributed"] += record.distributed_quantity
        entry["remaining_inventory"] += record.available_quantity
        entry["agent_count"] += 1
        if record.available_quantity == 0:
            entry["out_of_stock_agents"] += 1
        entry["agents"].append(
            {
                "agent_id": record.agent_id,
                "agent_name": record.agent_name,
                "location": record.location,
                "assigned": record.total_quantity,
                "distributed": record.distributed_quantity,
                "remaining": record.available_quantity,
            }
        )

    product_list = list(products.values())
    return {
        "summary": {
            "total_products": len(product_list),
            "total_agents": len({r.agent_id for r in records}),
            "total_assigned": sum(p["total_assigned"] for p in product_list),
            "total_distributed": sum(p["total_distributed"] for p in product_list),
            "total_remaining": sum(p["remaining_inventory"] for p in product_list),
            "out_of_stock_count": sum(p["out_of_stock_agents"] for p in product_list),
        },
        "products": product_list,
    }


def current_wheel(db: Session, agent_id: str) -> dict:
    """Which products the wheel should show for an agent right now."""
    records = (
        db.query(InventoryRecord)
        .filter(InventoryRecord.agent_id == agent_id)
        .order_by(InventoryRecord.product_name)
        .all()
    )
    available_products = [
        {
            "product_id": r.product_id,
            "product_name": r.product_name,
            "available_quantity": r.available_quantity,
            "distributed_quantity": r.distributed_quantity,
            "total_quantity": r.total_quantity,
            "should_show_on_wheel": r.available_quantity > 0,
        }
        for r in records
    ]
    win_sectors = sum(1 for p in available_products if p["should_show_on_wheel"])
    # At least two "Try Again" sectors
    try_again_sectors = max(2, win_sectors)
    total_sectors = win_sectors + try_again_sectors
    return {
        "agent_id": agent_id,
        "available_products": available_products,
        "wheel_configuration": {
            "win_sectors": win_sectors,
            "try_again_sectors": try_again_sectors,
            "total_sectors": total_sectors,
            "win_percentage": round(win_sectors / total_sectors * 100) if total_sectors else 0,
        },
    }


# -----------------------------
# Spin results
# -----------------------------

def create_spin_result(db: Session, spin_data: dict) -> SpinResult:
    db_spin = SpinResult(**spin_data, created_at=dt.datetime.now(dt.timezone.utc))
    db.add(db_spin)
    db.commit()
    db.refresh(db_spin)
    return db_spin


def get_spin_result(db: Session, spin_id: int) -> Optional[SpinResult]:
    return db.query(SpinResult).filter(SpinResult.id == spin_id).first()


def get_spin_results(
    db: Session,
    from_date: Optional[dt.date] = None,
    to_date: Optional[dt.date] = None,
    skip: int = 0,
    limit: int = 1000,
):
    query = db.query(SpinResult)
    if from_date:
        start = dt.datetime.combine(from_date, dt.time.min, tzinfo=dt.timezone.utc)
        query = query.filter(SpinResult.created_at >= start)
    if to_date:
        end = dt.datetime.combine(to_date + dt.timedelta(days=1), dt.time.min, tzinfo=dt.timezone.utc)
        query = query.filter(SpinResult.created_at < end)
    return (
        query.order_by(SpinResult.created_at.desc(), SpinResult.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def delete_spin_result(db: Session, spin_id: int) -> Optional[SpinResult]:
    db_spin = get_spin_result(db, spin_id)
    if db_spin:
        db.delete(db_spin)
        db.commit()
    return db_spin


def delete_all_spin_results(db: Session) -> int:
    deleted = db.query(SpinResult).delete(synchronize_session=False)
    db.commit()
    return int(deleted or 0)


def spin_stats(db: Session) -> dict:
    total = db.query(func.count(SpinResult.id)).scalar() or 0
    wins = db.query(func.count(SpinResult.id)).filter(SpinResult.is_win.is_(True)).scalar() or 0
    unique_users = db.query(func.count(func.distinct(SpinResult.email))).scalar() or 0

    prize_rows = (
        db.query(SpinResult.prize, func.count(SpinResult.id))
        .group_by(SpinResult.prize)
        .order_by(func.count(SpinResult.id).desc())
        .all()
    )
    agent_rows = (
        db.query(SpinResult.agent_id, SpinResult.agent_name, func.count(SpinResult.id))
        .filter(SpinResult.is_win.is_(True))
        .group_by(SpinResult.agent_id, SpinResult.agent_name)
        .order_by(func.count(SpinResult.id).desc())
        .all()
    )
    return {
        "total_spins": int(total),
        "wins": int(wins),
        "losses": int(total) - int(wins),
        "unique_users": int(unique_users),
        "prize_distribution": {prize: int(count) for prize, count in prize_rows},
        "wins_by_agent": [
            {"agent_id": aid, "agent_name": aname, "wins": int(count)}
            for aid, aname, count in agent_rows
        ],
    }
