from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class Agent(Base):
    __tablename__ = "agents"

    agent_id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)
    location = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    inventory = relationship(
        "InventoryRecord",
        back_populates="agent",
        cascade="all, delete-orphan",
    )


class Product(Base):
    __tablename__ = "products"

    id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False, unique=True, index=True)
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    inventory = relationship(
        "InventoryRecord",
        back_populates="product",
        cascade="all, delete-orphan",
    )


class InventoryRecord(Base):
    """Stock allocated to one agent for one product.

    total_quantity == available_quantity + distributed_quantity holds after
    every mutation; the database enforces it as well.
    """

    __tablename__ = "product_inventory"
    __table_args__ = (
        UniqueConstraint("agent_id", "product_id", name="uq_inventory_agent_product"),
        CheckConstraint("available_quantity >= 0", name="ck_inventory_available_non_negative"),
        CheckConstraint("distributed_quantity >= 0", name="ck_inventory_distributed_non_negative"),
        CheckConstraint(
            "total_quantity = available_quantity + distributed_quantity",
            name="ck_inventory_balanced",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    agent_id = Column(
        String(64), ForeignKey("agents.agent_id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(
        String(64), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_name = Column(String(100), nullable=False)
    agent_name = Column(String(100), nullable=False)
    location = Column(String(100), nullable=False)
    total_quantity = Column(Integer, nullable=False, default=0)
    available_quantity = Column(Integer, nullable=False, default=0, index=True)
    distributed_quantity = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    agent = relationship("Agent", back_populates="inventory")
    product = relationship("Product", back_populates="inventory")


class SpinResult(Base):
    """Append-only record of one spin of the wheel."""

    __tablename__ = "spin_results"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    location = Column(String(100), nullable=False)
    agent_id = Column(String(64), index=True)
    agent_name = Column(String(100))
    prize = Column(String(100), nullable=False)
    product_id = Column(String(64), index=True)
    is_win = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
