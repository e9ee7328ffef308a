from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

_ID_PATTERN = r"^[A-Za-z0-9_\-]+$"


# -----------------------------
# Agents & products
# -----------------------------

class AgentBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    location: str = Field(..., min_length=1, max_length=100)


class AgentCreate(AgentBase):
    agent_id: str = Field(..., min_length=1, max_length=64, pattern=_ID_PATTERN)


class AgentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    location: Optional[str] = Field(None, min_length=1, max_length=100)


class AgentOut(AgentBase):
    agent_id: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ProductCreate(BaseModel):
    id: str = Field(..., min_length=1, max_length=64, pattern=_ID_PATTERN)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None


class ProductOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None

    model_config = {"from_attributes": True}


# -----------------------------
# Inventory ledger requests
# -----------------------------

class AssignRequest(BaseModel):
    agent_id: str = Field(..., min_length=1, max_length=64)
    product_id: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(..., gt=0, description="Initial quantity allocated to the agent")


class RestockRequest(BaseModel):
    agent_id: str = Field(..., min_length=1, max_length=64)
    product_id: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(..., gt=0, description="Units added to total and available")


class AdjustRequest(BaseModel):
    available_quantity: int = Field(..., ge=0)
    total_quantity: Optional[int] = Field(None, ge=0)


class ReserveRequest(BaseModel):
    agent_id: str = Field(..., min_length=1, max_length=64)
    product_id: str = Field(..., min_length=1, max_length=64)


class InventoryOut(BaseModel):
    id: int
    agent_id: str
    agent_name: str
    location: str
    product_id: str
    product_name: str
    total_quantity: int
    available_quantity: int
    distributed_quantity: int
    last_updated: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AvailabilityOut(BaseModel):
    available: bool
    quantity: int
    product_name: Optional[str] = None


class ReservationOut(BaseModel):
    success: bool = True
    agent_id: str
    product_id: str
    product_name: str
    remaining_available: int
    distributed_quantity: int


# -----------------------------
# Spin results
# -----------------------------

class SpinSubmission(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    location: str = Field(..., min_length=1, max_length=100)
    agent_id: Optional[str] = Field(None, min_length=1, max_length=64)
    prize: str = Field(..., min_length=1, max_length=100)
    is_win: bool

    @field_validator("name", "location", "prize")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class SpinResultOut(BaseModel):
    id: int
    name: str
    email: str
    location: str
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None
    prize: str
    product_id: Optional[str] = None
    is_win: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SpinSubmissionOut(BaseModel):
    success: bool = True
    message: str
    data: SpinResultOut
    remaining_available: Optional[int] = None
    distributed_quantity: Optional[int] = None
    product_name: Optional[str] = None


# -----------------------------
# Auth
# -----------------------------

class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


