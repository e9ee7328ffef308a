from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import crud
from ..auth import get_current_admin
from ..database import get_db
from ..schemas import ProductCreate, ProductOut, ProductUpdate

router = APIRouter(prefix="/products", tags=["Products"])

_PRODUCT_ERRORS = {
    "duplicate_product_id": (409, "Product ID already exists"),
    "duplicate_product_name": (409, "Product name already exists"),
    "name_required": (400, "Product name is required"),
}


def _raise_product_error(e: ValueError):
    code, detail = _PRODUCT_ERRORS.get(str(e), (400, str(e)))
    raise HTTPException(status_code=code, detail=detail)


@router.post("/", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(
    body: ProductCreate,
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    try:
        return crud.create_product(db, body.model_dump())
    except ValueError as e:
        _raise_product_error(e)
    except IntegrityError:
        # DB-level unique constraint (race conditions)
        db.rollback()
        raise HTTPException(status_code=409, detail="Product already exists")


@router.get("/", response_model=list[ProductOut])
def list_products(
    skip: int = Query(0, ge=0, description="**Skip** number of products"),
    limit: int = Query(100, ge=1, le=1000, description="**Limit** number of products"),
    search: Optional[str] = Query(None, description="**Search** in name or description"),
    db: Session = Depends(get_db),
):
    return crud.get_products(db, skip=skip, limit=limit, search=search)


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: str, db: Session = Depends(get_db)):
    product = crud.get_product(db, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.patch("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: str,
    body: ProductUpdate,
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    update_data = body.model_dump(exclude_none=True)
    try:
        product = crud.update_product(db, product_id, update_data)
    except ValueError as e:
        _raise_product_error(e)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Product name already exists")
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.delete("/{product_id}", response_model=ProductOut)
def delete_product(
    product_id: str,
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """Delete a product and every agent's stock of it."""
    product = crud.delete_product(db, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product
