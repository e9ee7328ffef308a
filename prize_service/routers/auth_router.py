from fastapi import APIRouter, HTTPException, status

from ..auth import authenticate_admin, create_access_token
from ..schemas import LoginRequest, Token

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/login", response_model=Token)
def login(body: LoginRequest):
    if not authenticate_admin(body.username, body.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = create_access_token({"sub": body.username, "is_admin": True})
    return {"access_token": token, "token_type": "bearer"}
