import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CORS_ORIGINS, LOG_LEVEL
from .database import engine
from .models import Base
from .routers import agent_router, auth_router, inventory_router, product_router, spin_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(levelname)s - [%(name)s] - %(message)s",
)

app = FastAPI(
    title="Prize Wheel Service",
    description="Spin-the-wheel promotions with per-agent prize inventory",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router.router)
app.include_router(agent_router.router)
app.include_router(product_router.router)
app.include_router(inventory_router.router)
app.include_router(spin_router.router)


@app.on_event("startup")
def _startup() -> None:
    # Create database tables
    Base.metadata.create_all(bind=engine)


@app.get("/")
def root():
    return {
        "service": "Prize Wheel Service",
        "status": "running",
        "version": "1.0.0",
    }


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "service": "prize-service",
    }
