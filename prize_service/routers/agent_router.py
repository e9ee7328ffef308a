from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import crud
from ..auth import get_current_admin
from ..database import get_db
from ..schemas import AgentCreate, AgentOut, AgentUpdate

router = APIRouter(prefix="/agents", tags=["Agents"])


@router.get("/", response_model=list[AgentOut])
def list_agents(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    return crud.get_agents(db, skip=skip, limit=limit)


@router.get("/{agent_id}", response_model=AgentOut)
def get_agent(agent_id: str, db: Session = Depends(get_db)):
    agent = crud.get_agent(db, agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")
    return agent


@router.post("/", response_model=AgentOut, status_code=status.HTTP_201_CREATED)
def create_agent(
    body: AgentCreate,
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    try:
        return crud.create_agent(db, body.model_dump())
    except ValueError as e:
        if str(e) == "duplicate_agent_id":
            raise HTTPException(status_code=409, detail="Agent ID already exists")
        raise HTTPException(status_code=400, detail=str(e))
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Agent ID already exists")


@router.patch("/{agent_id}", response_model=AgentOut)
def update_agent(
    agent_id: str,
    body: AgentUpdate,
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    update_data = body.model_dump(exclude_none=True)
    if not update_data:
        raise HTTPException(status_code=400, detail="No fields to update")
    agent = crud.update_agent(db, agent_id, update_data)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")
    return agent


@router.delete("/{agent_id}", response_model=AgentOut)
def delete_agent(
    agent_id: str,
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    agent = crud.delete_agent(db, agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="Agent not found")
    return agent
