import uuid
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from sqlmodel import col, select

from bnrm.api.deps import SessionDep, StaffUser
from bnrm.models import WorkflowDefinition, WorkflowDefinitionPublic
from bnrm.workflows import sync
from bnrm.workflows.sync import AutoSyncResult, SyncStatus, WorkflowChanges

router = APIRouter(prefix="/workflows", tags=["workflows"])


class SyncResult(BaseModel):
    synced: list[str]


def _get_workflow(session: SessionDep, workflow_id: uuid.UUID) -> WorkflowDefinition:
    workflow = session.get(WorkflowDefinition, workflow_id)
    if not workflow:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return workflow


@router.get("/", response_model=list[WorkflowDefinitionPublic])
def read_workflows(session: SessionDep, current_user: StaffUser, module: str | None = None) -> Any:
    statement = select(WorkflowDefinition)
    if module:
        statement = statement.where(WorkflowDefinition.module == module)
    return session.exec(statement.order_by(col(WorkflowDefinition.name))).all()


@router.get("/sync-status", response_model=SyncStatus)
def read_sync_status(session: SessionDep, current_user: StaffUser) -> Any:
    return sync.check_sync_status(session)


@router.post("/sync", response_model=SyncResult)
def sync_workflows(session: SessionDep, current_user: StaffUser) -> Any:
    """
    Create the predefined workflows that are missing from the database.
    """
    return SyncResult(synced=sync.sync_all_workflows(session))


@router.post("/auto-sync", response_model=AutoSyncResult)
def auto_sync_workflows(session: SessionDep, current_user: StaffUser) -> Any:
    return sync.auto_sync(session, user_id=current_user.id)


@router.get("/{workflow_id}/changes", response_model=WorkflowChanges)
def read_workflow_changes(session: SessionDep, current_user: StaffUser, workflow_id: uuid.UUID) -> Any:
    return sync.detect_changes(session, _get_workflow(session, workflow_id))


@router.get("/{workflow_id}/export")
def export_workflow(session: SessionDep, current_user: StaffUser, workflow_id: uuid.UUID) -> Any:
    return sync.export_workflow(session, _get_workflow(session, workflow_id))
