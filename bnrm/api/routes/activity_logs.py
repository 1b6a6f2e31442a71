import uuid
from typing import Any

from fastapi import APIRouter
from sqlmodel import col, func, select

from bnrm.api.deps import SessionDep, StaffUser
from bnrm.models import ActivityLog, ActivityLogsPublic

router = APIRouter(prefix="/activity-logs", tags=["activity-logs"])


@router.get("/", response_model=ActivityLogsPublic)
def read_activity_logs(
    session: SessionDep,
    current_user: StaffUser,
    resource_type: str | None = None,
    action: str | None = None,
    user_id: uuid.UUID | None = None,
    skip: int = 0,
    limit: int = 100,
) -> Any:
    """
    Audit trail, newest first.
    """
    filters = []
    if resource_type:
        filters.append(ActivityLog.resource_type == resource_type)
    if action:
        filters.append(ActivityLog.action == action)
    if user_id:
        filters.append(ActivityLog.user_id == user_id)

    count = session.exec(select(func.count()).select_from(ActivityLog).where(*filters)).one()
    logs = session.exec(
        select(ActivityLog)
        .where(*filters)
        .order_by(col(ActivityLog.created_at).desc())
        .offset(skip)
        .limit(limit)
    ).all()
    return ActivityLogsPublic(data=logs, count=count)
