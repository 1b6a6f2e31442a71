import uuid
from typing import Any

from fastapi import APIRouter, HTTPException
from sqlmodel import col, select

from bnrm import crud
from bnrm.api.deps import CurrentUser, SessionDep, StaffUser
from bnrm.models import (
    BnrmService,
    BnrmServiceCreate,
    BnrmServicePublic,
    DailyPassUsagePublic,
    ServiceRegistrationCreate,
    ServiceRegistrationPublic,
)
from bnrm.services import subscriptions
from bnrm.services.subscriptions import ExpiryCheckResult

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("/services", response_model=list[BnrmServicePublic])
def read_services(session: SessionDep, category: str | None = None) -> Any:
    statement = select(BnrmService).where(BnrmService.is_active == True)  # noqa: E712
    if category:
        statement = statement.where(BnrmService.category == category)
    return session.exec(statement.order_by(col(BnrmService.name))).all()


@router.post("/services", response_model=BnrmServicePublic)
def create_service(*, session: SessionDep, current_user: StaffUser, service_in: BnrmServiceCreate) -> Any:
    if session.exec(select(BnrmService).where(BnrmService.code == service_in.code)).first():
        raise HTTPException(status_code=409, detail="A service with this code already exists")
    service = BnrmService.model_validate(service_in)
    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@router.post("/registrations", response_model=ServiceRegistrationPublic)
def create_registration(
    *, session: SessionDep, current_user: CurrentUser, registration_in: ServiceRegistrationCreate
) -> Any:
    """
    Register for a service. Free services are active immediately; paid ones
    stay pending until the checkout completes.
    """
    try:
        return subscriptions.register_service(
            session=session, user=current_user, registration_in=registration_in
        )
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/registrations", response_model=list[ServiceRegistrationPublic])
def read_registrations(session: SessionDep, current_user: CurrentUser) -> Any:
    return subscriptions.get_user_registrations(session=session, user_id=current_user.id)


@router.post("/daily-pass/{service_id}", response_model=DailyPassUsagePublic)
def use_daily_pass(session: SessionDep, current_user: CurrentUser, service_id: uuid.UUID) -> Any:
    if not session.get(BnrmService, service_id):
        raise HTTPException(status_code=404, detail="Service not found")
    try:
        return crud.record_daily_pass_usage(
            session=session, user_id=current_user.id, service_id=service_id
        )
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/check-expiry", response_model=ExpiryCheckResult)
def run_expiry_check(session: SessionDep, current_user: StaffUser) -> Any:
    return subscriptions.check_subscription_expiry(session=session)
