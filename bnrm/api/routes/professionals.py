import uuid
from typing import Any

from fastapi import APIRouter, HTTPException
from sqlmodel import col, select

from bnrm import crud
from bnrm.api.deps import SessionDep, StaffUser
from bnrm.models import (
    ProfessionalRegistrationRequest,
    ProfessionalRegistrationRequestCreate,
    ProfessionalRegistrationRequestPublic,
    ProfessionalRegistry,
    ProfessionalRegistryPublic,
    ProfessionalType,
    ReviewDecision,
)
from bnrm.services import professionals
from bnrm.services.professionals import DepositNumberCheck

router = APIRouter(prefix="/professionals", tags=["professionals"])


@router.post("/registration-requests", response_model=ProfessionalRegistrationRequestPublic)
def create_registration_request(
    *, session: SessionDep, request_in: ProfessionalRegistrationRequestCreate
) -> Any:
    """
    Signup form for editors, printers, producers and distributors.
    """
    pending = session.exec(
        select(ProfessionalRegistrationRequest).where(
            ProfessionalRegistrationRequest.email == request_in.email,
            ProfessionalRegistrationRequest.professional_type == request_in.professional_type,
            ProfessionalRegistrationRequest.status == "pending",
        )
    ).first()
    if pending:
        raise HTTPException(status_code=409, detail="A registration request is already pending for this email")

    request = ProfessionalRegistrationRequest.model_validate(request_in)
    session.add(request)
    crud.insert_activity_log(
        session=session,
        action="professional_registration_requested",
        resource_type="professional_registration_request",
        resource_id=request.id,
        details={"type": request.professional_type.value, "company": request.company_name},
        commit=False,
    )
    session.commit()
    session.refresh(request)
    return request


@router.get("/registration-requests", response_model=list[ProfessionalRegistrationRequestPublic])
def read_registration_requests(
    session: SessionDep, current_user: StaffUser, status: str | None = None
) -> Any:
    statement = select(ProfessionalRegistrationRequest)
    if status:
        statement = statement.where(ProfessionalRegistrationRequest.status == status)
    return session.exec(statement.order_by(col(ProfessionalRegistrationRequest.created_at).desc())).all()


@router.post(
    "/registration-requests/{request_id}/review",
    response_model=ProfessionalRegistrationRequestPublic,
)
def review_registration_request(
    *,
    session: SessionDep,
    current_user: StaffUser,
    request_id: uuid.UUID,
    decision: ReviewDecision,
) -> Any:
    request = session.get(ProfessionalRegistrationRequest, request_id)
    if not request:
        raise HTTPException(status_code=404, detail="Registration request not found")
    try:
        if decision.approve:
            professionals.approve_professional(session=session, request=request, reviewer=current_user)
        else:
            professionals.reject_professional(
                session=session, request=request, reviewer=current_user, reason=decision.rejection_reason
            )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    session.refresh(request)
    return request


@router.get("/registry", response_model=list[ProfessionalRegistryPublic])
def read_registry(
    session: SessionDep,
    current_user: StaffUser,
    professional_type: ProfessionalType | None = None,
    verified: bool | None = None,
) -> Any:
    statement = select(ProfessionalRegistry)
    if professional_type:
        statement = statement.where(ProfessionalRegistry.professional_type == professional_type)
    if verified is not None:
        statement = statement.where(ProfessionalRegistry.is_verified == verified)
    return session.exec(statement.order_by(col(ProfessionalRegistry.company_name))).all()


@router.get("/verify-deposit-number", response_model=DepositNumberCheck)
def verify_deposit_number(
    session: SessionDep, deposit_number: str, email: str, professional_type: ProfessionalType
) -> Any:
    return professionals.verify_professional_deposit_number(
        session=session, deposit_number=deposit_number, email=email, professional_type=professional_type
    )
