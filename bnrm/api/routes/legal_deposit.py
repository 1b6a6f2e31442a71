import uuid
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from sqlmodel import col, func, or_, select

from bnrm.api.deps import CurrentUser, SessionDep, StaffUser
from bnrm.models import (
    DepositConfirmationTokenPublic,
    DepositStatus,
    DepositTransition,
    LegalDepositRequest,
    LegalDepositRequestCreate,
    LegalDepositRequestPublic,
    LegalDepositRequestsPublic,
    NumberAttribution,
    User,
)
from bnrm.services import legal_deposit as deposits
from bnrm.services.legal_deposit import ConfirmationResult

router = APIRouter(prefix="/legal-deposit", tags=["legal-deposit"])


class ConfirmationRejection(BaseModel):
    reason: str | None = None


def _is_party(deposit: LegalDepositRequest, user: User) -> bool:
    return user.id in (deposit.initiator_id, deposit.collaborator_id)


def _get_deposit(session: SessionDep, request_id: uuid.UUID, user: User) -> LegalDepositRequest:
    deposit = session.get(LegalDepositRequest, request_id)
    if not deposit:
        raise HTTPException(status_code=404, detail="Legal deposit request not found")
    if not user.is_staff and not _is_party(deposit, user):
        raise HTTPException(status_code=403, detail="Not enough permissions")
    return deposit


@router.post("/", response_model=LegalDepositRequestPublic)
def create_legal_deposit(
    *, session: SessionDep, current_user: CurrentUser, request_in: LegalDepositRequestCreate
) -> Any:
    try:
        return deposits.create_request(session=session, request_in=request_in, initiator=current_user)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/", response_model=LegalDepositRequestsPublic)
def read_legal_deposits(
    session: SessionDep,
    current_user: CurrentUser,
    status: DepositStatus | None = None,
    skip: int = 0,
    limit: int = 50,
) -> Any:
    """
    Staff see every request; others see the ones they initiated or collaborate on.
    """
    filters = []
    if not current_user.is_staff:
        filters.append(
            or_(
                LegalDepositRequest.initiator_id == current_user.id,
                LegalDepositRequest.collaborator_id == current_user.id,
            )
        )
    if status:
        filters.append(LegalDepositRequest.status == status)

    count = session.exec(select(func.count()).select_from(LegalDepositRequest).where(*filters)).one()
    data = session.exec(
        select(LegalDepositRequest)
        .where(*filters)
        .order_by(col(LegalDepositRequest.created_at).desc())
        .offset(skip)
        .limit(limit)
    ).all()
    return LegalDepositRequestsPublic(data=data, count=count)


@router.get("/{request_id}", response_model=LegalDepositRequestPublic)
def read_legal_deposit(session: SessionDep, current_user: CurrentUser, request_id: uuid.UUID) -> Any:
    return _get_deposit(session, request_id, current_user)


@router.post("/{request_id}/transition", response_model=LegalDepositRequestPublic)
def transition_legal_deposit(
    *,
    session: SessionDep,
    current_user: CurrentUser,
    request_id: uuid.UUID,
    body: DepositTransition,
) -> Any:
    """
    Move a request along the validation circuit. Only the initiator may
    submit a draft; every other step is reserved to staff.
    """
    deposit = _get_deposit(session, request_id, current_user)
    if not current_user.is_staff:
        if deposit.initiator_id != current_user.id or body.status != DepositStatus.soumis:
            raise HTTPException(status_code=403, detail="Not enough permissions")
    if body.status == DepositStatus.attribue:
        raise HTTPException(status_code=400, detail="Use the attribution endpoint to attribute numbers")
    try:
        return deposits.transition(
            session=session,
            deposit=deposit,
            target=body.status,
            actor=current_user,
            notes=body.notes,
            rejection_reason=body.rejection_reason,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{request_id}/attribute", response_model=LegalDepositRequestPublic)
def attribute_legal_deposit_numbers(
    *,
    session: SessionDep,
    current_user: StaffUser,
    request_id: uuid.UUID,
    numbers: NumberAttribution,
) -> Any:
    deposit = _get_deposit(session, request_id, current_user)
    try:
        return deposits.attribute_numbers(
            session=session, deposit=deposit, numbers=numbers, actor=current_user
        )
    except ValueError as e:
        session.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{request_id}/confirmation-tokens", response_model=list[DepositConfirmationTokenPublic])
def create_confirmation_tokens(
    session: SessionDep, current_user: CurrentUser, request_id: uuid.UUID
) -> Any:
    deposit = _get_deposit(session, request_id, current_user)
    if not current_user.is_staff and deposit.initiator_id != current_user.id:
        raise HTTPException(status_code=403, detail="Not enough permissions")
    try:
        return deposits.create_tokens(session=session, deposit=deposit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{request_id}/confirmation-status", response_model=list[DepositConfirmationTokenPublic])
def read_confirmation_status(
    session: SessionDep, current_user: CurrentUser, request_id: uuid.UUID
) -> Any:
    _get_deposit(session, request_id, current_user)
    return deposits.get_status(session=session, request_id=request_id)


@router.post("/confirm/{token}", response_model=ConfirmationResult)
def confirm_participation(session: SessionDep, token: str) -> Any:
    """
    Confirm participation in a request; the token is the credential.
    """
    try:
        return deposits.confirm(session=session, token_value=token)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/confirm/{token}/reject", response_model=ConfirmationResult)
def reject_participation(session: SessionDep, token: str, body: ConfirmationRejection) -> Any:
    try:
        return deposits.reject(session=session, token_value=token, reason=body.reason)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
