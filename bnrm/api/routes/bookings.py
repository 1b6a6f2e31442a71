import uuid
from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException
from sqlmodel import col, select

from bnrm.api.deps import CurrentUser, OptionalUser, SessionDep, StaffUser
from bnrm.models import (
    Booking,
    BookingCreate,
    BookingPublic,
    CulturalSpace,
    CulturalSpaceCreate,
    CulturalSpacePublic,
    ReviewDecision,
)
from bnrm.services import bookings
from bnrm.services.bookings import BookingConflictError

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("/spaces", response_model=list[CulturalSpacePublic])
def read_spaces(session: SessionDep) -> Any:
    return session.exec(
        select(CulturalSpace).where(CulturalSpace.is_active == True).order_by(col(CulturalSpace.name))  # noqa: E712
    ).all()


@router.post("/spaces", response_model=CulturalSpacePublic)
def create_space(*, session: SessionDep, current_user: StaffUser, space_in: CulturalSpaceCreate) -> Any:
    space = CulturalSpace.model_validate(space_in)
    session.add(space)
    session.commit()
    session.refresh(space)
    return space


@router.get("/spaces/{space_id}/availability", response_model=list[BookingPublic])
def read_space_availability(
    session: SessionDep, space_id: uuid.UUID, start: datetime, end: datetime
) -> Any:
    """
    Bookings that hold the space between `start` and `end`.
    """
    if not session.get(CulturalSpace, space_id):
        raise HTTPException(status_code=404, detail="Space not found")
    try:
        return bookings.get_space_availability(session, space_id, start, end)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/", response_model=BookingPublic)
def create_booking(*, session: SessionDep, current_user: OptionalUser, booking_in: BookingCreate) -> Any:
    try:
        return bookings.create_booking(session=session, booking_in=booking_in, user=current_user)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except BookingConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/", response_model=list[BookingPublic])
def read_bookings(session: SessionDep, current_user: CurrentUser, status: str | None = None) -> Any:
    statement = select(Booking)
    if not current_user.is_staff:
        statement = statement.where(Booking.user_id == current_user.id)
    if status:
        statement = statement.where(Booking.status == status)
    return session.exec(statement.order_by(col(Booking.start_date))).all()


@router.post("/{booking_id}/review", response_model=BookingPublic)
def review_booking(
    *,
    session: SessionDep,
    current_user: StaffUser,
    booking_id: uuid.UUID,
    decision: ReviewDecision,
) -> Any:
    booking = session.get(Booking, booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    try:
        return bookings.review_booking(
            session=session,
            booking=booking,
            reviewer=current_user,
            approve=decision.approve,
            rejection_reason=decision.rejection_reason,
        )
    except BookingConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{booking_id}/cancel", response_model=BookingPublic)
def cancel_booking(session: SessionDep, current_user: CurrentUser, booking_id: uuid.UUID) -> Any:
    booking = session.get(Booking, booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    if booking.user_id != current_user.id and not current_user.is_staff:
        raise HTTPException(status_code=403, detail="Not enough permissions")
    try:
        return bookings.cancel_booking(session=session, booking=booking, user=current_user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
