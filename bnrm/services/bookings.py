import logging
import uuid
from datetime import datetime

from sqlmodel import Session, col, select

from bnrm import crud
from bnrm.integrations.mailer import render_notice, send_email
from bnrm.models import Booking, BookingCreate, CulturalSpace, User, as_utc, get_datetime_utc

logger = logging.getLogger(__name__)

INACTIVE_STATUSES = ("rejetee", "annulee")


class BookingConflictError(Exception):
    """The requested slot overlaps an existing booking."""


def find_overlapping(
    session: Session,
    space_id: uuid.UUID,
    start: datetime,
    end: datetime,
    exclude_id: uuid.UUID | None = None,
) -> list[Booking]:
    statement = select(Booking).where(
        Booking.space_id == space_id,
        col(Booking.status).not_in(INACTIVE_STATUSES),
        Booking.start_date < end,
        Booking.end_date > start,
    )
    if exclude_id is not None:
        statement = statement.where(Booking.id != exclude_id)
    return list(session.exec(statement).all())


def create_booking(*, session: Session, booking_in: BookingCreate, user: User | None) -> Booking:
    if as_utc(booking_in.end_date) < as_utc(booking_in.start_date):
        raise ValueError("End date cannot be before start date")

    space = session.get(CulturalSpace, booking_in.space_id)
    if space is None or not space.is_active:
        raise LookupError("Space not found")
    if booking_in.participants_count > space.capacity:
        raise ValueError(f"Participants exceed the space capacity ({space.capacity})")

    if find_overlapping(session, space.id, booking_in.start_date, booking_in.end_date):
        raise BookingConflictError("The space is already booked for this period")

    booking = Booking.model_validate(booking_in, update={"user_id": user.id if user else None})
    session.add(booking)
    crud.insert_activity_log(
        session=session,
        action="booking_created",
        resource_type="booking",
        resource_id=booking.id,
        details={"space": space.name, "event_title": booking.event_title},
        user_id=user.id if user else None,
        commit=False,
    )
    session.commit()
    session.refresh(booking)
    logger.info("Booking %s created for space %s", booking.id, space.name)
    return booking


def review_booking(
    *,
    session: Session,
    booking: Booking,
    reviewer: User,
    approve: bool,
    rejection_reason: str | None = None,
) -> Booking:
    if booking.status != "en_attente":
        raise ValueError(f"Booking is already {booking.status}")
    if not approve and not (rejection_reason and rejection_reason.strip()):
        raise ValueError("A rejection reason is required")
    if approve:
        overlapping = find_overlapping(
            session, booking.space_id, booking.start_date, booking.end_date, exclude_id=booking.id
        )
        if any(b.status == "validee" for b in overlapping):
            raise BookingConflictError("The space is already booked for this period")

    booking.status = "validee" if approve else "rejetee"
    booking.rejection_reason = None if approve else rejection_reason.strip()
    booking.reviewed_by = reviewer.id
    booking.reviewed_at = get_datetime_utc()
    session.add(booking)

    if booking.user_id:
        crud.create_notification(
            session=session,
            user_id=booking.user_id,
            type="booking",
            title="Réservation confirmée" if approve else "Réservation refusée",
            message=(
                f"Votre réservation « {booking.event_title} » a été confirmée."
                if approve
                else f"Votre réservation « {booking.event_title} » a été refusée. Motif : {booking.rejection_reason}"
            ),
            link=f"/bookings/{booking.id}",
            commit=False,
        )
    crud.insert_activity_log(
        session=session,
        action=f"booking_{booking.status}",
        resource_type="booking",
        resource_id=booking.id,
        user_id=reviewer.id,
        commit=False,
    )
    session.commit()
    session.refresh(booking)
    send_booking_confirmation(session, booking)
    return booking


def send_booking_confirmation(session: Session, booking: Booking) -> bool:
    space = session.get(CulturalSpace, booking.space_id)
    start = as_utc(booking.start_date)
    end = as_utc(booking.end_date)
    paragraphs = [
        f"Bonjour {booking.contact_person},",
        f"Événement : {booking.event_title}",
        f"Espace : {space.name if space else '-'}",
        f"Du {start:%d/%m/%Y %H:%M} au {end:%d/%m/%Y %H:%M}",
    ]
    if booking.status == "validee":
        title = "Votre réservation est confirmée"
    else:
        title = "Votre réservation n'a pas été retenue"
        paragraphs.append(f"Motif : {booking.rejection_reason}")
    return send_email(
        email_to=booking.contact_email,
        subject=f"BNRM - {title}",
        html_content=render_notice(title, paragraphs),
    )


def get_space_availability(
    session: Session, space_id: uuid.UUID, start: datetime, end: datetime
) -> list[Booking]:
    """Bookings holding the space within the window, ordered by start."""
    if as_utc(end) < as_utc(start):
        raise ValueError("End date cannot be before start date")
    bookings = find_overlapping(session, space_id, start, end)
    return sorted(bookings, key=lambda b: as_utc(b.start_date))


def cancel_booking(*, session: Session, booking: Booking, user: User) -> Booking:
    if booking.status in INACTIVE_STATUSES:
        raise ValueError(f"Booking is already {booking.status}")
    booking.status = "annulee"
    session.add(booking)
    crud.insert_activity_log(
        session=session,
        action="booking_annulee",
        resource_type="booking",
        resource_id=booking.id,
        user_id=user.id,
        commit=False,
    )
    session.commit()
    session.refresh(booking)
    return booking
