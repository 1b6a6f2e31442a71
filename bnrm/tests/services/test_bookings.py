from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlmodel import Session

from bnrm.models import BookingCreate, CulturalSpace, UserRole
from bnrm.services import bookings
from bnrm.services.bookings import BookingConflictError
from bnrm.tests.utils.user import create_random_user

START = datetime(2031, 3, 10, 9, 0, tzinfo=timezone.utc)


def _space(db: Session, capacity: int = 100) -> CulturalSpace:
    space = CulturalSpace(name="Salle Al Maghrib", capacity=capacity)
    db.add(space)
    db.commit()
    db.refresh(space)
    return space


def _booking_in(space: CulturalSpace, start: datetime = START, hours: int = 4, **kwargs) -> BookingCreate:
    values = {
        "space_id": space.id,
        "organization_name": "Association Lecture",
        "organization_type": "association",
        "contact_person": "Salma Idrissi",
        "contact_email": "salma@example.com",
        "contact_phone": "+212600000000",
        "event_title": "Rencontre littéraire",
        "start_date": start,
        "end_date": start + timedelta(hours=hours),
        "participants_count": 40,
        **kwargs,
    }
    return BookingCreate(**values)


def test_overlapping_booking_is_refused(db: Session):
    space = _space(db)
    user = create_random_user(db)
    bookings.create_booking(session=db, booking_in=_booking_in(space), user=user)

    with pytest.raises(BookingConflictError):
        bookings.create_booking(
            session=db, booking_in=_booking_in(space, start=START + timedelta(hours=2)), user=user
        )
    # Back-to-back slots do not overlap
    adjacent = bookings.create_booking(
        session=db, booking_in=_booking_in(space, start=START + timedelta(hours=4)), user=None
    )
    assert adjacent.user_id is None


def test_invalid_bookings(db: Session):
    space = _space(db, capacity=10)
    with pytest.raises(ValueError):
        bookings.create_booking(session=db, booking_in=_booking_in(space, participants_count=11), user=None)
    with pytest.raises(ValueError):
        bookings.create_booking(session=db, booking_in=_booking_in(space, hours=-1), user=None)

    space.is_active = False
    db.add(space)
    db.commit()
    with pytest.raises(LookupError):
        bookings.create_booking(session=db, booking_in=_booking_in(space, participants_count=5), user=None)


def test_review_and_cancel(db: Session):
    space = _space(db)
    user = create_random_user(db)
    staff = create_random_user(db, role=UserRole.librarian)
    booking = bookings.create_booking(session=db, booking_in=_booking_in(space), user=user)

    with pytest.raises(ValueError):
        bookings.review_booking(session=db, booking=booking, reviewer=staff, approve=False)

    with patch("bnrm.services.bookings.send_email", return_value=True) as send_email:
        booking = bookings.review_booking(session=db, booking=booking, reviewer=staff, approve=True)
    assert booking.status == "validee"
    assert booking.reviewed_by == staff.id
    assert send_email.call_args.kwargs["email_to"] == "salma@example.com"

    with pytest.raises(ValueError):
        bookings.review_booking(session=db, booking=booking, reviewer=staff, approve=True)

    booking = bookings.cancel_booking(session=db, booking=booking, user=user)
    assert booking.status == "annulee"
    with pytest.raises(ValueError):
        bookings.cancel_booking(session=db, booking=booking, user=user)

    # The cancelled slot is free again
    again = bookings.create_booking(session=db, booking_in=_booking_in(space), user=user)
    assert again.status == "en_attente"


def test_rejected_booking_frees_the_slot(db: Session):
    space = _space(db)
    staff = create_random_user(db, role=UserRole.librarian)
    booking = bookings.create_booking(session=db, booking_in=_booking_in(space), user=None)
    booking = bookings.review_booking(
        session=db, booking=booking, reviewer=staff, approve=False, rejection_reason="Salle en travaux"
    )
    assert booking.status == "rejetee"
    assert booking.rejection_reason == "Salle en travaux"
    assert bookings.get_space_availability(db, space.id, START, START + timedelta(days=1)) == []


def test_space_availability_is_sorted(db: Session):
    space = _space(db)
    later = bookings.create_booking(
        session=db, booking_in=_booking_in(space, start=START + timedelta(days=1)), user=None
    )
    earlier = bookings.create_booking(session=db, booking_in=_booking_in(space), user=None)

    held = bookings.get_space_availability(db, space.id, START - timedelta(days=1), START + timedelta(days=3))
    assert [b.id for b in held] == [earlier.id, later.id]
    with pytest.raises(ValueError):
        bookings.get_space_availability(db, space.id, START, START - timedelta(hours=1))
