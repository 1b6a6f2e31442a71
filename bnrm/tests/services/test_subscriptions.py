from datetime import date, timedelta
from unittest.mock import patch

import pytest
from sqlmodel import Session, select

from bnrm import crud
from bnrm.models import (
    BnrmService,
    Notification,
    ServiceRegistration,
    ServiceRegistrationCreate,
    get_datetime_utc,
)
from bnrm.services import subscriptions
from bnrm.tests.utils.user import create_random_user
from bnrm.tests.utils.utils import random_lower_string


def _service(db: Session, price: float = 0) -> BnrmService:
    service = BnrmService(code=random_lower_string()[:12], name="Pass journalier", price=price)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def test_free_service_is_active_immediately(db: Session):
    user = create_random_user(db)
    registration = subscriptions.register_service(
        session=db, user=user, registration_in=ServiceRegistrationCreate(service_id=_service(db).id)
    )
    assert registration.status == "active"
    assert registration.is_paid is True


def test_paid_service_waits_for_payment(db: Session):
    user = create_random_user(db)
    registration = subscriptions.register_service(
        session=db,
        user=user,
        registration_in=ServiceRegistrationCreate(service_id=_service(db, price=150).id),
    )
    assert registration.status == "pending"
    assert registration.is_paid is False
    assert subscriptions.get_user_registrations(session=db, user_id=user.id)[0].id == registration.id


def test_daily_pass_once_per_calendar_year(db: Session):
    user = create_random_user(db)
    service = _service(db)
    crud.record_daily_pass_usage(session=db, user_id=user.id, service_id=service.id, today=date(2030, 2, 1))
    with pytest.raises(ValueError):
        crud.record_daily_pass_usage(
            session=db, user_id=user.id, service_id=service.id, today=date(2030, 12, 31)
        )
    usage = crud.record_daily_pass_usage(
        session=db, user_id=user.id, service_id=service.id, today=date(2031, 1, 1)
    )
    assert usage.used_on == date(2031, 1, 1)
    # Another service has its own allowance
    crud.record_daily_pass_usage(session=db, user_id=user.id, service_id=_service(db).id, today=date(2030, 2, 1))


def test_expiry_and_reminders(db: Session):
    user = create_random_user(db)
    service = _service(db, price=100)
    now = get_datetime_utc()
    past = ServiceRegistration(
        user_id=user.id, service_id=service.id, status="active", is_paid=True,
        expires_at=now - timedelta(hours=1),
    )
    soon = ServiceRegistration(
        user_id=user.id, service_id=service.id, status="active", is_paid=True,
        expires_at=now + timedelta(days=3),
    )
    far = ServiceRegistration(
        user_id=user.id, service_id=service.id, status="active", is_paid=True,
        expires_at=now + timedelta(days=60),
    )
    db.add_all([past, soon, far])
    db.commit()

    with patch("bnrm.services.subscriptions.send_email", return_value=True) as send_email:
        result = subscriptions.check_subscription_expiry(session=db, now=now)
    assert result.success is True
    assert result.expired >= 1
    assert result.reminders_sent >= 1
    assert send_email.call_count >= 2

    db.refresh(past)
    db.refresh(soon)
    db.refresh(far)
    assert past.status == "expired"
    assert soon.status == "active"
    assert soon.renewal_reminder_sent is True
    assert far.renewal_reminder_sent is False

    titles = [n.title for n in db.exec(select(Notification).where(Notification.user_id == user.id)).all()]
    assert "Abonnement expiré" in titles
    assert "Abonnement expire dans 3 jour(s)" in titles

    # Reminders go out once
    with patch("bnrm.services.subscriptions.send_email", return_value=True):
        subscriptions.check_subscription_expiry(session=db, now=now)
    reminders = db.exec(
        select(Notification).where(
            Notification.user_id == user.id, Notification.title == "Abonnement expire dans 3 jour(s)"
        )
    ).all()
    assert len(reminders) == 1
