import logging
import math
import uuid
from datetime import datetime, timedelta

from pydantic import BaseModel
from sqlmodel import Session, col, select

from bnrm import crud
from bnrm.integrations.mailer import render_notice, send_email
from bnrm.models import (
    BnrmService,
    ServiceRegistration,
    ServiceRegistrationCreate,
    User,
    as_utc,
    get_datetime_utc,
)

logger = logging.getLogger(__name__)

REMINDER_WINDOW_DAYS = 7


class ExpiryCheckResult(BaseModel):
    success: bool = True
    expired: int = 0
    reminders_sent: int = 0


def register_service(
    *, session: Session, user: User, registration_in: ServiceRegistrationCreate
) -> ServiceRegistration:
    service = session.get(BnrmService, registration_in.service_id)
    if service is None or not service.is_active:
        raise LookupError("Service not found")

    registration = ServiceRegistration(
        user_id=user.id,
        service_id=service.id,
        registration_data=registration_in.registration_data,
    )
    if service.price <= 0:
        # Free services need no checkout
        registration.status = "active"
        registration.is_paid = True
    session.add(registration)
    crud.insert_activity_log(
        session=session,
        action="service_registration_created",
        resource_type="service_registration",
        resource_id=registration.id,
        details={"service": service.code},
        user_id=user.id,
        commit=False,
    )
    session.commit()
    session.refresh(registration)
    return registration


def _contact(session: Session, registration: ServiceRegistration) -> tuple[str | None, str]:
    data = registration.registration_data or {}
    name = " ".join(p for p in (data.get("firstName"), data.get("lastName")) if p)
    email = data.get("email")
    if not email:
        user = session.get(User, registration.user_id)
        if user:
            email = user.email
            name = name or (user.full_name or "")
    return email, name


def _service_name(session: Session, registration: ServiceRegistration) -> str:
    service = session.get(BnrmService, registration.service_id)
    return service.name if service else "votre service"


def check_subscription_expiry(*, session: Session, now: datetime | None = None) -> ExpiryCheckResult:
    """
    Expire active registrations whose `expires_at` has passed and send a
    single renewal reminder to those expiring within the next week.
    """
    now = now or get_datetime_utc()
    result = ExpiryCheckResult()

    expired = session.exec(
        select(ServiceRegistration).where(
            ServiceRegistration.status == "active",
            col(ServiceRegistration.expires_at).is_not(None),
            col(ServiceRegistration.expires_at) < now,
        )
    ).all()
    for registration in expired:
        registration.status = "expired"
        registration.updated_at = now
        session.add(registration)
        service_name = _service_name(session, registration)
        crud.create_notification(
            session=session,
            user_id=registration.user_id,
            type="subscription",
            title="Abonnement expiré",
            message=(
                f"Votre abonnement « {service_name} » a expiré. "
                "Renouvelez-le pour continuer à accéder aux services BNRM."
            ),
            link="/abonnements",
            priority=5,
            category="subscription",
            commit=False,
        )
        email, name = _contact(session, registration)
        if email:
            send_email(
                email_to=email,
                subject=f"Votre abonnement BNRM a expiré - {service_name}",
                html_content=render_notice(
                    "Abonnement expiré",
                    [
                        f"Bonjour {name}," if name else "Bonjour,",
                        f"Votre abonnement « {service_name} » a expiré.",
                        "Renouvelez-le pour continuer à accéder aux services de la bibliothèque.",
                    ],
                ),
            )
    result.expired = len(expired)
    session.commit()
    logger.info("Expired %s subscription(s)", result.expired)

    window_end = now + timedelta(days=REMINDER_WINDOW_DAYS)
    expiring = session.exec(
        select(ServiceRegistration).where(
            ServiceRegistration.status == "active",
            ServiceRegistration.renewal_reminder_sent == False,  # noqa: E712
            col(ServiceRegistration.expires_at).is_not(None),
            col(ServiceRegistration.expires_at) >= now,
            col(ServiceRegistration.expires_at) <= window_end,
        )
    ).all()
    for registration in expiring:
        expires_at = as_utc(registration.expires_at)
        days_left = math.ceil((expires_at - now).total_seconds() / 86400)
        service_name = _service_name(session, registration)
        registration.renewal_reminder_sent = True
        session.add(registration)
        crud.create_notification(
            session=session,
            user_id=registration.user_id,
            type="subscription",
            title=f"Abonnement expire dans {days_left} jour(s)",
            message=(
                f"Votre abonnement « {service_name} » expire le {expires_at:%d/%m/%Y}. "
                "Renouvelez-le dès maintenant."
            ),
            link="/abonnements",
            priority=4,
            category="subscription",
            commit=False,
        )
        email, name = _contact(session, registration)
        if email:
            send_email(
                email_to=email,
                subject=f"Rappel : votre abonnement BNRM expire dans {days_left} jour(s)",
                html_content=render_notice(
                    "Renouvellement de votre abonnement",
                    [
                        f"Bonjour {name}," if name else "Bonjour,",
                        f"Votre abonnement « {service_name} » expire le {expires_at:%d/%m/%Y}.",
                    ],
                ),
            )
    result.reminders_sent = len(expiring)
    session.commit()
    logger.info("Sent %s renewal reminder(s)", result.reminders_sent)
    return result


def get_user_registrations(*, session: Session, user_id: uuid.UUID) -> list[ServiceRegistration]:
    return list(
        session.exec(
            select(ServiceRegistration)
            .where(ServiceRegistration.user_id == user_id)
            .order_by(col(ServiceRegistration.created_at).desc())
        ).all()
    )
