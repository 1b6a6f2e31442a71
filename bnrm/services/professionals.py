import logging
import secrets

from pydantic import BaseModel
from sqlmodel import Session, col, func, select

from bnrm import crud
from bnrm.integrations.mailer import render_notice, send_email
from bnrm.models import (
    LegalDepositRequest,
    ProfessionalRegistrationRequest,
    ProfessionalRegistry,
    ProfessionalType,
    User,
    UserCreate,
    UserRole,
    get_datetime_utc,
)

logger = logging.getLogger(__name__)

ROLE_BY_TYPE = {
    ProfessionalType.editeur: UserRole.editor,
    ProfessionalType.imprimeur: UserRole.printer,
    ProfessionalType.producteur: UserRole.producer,
    ProfessionalType.distributeur: UserRole.distributor,
}

REGISTRATION_PREFIXES = {
    ProfessionalType.editeur: "EDT",
    ProfessionalType.imprimeur: "IMP",
    ProfessionalType.producteur: "PRD",
    ProfessionalType.distributeur: "DST",
}


class DepositNumberCheck(BaseModel):
    valid: bool
    message: str
    request_number: str | None = None
    title: str | None = None
    company_name: str | None = None


def generate_registration_number(
    session: Session, professional_type: ProfessionalType, year: int | None = None
) -> str:
    year = year or get_datetime_utc().year
    prefix = f"{REGISTRATION_PREFIXES[professional_type]}-{year}-"
    numbers = session.exec(
        select(ProfessionalRegistry.registration_number).where(
            col(ProfessionalRegistry.registration_number).startswith(prefix)
        )
    ).all()
    suffixes = [int(n[len(prefix):]) for n in numbers if n[len(prefix):].isdigit()]
    return f"{prefix}{max(suffixes, default=0) + 1:04d}"


def _get_or_create_user(session: Session, request: ProfessionalRegistrationRequest) -> User:
    user = session.get(User, request.user_id) if request.user_id else None
    if user is None:
        user = crud.get_user_by_email(session=session, email=request.email)
    if user is None:
        # The professional sets a real password through the reset flow
        user = crud.create_user(
            session=session,
            user_create=UserCreate(
                email=request.email,
                password=secrets.token_urlsafe(24),
                full_name=request.contact_person,
                phone=request.phone,
            ),
        )
        logger.info("Created account %s for professional %s", user.id, request.company_name)
    return user


def approve_professional(
    *, session: Session, request: ProfessionalRegistrationRequest, reviewer: User
) -> ProfessionalRegistry:
    if request.status != "pending":
        raise ValueError(f"Request is already {request.status}")

    user = _get_or_create_user(session, request)
    user.role = ROLE_BY_TYPE[request.professional_type]
    session.add(user)

    registry = session.exec(
        select(ProfessionalRegistry).where(
            ProfessionalRegistry.email == request.email,
            ProfessionalRegistry.professional_type == request.professional_type,
        )
    ).first()
    now = get_datetime_utc()
    if registry is None:
        registry = ProfessionalRegistry(
            professional_type=request.professional_type,
            company_name=request.company_name,
            contact_person=request.contact_person,
            email=request.email,
            phone=request.phone,
            address=request.address,
            city=request.city,
        )
    if not registry.registration_number:
        registry.registration_number = generate_registration_number(session, request.professional_type)
    registry.user_id = user.id
    registry.is_verified = True
    registry.verification_date = now
    session.add(registry)

    request.status = "approved"
    request.user_id = user.id
    request.reviewed_by = reviewer.id
    request.reviewed_at = now
    session.add(request)

    crud.create_notification(
        session=session,
        user_id=user.id,
        type="professional_registration",
        title="Inscription approuvée",
        message=f"Votre inscription professionnelle ({registry.registration_number}) a été approuvée.",
        commit=False,
    )
    crud.insert_activity_log(
        session=session,
        action="professional_approved",
        resource_type="professional_registration_request",
        resource_id=request.id,
        details={"registration_number": registry.registration_number, "user_id": str(user.id)},
        user_id=reviewer.id,
        commit=False,
    )
    session.commit()
    session.refresh(registry)

    send_email(
        email_to=request.email,
        subject="Votre inscription professionnelle a été approuvée",
        html_content=render_notice(
            "Inscription approuvée",
            [
                f"Bonjour {request.contact_person},",
                f"L'inscription de {request.company_name} au registre des professionnels est validée.",
                f"Numéro d'enregistrement : {registry.registration_number}",
            ],
        ),
    )
    return registry


def reject_professional(
    *,
    session: Session,
    request: ProfessionalRegistrationRequest,
    reviewer: User,
    reason: str | None,
) -> ProfessionalRegistrationRequest:
    if request.status != "pending":
        raise ValueError(f"Request is already {request.status}")
    if not reason or not reason.strip():
        raise ValueError("A rejection reason is required")

    request.status = "rejected"
    request.rejection_reason = reason.strip()
    request.reviewed_by = reviewer.id
    request.reviewed_at = get_datetime_utc()
    session.add(request)
    crud.insert_activity_log(
        session=session,
        action="professional_rejected",
        resource_type="professional_registration_request",
        resource_id=request.id,
        details={"reason": request.rejection_reason},
        user_id=reviewer.id,
        commit=False,
    )
    session.commit()
    session.refresh(request)

    send_email(
        email_to=request.email,
        subject="Votre demande d'inscription professionnelle",
        html_content=render_notice(
            "Demande non retenue",
            [
                f"Bonjour {request.contact_person},",
                "Votre demande d'inscription au registre des professionnels n'a pas été retenue.",
                f"Motif : {request.rejection_reason}",
            ],
        ),
    )
    return request


def verify_professional_deposit_number(
    *, session: Session, deposit_number: str, email: str, professional_type: ProfessionalType
) -> DepositNumberCheck:
    """Check that a deposit number was attributed to a request of the given professional."""
    professional = session.exec(
        select(ProfessionalRegistry).where(
            func.lower(ProfessionalRegistry.email) == email.strip().lower(),
            ProfessionalRegistry.professional_type == professional_type,
        )
    ).first()
    if professional is None or professional.user_id is None:
        return DepositNumberCheck(valid=False, message="Professional not found")

    deposit = session.exec(
        select(LegalDepositRequest).where(
            LegalDepositRequest.dl_number == deposit_number.strip(),
            LegalDepositRequest.initiator_id == professional.user_id,
        )
    ).first()
    if deposit is None:
        return DepositNumberCheck(
            valid=False,
            message="Deposit number not found for this professional",
            company_name=professional.company_name,
        )
    return DepositNumberCheck(
        valid=True,
        message="Deposit number verified",
        request_number=deposit.request_number,
        title=deposit.title,
        company_name=professional.company_name,
    )
