"""
Legal deposit requests: numbering, the validation status machine, number
attribution and the two-party confirmation handshake.
"""
import logging
import secrets
import uuid
from datetime import timedelta

from pydantic import BaseModel
from sqlmodel import Session, col, select

from bnrm import crud
from bnrm.integrations.mailer import render_notice, send_email
from bnrm.models import (
    DepositConfirmationToken,
    DepositStatus,
    LegalDepositRequest,
    LegalDepositRequestCreate,
    NumberAttribution,
    ProfessionalRegistry,
    User,
    as_utc,
    get_datetime_utc,
)

logger = logging.getLogger(__name__)

CONFIRMATION_TOKEN_DAYS = 7

S = DepositStatus

ALLOWED_TRANSITIONS: dict[DepositStatus, set[DepositStatus]] = {
    S.brouillon: {S.soumis},
    S.soumis: {S.en_attente_validation_b},
    S.en_attente_validation_b: {S.valide_par_b, S.rejete_par_b},
    S.valide_par_b: {S.en_attente_comite_validation},
    S.en_attente_comite_validation: {S.valide_par_comite, S.rejete_par_comite},
    S.valide_par_comite: {S.en_cours},
    S.en_cours: {S.attribue},
    S.attribue: {S.receptionne},
}

TERMINAL_STATUSES = {S.receptionne, S.rejete, S.rejete_par_b, S.rejete_par_comite}
REJECTION_STATUSES = {S.rejete, S.rejete_par_b, S.rejete_par_comite}

STATUS_LABELS = {
    S.brouillon: "Brouillon",
    S.soumis: "Soumise",
    S.en_attente_validation_b: "En attente de validation",
    S.valide_par_b: "Validée par le service",
    S.rejete_par_b: "Rejetée par le service",
    S.en_attente_comite_validation: "En attente du comité",
    S.valide_par_comite: "Validée par le comité",
    S.rejete_par_comite: "Rejetée par le comité",
    S.en_cours: "En cours de traitement",
    S.attribue: "Numéros attribués",
    S.receptionne: "Exemplaires réceptionnés",
    S.rejete: "Rejetée",
}


class ConfirmationResult(BaseModel):
    success: bool = True
    message: str
    confirmation_status: str | None = None


def allowed_targets(status: DepositStatus) -> set[DepositStatus]:
    if status in TERMINAL_STATUSES:
        return set()
    # Any open request can be rejected outright
    return ALLOWED_TRANSITIONS.get(status, set()) | {S.rejete}


def can_transition(current: DepositStatus, target: DepositStatus) -> bool:
    return target in allowed_targets(current)


def _next_sequence(session: Session, column, year: int) -> int:
    prefix = f"DL-{year}-"
    numbers = session.exec(select(column).where(col(column).startswith(prefix))).all()
    suffixes = [int(n[len(prefix):]) for n in numbers if n[len(prefix):].isdigit()]
    return max(suffixes, default=0) + 1


def generate_request_number(session: Session, year: int | None = None) -> str:
    year = year or get_datetime_utc().year
    return f"DL-{year}-{_next_sequence(session, LegalDepositRequest.request_number, year):06d}"


def create_request(
    *, session: Session, request_in: LegalDepositRequestCreate, initiator: User
) -> LegalDepositRequest:
    if request_in.collaborator_id and session.get(User, request_in.collaborator_id) is None:
        raise LookupError("Collaborator not found")

    deposit = LegalDepositRequest.model_validate(
        request_in,
        update={
            "request_number": generate_request_number(session),
            "initiator_id": initiator.id,
        },
    )
    session.add(deposit)
    crud.insert_activity_log(
        session=session,
        action="legal_deposit_created",
        resource_type="legal_deposit_request",
        resource_id=deposit.id,
        details={"request_number": deposit.request_number, "title": deposit.title},
        user_id=initiator.id,
        commit=False,
    )
    session.commit()
    session.refresh(deposit)
    logger.info("Created legal deposit request %s", deposit.request_number)
    return deposit


def transition(
    *,
    session: Session,
    deposit: LegalDepositRequest,
    target: DepositStatus,
    actor: User,
    notes: str | None = None,
    rejection_reason: str | None = None,
) -> LegalDepositRequest:
    current = deposit.status
    if not can_transition(current, target):
        raise ValueError(f"Transition from {current.value} to {target.value} is not allowed")
    if target in REJECTION_STATUSES and not (rejection_reason and rejection_reason.strip()):
        raise ValueError("A rejection reason is required")

    now = get_datetime_utc()
    deposit.status = target
    if target == S.soumis:
        deposit.submission_date = now
    elif target == S.receptionne:
        deposit.reception_date = now
    elif target in REJECTION_STATUSES:
        deposit.rejection_reason = rejection_reason.strip()
    deposit.updated_at = now
    session.add(deposit)

    crud.insert_activity_log(
        session=session,
        action="legal_deposit_status_changed",
        resource_type="legal_deposit_request",
        resource_id=deposit.id,
        details={"from": current.value, "to": target.value, "notes": notes},
        user_id=actor.id,
        commit=False,
    )
    if deposit.initiator_id and deposit.initiator_id != actor.id:
        message = f"Votre demande {deposit.request_number} est passée au statut : {STATUS_LABELS[target]}."
        if target in REJECTION_STATUSES:
            message += f" Motif : {deposit.rejection_reason}"
        crud.create_notification(
            session=session,
            user_id=deposit.initiator_id,
            type="legal_deposit",
            title="Mise à jour de votre dépôt légal",
            message=message,
            link=f"/legal-deposit/{deposit.id}",
            priority=2 if target in REJECTION_STATUSES else 3,
            commit=False,
        )
    session.commit()
    session.refresh(deposit)
    logger.info("Legal deposit %s: %s -> %s", deposit.request_number, current.value, target.value)
    return deposit


def attribute_numbers(
    *,
    session: Session,
    deposit: LegalDepositRequest,
    numbers: NumberAttribution,
    actor: User,
) -> LegalDepositRequest:
    """Assign the deposit number (plus any ISBN/ISSN/ISMN) and move the request to `attribue`."""
    if deposit.status != S.en_cours:
        raise ValueError("Numbers can only be attributed to a request in progress")

    now = get_datetime_utc()
    sequence = _next_sequence(session, LegalDepositRequest.dl_number, now.year)
    deposit.dl_number = f"DL-{now.year}-{sequence:06d}"
    for key, value in numbers.model_dump(exclude_none=True).items():
        setattr(deposit, key, value)
    deposit.attribution_date = now
    session.add(deposit)

    if deposit.initiator_id:
        professional = session.exec(
            select(ProfessionalRegistry).where(ProfessionalRegistry.user_id == deposit.initiator_id)
        ).first()
        if professional:
            professional.last_dl_number = deposit.dl_number
            session.add(professional)

    deposit = transition(session=session, deposit=deposit, target=S.attribue, actor=actor)
    _email_attribution(session, deposit)
    return deposit


def _email_attribution(session: Session, deposit: LegalDepositRequest) -> None:
    initiator = session.get(User, deposit.initiator_id) if deposit.initiator_id else None
    if initiator is None:
        return
    lines = [f"Numéro de dépôt légal : {deposit.dl_number}"]
    for label, value in (("ISBN", deposit.isbn), ("ISSN", deposit.issn), ("ISMN", deposit.ismn)):
        if value:
            lines.append(f"{label} : {value}")
    send_email(
        email_to=initiator.email,
        subject=f"Attribution des numéros - {deposit.request_number}",
        html_content=render_notice(
            "Attribution de numéros de dépôt légal",
            [f"Les numéros de votre publication « {deposit.title} » ont été attribués.", *lines],
        ),
    )


# Party confirmation

def create_tokens(*, session: Session, deposit: LegalDepositRequest) -> list[DepositConfirmationToken]:
    """
    One token per party: the initiator's is confirmed on creation, the
    collaborator's waits for their answer.
    """
    if deposit.collaborator_id is None:
        raise ValueError("The request has no collaborator to confirm")

    for token in session.exec(
        select(DepositConfirmationToken).where(DepositConfirmationToken.request_id == deposit.id)
    ).all():
        session.delete(token)

    now = get_datetime_utc()
    expires_at = now + timedelta(days=CONFIRMATION_TOKEN_DAYS)
    initiator_token = DepositConfirmationToken(
        request_id=deposit.id,
        user_id=deposit.initiator_id,
        party_type="initiator",
        token=secrets.token_urlsafe(32),
        status="confirmed",
        confirmed_at=now,
        expires_at=expires_at,
    )
    collaborator_token = DepositConfirmationToken(
        request_id=deposit.id,
        user_id=deposit.collaborator_id,
        party_type="collaborator",
        token=secrets.token_urlsafe(32),
        expires_at=expires_at,
    )
    deposit.confirmation_status = "pending_confirmation"
    deposit.updated_at = now
    session.add_all([initiator_token, collaborator_token, deposit])
    crud.create_notification(
        session=session,
        user_id=deposit.collaborator_id,
        type="legal_deposit",
        title="Confirmation requise",
        message=f"La demande de dépôt légal « {deposit.title} » attend votre confirmation.",
        link=f"/legal-deposit/confirm/{collaborator_token.token}",
        priority=2,
        commit=False,
    )
    session.commit()
    session.refresh(initiator_token)
    session.refresh(collaborator_token)

    collaborator = session.get(User, deposit.collaborator_id)
    if collaborator:
        send_email(
            email_to=collaborator.email,
            subject=f"Confirmation de dépôt légal - {deposit.request_number}",
            html_content=render_notice(
                "Confirmation de participation",
                [
                    f"Une demande de dépôt légal « {deposit.title} » vous désigne comme partenaire.",
                    f"Code de confirmation : {collaborator_token.token}",
                    f"Ce code expire dans {CONFIRMATION_TOKEN_DAYS} jours.",
                ],
            ),
        )
    return [initiator_token, collaborator_token]


def _get_token(session: Session, token_value: str) -> DepositConfirmationToken:
    token = session.exec(
        select(DepositConfirmationToken).where(DepositConfirmationToken.token == token_value)
    ).first()
    if token is None:
        raise LookupError("Invalid confirmation token")
    return token


def confirm(*, session: Session, token_value: str) -> ConfirmationResult:
    token = _get_token(session, token_value)
    deposit = session.get(LegalDepositRequest, token.request_id)
    if token.status == "confirmed":
        return ConfirmationResult(
            message="Already confirmed",
            confirmation_status=deposit.confirmation_status if deposit else None,
        )
    if token.status == "rejected":
        raise ValueError("This confirmation was already rejected")

    now = get_datetime_utc()
    if as_utc(token.expires_at) < now:
        token.status = "expired"
        session.add(token)
        session.commit()
        raise ValueError("The confirmation token has expired")

    token.status = "confirmed"
    token.confirmed_at = now
    session.add(token)
    session.flush()

    statuses = session.exec(
        select(DepositConfirmationToken.status).where(DepositConfirmationToken.request_id == token.request_id)
    ).all()
    if deposit and all(s == "confirmed" for s in statuses):
        deposit.confirmation_status = "confirmed"
        deposit.updated_at = now
        session.add(deposit)
        if deposit.initiator_id:
            crud.create_notification(
                session=session,
                user_id=deposit.initiator_id,
                type="legal_deposit",
                title="Confirmation reçue",
                message=f"Toutes les parties ont confirmé la demande {deposit.request_number}.",
                link=f"/legal-deposit/{deposit.id}",
                commit=False,
            )
    session.commit()
    logger.info("Confirmation token for request %s confirmed", token.request_id)
    return ConfirmationResult(
        message="Confirmation recorded",
        confirmation_status=deposit.confirmation_status if deposit else None,
    )


def reject(*, session: Session, token_value: str, reason: str | None = None) -> ConfirmationResult:
    token = _get_token(session, token_value)
    if token.status == "confirmed" and token.party_type == "initiator":
        raise ValueError("The initiator confirmation cannot be rejected")

    token.status = "rejected"
    token.rejection_reason = reason or "Aucune raison fournie"
    session.add(token)

    deposit = session.get(LegalDepositRequest, token.request_id)
    if deposit:
        deposit.confirmation_status = "rejected"
        deposit.updated_at = get_datetime_utc()
        session.add(deposit)
        if deposit.initiator_id:
            crud.create_notification(
                session=session,
                user_id=deposit.initiator_id,
                type="legal_deposit",
                title="Confirmation refusée",
                message=(
                    f"La contrepartie a refusé de confirmer la demande « {deposit.title} ». "
                    f"Raison : {token.rejection_reason}"
                ),
                link=f"/legal-deposit/{deposit.id}",
                priority=2,
                commit=False,
            )
    session.commit()
    return ConfirmationResult(message="Rejection recorded", confirmation_status="rejected")


def get_status(*, session: Session, request_id: uuid.UUID) -> list[DepositConfirmationToken]:
    return list(
        session.exec(
            select(DepositConfirmationToken)
            .where(DepositConfirmationToken.request_id == request_id)
            .order_by(col(DepositConfirmationToken.party_type))
        ).all()
    )
