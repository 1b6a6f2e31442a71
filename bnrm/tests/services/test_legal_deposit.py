import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlmodel import Session, select

from bnrm.models import (
    DepositConfirmationToken,
    DepositStatus,
    LegalDepositRequest,
    LegalDepositRequestCreate,
    MonographType,
    Notification,
    NumberAttribution,
    SupportType,
    UserRole,
    get_datetime_utc,
)
from bnrm.services import legal_deposit
from bnrm.services.legal_deposit import allowed_targets, can_transition
from bnrm.tests.utils.user import create_random_user

S = DepositStatus


def _request_in(**kwargs) -> LegalDepositRequestCreate:
    return LegalDepositRequestCreate(
        title="Histoire de Fès",
        support_type=SupportType.imprime,
        monograph_type=MonographType.livres,
        **kwargs,
    )


def _advance(db: Session, deposit, actor, *targets):
    for target in targets:
        deposit = legal_deposit.transition(session=db, deposit=deposit, target=target, actor=actor)
    return deposit


def test_transition_table():
    assert can_transition(S.brouillon, S.soumis)
    assert not can_transition(S.brouillon, S.attribue)
    assert can_transition(S.en_attente_validation_b, S.rejete_par_b)
    assert can_transition(S.en_cours, S.rejete)
    assert allowed_targets(S.receptionne) == set()
    assert allowed_targets(S.rejete_par_comite) == set()


def test_request_numbers_are_sequential(db: Session):
    initiator = create_random_user(db, role=UserRole.editor)
    first = legal_deposit.create_request(session=db, request_in=_request_in(), initiator=initiator)
    second = legal_deposit.create_request(session=db, request_in=_request_in(), initiator=initiator)
    year = get_datetime_utc().year
    assert first.request_number.startswith(f"DL-{year}-")
    assert len(first.request_number) == len(f"DL-{year}-") + 6
    assert int(second.request_number[-6:]) == int(first.request_number[-6:]) + 1
    assert first.status == S.brouillon


def test_request_numbers_skip_past_out_of_sequence_entries(db: Session):
    initiator = create_random_user(db, role=UserRole.editor)
    year = get_datetime_utc().year
    first = legal_deposit.create_request(session=db, request_in=_request_in(), initiator=initiator)
    ahead = f"DL-{year}-{int(first.request_number[-6:]) + 2:06d}"
    db.add(
        LegalDepositRequest.model_validate(
            _request_in(), update={"request_number": ahead, "initiator_id": initiator.id}
        )
    )
    db.commit()

    following = legal_deposit.create_request(session=db, request_in=_request_in(), initiator=initiator)
    assert int(following.request_number[-6:]) == int(ahead[-6:]) + 1


def test_unknown_collaborator(db: Session):
    initiator = create_random_user(db, role=UserRole.editor)
    with pytest.raises(LookupError):
        legal_deposit.create_request(
            session=db, request_in=_request_in(collaborator_id=uuid.uuid4()), initiator=initiator
        )


def test_full_circuit_with_attribution(db: Session):
    initiator = create_random_user(db, role=UserRole.editor)
    staff = create_random_user(db, role=UserRole.librarian)
    deposit = legal_deposit.create_request(session=db, request_in=_request_in(), initiator=initiator)

    deposit = _advance(db, deposit, initiator, S.soumis)
    assert deposit.submission_date is not None

    with pytest.raises(ValueError):
        legal_deposit.attribute_numbers(
            session=db, deposit=deposit, numbers=NumberAttribution(), actor=staff
        )

    deposit = _advance(
        db,
        deposit,
        staff,
        S.en_attente_validation_b,
        S.valide_par_b,
        S.en_attente_comite_validation,
        S.valide_par_comite,
        S.en_cours,
    )
    with patch("bnrm.services.legal_deposit.send_email") as send_email:
        deposit = legal_deposit.attribute_numbers(
            session=db, deposit=deposit, numbers=NumberAttribution(isbn="978-9954-0-0000-0"), actor=staff
        )
    assert deposit.status == S.attribue
    assert deposit.dl_number.startswith(f"DL-{get_datetime_utc().year}-")
    assert deposit.isbn == "978-9954-0-0000-0"
    assert deposit.attribution_date is not None
    send_email.assert_called_once()
    assert send_email.call_args.kwargs["email_to"] == initiator.email

    deposit = _advance(db, deposit, staff, S.receptionne)
    assert deposit.reception_date is not None
    with pytest.raises(ValueError):
        _advance(db, deposit, staff, S.rejete)

    notifications = db.exec(select(Notification).where(Notification.user_id == initiator.id)).all()
    assert len(notifications) == 7


def test_rejection_needs_a_reason(db: Session):
    initiator = create_random_user(db, role=UserRole.editor)
    staff = create_random_user(db, role=UserRole.librarian)
    deposit = legal_deposit.create_request(session=db, request_in=_request_in(), initiator=initiator)
    deposit = _advance(db, deposit, initiator, S.soumis)
    deposit = _advance(db, deposit, staff, S.en_attente_validation_b)

    with pytest.raises(ValueError):
        legal_deposit.transition(session=db, deposit=deposit, target=S.rejete_par_b, actor=staff)
    with pytest.raises(ValueError):
        legal_deposit.transition(
            session=db, deposit=deposit, target=S.rejete_par_b, actor=staff, rejection_reason="  "
        )
    deposit = legal_deposit.transition(
        session=db, deposit=deposit, target=S.rejete_par_b, actor=staff, rejection_reason="Dossier incomplet"
    )
    assert deposit.status == S.rejete_par_b
    assert deposit.rejection_reason == "Dossier incomplet"


def test_invalid_transition_keeps_status(db: Session):
    initiator = create_random_user(db, role=UserRole.editor)
    deposit = legal_deposit.create_request(session=db, request_in=_request_in(), initiator=initiator)
    with pytest.raises(ValueError):
        legal_deposit.transition(session=db, deposit=deposit, target=S.en_cours, actor=initiator)
    db.refresh(deposit)
    assert deposit.status == S.brouillon


def _with_tokens(db: Session):
    initiator = create_random_user(db, role=UserRole.editor)
    collaborator = create_random_user(db, role=UserRole.printer)
    deposit = legal_deposit.create_request(
        session=db, request_in=_request_in(collaborator_id=collaborator.id), initiator=initiator
    )
    tokens = legal_deposit.create_tokens(session=db, deposit=deposit)
    return deposit, tokens


def test_tokens_require_a_collaborator(db: Session):
    initiator = create_random_user(db, role=UserRole.editor)
    deposit = legal_deposit.create_request(session=db, request_in=_request_in(), initiator=initiator)
    with pytest.raises(ValueError):
        legal_deposit.create_tokens(session=db, deposit=deposit)


def test_collaborator_confirmation_completes_the_handshake(db: Session):
    deposit, (initiator_token, collaborator_token) = _with_tokens(db)
    assert initiator_token.status == "confirmed"
    assert collaborator_token.status == "pending"
    assert deposit.confirmation_status == "pending_confirmation"

    result = legal_deposit.confirm(session=db, token_value=collaborator_token.token)
    assert result.confirmation_status == "confirmed"
    db.refresh(deposit)
    assert deposit.confirmation_status == "confirmed"

    again = legal_deposit.confirm(session=db, token_value=collaborator_token.token)
    assert again.message == "Already confirmed"


def test_regenerating_tokens_replaces_old_ones(db: Session):
    deposit, (_, old_collaborator_token) = _with_tokens(db)
    legal_deposit.create_tokens(session=db, deposit=deposit)
    tokens = db.exec(
        select(DepositConfirmationToken).where(DepositConfirmationToken.request_id == deposit.id)
    ).all()
    assert len(tokens) == 2
    with pytest.raises(LookupError):
        legal_deposit.confirm(session=db, token_value=old_collaborator_token.token)


def test_expired_token(db: Session):
    _, (_, collaborator_token) = _with_tokens(db)
    collaborator_token.expires_at = get_datetime_utc() - timedelta(minutes=1)
    db.add(collaborator_token)
    db.commit()

    with pytest.raises(ValueError):
        legal_deposit.confirm(session=db, token_value=collaborator_token.token)
    db.refresh(collaborator_token)
    assert collaborator_token.status == "expired"


def test_rejected_confirmation(db: Session):
    deposit, (initiator_token, collaborator_token) = _with_tokens(db)
    result = legal_deposit.reject(session=db, token_value=collaborator_token.token, reason="Pas partenaire")
    assert result.confirmation_status == "rejected"
    db.refresh(deposit)
    assert deposit.confirmation_status == "rejected"
    with pytest.raises(ValueError):
        legal_deposit.confirm(session=db, token_value=collaborator_token.token)
    with pytest.raises(ValueError):
        legal_deposit.reject(session=db, token_value=initiator_token.token)

    statuses = {t.party_type: t.status for t in legal_deposit.get_status(session=db, request_id=deposit.id)}
    assert statuses == {"collaborator": "rejected", "initiator": "confirmed"}
