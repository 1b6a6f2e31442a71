"""
Inbound webhooks from external systems: signature and source checks, event
persistence, and mapping of event payloads onto local records.
"""
import hashlib
import hmac
import logging
import secrets
import uuid
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from bnrm.core.db import engine
from bnrm.core.security import get_password_hash
from bnrm.models import (
    CatalogMetadata,
    DepositStatus,
    ExternalIntegration,
    IntegrationWebhook,
    LegalDepositRequest,
    LegalDepositRequestBase,
    User,
    WebhookEvent,
    get_datetime_utc,
)

logger = logging.getLogger(__name__)

_DIGESTS = {"sha256": hashlib.sha256, "sha512": hashlib.sha512}
_SIGNATURE_PREFIXES = ("sha256=", "sha512=")

USER_FIELDS = ("email", "full_name", "phone", "preferred_language")
DEPOSIT_TRACKING_FIELDS = ("isbn", "issn", "ismn", "dl_number", "rejection_reason")
CATALOG_FIELDS = ("title", "author", "isbn", "publisher", "publication_year")


def verify_signature(
    payload: bytes | str, signature: str | None, secret: str, algorithm: str = "sha256"
) -> bool:
    """
    Check an HMAC hex digest of the raw payload against the signature header.
    A leading `sha256=`/`sha512=` on the header is ignored; sha512 is used for
    any algorithm other than sha256.
    """
    if not signature:
        return False
    if isinstance(payload, str):
        payload = payload.encode("utf-8")

    digest = _DIGESTS.get(algorithm, hashlib.sha512)
    expected = hmac.new(secret.encode("utf-8"), payload, digest).hexdigest()

    received = signature.strip()
    for prefix in _SIGNATURE_PREFIXES:
        if received.startswith(prefix):
            received = received[len(prefix):]
            break
    if not received.isascii():
        return False
    return hmac.compare_digest(expected, received)


def get_source_ip(headers: Mapping[str, str], client_host: str | None = None) -> str | None:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return headers.get("x-real-ip") or client_host


def resolve_event_type(body: Mapping[str, Any]) -> str:
    return str(body.get("event") or body.get("type") or body.get("event_type") or "unknown")


def is_event_allowed(event_type: str, allowed: list[str] | None) -> bool:
    allowed = allowed or []
    return "*" in allowed or event_type in allowed


def apply_mapping(data: Mapping[str, Any], mapping: Mapping[str, str]) -> dict[str, Any]:
    """Build a local record from a remote payload using a `local_field -> remote_field` map."""
    return {local: data.get(remote) for local, remote in mapping.items() if remote in data}


def record_event(
    *,
    session: Session,
    webhook: IntegrationWebhook,
    event_type: str,
    body: dict[str, Any],
    headers: Mapping[str, str],
    source_ip: str | None,
    signature_valid: bool | None,
) -> WebhookEvent:
    event = WebhookEvent(
        webhook_id=webhook.id,
        event_type=event_type,
        event_data=body,
        headers={k: v for k, v in headers.items() if k.lower() != "authorization"},
        source_ip=source_ip,
        signature_valid=signature_valid,
    )
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


def _upsert_user(session: Session, values: dict[str, Any]) -> None:
    values = {k: v for k, v in values.items() if k in USER_FIELDS and v is not None}
    email = values.get("email")
    if not email:
        raise ValueError("User event without email")

    user = session.exec(select(User).where(User.email == email)).first()
    if user is None:
        user = User(email=email, hashed_password=get_password_hash(secrets.token_urlsafe(24)))
    for key, value in values.items():
        setattr(user, key, value)
    session.add(user)


def _upsert_deposit(session: Session, values: dict[str, Any]) -> None:
    request_number = values.get("request_number")
    if not request_number:
        raise ValueError("Deposit event without request_number")

    deposit = session.exec(
        select(LegalDepositRequest).where(LegalDepositRequest.request_number == request_number)
    ).first()
    base_fields = set(LegalDepositRequestBase.model_fields)
    current = deposit.model_dump(include=base_fields) if deposit else {}
    try:
        base = LegalDepositRequestBase.model_validate(
            {**current, **{k: v for k, v in values.items() if k in base_fields}}
        )
        status = DepositStatus(values["status"]) if values.get("status") else None
    except (ValidationError, ValueError) as e:
        raise ValueError(f"Invalid deposit payload: {e}") from e

    if deposit is None:
        deposit = LegalDepositRequest(request_number=request_number, **base.model_dump())
    else:
        deposit.sqlmodel_update(base.model_dump())
    if status is not None:
        deposit.status = status
    for key in DEPOSIT_TRACKING_FIELDS:
        if values.get(key) is not None:
            setattr(deposit, key, values[key])
    deposit.updated_at = get_datetime_utc()
    session.add(deposit)


def _upsert_catalog_metadata(session: Session, values: dict[str, Any], raw: dict[str, Any]) -> None:
    source_record_id = values.get("source_record_id")
    if not source_record_id:
        raise ValueError("Metadata event without source_record_id")

    record = session.exec(
        select(CatalogMetadata).where(CatalogMetadata.source_record_id == str(source_record_id))
    ).first()
    if record is None:
        record = CatalogMetadata(source_record_id=str(source_record_id))
    for key in CATALOG_FIELDS:
        if key in values:
            setattr(record, key, values[key])
    if record.publication_year is not None:
        record.publication_year = int(record.publication_year)
    record.raw = raw
    record.updated_at = get_datetime_utc()
    session.add(record)


def handle_event(session: Session, event: WebhookEvent, integration: ExternalIntegration | None) -> None:
    """Route an event by type onto users, legal deposits or catalogue metadata."""
    body = event.event_data or {}
    event_type = event.event_type
    mappings = integration.data_mapping if integration else {}

    if "user" in event_type:
        data, mapping = body.get("data") or body.get("user"), mappings.get("users")
        if data and mapping:
            _upsert_user(session, apply_mapping(data, mapping))
    elif "deposit" in event_type:
        data, mapping = body.get("data") or body.get("deposit"), mappings.get("legal_deposits")
        if data and mapping:
            _upsert_deposit(session, apply_mapping(data, mapping))
    elif "metadata" in event_type or "catalog" in event_type:
        data, mapping = body.get("data") or body.get("metadata"), mappings.get("catalog_metadata")
        if data and mapping:
            _upsert_catalog_metadata(session, apply_mapping(data, mapping), data)
    else:
        logger.info("No handler for webhook event type %s", event_type)


def process_webhook_event(session: Session, event_id: uuid.UUID) -> WebhookEvent | None:
    event = session.get(WebhookEvent, event_id)
    if event is None:
        logger.warning("Webhook event %s vanished before processing", event_id)
        return None

    event.status = "processing"
    session.add(event)
    session.commit()

    webhook = session.get(IntegrationWebhook, event.webhook_id)
    integration = webhook.integration if webhook else None
    try:
        handle_event(session, event, integration)
        session.flush()
        event.status = "processed"
        event.error_message = None
    except (ValueError, TypeError, SQLAlchemyError) as e:
        session.rollback()
        logger.error("Webhook event %s failed: %s", event_id, e)
        event = session.get(WebhookEvent, event_id)
        event.status = "failed"
        event.error_message = str(e)
    event.processed_at = get_datetime_utc()
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


def process_webhook_event_in_background(event_id: uuid.UUID) -> None:
    with Session(engine) as session:
        process_webhook_event(session, event_id)
