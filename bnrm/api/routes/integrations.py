import json
import logging
import uuid
from typing import Any

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlmodel import col, select

from bnrm.api.deps import SessionDep, StaffUser
from bnrm.integrations import webhooks
from bnrm.models import (
    ExternalIntegration,
    ExternalIntegrationCreate,
    ExternalIntegrationPublic,
    IntegrationWebhook,
    IntegrationWebhookCreate,
    IntegrationWebhookPublic,
    Message,
    WebhookEvent,
    WebhookEventPublic,
)

router = APIRouter(prefix="/integrations", tags=["integrations"])
logger = logging.getLogger(__name__)


def _error(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message})


def _webhook_public(webhook: IntegrationWebhook) -> IntegrationWebhookPublic:
    return IntegrationWebhookPublic.model_validate(
        webhook, update={"has_secret": bool(webhook.webhook_secret)}
    )


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    session: SessionDep,
    background_tasks: BackgroundTasks,
    webhook_id: str | None = None,
) -> Any:
    """
    Entry point for external systems. The event is stored as received and
    processed after the response is sent.
    """
    if not webhook_id:
        return _error("webhook_id required")
    try:
        webhook = session.get(IntegrationWebhook, uuid.UUID(webhook_id))
    except ValueError:
        webhook = None
    if webhook is None or not webhook.is_active:
        return _error("Webhook not found or inactive")

    source_ip = webhooks.get_source_ip(request.headers, request.client.host if request.client else None)
    if webhook.allowed_ips and source_ip not in webhook.allowed_ips:
        logger.warning("Webhook %s called from unauthorized IP %s", webhook.id, source_ip)
        return _error("IP not authorized")

    payload = await request.body()
    try:
        body = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error("Invalid JSON payload")
    if not isinstance(body, dict):
        return _error("Invalid JSON payload")

    signature_valid = None
    if webhook.webhook_secret:
        signature_valid = webhooks.verify_signature(
            payload,
            request.headers.get(webhook.signature_header),
            webhook.webhook_secret,
            webhook.signature_algorithm,
        )
        if not signature_valid:
            logger.warning("Invalid signature for webhook %s", webhook.id)
            return _error("Invalid signature")

    event_type = webhooks.resolve_event_type(body)
    if not webhooks.is_event_allowed(event_type, webhook.event_types):
        logger.info("Webhook %s ignored event type %s", webhook.id, event_type)
        return {"success": True, "message": "Event type not configured"}

    event = webhooks.record_event(
        session=session,
        webhook=webhook,
        event_type=event_type,
        body=body,
        headers=request.headers,
        source_ip=source_ip,
        signature_valid=signature_valid,
    )
    background_tasks.add_task(webhooks.process_webhook_event_in_background, event.id)
    logger.info("Webhook event %s (%s) queued", event.id, event_type)
    return {"success": True, "event_id": str(event.id)}


@router.get("/", response_model=list[ExternalIntegrationPublic])
def read_integrations(session: SessionDep, current_user: StaffUser) -> Any:
    return session.exec(select(ExternalIntegration).order_by(col(ExternalIntegration.name))).all()


@router.post("/", response_model=ExternalIntegrationPublic)
def create_integration(
    *, session: SessionDep, current_user: StaffUser, integration_in: ExternalIntegrationCreate
) -> Any:
    integration = ExternalIntegration.model_validate(integration_in)
    session.add(integration)
    session.commit()
    session.refresh(integration)
    return integration


@router.delete("/{integration_id}", response_model=Message)
def delete_integration(session: SessionDep, current_user: StaffUser, integration_id: uuid.UUID) -> Any:
    integration = session.get(ExternalIntegration, integration_id)
    if not integration:
        raise HTTPException(status_code=404, detail="Integration not found")
    session.delete(integration)
    session.commit()
    return Message(message="Integration deleted successfully")


@router.get("/webhooks", response_model=list[IntegrationWebhookPublic])
def read_webhooks(
    session: SessionDep, current_user: StaffUser, integration_id: uuid.UUID | None = None
) -> Any:
    statement = select(IntegrationWebhook)
    if integration_id:
        statement = statement.where(IntegrationWebhook.integration_id == integration_id)
    return [_webhook_public(w) for w in session.exec(statement).all()]


@router.post("/webhooks", response_model=IntegrationWebhookPublic)
def create_webhook(
    *, session: SessionDep, current_user: StaffUser, webhook_in: IntegrationWebhookCreate
) -> Any:
    if not session.get(ExternalIntegration, webhook_in.integration_id):
        raise HTTPException(status_code=404, detail="Integration not found")
    if webhook_in.signature_algorithm not in ("sha256", "sha512"):
        raise HTTPException(status_code=400, detail="Unsupported signature algorithm")
    webhook = IntegrationWebhook.model_validate(webhook_in)
    session.add(webhook)
    session.commit()
    session.refresh(webhook)
    return _webhook_public(webhook)


@router.delete("/webhooks/{webhook_id}", response_model=Message)
def delete_webhook(session: SessionDep, current_user: StaffUser, webhook_id: uuid.UUID) -> Any:
    webhook = session.get(IntegrationWebhook, webhook_id)
    if not webhook:
        raise HTTPException(status_code=404, detail="Webhook not found")
    session.delete(webhook)
    session.commit()
    return Message(message="Webhook deleted successfully")


@router.get("/webhooks/{webhook_id}/events", response_model=list[WebhookEventPublic])
def read_webhook_events(
    session: SessionDep,
    current_user: StaffUser,
    webhook_id: uuid.UUID,
    status: str | None = None,
    limit: int = 100,
) -> Any:
    statement = select(WebhookEvent).where(WebhookEvent.webhook_id == webhook_id)
    if status:
        statement = statement.where(WebhookEvent.status == status)
    return session.exec(statement.order_by(col(WebhookEvent.received_at).desc()).limit(limit)).all()
