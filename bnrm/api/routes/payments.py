import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request

from bnrm.api.deps import CurrentUser, SessionDep
from bnrm.core.config import settings
from bnrm.core.errors import GatewayError
from bnrm.integrations import payments
from bnrm.integrations.webhooks import verify_signature
from bnrm.models import Message, PaymentCreate, PaymentSession

router = APIRouter(prefix="/payments", tags=["payments"])
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"


@router.post("/create-payment", response_model=PaymentSession)
async def create_payment(
    *, session: SessionDep, current_user: CurrentUser, payment_in: PaymentCreate
) -> Any:
    """
    Open a hosted checkout session and return the URL to redirect the user to.
    """
    try:
        return await payments.create_checkout_session(
            session=session, user=current_user, payment_in=payment_in
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except GatewayError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/webhook", response_model=Message)
async def payment_webhook(request: Request, session: SessionDep) -> Any:
    if not settings.PAYMENT_WEBHOOK_SECRET:
        raise HTTPException(status_code=500, detail="Payment webhook secret is not configured")

    payload = await request.body()
    if not verify_signature(payload, request.headers.get(SIGNATURE_HEADER), settings.PAYMENT_WEBHOOK_SECRET):
        logger.warning("Rejected payment callback with an invalid signature")
        raise HTTPException(status_code=400, detail="Invalid signature")
    try:
        event = json.loads(payload)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    try:
        transaction = payments.apply_payment_event(session, event)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if transaction is None:
        return Message(message="Event ignored")
    return Message(message=f"Transaction {transaction.status.value}")
