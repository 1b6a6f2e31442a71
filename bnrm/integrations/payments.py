"""
Hosted checkout payments: session creation at the payment gateway and
settlement of transactions from the gateway's signed callbacks.
"""
import logging
import uuid
from datetime import timedelta
from typing import Any

import httpx
from sqlmodel import Session, select

from bnrm import crud
from bnrm.core.config import settings
from bnrm.core.errors import GatewayError
from bnrm.models import (
    PaymentCreate,
    PaymentSession,
    PaymentStatus,
    PaymentTransaction,
    ServiceRegistration,
    User,
    get_datetime_utc,
)

logger = logging.getLogger(__name__)

DEFAULT_SUBSCRIPTION_DAYS = 365

COMPLETED_EVENTS = {"checkout.session.completed", "payment_intent.succeeded"}
FAILED_EVENTS = {"checkout.session.expired", "payment_intent.payment_failed"}


def _checkout_form(transaction: PaymentTransaction, customer_email: str | None) -> dict[str, Any]:
    frontend = settings.FRONTEND_HOST.rstrip("/")
    form: dict[str, Any] = {
        "mode": "payment",
        "client_reference_id": str(transaction.id),
        "success_url": settings.PAYMENT_SUCCESS_URL or f"{frontend}/payment/success",
        "cancel_url": settings.PAYMENT_CANCEL_URL or f"{frontend}/payment/cancel",
        "line_items[0][quantity]": 1,
        "line_items[0][price_data][currency]": transaction.currency.lower(),
        # Amounts are sent in the currency's minor unit
        "line_items[0][price_data][unit_amount]": int(round(transaction.amount * 100)),
        "line_items[0][price_data][product_data][name]": f"BNRM - {transaction.transaction_type.value}",
        "metadata[transaction_id]": str(transaction.id),
        "metadata[transaction_type]": transaction.transaction_type.value,
    }
    if customer_email:
        form["customer_email"] = customer_email
    return form


def _raise_for_gateway_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    if response.status_code == 429:
        raise GatewayError(429, "RATE_LIMIT", "Payment gateway rate limit reached, please retry shortly.")
    if response.status_code == 402:
        raise GatewayError(402, "PAYMENT_REQUIRED", "The payment was declined by the gateway.")
    logger.error("Payment gateway error %s: %s", response.status_code, response.text[:500])
    raise GatewayError(502, "UPSTREAM_ERROR", f"Payment gateway error ({response.status_code})")


async def create_checkout_session(
    *,
    session: Session,
    user: User,
    payment_in: PaymentCreate,
    http_client: httpx.AsyncClient | None = None,
) -> PaymentSession:
    if payment_in.amount <= 0:
        raise ValueError("Amount must be greater than zero")
    if not settings.PAYMENT_API_KEY:
        raise GatewayError(500, "NO_KEY", "Payment gateway is not configured")

    if payment_in.registration_id is not None:
        registration = session.get(ServiceRegistration, payment_in.registration_id)
        if registration is None or registration.user_id != user.id:
            raise LookupError("Registration not found")

    transaction = PaymentTransaction(
        user_id=user.id,
        registration_id=payment_in.registration_id,
        amount=payment_in.amount,
        currency=settings.PAYMENT_CURRENCY.upper(),
        transaction_type=payment_in.transaction_type,
        details=payment_in.details,
    )
    session.add(transaction)
    session.commit()
    session.refresh(transaction)

    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=30.0)
    try:
        logger.info("Creating checkout session for transaction %s", transaction.id)
        response = await client.post(
            f"{settings.PAYMENT_API_BASE.rstrip('/')}/checkout/sessions",
            data=_checkout_form(transaction, user.email),
            headers={"Authorization": f"Bearer {settings.PAYMENT_API_KEY}"},
        )
        _raise_for_gateway_status(response)
        checkout = response.json()
    except httpx.HTTPError as e:
        transaction.status = PaymentStatus.failed
        session.add(transaction)
        session.commit()
        raise GatewayError(502, "UPSTREAM_UNREACHABLE", f"Payment gateway unreachable: {e}") from e
    except GatewayError:
        transaction.status = PaymentStatus.failed
        session.add(transaction)
        session.commit()
        raise
    finally:
        if owns_client:
            await client.aclose()

    transaction.gateway_session_id = checkout["id"]
    transaction.checkout_url = checkout["url"]
    transaction.status = PaymentStatus.processing
    session.add(transaction)
    crud.insert_activity_log(
        session=session,
        action="payment_initiated",
        resource_type="payment_transaction",
        resource_id=transaction.id,
        details={"amount": transaction.amount, "type": transaction.transaction_type.value},
        user_id=user.id,
    )
    return PaymentSession(url=checkout["url"], session_id=checkout["id"], transaction_id=transaction.id)


def activate_registration(session: Session, registration: ServiceRegistration) -> None:
    now = get_datetime_utc()
    days = int(registration.registration_data.get("duration_days") or DEFAULT_SUBSCRIPTION_DAYS)
    registration.status = "active"
    registration.is_paid = True
    registration.expires_at = now + timedelta(days=days)
    registration.renewal_reminder_sent = False
    registration.updated_at = now
    session.add(registration)


def _find_transaction(session: Session, checkout: dict[str, Any]) -> PaymentTransaction | None:
    if checkout.get("id"):
        transaction = session.exec(
            select(PaymentTransaction).where(PaymentTransaction.gateway_session_id == checkout["id"])
        ).first()
        if transaction:
            return transaction
    reference = checkout.get("client_reference_id") or (checkout.get("metadata") or {}).get("transaction_id")
    if not reference:
        return None
    try:
        return session.get(PaymentTransaction, uuid.UUID(str(reference)))
    except ValueError:
        return None


def apply_payment_event(session: Session, event: dict[str, Any]) -> PaymentTransaction | None:
    """Settle the transaction a gateway event refers to; unknown event types are ignored."""
    event_type = event.get("type") or ""
    if event_type not in COMPLETED_EVENTS | FAILED_EVENTS:
        logger.info("Ignoring payment event %s", event_type)
        return None

    checkout = (event.get("data") or {}).get("object") or {}
    transaction = _find_transaction(session, checkout)
    if transaction is None:
        raise LookupError("Transaction not found")
    if transaction.status == PaymentStatus.completed:
        return transaction

    if event_type in COMPLETED_EVENTS:
        transaction.status = PaymentStatus.completed
        if transaction.registration_id:
            registration = session.get(ServiceRegistration, transaction.registration_id)
            if registration:
                activate_registration(session, registration)
        if transaction.user_id:
            crud.create_notification(
                session=session,
                user_id=transaction.user_id,
                type="payment",
                title="Paiement confirmé",
                message=f"Votre paiement de {transaction.amount:.2f} {transaction.currency} a été confirmé.",
                commit=False,
            )
    else:
        transaction.status = PaymentStatus.failed

    session.add(transaction)
    crud.insert_activity_log(
        session=session,
        action=f"payment_{transaction.status.value}",
        resource_type="payment_transaction",
        resource_id=transaction.id,
        details={"event": event_type},
        user_id=transaction.user_id,
        commit=False,
    )
    session.commit()
    session.refresh(transaction)
    logger.info("Transaction %s is now %s", transaction.id, transaction.status.value)
    return transaction
