import hashlib
import hmac
import json
import uuid

from fastapi.testclient import TestClient
from sqlmodel import Session, select

from bnrm import crud
from bnrm.core.config import settings
from bnrm.models import CatalogMetadata, WebhookEvent
from bnrm.tests.utils.utils import random_email

SECRET = "integration-secret"


def _create_webhook(client: TestClient, headers: dict[str, str], **overrides) -> dict:
    r = client.post(
        f"{settings.API_V1_STR}/integrations/",
        headers=headers,
        json={
            "name": "SIGB",
            "system_type": "sigb",
            "data_mapping": {
                "users": {"email": "mail", "full_name": "name"},
                "catalog_metadata": {"source_record_id": "record_id", "title": "titre", "isbn": "isbn"},
            },
        },
    )
    assert r.status_code == 200
    payload = {"integration_id": r.json()["id"], "webhook_secret": SECRET, **overrides}
    r = client.post(f"{settings.API_V1_STR}/integrations/webhooks", headers=headers, json=payload)
    assert r.status_code == 200
    return r.json()


def _post(client: TestClient, webhook_id: str, body: dict, secret: str | None = SECRET, **headers):
    raw = json.dumps(body).encode()
    if secret:
        headers["X-Webhook-Signature"] = "sha256=" + hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    return client.post(
        f"{settings.API_V1_STR}/integrations/webhook",
        params={"webhook_id": webhook_id},
        content=raw,
        headers={"content-type": "application/json", **headers},
    )


def test_webhook_requires_known_id(client: TestClient) -> None:
    r = client.post(f"{settings.API_V1_STR}/integrations/webhook", content=b"{}")
    assert r.status_code == 400
    assert r.json() == {"error": "webhook_id required"}

    r = client.post(
        f"{settings.API_V1_STR}/integrations/webhook",
        params={"webhook_id": "not-a-uuid"},
        content=b"{}",
    )
    assert r.status_code == 400


def test_webhook_secret_is_not_exposed(client: TestClient, superuser_token_headers: dict[str, str]) -> None:
    webhook = _create_webhook(client, superuser_token_headers)
    assert webhook["has_secret"] is True
    assert "webhook_secret" not in webhook


def test_webhook_rejects_bad_signature(client: TestClient, superuser_token_headers: dict[str, str]) -> None:
    webhook = _create_webhook(client, superuser_token_headers)
    r = _post(client, webhook["id"], {"event": "user.created"}, secret="wrong")
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid signature"}

    r = _post(client, webhook["id"], {"event": "user.created"}, secret=None)
    assert r.status_code == 400


def test_webhook_rejects_invalid_json(client: TestClient, superuser_token_headers: dict[str, str]) -> None:
    webhook = _create_webhook(client, superuser_token_headers)
    r = client.post(
        f"{settings.API_V1_STR}/integrations/webhook",
        params={"webhook_id": webhook["id"]},
        content=b"not json",
    )
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid JSON payload"}


def test_webhook_ip_allow_list(client: TestClient, superuser_token_headers: dict[str, str]) -> None:
    webhook = _create_webhook(client, superuser_token_headers, allowed_ips=["10.1.1.1"])
    r = _post(client, webhook["id"], {"event": "user.created"}, **{"X-Forwarded-For": "10.9.9.9"})
    assert r.status_code == 400
    assert r.json() == {"error": "IP not authorized"}

    r = _post(client, webhook["id"], {"event": "other"}, **{"X-Forwarded-For": "10.1.1.1, 10.0.0.1"})
    assert r.status_code == 200


def test_webhook_ignores_unconfigured_event_types(
    client: TestClient, superuser_token_headers: dict[str, str]
) -> None:
    webhook = _create_webhook(client, superuser_token_headers, event_types=["user.created"])
    r = _post(client, webhook["id"], {"event": "deposit.updated"})
    assert r.status_code == 200
    assert r.json() == {"success": True, "message": "Event type not configured"}


def test_webhook_rejects_non_ascii_signature(client: TestClient, superuser_token_headers: dict[str, str]) -> None:
    webhook = _create_webhook(client, superuser_token_headers)
    r = client.post(
        f"{settings.API_V1_STR}/integrations/webhook",
        params={"webhook_id": webhook["id"]},
        content=json.dumps({"event": "user.created"}).encode(),
        headers={"content-type": "application/json", "X-Webhook-Signature": "sha256=\xe9".encode("latin-1")},
    )
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid signature"}


def test_webhook_with_empty_event_list_ignores_events(
    client: TestClient, superuser_token_headers: dict[str, str]
) -> None:
    webhook = _create_webhook(client, superuser_token_headers, event_types=[])
    r = _post(client, webhook["id"], {"event": "user.created"})
    assert r.status_code == 200
    assert r.json() == {"success": True, "message": "Event type not configured"}


def test_webhook_user_event_is_processed(
    client: TestClient, superuser_token_headers: dict[str, str], db: Session
) -> None:
    webhook = _create_webhook(client, superuser_token_headers)
    email = random_email()
    r = _post(client, webhook["id"], {"event": "user.created", "data": {"mail": email, "name": "Amina"}})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True

    user = crud.get_user_by_email(session=db, email=email)
    assert user is not None
    assert user.full_name == "Amina"

    r = client.get(
        f"{settings.API_V1_STR}/integrations/webhooks/{webhook['id']}/events",
        headers=superuser_token_headers,
    )
    events = r.json()
    assert [e["id"] for e in events] == [body["event_id"]]
    assert events[0]["status"] == "processed"
    assert events[0]["signature_valid"] is True


def test_webhook_catalog_event_upserts_metadata(
    client: TestClient, superuser_token_headers: dict[str, str], db: Session
) -> None:
    webhook = _create_webhook(client, superuser_token_headers)
    data = {"record_id": "SIGB-42", "titre": "Rihla", "isbn": "9789954000000"}
    assert _post(client, webhook["id"], {"type": "catalog.updated", "data": data}).status_code == 200
    data["titre"] = "Rihla (réédition)"
    assert _post(client, webhook["id"], {"type": "catalog.updated", "data": data}).status_code == 200

    db.expire_all()
    records = db.exec(select(CatalogMetadata).where(CatalogMetadata.source_record_id == "SIGB-42")).all()
    assert len(records) == 1
    assert records[0].title == "Rihla (réédition)"
    assert records[0].raw["record_id"] == "SIGB-42"


def test_webhook_failed_event_records_error(
    client: TestClient, superuser_token_headers: dict[str, str], db: Session
) -> None:
    webhook = _create_webhook(client, superuser_token_headers)
    r = _post(client, webhook["id"], {"event": "user.created", "data": {"name": "Sans courriel"}})
    assert r.status_code == 200

    db.expire_all()
    event = db.exec(select(WebhookEvent).where(WebhookEvent.webhook_id == uuid.UUID(webhook["id"]))).one()
    assert event.status == "failed"
    assert "email" in event.error_message
