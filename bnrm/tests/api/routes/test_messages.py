import asyncio
import json
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from bnrm import crud
from bnrm.api.routes.messages import message_stream
from bnrm.api.routes.notifications import notification_stream
from bnrm.core.config import settings
from bnrm.models import Conversation, UserUpdate, get_datetime_utc
from bnrm.tests.utils.user import create_random_user, user_authentication_headers
from bnrm.tests.utils.utils import random_lower_string

URL = f"{settings.API_V1_STR}/messages"


class DisconnectAfter:
    """Stands in for a Starlette request that disconnects after a number of polls."""

    def __init__(self, polls: int):
        self.polls = polls

    async def is_disconnected(self) -> bool:
        self.polls -= 1
        return self.polls < 0


def _user_with_headers(client: TestClient, db: Session):
    password = random_lower_string()
    user = create_random_user(db)
    crud.update_user(session=db, db_user=user, user_in=UserUpdate(password=password))
    return user, user_authentication_headers(client=client, email=user.email, password=password)


def test_conversation_flow(client: TestClient, db: Session) -> None:
    alice, alice_headers = _user_with_headers(client, db)
    bob, bob_headers = _user_with_headers(client, db)
    _, eve_headers = _user_with_headers(client, db)

    r = client.post(
        f"{URL}/conversations",
        headers=alice_headers,
        json={"title": "Prêt inter-bibliothèques", "participant_ids": [str(bob.id)]},
    )
    assert r.status_code == 200
    conversation = r.json()
    assert set(conversation["participant_ids"]) == {str(alice.id), str(bob.id)}

    r = client.post(
        f"{URL}/conversations/{conversation['id']}/messages",
        headers=alice_headers,
        json={"content": "Bonjour, le volume est disponible."},
    )
    assert r.status_code == 200

    r = client.get(f"{URL}/conversations/{conversation['id']}/messages", headers=eve_headers)
    assert r.status_code == 403

    r = client.get(f"{URL}/unread-count", headers=bob_headers)
    assert r.json() == {"count": 1}
    r = client.get(f"{URL}/unread-count", headers=alice_headers)
    assert r.json() == {"count": 0}

    r = client.get(f"{settings.API_V1_STR}/notifications/unread-count", headers=bob_headers)
    assert r.json() == {"count": 1}

    r = client.post(f"{URL}/conversations/{conversation['id']}/read", headers=bob_headers)
    assert r.json() == {"count": 1}
    r = client.get(f"{URL}/unread-count", headers=bob_headers)
    assert r.json() == {"count": 0}

    r = client.get(f"{URL}/conversations", headers=bob_headers)
    assert [c["id"] for c in r.json()] == [conversation["id"]]
    assert r.json()[0]["last_message_at"] is not None


def test_conversation_with_unknown_participant(client: TestClient, db: Session) -> None:
    _, headers = _user_with_headers(client, db)
    r = client.post(f"{URL}/conversations", headers=headers, json={"participant_ids": [str(uuid.uuid4())]})
    assert r.status_code == 404


def test_notifications_read(client: TestClient, db: Session) -> None:
    user, headers = _user_with_headers(client, db)
    first = crud.create_notification(session=db, user_id=user.id, type="info", title="Un", message="1")
    crud.create_notification(session=db, user_id=user.id, type="info", title="Deux", message="2")

    url = f"{settings.API_V1_STR}/notifications"
    r = client.post(f"{url}/{first.id}/read", headers=headers)
    assert r.status_code == 200
    assert r.json()["is_read"] is True

    r = client.get(f"{url}/", headers=headers, params={"unread_only": True})
    assert [n["title"] for n in r.json()] == ["Deux"]

    r = client.post(f"{url}/read-all", headers=headers)
    assert r.json() == {"message": "1 notifications marked as read"}
    assert client.get(f"{url}/unread-count", headers=headers).json() == {"count": 0}

    _, other_headers = _user_with_headers(client, db)
    assert client.post(f"{url}/{first.id}/read", headers=other_headers).status_code == 404


@pytest.mark.asyncio
async def test_message_stream_yields_new_messages(db: Session) -> None:
    alice = create_random_user(db)
    conversation: Conversation = crud.create_conversation(
        session=db, creator_id=alice.id, participant_ids=[]
    )
    since = get_datetime_utc()
    await asyncio.sleep(0.01)
    crud.send_message(session=db, conversation=conversation, sender_id=alice.id, content="Nouveau")

    events = [e async for e in message_stream(DisconnectAfter(1), conversation.id, since)]
    assert len(events) == 1
    assert events[0]["event"] == "message"
    assert json.loads(events[0]["data"])["content"] == "Nouveau"


@pytest.mark.asyncio
async def test_notification_stream_stops_on_disconnect(db: Session) -> None:
    user = create_random_user(db)
    events = [e async for e in notification_stream(DisconnectAfter(0), user.id, get_datetime_utc())]
    assert events == []
