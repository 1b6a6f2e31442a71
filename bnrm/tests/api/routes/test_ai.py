from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from bnrm.core.config import settings
from bnrm.core.errors import GatewayError

URL = f"{settings.API_V1_STR}/ai"


def test_chatbot_requires_a_message(client: TestClient) -> None:
    r = client.post(f"{URL}/chatbot", json={"message": "   "})
    assert r.status_code == 400


def test_chatbot_gateway_failure_still_answers(client: TestClient) -> None:
    knowledge_base = MagicMock()
    knowledge_base.search.return_value = []
    llm = MagicMock()
    llm.chat = AsyncMock(side_effect=GatewayError(402, "PAYMENT_REQUIRED", "credits"))
    with (
        patch("bnrm.ai.chatbot.get_knowledge_base", return_value=knowledge_base),
        patch("bnrm.ai.chatbot.LLMClient", return_value=llm),
    ):
        r = client.post(f"{URL}/chatbot", json={"message": "Bonjour", "language": "fr"})
    assert r.status_code == 200
    body = r.json()
    assert body["error"] == "Crédits insuffisants"
    assert body["has_knowledge"] is False


def test_transcribe_without_audio(client: TestClient) -> None:
    r = client.post(f"{URL}/transcribe", data={"language": "fr"})
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "NO_AUDIO"


def test_transcribe_empty_audio(client: TestClient) -> None:
    r = client.post(f"{URL}/transcribe", files={"audio": ("note.webm", b"", "audio/webm")})
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "NO_AUDIO"


def test_knowledge_crud(client: TestClient, librarian_token_headers: dict[str, str]) -> None:
    knowledge_base = MagicMock()
    with patch("bnrm.api.routes.ai.get_knowledge_base", return_value=knowledge_base):
        r = client.post(
            f"{URL}/knowledge",
            headers=librarian_token_headers,
            json={"title": "Horaires", "content": "Ouvert de 9h à 18h.", "category": "horaires"},
        )
        assert r.status_code == 200
        entry = r.json()
        knowledge_base.index_entry.assert_called_once()

        r = client.patch(
            f"{URL}/knowledge/{entry['id']}", headers=librarian_token_headers, json={"priority": 5}
        )
        assert r.json()["priority"] == 5

        r = client.delete(f"{URL}/knowledge/{entry['id']}", headers=librarian_token_headers)
        assert r.status_code == 200
        knowledge_base.delete_entry.assert_called_once_with(entry["id"])
