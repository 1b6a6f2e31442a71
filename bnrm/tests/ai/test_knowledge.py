import uuid
from unittest.mock import MagicMock, patch

import pytest

from bnrm.ai.knowledge import KnowledgeBase
from bnrm.models import ChatbotKnowledge, Language


@pytest.fixture
def knowledge(tmp_path):
    # Mock the client entirely to avoid ChromaDB startup and ONNX downloads
    with patch("bnrm.ai.knowledge.chromadb.PersistentClient") as mock_chroma_client:
        mock_collection = MagicMock()
        mock_chroma_client.return_value.get_or_create_collection.return_value = mock_collection
        with patch("bnrm.ai.knowledge.embedding_functions.DefaultEmbeddingFunction"):
            yield KnowledgeBase(persist_directory=str(tmp_path)), mock_collection


def test_index_entry_replaces_chunks(knowledge):
    kb, collection = knowledge
    entry = ChatbotKnowledge(
        id=uuid.uuid4(),
        title="Horaires",
        content="La bibliothèque est ouverte du lundi au vendredi de 9h à 18h.",
        category="horaires",
        language=Language.fr,
    )
    kb.index_entry(entry)

    collection.delete.assert_called_once_with(where={"entry_id": str(entry.id)})
    collection.add.assert_called_once()
    kwargs = collection.add.call_args.kwargs
    assert kwargs["ids"] == [f"{entry.id}_0"]
    assert kwargs["metadatas"][0]["language"] == "fr"


def test_inactive_entry_is_only_removed(knowledge):
    kb, collection = knowledge
    entry = ChatbotKnowledge(id=uuid.uuid4(), title="Ancien", content="Obsolète", is_active=False)
    kb.index_entry(entry)
    collection.delete.assert_called_once()
    collection.add.assert_not_called()


def test_search_keeps_one_chunk_per_entry(knowledge):
    kb, collection = knowledge
    collection.query.return_value = {
        "documents": [["Ouvert de 9h à 18h.", "Fermé le dimanche.", "Carte gratuite."]],
        "metadatas": [[
            {"entry_id": "a", "title": "Horaires"},
            {"entry_id": "a", "title": "Horaires"},
            {"entry_id": "b", "title": "Inscription"},
        ]],
    }
    matches = kb.search("horaires", language="fr")

    assert matches == ["Horaires: Ouvert de 9h à 18h.", "Inscription: Carte gratuite."]
    assert collection.query.call_args.kwargs["where"] == {"language": "fr"}


def test_search_failures_return_nothing(knowledge):
    kb, collection = knowledge
    collection.query.side_effect = RuntimeError("index unavailable")
    assert kb.search("horaires") == []
    assert kb.search("") == []
