import logging
from typing import Any

import chromadb
from chromadb.config import Settings
from chromadb.utils import embedding_functions

from bnrm.core.config import settings
from bnrm.models import ChatbotKnowledge
from bnrm.ai.chunking import chunk_text

logger = logging.getLogger(__name__)


def _metadata_filter(**conditions: Any) -> dict[str, Any]:
    items = [{key: value} for key, value in conditions.items() if value is not None]
    if not items:
        return {}
    if len(items) == 1:
        return items[0]
    return {"$and": items}


class KnowledgeBase:
    """Vector index of the chatbot knowledge entries, backed by ChromaDB."""

    collection_name = "chatbot_knowledge"

    def __init__(self, persist_directory: str | None = None):
        self.persist_directory = persist_directory or settings.CHROMA_PERSIST_DIRECTORY
        self.embedding_function = embedding_functions.DefaultEmbeddingFunction()
        self.client = chromadb.PersistentClient(
            path=self.persist_directory,
            settings=Settings(allow_reset=True, anonymized_telemetry=False),
        )
        self.collection = self.client.get_or_create_collection(
            name=self.collection_name,
            embedding_function=self.embedding_function,
        )

    def index_entry(self, entry: ChatbotKnowledge) -> None:
        """Replace the indexed chunks of a knowledge entry; inactive entries are only removed."""
        self.delete_entry(str(entry.id))
        if not entry.is_active:
            return

        chunks = chunk_text(entry.content, chunk_size=1200, overlap=120)
        if not chunks:
            return

        metadata = {
            "entry_id": str(entry.id),
            "title": entry.title,
            "language": entry.language.value,
            "category": entry.category or "",
            "priority": entry.priority,
        }
        try:
            self.collection.add(
                documents=chunks,
                metadatas=[metadata for _ in chunks],
                ids=[f"{entry.id}_{i}" for i in range(len(chunks))],
            )
            logger.info("Indexed %s chunk(s) for knowledge entry %s", len(chunks), entry.id)
        except Exception as e:
            logger.error("Error indexing knowledge entry %s: %s", entry.id, e)
            raise

    def delete_entry(self, entry_id: str) -> None:
        try:
            self.collection.delete(where=_metadata_filter(entry_id=str(entry_id)))
        except Exception as e:
            logger.error("Error deleting knowledge entry %s: %s", entry_id, e)

    def search(self, query: str, language: str | None = None, n_results: int = 3) -> list[str]:
        """Best matching entries formatted as `title: content`, at most one chunk per entry."""
        if not query:
            return []

        try:
            results = self.collection.query(
                query_texts=[query],
                n_results=n_results,
                where=_metadata_filter(language=language) or None,
            )
        except Exception as e:
            logger.error("Error querying knowledge base: %s", e)
            return []

        documents = (results.get("documents") or [[]])[0] or []
        metadatas = (results.get("metadatas") or [[]])[0] or []
        seen: set[str] = set()
        matches: list[str] = []
        for index, document in enumerate(documents):
            metadata = metadatas[index] if index < len(metadatas) and metadatas[index] else {}
            entry_id = str(metadata.get("entry_id") or index)
            if entry_id in seen:
                continue
            seen.add(entry_id)
            title = metadata.get("title")
            matches.append(f"{title}: {document}" if title else document)
        return matches


_knowledge_base_instance: KnowledgeBase | None = None


def get_knowledge_base() -> KnowledgeBase:
    """Lazily open the vector store so importing the app does not touch disk."""
    global _knowledge_base_instance
    if _knowledge_base_instance is None:
        _knowledge_base_instance = KnowledgeBase()
    return _knowledge_base_instance
