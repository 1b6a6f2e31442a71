import logging

from bnrm.ai.llm_client import LLMClient, Transcription
from bnrm.core.config import settings
from bnrm.core.errors import GatewayError

logger = logging.getLogger(__name__)


async def transcribe_audio(
    audio_bytes: bytes,
    filename: str,
    language: str = "ar",
    llm: LLMClient | None = None,
) -> Transcription:
    if not audio_bytes:
        raise GatewayError(400, "NO_AUDIO", "Aucun fichier audio fourni")
    if len(audio_bytes) > settings.TRANSCRIPTION_MAX_BYTES:
        raise GatewayError(
            413,
            "PAYLOAD_TOO_LARGE",
            f"Fichier audio trop volumineux (max {settings.TRANSCRIPTION_MAX_BYTES // (1024 * 1024)} Mo)",
        )

    llm = llm or LLMClient(model_name=settings.MODEL_TRANSCRIPTION)
    result = await llm.transcribe(audio_bytes, filename, language)
    if not result.text:
        logger.warning("Transcription of %s returned no text", filename)
        raise GatewayError(400, "EMPTY_RESULT", "La transcription n'a produit aucun texte")

    logger.info("Transcription of %s completed (%s chars)", filename, len(result.text))
    return result
