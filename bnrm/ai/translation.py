import logging

from pydantic import BaseModel, Field
from sqlmodel import Session, col, select

from bnrm.ai.llm_client import LLMClient
from bnrm.ai.prompts.translation import (
    LANGUAGE_NAMES,
    TRANSLATION_SYSTEM_PROMPT,
    TRANSLATION_USER_TEMPLATE,
)
from bnrm.core.config import settings
from bnrm.core.errors import GatewayError
from bnrm.models import Content, ContentStatus, ContentTranslation, Language, get_datetime_utc

logger = logging.getLogger(__name__)


class TranslatedContent(BaseModel):
    title: str
    excerpt: str = ""
    content_body: str = ""


class TranslationError(BaseModel):
    content_id: str
    language: Language
    error: str


class BatchTranslationResult(BaseModel):
    contents: int = 0
    translated: int = 0
    skipped: int = 0
    errors: list[TranslationError] = Field(default_factory=list)


async def translate_content(llm: LLMClient, content: Content, target: Language) -> TranslatedContent:
    user_prompt = TRANSLATION_USER_TEMPLATE.format(
        source_language=LANGUAGE_NAMES[content.language.value],
        target_language=LANGUAGE_NAMES[target.value],
        title=content.title,
        excerpt=content.excerpt or "",
        body=content.content_body or "",
    )
    return await llm.generate_structured(TRANSLATION_SYSTEM_PROMPT, user_prompt, TranslatedContent)


def upsert_translation(
    session: Session, content: Content, language: Language, translated: TranslatedContent
) -> ContentTranslation:
    translation = session.exec(
        select(ContentTranslation).where(
            ContentTranslation.content_id == content.id,
            ContentTranslation.language == language,
        )
    ).first()
    if translation is None:
        translation = ContentTranslation(content_id=content.id, language=language, title=translated.title)
    translation.title = translated.title
    translation.excerpt = translated.excerpt or None
    translation.content_body = translated.content_body
    translation.is_auto = True
    translation.translated_at = get_datetime_utc()
    session.add(translation)
    session.commit()
    return translation


async def batch_translate_all_content(
    *, session: Session, force: bool = False, llm: LLMClient | None = None
) -> BatchTranslationResult:
    """
    Translate every published content item into each supported language other
    than its own. Existing translations are kept unless `force` is set.
    """
    llm = llm or LLMClient(model_name=settings.MODEL_TRANSLATION)
    contents = session.exec(
        select(Content)
        .where(Content.status == ContentStatus.published)
        .order_by(col(Content.published_at).desc())
    ).all()

    result = BatchTranslationResult(contents=len(contents))
    for content in contents:
        existing = {t.language for t in content.translations}
        for target in Language:
            if target == content.language:
                continue
            if target in existing and not force:
                result.skipped += 1
                continue
            try:
                translated = await translate_content(llm, content, target)
            except GatewayError as e:
                if e.code in ("RATE_LIMIT", "PAYMENT_REQUIRED"):
                    # Every later call would fail the same way
                    raise
                logger.warning("Translation of %s to %s failed: %s", content.id, target.value, e.message)
                result.errors.append(
                    TranslationError(content_id=str(content.id), language=target, error=e.message)
                )
                continue
            except ValueError as e:
                logger.warning("Translation of %s to %s unparsable: %s", content.id, target.value, e)
                result.errors.append(
                    TranslationError(content_id=str(content.id), language=target, error=str(e))
                )
                continue
            upsert_translation(session, content, target, translated)
            result.translated += 1

    logger.info(
        "Batch translation done: %s translated, %s skipped, %s errors",
        result.translated,
        result.skipped,
        len(result.errors),
    )
    return result
