"""Machine translation of German magazine articles."""

import json
from dataclasses import dataclass
from typing import Optional

import structlog
from openai import AsyncOpenAI

from core.llm_client import complete_text, strip_code_fences

logger = structlog.get_logger(__name__)

DEFAULT_LOCALE = "de"
LOCALES = ["de", "en", "fr", "es"]
TRANSLATION_LOCALES = [locale for locale in LOCALES if locale != DEFAULT_LOCALE]

LANGUAGE_NAMES = {
    "en": "English",
    "fr": "French",
    "es": "Spanish",
    "de": "German",
}

SYSTEM_PROMPT = "\n".join(
    [
        "You are a professional translator. Translate the provided JSON values from German to {language}.",
        "Rules:",
        "- Return valid JSON with the exact same keys.",
        "- For the 'content' field: preserve ALL HTML tags, attributes, and structure exactly. "
        "Only translate the visible text between tags.",
        "- Do NOT translate brand names, product names, or technical terms that are typically "
        "kept in the original language.",
        "- Maintain the same tone and style as the original.",
        "- Return ONLY the JSON object, no markdown fences or extra text.",
    ]
)


@dataclass
class TranslatedArticle:
    title: str
    excerpt: Optional[str]
    content: str


async def translate_article(
    title: str,
    excerpt: Optional[str],
    content: str,
    target_locale: str,
    client: Optional[AsyncOpenAI] = None,
) -> TranslatedArticle:
    """Translate an article's title, excerpt and HTML body.

    Fields missing from the model's answer keep their German text.

    Raises:
        json.JSONDecodeError: If the model does not return JSON
    """
    language = LANGUAGE_NAMES.get(target_locale, target_locale)
    payload = {"title": title}
    if excerpt:
        payload["excerpt"] = excerpt
    payload["content"] = content

    raw = await complete_text(
        [
            {"role": "system", "content": SYSTEM_PROMPT.format(language=language)},
            {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
        ],
        max_tokens=16384,
        temperature=0.3,
        client=client,
    )
    parsed = json.loads(strip_code_fences(raw) or "{}")

    logger.info("article_translated", locale=target_locale, content_chars=len(content))
    return TranslatedArticle(
        title=parsed.get("title") or title,
        excerpt=parsed.get("excerpt", excerpt),
        content=parsed.get("content") or content,
    )
