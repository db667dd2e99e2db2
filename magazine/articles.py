"""Magazine articles: admin CRUD, translations and public reads."""

import re
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from openai import AsyncOpenAI
from sqlalchemy.orm import Session

from core.errors import NotFoundError, ValidationError
from database.connection import DatabaseConnection
from database.models import MagazineArticle, MagazineArticleTranslation, User
from magazine.translate import DEFAULT_LOCALE, TRANSLATION_LOCALES, translate_article

logger = structlog.get_logger(__name__)

_TRANSLITERATIONS = (("ä", "ae"), ("ö", "oe"), ("ü", "ue"), ("ß", "ss"))
_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def slugify(text: str) -> str:
    """URL slug with German umlauts transliterated.

    >>> slugify("Über Größe & Maße")
    'ueber-groesse-masse'
    """
    slug = text.lower()
    for char, replacement in _TRANSLITERATIONS:
        slug = slug.replace(char, replacement)
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    return slug.strip("-")


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def unique_slug(title: str) -> str:
    """Slug of the title suffixed with the current millisecond timestamp in base 36."""
    return f"{slugify(title)}-{to_base36(int(time.time() * 1000))}"


def serialize_article(article: MagazineArticle) -> Dict[str, Any]:
    return {
        "id": article.id,
        "slug": article.slug,
        "title": article.title,
        "excerpt": article.excerpt,
        "content": article.content,
        "coverImage": article.cover_image,
        "authorId": article.author_id,
        "published": article.published,
        "publishedAt": article.published_at.isoformat() if article.published_at else None,
        "createdAt": article.created_at.isoformat() if article.created_at else None,
        "updatedAt": article.updated_at.isoformat() if article.updated_at else None,
    }


# --- Admin --------------------------------------------------------------------


def list_articles(session: Session) -> List[Dict[str, Any]]:
    rows = (
        session.query(MagazineArticle, User.name)
        .outerjoin(User, User.id == MagazineArticle.author_id)
        .order_by(MagazineArticle.created_at.desc())
        .all()
    )
    return [
        {
            "id": article.id,
            "slug": article.slug,
            "title": article.title,
            "excerpt": article.excerpt,
            "coverImage": article.cover_image,
            "published": article.published,
            "publishedAt": article.published_at.isoformat() if article.published_at else None,
            "createdAt": article.created_at.isoformat() if article.created_at else None,
            "authorName": author_name,
        }
        for article, author_name in rows
    ]


def get_article(session: Session, article_id: str) -> MagazineArticle:
    article = session.query(MagazineArticle).filter(MagazineArticle.id == article_id).first()
    if article is None:
        raise NotFoundError("Not found")
    return article


def create_article(session: Session, author_id: str, data: Dict[str, Any]) -> MagazineArticle:
    """Create an article from the admin form.

    Raises:
        ValidationError: If title or content is missing
    """
    title = data.get("title")
    content = data.get("content")
    if not title or not content:
        raise ValidationError("Title and content are required")

    published = bool(data.get("published"))
    article = MagazineArticle(
        slug=unique_slug(title),
        title=title,
        excerpt=data.get("excerpt") or None,
        content=content,
        cover_image=data.get("coverImage") or None,
        author_id=author_id,
        published=published,
        published_at=datetime.utcnow() if published else None,
    )
    session.add(article)
    session.flush()

    logger.info("magazine_article_created", article_id=article.id, published=published)
    return article


def update_article(session: Session, article_id: str, data: Dict[str, Any]) -> MagazineArticle:
    """Apply a partial update. ``published_at`` is set when first published."""
    article = get_article(session, article_id)

    if data.get("title"):
        article.title = data["title"]
    if "excerpt" in data:
        article.excerpt = data["excerpt"]
    if data.get("content"):
        article.content = data["content"]
    if "coverImage" in data:
        article.cover_image = data["coverImage"]
    if data.get("published") is not None:
        published = bool(data["published"])
        if published and not article.published:
            article.published_at = datetime.utcnow()
        article.published = published

    article.updated_at = datetime.utcnow()
    session.flush()
    logger.info("magazine_article_updated", article_id=article.id)
    return article


def delete_article(session: Session, article_id: str):
    session.query(MagazineArticle).filter(MagazineArticle.id == article_id).delete()
    logger.info("magazine_article_deleted", article_id=article_id)


# --- Translations -------------------------------------------------------------


def get_translation_status(session: Session, article_id: str) -> List[Dict[str, Any]]:
    translations = {
        t.locale: t
        for t in session.query(MagazineArticleTranslation)
        .filter(MagazineArticleTranslation.article_id == article_id)
        .all()
    }
    return [
        {
            "locale": locale,
            "translated": locale in translations,
            "updatedAt": (
                translations[locale].updated_at.isoformat() if locale in translations else None
            ),
        }
        for locale in TRANSLATION_LOCALES
    ]


async def translate_article_to_locales(
    db: DatabaseConnection,
    article_id: str,
    locales: List[str],
    client: Optional[AsyncOpenAI] = None,
) -> List[Dict[str, Any]]:
    """Translate an article into each locale and upsert the translations.

    A failing locale is reported in the result list and does not stop the
    others.

    Raises:
        ValidationError: If a locale is unknown or the default locale
        NotFoundError: If the article does not exist
    """
    if not locales or any(locale not in TRANSLATION_LOCALES for locale in locales):
        raise ValidationError("Invalid locales. Must be non-default locales.")

    with db.session() as session:
        article = session.query(MagazineArticle).filter(MagazineArticle.id == article_id).first()
        if article is None:
            raise NotFoundError("Article not found")
        source = (article.title, article.excerpt, article.content)

    results: List[Dict[str, Any]] = []
    for locale in locales:
        try:
            translated = await translate_article(*source, target_locale=locale, client=client)
        except Exception as e:
            logger.error("article_translation_failed", article_id=article_id, locale=locale, error=str(e))
            results.append({"locale": locale, "success": False, "error": str(e)})
            continue

        with db.session() as session:
            translation = (
                session.query(MagazineArticleTranslation)
                .filter(
                    MagazineArticleTranslation.article_id == article_id,
                    MagazineArticleTranslation.locale == locale,
                )
                .first()
            )
            if translation is None:
                translation = MagazineArticleTranslation(article_id=article_id, locale=locale)
                session.add(translation)

            translation.slug = unique_slug(translated.title)
            translation.title = translated.title
            translation.excerpt = translated.excerpt
            translation.content = translated.content
            translation.updated_at = datetime.utcnow()

        results.append({"locale": locale, "success": True})

    return results


# --- Public -------------------------------------------------------------------


def _localized(article: MagazineArticle, locale: str, include_content: bool) -> Dict[str, Any]:
    translation = None
    if locale != DEFAULT_LOCALE:
        translation = next((t for t in article.translations if t.locale == locale), None)
    source = translation or article

    data = {
        "id": article.id,
        "slug": source.slug,
        "title": source.title,
        "excerpt": source.excerpt,
        "coverImage": article.cover_image,
        "publishedAt": article.published_at.isoformat() if article.published_at else None,
        "locale": locale if translation else DEFAULT_LOCALE,
    }
    if include_content:
        data["content"] = source.content
    return data


def list_published(session: Session, locale: str = DEFAULT_LOCALE) -> List[Dict[str, Any]]:
    """Published articles, newest first, translated where available."""
    articles = (
        session.query(MagazineArticle)
        .filter(MagazineArticle.published.is_(True))
        .order_by(MagazineArticle.published_at.desc())
        .all()
    )
    return [_localized(article, locale, include_content=False) for article in articles]


def get_published(session: Session, slug: str, locale: str = DEFAULT_LOCALE) -> Dict[str, Any]:
    """Published article by its German or translated slug.

    Raises:
        NotFoundError: If no published article has the slug
    """
    article = (
        session.query(MagazineArticle)
        .filter(MagazineArticle.slug == slug, MagazineArticle.published.is_(True))
        .first()
    )
    if article is None:
        article = (
            session.query(MagazineArticle)
            .join(MagazineArticleTranslation)
            .filter(MagazineArticleTranslation.slug == slug, MagazineArticle.published.is_(True))
            .first()
        )
    if article is None:
        raise NotFoundError("Article not found")
    return _localized(article, locale, include_content=True)
