"""Tests for magazine articles, translations and public reads."""

import asyncio
import json

import pytest

from core.errors import NotFoundError, ValidationError
from magazine.articles import (
    create_article,
    get_published,
    get_translation_status,
    list_articles,
    list_published,
    slugify,
    to_base36,
    translate_article_to_locales,
    update_article,
)
from tests.conftest import fake_openai


def test_slugify_transliterates_umlauts():
    assert slugify("Über Größe & Maße") == "ueber-groesse-masse"
    assert slugify("  KI-Sichtbarkeit 2025!  ") == "ki-sichtbarkeit-2025"


def test_to_base36():
    assert to_base36(0) == "0"
    assert to_base36(35) == "z"
    assert to_base36(36) == "10"
    assert to_base36(1295) == "zz"


def test_create_article_requires_title_and_content(db, owner):
    with db.session() as session:
        with pytest.raises(ValidationError):
            create_article(session, owner.id, {"title": "Nur Titel"})


def test_create_and_publish_article(db, owner):
    with db.session() as session:
        draft = create_article(session, owner.id, {"title": "Sichtbarkeit in KI", "content": "<p>Hallo</p>"})
        assert draft.slug.startswith("sichtbarkeit-in-ki-")
        assert draft.published_at is None

    with db.session() as session:
        assert list_published(session) == []
        article = update_article(session, draft.id, {"published": True})
        first_published = article.published_at
        assert first_published is not None

    with db.session() as session:
        article = update_article(session, draft.id, {"published": True, "excerpt": "Kurz"})
        assert article.published_at == first_published
        assert article.excerpt == "Kurz"

    with db.session() as session:
        listing = list_articles(session)
    assert listing[0]["authorName"] == "Olivia Owner"


def test_translate_and_read_localized(db, owner):
    with db.session() as session:
        article = create_article(
            session,
            owner.id,
            {"title": "Sichtbarkeit", "content": "<p>Hallo</p>", "published": True},
        )

    client = fake_openai(
        json.dumps({"title": "Visibility", "content": "<p>Hello</p>"}),
        RuntimeError("rate limited"),
    )
    results = asyncio.run(translate_article_to_locales(db, article.id, ["en", "fr"], client=client))
    assert results[0] == {"locale": "en", "success": True}
    assert results[1]["success"] is False

    with db.session() as session:
        status = {s["locale"]: s["translated"] for s in get_translation_status(session, article.id)}
        english = list_published(session, locale="en")[0]
        french = get_published(session, article.slug, locale="fr")
        by_translated_slug = get_published(session, english["slug"], locale="en")

    assert status == {"en": True, "fr": False, "es": False}
    assert english["title"] == "Visibility"
    assert english["locale"] == "en"
    assert english["slug"].startswith("visibility-")
    assert french["locale"] == "de"
    assert french["content"] == "<p>Hallo</p>"
    assert by_translated_slug["content"] == "<p>Hello</p>"


def test_translate_rejects_default_locale(db):
    with pytest.raises(ValidationError):
        asyncio.run(translate_article_to_locales(db, "any", ["de"]))


def test_get_published_hides_drafts(db, owner):
    with db.session() as session:
        draft = create_article(session, owner.id, {"title": "Entwurf", "content": "x"})
    with db.session() as session:
        with pytest.raises(NotFoundError):
            get_published(session, draft.slug)
