from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.deps import get_db_session
from magazine.translate import DEFAULT_LOCALE
from magazine import articles

router = APIRouter(prefix="/api/magazine", tags=["magazine"])


@router.get("")
def published_articles(locale: str = Query(DEFAULT_LOCALE), session: Session = Depends(get_db_session)):
    return articles.list_published(session, locale)


@router.get("/{slug}")
def published_article(
    slug: str,
    locale: str = Query(DEFAULT_LOCALE),
    session: Session = Depends(get_db_session),
):
    return articles.get_published(session, slug, locale)
