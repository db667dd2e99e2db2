"""Super-admin endpoints: statistics, teams, impersonation and the magazine CMS."""

import asyncio

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from accounts.auth import start_impersonation, stop_impersonation
from accounts.rbac import SessionUser
from analytics.admin import get_admin_stats, list_teams
from api.deps import get_admin_user, get_database, get_db_session
from api.schemas import ArticleCreate, ArticleUpdate, ImpersonateRequest, TranslateRequest, changes
from database.connection import DatabaseConnection
from magazine import articles

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/stats")
def stats(user: SessionUser = Depends(get_admin_user), session: Session = Depends(get_db_session)):
    return get_admin_stats(session)


@router.get("/users")
def users(user: SessionUser = Depends(get_admin_user), session: Session = Depends(get_db_session)):
    return {"teams": list_teams(session)}


@router.post("/impersonate")
def impersonate(
    body: ImpersonateRequest,
    user: SessionUser = Depends(get_admin_user),
    session: Session = Depends(get_db_session),
):
    expires = start_impersonation(session, user, body.teamId)
    return {"success": True, "teamId": body.teamId, "expiresAt": expires.isoformat()}


@router.delete("/impersonate")
def end_impersonation(user: SessionUser = Depends(get_admin_user), session: Session = Depends(get_db_session)):
    stop_impersonation(session, user)
    return {"success": True}


# --- Magazine -----------------------------------------------------------------


@router.get("/magazine")
def list_articles(user: SessionUser = Depends(get_admin_user), session: Session = Depends(get_db_session)):
    return articles.list_articles(session)


@router.post("/magazine")
def create_article(
    body: ArticleCreate,
    user: SessionUser = Depends(get_admin_user),
    session: Session = Depends(get_db_session),
):
    article = articles.create_article(session, user.id, body.model_dump())
    return articles.serialize_article(article)


@router.get("/magazine/{article_id}")
def get_article(
    article_id: str,
    user: SessionUser = Depends(get_admin_user),
    session: Session = Depends(get_db_session),
):
    return articles.serialize_article(articles.get_article(session, article_id))


@router.patch("/magazine/{article_id}")
def update_article(
    article_id: str,
    body: ArticleUpdate,
    user: SessionUser = Depends(get_admin_user),
    session: Session = Depends(get_db_session),
):
    article = articles.update_article(session, article_id, changes(body))
    return articles.serialize_article(article)


@router.delete("/magazine/{article_id}")
def delete_article(
    article_id: str,
    user: SessionUser = Depends(get_admin_user),
    session: Session = Depends(get_db_session),
):
    articles.delete_article(session, article_id)
    return {"success": True}


@router.get("/magazine/{article_id}/translate")
def translation_status(
    article_id: str,
    user: SessionUser = Depends(get_admin_user),
    session: Session = Depends(get_db_session),
):
    return {"translations": articles.get_translation_status(session, article_id)}


@router.post("/magazine/{article_id}/translate")
def translate(
    article_id: str,
    body: TranslateRequest,
    user: SessionUser = Depends(get_admin_user),
    db: DatabaseConnection = Depends(get_database),
):
    return {"results": asyncio.run(articles.translate_article_to_locales(db, article_id, body.locales))}
