import asyncio

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from accounts.rbac import SessionUser
from api.deps import get_current_user, get_database, get_db_session
from api.schemas import FaviconRequest
from core.errors import NotFoundError
from database.connection import DatabaseConnection
from tracking.favicons import fetch_favicons_for_domains, get_favicon, get_favicon_map

router = APIRouter(prefix="/api/favicons", tags=["favicons"])

MAX_DOMAINS = 200


@router.post("")
def fetch_favicons(
    body: FaviconRequest,
    user: SessionUser = Depends(get_current_user),
    db: DatabaseConnection = Depends(get_database),
):
    """Fetch missing favicons, then map every known hostname to its image URL."""
    domains = [d.strip().lower() for d in body.domains if d and d.strip()][:MAX_DOMAINS]
    # Runs in the threadpool, so the fetch gets its own event loop
    asyncio.run(fetch_favicons_for_domains(db, domains))
    with db.session() as session:
        return {"favicons": get_favicon_map(session, domains)}


@router.get("/{domain}")
def favicon_image(domain: str, session: Session = Depends(get_db_session)):
    favicon = get_favicon(session, domain.lower())
    if favicon is None:
        raise NotFoundError("Favicon not found")
    return Response(
        content=favicon.data,
        media_type=favicon.content_type,
        headers={"Cache-Control": "public, max-age=604800"},
    )
