"""Favicon cache for cited hostnames."""

import asyncio
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote

import aiohttp
import structlog
from sqlalchemy.orm import Session

from database.connection import DatabaseConnection
from database.models import Favicon

logger = structlog.get_logger(__name__)

FAVICON_SIZE = 32
GOOGLE_FAVICON_URL = f"https://www.google.com/s2/favicons?sz={FAVICON_SIZE}&domain="
FETCH_TIMEOUT = 10
MIN_FAVICON_BYTES = 50
REFRESH_AFTER = timedelta(days=30)
FETCH_BATCH_SIZE = 10


async def fetch_favicon(http: aiohttp.ClientSession, domain: str) -> Optional[Favicon]:
    """Download a favicon, returning None for errors and empty images."""
    try:
        async with http.get(
            f"{GOOGLE_FAVICON_URL}{quote(domain)}",
            timeout=aiohttp.ClientTimeout(total=FETCH_TIMEOUT),
        ) as response:
            if response.status != 200:
                logger.debug("favicon_fetch_status", domain=domain, status=response.status)
                return None
            data = await response.read()
            content_type = response.headers.get("Content-Type", "image/png").split(";")[0]
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning("favicon_fetch_failed", domain=domain, error=str(e))
        return None

    if len(data) < MIN_FAVICON_BYTES:
        return None

    return Favicon(domain=domain, data=data, content_type=content_type, fetched_at=datetime.utcnow())


def domains_needing_refresh(session: Session, domains: Iterable[str]) -> List[str]:
    """Domains without a cached favicon or with one older than 30 days."""
    unique = list(dict.fromkeys(d for d in domains if d))
    if not unique:
        return []

    cutoff = datetime.utcnow() - REFRESH_AFTER
    fresh = {
        row.domain
        for row in session.query(Favicon.domain, Favicon.fetched_at)
        .filter(Favicon.domain.in_(unique))
        .all()
        if row.fetched_at and row.fetched_at >= cutoff
    }
    return [d for d in unique if d not in fresh]


async def fetch_favicons_for_domains(
    db: DatabaseConnection,
    domains: Iterable[str],
    http: Optional[aiohttp.ClientSession] = None,
) -> int:
    """Fetch and store favicons for hostnames, in batches of ten.

    Args:
        db: Database connection
        domains: Hostnames (without ``www.``)
        http: Client session override

    Returns:
        Number of favicons stored
    """
    with db.session() as session:
        to_fetch = domains_needing_refresh(session, domains)

    if not to_fetch:
        return 0

    logger.info("favicon_fetch_started", domains=len(to_fetch))

    owns_session = http is None
    http = http or aiohttp.ClientSession()
    stored = 0
    try:
        for i in range(0, len(to_fetch), FETCH_BATCH_SIZE):
            batch = to_fetch[i : i + FETCH_BATCH_SIZE]
            favicons = await asyncio.gather(*(fetch_favicon(http, d) for d in batch))

            with db.session() as session:
                for favicon in favicons:
                    if favicon is not None:
                        session.merge(favicon)
                        stored += 1
    finally:
        if owns_session:
            await http.close()

    logger.info("favicon_fetch_completed", requested=len(to_fetch), stored=stored)
    return stored


def get_favicon_map(session: Session, domains: Iterable[str]) -> Dict[str, str]:
    """Map hostnames with a cached favicon to their API URL."""
    unique = list(dict.fromkeys(d for d in domains if d))
    if not unique:
        return {}

    rows = session.query(Favicon.domain).filter(Favicon.domain.in_(unique)).all()
    return {row.domain: f"/api/favicons/{row.domain}" for row in rows}


def get_favicon(session: Session, domain: str) -> Optional[Favicon]:
    return session.query(Favicon).filter(Favicon.domain == domain).first()
