"""Source analytics: where answers cite the tracked domain."""

from collections import defaultdict
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from accounts.rbac import SessionUser
from analytics.common import iso, scoped_results
from core.errors import ValidationError
from database.models import Domain, PromptSet, TrackingResult
from tracking.categories import matches_category
from tracking.scoring import extract_urls_from_text, normalize_domain


def get_source_analytics(
    session: Session,
    user: SessionUser,
    domain_id: str,
    prompt_set_id: Optional[str] = None,
    category: Optional[str] = None,
) -> Dict[str, Any]:
    """Split a domain's results into cited and brand-only mentions.

    A result is a source mention when the answer text contains the domain
    or one of its citations points at it. It is brand-only when the brand
    name appears without either.

    Raises:
        ValidationError: If no domain is given
    """
    if not domain_id:
        raise ValidationError("domain is required")

    rows = (
        scoped_results(
            session,
            user,
            TrackingResult.provider,
            TrackingResult.prompt,
            TrackingResult.response,
            TrackingResult.citations,
            TrackingResult.mention_count,
            TrackingResult.created_at,
            Domain.name.label("domain_name"),
            Domain.domain_url,
            PromptSet.intent_categories,
            domain_id=domain_id,
            prompt_set_id=prompt_set_id,
        )
        .all()
    )
    rows = [r for r in rows if matches_category(r.intent_categories, category)]

    sources_by_provider: Dict[str, int] = defaultdict(int)
    brand_only_by_provider: Dict[str, int] = defaultdict(int)
    own_urls: Dict[str, Dict[str, Any]] = {}
    with_source: List[Dict[str, Any]] = []
    brand_only: List[Dict[str, Any]] = []

    if rows:
        domain = normalize_domain(rows[0].domain_url)
        brand = rows[0].domain_name.lower()

    for r in rows:
        response = r.response.lower()
        in_text = domain in response

        citations = r.citations or extract_urls_from_text(r.response)
        in_citations = False
        for url in citations:
            if not normalize_domain(url).startswith(domain):
                continue
            in_citations = True
            entry = own_urls.setdefault(url, {"url": url, "count": 0, "prompts": []})
            entry["count"] += 1
            entry["prompts"].append(
                {"prompt": r.prompt, "provider": r.provider, "date": iso(r.created_at)}
            )

        item = {
            "provider": r.provider,
            "prompt": r.prompt,
            "response": r.response,
            "mentionCount": r.mention_count or 0,
            "date": iso(r.created_at),
            "_sort": r.created_at,
        }
        if in_text or in_citations:
            sources_by_provider[r.provider] += 1
            with_source.append(item)
        elif brand in response:
            brand_only_by_provider[r.provider] += 1
            brand_only.append(item)

    def newest_first(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ordered = sorted(items, key=lambda i: i["_sort"], reverse=True)
        for i in ordered:
            i.pop("_sort")
        return ordered

    return {
        "sourcesByProvider": dict(sources_by_provider),
        "brandOnlyByProvider": dict(brand_only_by_provider),
        "ownUrls": sorted(own_urls.values(), key=lambda e: e["count"], reverse=True),
        "outputsWithSource": newest_first(with_source),
        "outputsBrandOnly": newest_first(brand_only),
    }
