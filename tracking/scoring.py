"""Mention counting, visibility scoring and citation helpers."""

import re
from typing import Iterable, List, Optional
from urllib.parse import urlparse

MENTION_WEIGHT = 25
MAX_VISIBILITY_SCORE = 100

_URL_PATTERN = re.compile(r"https?://[^\s<>\"'`\]\[(){}]+", re.IGNORECASE)
_TRAILING_PUNCTUATION = ".,;:!?*_"

_MARKDOWN_RULES = [
    (re.compile(r"^#{1,6}\s*", re.MULTILINE), ""),  # headers
    (re.compile(r"\*\*(.+?)\*\*"), r"\1"),  # bold
    (re.compile(r"__(.+?)__"), r"\1"),
    (re.compile(r"\*(.+?)\*"), r"\1"),  # italic
    (re.compile(r"(?<!\w)_(.+?)_(?!\w)"), r"\1"),
    (re.compile(r"`([^`]+)`"), r"\1"),  # inline code
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),  # links keep their label
    (re.compile(r"^\s*[-*+]\s+", re.MULTILINE), ""),  # bullet lists
    (re.compile(r"^\s*\d+\.\s+", re.MULTILINE), ""),  # numbered lists
    (re.compile(r"^>+\s*", re.MULTILINE), ""),  # blockquotes
    (re.compile(r"\n{3,}"), "\n\n"),
]


def strip_markdown(text: str) -> str:
    """Reduce a Markdown answer to plain text."""
    for pattern, replacement in _MARKDOWN_RULES:
        text = pattern.sub(replacement, text)
    return text.strip()


def normalize_domain(url: str) -> str:
    """Lower-case a domain URL and strip scheme, ``www.`` and trailing slash.

    >>> normalize_domain("https://www.Example.com/")
    'example.com'
    """
    normalized = url.strip().lower()
    normalized = re.sub(r"^https?://", "", normalized)
    normalized = re.sub(r"^www\.", "", normalized)
    return normalized.rstrip("/")


def count_mentions(text: str, domain_url: str, brand_name: Optional[str] = None) -> int:
    """Count how often a domain is mentioned in an answer.

    Counts case-insensitive occurrences of the host. When the tracked URL
    has a path, occurrences of the full URL are counted on top, so deep
    links weigh more. When a brand name is given and differs from the host,
    whole-word occurrences of the name outside host mentions are added.

    Args:
        text: Answer text (markdown already stripped)
        domain_url: Tracked domain URL
        brand_name: Display name of the domain

    Returns:
        Number of mentions
    """
    if not text or not domain_url:
        return 0

    lower = text.lower()
    normalized = normalize_domain(domain_url)
    host = normalized.split("/")[0]
    if not host:
        return 0

    host_pattern = re.compile(re.escape(host))
    count = len(host_pattern.findall(lower))

    if normalized != host:
        count += len(re.findall(re.escape(normalized), lower))

    if brand_name:
        brand = brand_name.strip().lower()
        if brand and brand != host:
            remainder = host_pattern.sub(" ", lower)
            count += len(re.findall(r"(?<!\w)" + re.escape(brand) + r"(?!\w)", remainder))

    return count


def compute_visibility_score(mention_count: int) -> int:
    """Map a mention count to a 0..100 visibility score."""
    return max(0, min(MAX_VISIBILITY_SCORE, mention_count * MENTION_WEIGHT))


def extract_urls_from_text(text: str) -> List[str]:
    """Find http(s) URLs in free text, de-duplicated in order of appearance."""
    urls: List[str] = []
    seen = set()
    for match in _URL_PATTERN.findall(text or ""):
        url = match.rstrip(_TRAILING_PUNCTUATION)
        if url and url not in seen:
            seen.add(url)
            urls.append(url)
    return urls


def hostname(url: str) -> Optional[str]:
    """Hostname of a URL without ``www.``, or None when it cannot be parsed."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    if not host:
        return None
    return re.sub(r"^www\.", "", host.lower())


def extract_citation_domains(urls: Iterable[str]) -> List[str]:
    """Unique cited hostnames, in order of first appearance."""
    domains: List[str] = []
    for url in urls:
        host = hostname(url)
        if host and host not in domains:
            domains.append(host)
    return domains


def cites_domain(citations: Iterable[str], domain_url: str) -> bool:
    """Whether any citation points at the tracked domain."""
    normalized = normalize_domain(domain_url)
    return any(normalize_domain(url).startswith(normalized) for url in citations)
