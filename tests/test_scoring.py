"""Tests for mention counting, visibility scoring and citation helpers."""

from tracking.scoring import (
    cites_domain,
    compute_visibility_score,
    count_mentions,
    extract_citation_domains,
    extract_urls_from_text,
    normalize_domain,
    strip_markdown,
)


def test_normalize_domain_strips_scheme_www_and_slash():
    assert normalize_domain("https://www.Example.com/") == "example.com"
    assert normalize_domain("http://shop.example.com/de/") == "shop.example.com/de"


def test_strip_markdown_keeps_link_labels_and_text():
    text = "# Title\n\n**Bold** and *italic* with `code`\n- [Acme](https://acme.com)\n> quoted\n\n\n\nend"
    plain = strip_markdown(text)

    assert plain.startswith("Title")
    assert "Bold and italic with code" in plain
    assert "Acme" in plain
    assert "https://acme.com" not in plain
    assert "quoted" in plain
    assert "\n\n\n" not in plain


def test_count_mentions_host_is_case_insensitive():
    text = "Visit ACME.com or acme.com/shop for anvils."
    assert count_mentions(text, "https://www.acme.com") == 2


def test_count_mentions_adds_full_url_when_domain_has_path():
    text = "See acme.com/de for the German shop."
    # host once plus the full URL once
    assert count_mentions(text, "https://acme.com/de") == 2


def test_count_mentions_adds_brand_name_outside_host_mentions():
    text = "Acme makes anvils. Order at acme.com. Acmeville is unrelated."
    assert count_mentions(text, "acme.com", brand_name="Acme") == 2


def test_count_mentions_ignores_brand_equal_to_host():
    assert count_mentions("acme.com is great", "acme.com", brand_name="acme.com") == 1


def test_single_bare_domain_mention_scores_25():
    mentions = count_mentions("Try acme.com today.", "https://acme.com/")
    assert mentions == 1
    assert compute_visibility_score(mentions) == 25


def test_count_mentions_empty_input():
    assert count_mentions("", "acme.com") == 0
    assert count_mentions("acme.com", "") == 0


def test_visibility_score_is_capped():
    assert compute_visibility_score(0) == 0
    assert compute_visibility_score(1) == 25
    assert compute_visibility_score(3) == 75
    assert compute_visibility_score(9) == 100


def test_extract_urls_strips_trailing_punctuation_and_dedupes():
    text = "Sources: https://acme.com/a, https://acme.com/a. And (https://other.org/x)!"
    assert extract_urls_from_text(text) == ["https://acme.com/a", "https://other.org/x"]


def test_extract_citation_domains_drops_www_and_duplicates():
    urls = ["https://www.acme.com/a", "https://acme.com/b", "https://news.example.org/x", "not a url"]
    assert extract_citation_domains(urls) == ["acme.com", "news.example.org"]


def test_cites_domain():
    assert cites_domain(["https://www.acme.com/blog/post"], "https://acme.com")
    assert not cites_domain(["https://other.com/acme.com"], "acme.com")
