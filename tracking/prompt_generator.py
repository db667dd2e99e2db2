"""FAQ and query fan-out generation for building prompt sets."""

import json
from typing import Any, Dict, List, Optional

import structlog
from openai import AsyncOpenAI

from core.errors import ProviderError, ValidationError
from core.llm_client import complete_text, strip_code_fences
from tracking.categories import build_category_prompt_context

logger = structlog.get_logger(__name__)

FAQ_COUNT = 8

FAQ_SYSTEM_PROMPT = (
    "You are an SEO and AI search intent expert. Generate the most frequently asked "
    "questions about a given topic or keyword. These should be realistic questions that "
    "users would actually ask AI chatbots like ChatGPT, Claude, or Perplexity. "
    "Return ONLY valid JSON, no markdown formatting."
)

FANOUT_SYSTEM_PROMPT = (
    "You are an AI search behavior expert. For each given question, generate query fanout: "
    "the related queries, reformulations, and follow-up questions that AI models internally "
    "consider when processing the original query. These represent the different angles and "
    "sub-queries a search or AI system would explore to provide a comprehensive answer. "
    "Return ONLY valid JSON, no markdown formatting."
)


def _parse_faqs(content: str) -> List[str]:
    parsed = json.loads(strip_code_fences(content) or "{}")
    if isinstance(parsed, list):
        questions = parsed
    else:
        questions = parsed.get("questions") or parsed.get("faqs") or []
    return [q.strip() for q in questions if isinstance(q, str) and q.strip()]


def _parse_fanout(content: str, faqs: List[str]) -> List[Dict[str, Any]]:
    try:
        parsed = json.loads(strip_code_fences(content) or "{}")
        results = parsed.get("results") or []
    except (json.JSONDecodeError, AttributeError) as e:
        logger.warning("fanout_parse_failed", error=str(e))
        return [{"question": q, "fanout": []} for q in faqs]

    return [
        {
            "question": str(item.get("question", "")),
            "fanout": [f for f in item.get("fanout") or [] if isinstance(f, str)],
        }
        for item in results
        if isinstance(item, dict)
    ]


async def generate_prompts(
    keyword: str,
    categories: Optional[List[str]] = None,
    client: Optional[AsyncOpenAI] = None,
) -> Dict[str, Any]:
    """Generate FAQ prompts for a keyword, each with query fan-out variations.

    Args:
        keyword: Topic or keyword
        categories: Intent subcategory ids to steer the questions
        client: OpenAI client override

    Returns:
        Dict with ``keyword`` and ``results`` (list of question/fanout dicts)

    Raises:
        ValidationError: If the keyword is empty
        ProviderError: If no usable FAQs come back
    """
    keyword = (keyword or "").strip()
    if not keyword:
        raise ValidationError("Keyword is required")

    system_prompt = FAQ_SYSTEM_PROMPT
    category_context = build_category_prompt_context(categories or [])
    if category_context:
        system_prompt += (
            "\n\nFocus the questions on these search intents:\n" + category_context
        )

    faq_content = await complete_text(
        [
            {"role": "system", "content": system_prompt},
            {
                "role": "user",
                "content": (
                    f'Generate {FAQ_COUNT} frequently asked questions about: "{keyword}"\n\n'
                    'Return as JSON: { "questions": ["question1", "question2", ...] }'
                ),
            },
        ],
        max_tokens=1024,
        temperature=0.7,
        json_mode=True,
        client=client,
    )

    try:
        faqs = _parse_faqs(faq_content)
    except (json.JSONDecodeError, AttributeError) as e:
        logger.error("faq_parse_failed", keyword=keyword, error=str(e))
        raise ProviderError("Failed to parse FAQ response") from e

    if not faqs:
        raise ProviderError("No FAQs generated")

    numbered = "\n".join(f"{i + 1}. {q}" for i, q in enumerate(faqs))
    fanout_content = await complete_text(
        [
            {"role": "system", "content": FANOUT_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": (
                    f"For each of these questions, generate 3-5 query fanout variations:\n\n"
                    f"{numbered}\n\n"
                    'Return as JSON: { "results": [{ "question": "original question", '
                    '"fanout": ["variation1", "variation2", ...] }] }'
                ),
            },
        ],
        max_tokens=4096,
        temperature=0.7,
        json_mode=True,
        client=client,
    )

    results = _parse_fanout(fanout_content, faqs)
    logger.info("prompts_generated", keyword=keyword, questions=len(faqs), results=len(results))
    return {"keyword": keyword, "results": results}
