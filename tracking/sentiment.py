"""Brand sentiment classification of provider answers."""

from dataclasses import dataclass
from typing import Optional

from openai import AsyncOpenAI
import structlog

from core.llm_client import complete_json

logger = structlog.get_logger(__name__)

MAX_INPUT_CHARS = 2000

SYSTEM_PROMPT = (
    'You are a brand sentiment classifier. Analyze the following AI-generated text '
    'and determine the sentiment SPECIFICALLY toward the brand "{brand}". '
    'If the brand is not mentioned, classify as "neutral" with score 0.\n\n'
    'Respond with ONLY a JSON object: {{"sentiment":"positive"|"neutral"|"negative","score":<-100 to 100>}}\n'
    "Score guide: -100 = strongly negative, 0 = neutral, +100 = strongly positive."
)


@dataclass
class SentimentResult:
    sentiment: str  # positive, neutral, negative
    score: int  # -100..100


NEUTRAL = SentimentResult(sentiment="neutral", score=0)


def parse_sentiment(data) -> SentimentResult:
    """Normalize a classifier payload into a SentimentResult."""
    if not isinstance(data, dict):
        return NEUTRAL

    label = data.get("sentiment")
    sentiment = label if label in ("positive", "negative") else "neutral"

    try:
        score = round(float(data.get("score") or 0))
    except (TypeError, ValueError):
        score = 0

    return SentimentResult(sentiment=sentiment, score=max(-100, min(100, score)))


async def analyze_sentiment(
    response: str, brand_name: str, client: Optional[AsyncOpenAI] = None
) -> SentimentResult:
    """Classify the sentiment of an answer toward a brand.

    Failures never propagate: the answer is treated as neutral.

    Args:
        response: Provider answer
        brand_name: Brand the sentiment is measured against
        client: OpenAI client override

    Returns:
        SentimentResult
    """
    try:
        data = await complete_json(
            [
                {"role": "system", "content": SYSTEM_PROMPT.format(brand=brand_name)},
                {"role": "user", "content": response[:MAX_INPUT_CHARS]},
            ],
            max_tokens=50,
            temperature=0,
            client=client,
        )
        return parse_sentiment(data)
    except Exception as e:
        logger.warning("sentiment_analysis_failed", brand=brand_name, error=str(e))
        return NEUTRAL
