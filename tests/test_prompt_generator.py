"""Tests for FAQ and fan-out prompt generation."""

import asyncio
import json

import pytest

from core.errors import ProviderError, ValidationError
from tests.conftest import fake_openai
from tracking.prompt_generator import generate_prompts

FAQS = json.dumps({"questions": ["What is an anvil?", "  ", "Best anvil brands?"]})
FANOUT = json.dumps(
    {
        "results": [
            {"question": "What is an anvil?", "fanout": ["anvil definition", 3]},
            {"question": "Best anvil brands?", "fanout": ["top anvils 2025"]},
        ]
    }
)


def test_generate_prompts_returns_questions_with_fanout(config):
    client = fake_openai(FAQS, FANOUT)

    result = asyncio.run(generate_prompts("anvils", ["comparison"], client=client))

    assert result["keyword"] == "anvils"
    assert result["results"] == [
        {"question": "What is an anvil?", "fanout": ["anvil definition"]},
        {"question": "Best anvil brands?", "fanout": ["top anvils 2025"]},
    ]
    first_call, second_call = client.chat.completions.calls
    assert "- comparison:" in first_call["messages"][0]["content"]
    assert first_call["response_format"] == {"type": "json_object"}
    assert "1. What is an anvil?\n2. Best anvil brands?" in second_call["messages"][1]["content"]


def test_generate_prompts_accepts_fenced_list(config):
    client = fake_openai('```json\n["Q1?"]\n```', "not json")

    result = asyncio.run(generate_prompts("anvils", client=client))

    assert result["results"] == [{"question": "Q1?", "fanout": []}]


def test_generate_prompts_requires_keyword():
    with pytest.raises(ValidationError):
        asyncio.run(generate_prompts("  ", client=fake_openai("{}")))


def test_generate_prompts_without_faqs(config):
    with pytest.raises(ProviderError):
        asyncio.run(generate_prompts("anvils", client=fake_openai('{"questions": []}')))


def test_generate_prompts_unparseable_faqs(config):
    with pytest.raises(ProviderError):
        asyncio.run(generate_prompts("anvils", client=fake_openai("sorry, no")))
