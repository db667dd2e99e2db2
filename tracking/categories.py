"""Funnel phases and intent subcategories used to steer prompt generation."""

from typing import Dict, Iterable, List, Optional

FUNNEL_PHASES = ["awareness", "consideration", "decision", "trust", "usage"]

PHASE_SUBCATEGORIES: Dict[str, List[str]] = {
    "awareness": ["general_info", "trends", "company"],
    "consideration": ["comparison", "evaluation", "use_cases", "target_groups"],
    "decision": ["recommendations", "sentiment"],
    "trust": ["reputation", "security"],
    "usage": ["howto", "integrations"],
}

ALL_SUBCATEGORY_IDS = [sub for subs in PHASE_SUBCATEGORIES.values() for sub in subs]

# Intent description and example query patterns per subcategory
SUBCATEGORY_AI_CONTEXT: Dict[str, Dict] = {
    "general_info": {
        "intent": "Users want general, factual information about a topic",
        "patterns": ["What is X?", "How does X work?", "Overview of X", "Explain X"],
    },
    "trends": {
        "intent": "Users want current news, trends, and market developments",
        "patterns": [
            "Latest trends in X",
            "News about X",
            "Market developments in X",
            "Which providers in X are growing right now?",
        ],
    },
    "company": {
        "intent": "Users want to understand a specific company or brand in depth",
        "patterns": [
            "What does company X do?",
            "Who founded X?",
            "History of X",
            "How big is company X?",
            "Key customers of X",
        ],
    },
    "comparison": {
        "intent": "Users want to compare options, competitors, and alternatives",
        "patterns": ["X vs Y", "Alternatives to X", "Best tool for X", "Comparison of X and Y"],
    },
    "evaluation": {
        "intent": "Mid-funnel: users are evaluating whether something fits their needs",
        "patterns": [
            "Is X good for small businesses?",
            "Pros and cons of X",
            "Is X worth it?",
            "Experiences with X",
        ],
    },
    "use_cases": {
        "intent": "Users want inspiration, concrete use cases, and application examples",
        "patterns": [
            "What can you do with X?",
            "Examples of X in practice",
            "Use cases for X",
            "Creative applications of X",
        ],
    },
    "target_groups": {
        "intent": "Users want to know if something is suitable for their specific audience or segment",
        "patterns": [
            "Best X for freelancers",
            "X for agencies",
            "Solutions for SMBs",
            "Enterprise use cases for X",
        ],
    },
    "recommendations": {
        "intent": "Users want specific product or service recommendations",
        "patterns": ["Best X for Y", "Which X should I use?", "Top X providers", "Recommended X tools"],
    },
    "sentiment": {
        "intent": "Users want aggregated opinions, sentiment, and public perception about brands or products",
        "patterns": [
            "What do people think about X?",
            "Is X trustworthy?",
            "Why is X criticized?",
            "Most popular providers for X",
        ],
    },
    "reputation": {
        "intent": "Users want to understand brand reputation and credibility",
        "patterns": ["Is X reliable?", "Reviews of X", "Reputation of X", "Can you trust X?"],
    },
    "security": {
        "intent": "Users want to assess trust, security, data privacy, and compliance aspects",
        "patterns": [
            "Is X GDPR compliant?",
            "How secure is X?",
            "Data privacy at X",
            "Certifications of X",
        ],
    },
    "howto": {
        "intent": "Users have a concrete problem or goal and want step-by-step guidance",
        "patterns": ["How do I set up X?", "How to fix X?", "Steps for X", "Best practices for X"],
    },
    "integrations": {
        "intent": "Users want to know about integrations, APIs, and ecosystem compatibility",
        "patterns": [
            "X integration with Y",
            "Does X have an API?",
            "Is X compatible with Y?",
            "Plugins for X",
        ],
    },
}


def get_phase_for_subcategory(subcategory_id: str) -> Optional[str]:
    for phase, subcategories in PHASE_SUBCATEGORIES.items():
        if subcategory_id in subcategories:
            return phase
    return None


def build_category_prompt_context(subcategory_ids: Iterable[str]) -> str:
    """Describe the selected subcategories for a generation system prompt.

    Unknown ids are ignored.

    >>> build_category_prompt_context(["howto"]).startswith("- howto: Users have")
    True
    """
    lines = []
    for sub_id in subcategory_ids:
        context = SUBCATEGORY_AI_CONTEXT.get(sub_id)
        if context is None:
            continue
        label = sub_id.replace("_", " ")
        examples = ", ".join(f'"{p}"' for p in context["patterns"])
        lines.append(f"- {label}: {context['intent']}. Example query patterns: {examples}")
    return "\n".join(lines)


def matches_category(intent_categories: Optional[Iterable[str]], category: Optional[str]) -> bool:
    """Whether a prompt set's subcategories match a phase or subcategory filter.

    No filter matches everything. A funnel phase matches when any of the
    set's subcategories belongs to it.
    """
    if not category:
        return True
    categories = list(intent_categories or [])
    if category in PHASE_SUBCATEGORIES:
        return any(get_phase_for_subcategory(c) == category for c in categories)
    return category in categories
