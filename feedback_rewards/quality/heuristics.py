"""
Deterministic local quality heuristics.

Used when the external scoring service is not configured, fails or times
out. Everything here is pure: the same text always yields the same
metrics.
"""
import re
from typing import List, Dict, Any, Optional
from ..models import QualityMetrics


POSITIVE_WORDS = frozenset({
    "good", "great", "excellent", "amazing", "love",
    "like", "helpful", "useful", "impressive",
})
NEGATIVE_WORDS = frozenset({
    "bad", "poor", "terrible", "awful", "hate",
    "dislike", "confusing", "difficult", "frustrating",
})
ACTION_WORDS = ("should", "could", "would")

NOVELTY_ESTIMATE = 0.6

# (category, keywords), first match wins
CATEGORY_KEYWORDS = (
    ("UI Design", ("design", "look", "ui", "interface")),
    ("User Experience", ("use", "experience", "ux", "flow")),
    ("Content", ("text", "content", "wording", "message")),
    ("Functionality", ("function", "feature", "work", "bug")),
    ("Performance", ("slow", "fast", "speed", "performance")),
)
DEFAULT_CATEGORY = "Other"

SUBCATEGORY_KEYWORDS = {
    "UI Design": (
        ("Color Scheme", ("color", "theme")),
        ("UI Elements", ("button", "icon")),
        ("Layout", ("layout", "position")),
        ("General Design", ()),
    ),
    "User Experience": (
        ("Navigation", ("navigation", "menu")),
        ("Forms & Inputs", ("form", "input")),
        ("User Flow", ("flow", "process")),
        ("General UX", ()),
    ),
    "Functionality": (
        ("Bug Report", ("bug", "error")),
        ("Feature Request", ("feature", "add")),
        ("General Functionality", ()),
    ),
}
DEFAULT_SUBCATEGORY = "General Feedback"

_WORD = re.compile(r"\w+")


def tokenize(content: str) -> List[str]:
    """Lower-cased words, split on non-word boundaries."""
    return _WORD.findall((content or "").lower())


def determine_category(content: str) -> str:
    text = (content or "").lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(word in text for word in keywords):
            return category
    return DEFAULT_CATEGORY


def determine_subcategory(content: str, category: Optional[str] = None) -> str:
    text = (content or "").lower()
    category = category or determine_category(content)
    for subcategory, keywords in SUBCATEGORY_KEYWORDS.get(category, ()):
        if not keywords or any(word in text for word in keywords):
            return subcategory
    return DEFAULT_SUBCATEGORY


def analyze_locally(content: str) -> QualityMetrics:
    """Score a text with the lexicon heuristic."""
    text = content or ""
    words = tokenize(text)
    positive = sum(1 for word in words if word in POSITIVE_WORDS)
    negative = sum(1 for word in words if word in NEGATIVE_WORDS)

    lowered = text.lower()
    specificity = min(0.5 + len(words) / 100, 0.9)
    actionability = 0.7 if any(w in lowered for w in ACTION_WORDS) else 0.5
    sentiment = (positive - negative) / max(1, positive + negative)
    category = determine_category(text)

    return QualityMetrics(
        specificity=specificity,
        actionability=actionability,
        novelty=NOVELTY_ESTIMATE,
        sentiment=float(sentiment),
        category=category,
        subcategory=determine_subcategory(text, category),
        source='local'
    )


SUGGESTIONS = {
    "specificity": {
        "suggestion": "Add more specific details about what you observed",
        "examples": [
            "Mention specific elements or features you're providing feedback on",
            "Include exact steps to reproduce an issue",
            "Reference specific sections or pages",
        ],
    },
    "actionability": {
        "suggestion": "Include clear suggestions for improvement",
        "examples": [
            "Suggest specific changes that would address your concerns",
            "Provide alternative approaches or solutions",
            "Explain how your suggestions would improve the experience",
        ],
    },
    "novelty": {
        "suggestion": "Try to provide unique insights not mentioned before",
        "examples": [
            "Review existing feedback to avoid duplication",
            "Consider different use cases or perspectives",
            "Share personal experiences that provide new context",
        ],
    },
    "sentiment": {
        "suggestion": "Consider using more constructive language",
        "examples": [
            "Focus on the issue rather than assigning blame",
            "Balance criticism with positive observations",
            "Use neutral language to describe problems",
        ],
    },
}

LOW_SCORE = 0.4
NEGATIVE_SENTIMENT = -0.3


def suggestions(metrics: QualityMetrics) -> List[Dict[str, Any]]:
    """Improvement hints for the weak dimensions of a text."""
    weak = []
    if metrics.specificity < LOW_SCORE:
        weak.append("specificity")
    if metrics.actionability < LOW_SCORE:
        weak.append("actionability")
    if metrics.novelty < LOW_SCORE:
        weak.append("novelty")
    if metrics.sentiment < NEGATIVE_SENTIMENT:
        weak.append("sentiment")
    return [
        {
            "metric": metric,
            "suggestion": SUGGESTIONS[metric]["suggestion"],
            "examples": list(SUGGESTIONS[metric]["examples"]),
        }
        for metric in weak
    ]
