"""
Technical keyword extraction from free-form chat text.

Turns a chat message into a short query for multi-repository search.
"""
import re
from typing import List

MAX_KEYWORDS = 10

TECHNICAL_PATTERNS = [
    # Languages and frameworks
    re.compile(r"\b(typescript|javascript|react|node|next\.js|vue|angular|svelte)\b", re.IGNORECASE),
    # Error and bug vocabulary
    re.compile(r"\b(error|exception|bug|issue|problem|fail|crash|break)\b", re.IGNORECASE),
    # Language constructs
    re.compile(r"\b(type|interface|class|function|method|property|variable|const|let|var)\b", re.IGNORECASE),
    # Common runtime values
    re.compile(r"\b(undefined|null|NaN|async|await|promise|callback|event|handler)\b", re.IGNORECASE),
    # Build tooling
    re.compile(r"\b(webpack|vite|babel|eslint|prettier|jest|testing|build|compile)\b", re.IGNORECASE),
]

CODE_SPAN = re.compile(r"`([^`]+)`")


def extract_technical_keywords(content: str) -> List[str]:
    """Return up to ten lowercase, de-duplicated keywords in pattern order."""
    keywords = {}

    for pattern in TECHNICAL_PATTERNS:
        for match in pattern.finditer(content):
            keywords.setdefault(match.group(0).lower(), None)

    for match in CODE_SPAN.finditer(content):
        span = match.group(1).strip()
        if 2 < len(span) < 50:
            keywords.setdefault(span.lower(), None)

    return list(keywords)[:MAX_KEYWORDS]
