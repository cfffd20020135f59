"""
Search vector construction for issues.

A search vector is the lowercase token bag of an issue's title, body and
label names, used for fast substring relevance checks.
"""
import re
from typing import Iterable

_PUNCTUATION = re.compile(r"[^\w\s]")
MIN_TOKEN_LENGTH = 3


def build_search_vector(title: str, body: str, label_names: Iterable[str]) -> str:
    """Return the normalized token string for the given issue text."""
    text = f"{title or ''} {body or ''} {' '.join(label_names)}"
    text = _PUNCTUATION.sub(" ", text.lower())
    return " ".join(token for token in text.split() if len(token) >= MIN_TOKEN_LENGTH)
