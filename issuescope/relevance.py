"""
Relevance scoring for issues.

Two independent formulas live here:

* ``calculate_relevance`` is used by single-repository search. It sums
  per-token location hits (title 0.5, body 0.3, labels 0.2, search vector 0.1)
  and divides by the number of query tokens. It is not clamped,
  so a token hitting every location yields 1.1. Callers clamp with
  ``clamp_score`` before ranking.

* ``calculate_enhanced_relevance`` is used by the multi-repository
  coordinator. It picks the best weighted match location (title 1.0x,
  body 0.7x, labels 0.6x, stored comments 0.5x), adds recency, open-state and
  popularity boosts, and clamps the sum to 1.0.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from .models import Issue, MatchType, utcnow

TITLE_HIT = 0.5
BODY_HIT = 0.3
LABEL_HIT = 0.2
VECTOR_HIT = 0.1

TITLE_WEIGHT = 1.0
BODY_WEIGHT = 0.7
LABELS_WEIGHT = 0.6
COMMENTS_WEIGHT = 0.5

RECENCY_MAX_BOOST = 0.1
RECENCY_WINDOW_DAYS = 365
OPEN_STATE_BOOST = 0.1
POPULARITY_MAX_BOOST = 0.1
POPULARITY_CAP = 10

SNIPPET_BEFORE = 50
SNIPPET_AFTER = 100
SNIPPET_MAX_LENGTH = 150


def clamp_score(score: float) -> float:
    return max(0.0, min(score, 1.0))


def calculate_relevance(issue: Issue, query: str) -> float:
    """Score an issue against a raw query for single-repository search."""
    terms = query.lower().split()
    search_vector = issue.search_vector
    if not terms or not search_vector:
        return 0.0

    title = issue.title.lower()
    body = issue.body.lower()
    labels = [name.lower() for name in issue.label_names]

    score = 0.0
    for term in terms:
        if term in title:
            score += TITLE_HIT
        if term in body:
            score += BODY_HIT
        if any(term in label for label in labels):
            score += LABEL_HIT
        if term in search_vector:
            score += VECTOR_HIT

    return score / len(terms)


@dataclass
class EnhancedRelevance:
    score: float
    match_type: MatchType
    matched_text: str


def query_words(query: str) -> List[str]:
    return [word for word in query.lower().split() if len(word) > 2]


def calculate_text_relevance(text: str, words: List[str]) -> float:
    """Exact word 0.3, partial word 0.2, plain substring 0.1, averaged over words."""
    if not text or not words:
        return 0.0

    text_words = text.split()
    score = 0.0
    for word in words:
        if any(candidate == word for candidate in text_words):
            score += 0.3
        elif any(word in candidate for candidate in text_words):
            score += 0.2
        elif word in text:
            score += 0.1

    return min(score / len(words), 1.0)


def extract_matched_text(text: str, words: List[str]) -> str:
    """Snippet around the earliest matching word, ellipsis-truncated."""
    text_lower = text.lower()
    match_pos = -1
    for word in words:
        pos = text_lower.find(word)
        if pos != -1 and (match_pos == -1 or pos < match_pos):
            match_pos = pos

    if match_pos == -1:
        return text[:SNIPPET_MAX_LENGTH] + ("..." if len(text) > SNIPPET_MAX_LENGTH else "")

    start = max(0, match_pos - SNIPPET_BEFORE)
    end = min(len(text), match_pos + SNIPPET_AFTER)
    snippet = text[start:end]
    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet = snippet + "..."
    return snippet


def recency_boost(updated_at: datetime, now: Optional[datetime] = None) -> float:
    days = ((now or utcnow()) - updated_at).total_seconds() / 86400
    return max(0.0, min(1.0, 1 - days / RECENCY_WINDOW_DAYS)) * RECENCY_MAX_BOOST


def popularity_boost(reaction_count: int) -> float:
    return min(max(reaction_count, 0), POPULARITY_CAP) / POPULARITY_CAP * POPULARITY_MAX_BOOST


def calculate_enhanced_relevance(
    issue: Issue,
    query: str,
    include_body: bool = True,
    include_comments: bool = False,
    comments: Iterable[str] = (),
    now: Optional[datetime] = None,
) -> EnhancedRelevance:
    """Score an issue for the multi-repository coordinator, clamped to 1.0."""
    words = query_words(query)

    best_score = 0.0
    best_match: MatchType = "title"
    best_text = ""

    title_score = calculate_text_relevance(issue.title.lower(), words) * TITLE_WEIGHT
    if title_score > best_score:
        best_score = title_score
        best_match = "title"
        best_text = extract_matched_text(issue.title, words)

    if include_body and issue.body:
        body_score = calculate_text_relevance(issue.body.lower(), words) * BODY_WEIGHT
        if body_score > best_score:
            best_score = body_score
            best_match = "body"
            best_text = extract_matched_text(issue.body, words)

    labels_text = " ".join(issue.label_names)
    labels_score = calculate_text_relevance(labels_text.lower(), words) * LABELS_WEIGHT
    if labels_score > best_score:
        best_score = labels_score
        best_match = "labels"
        best_text = ", ".join(issue.label_names)

    if include_comments:
        for comment in comments:
            comment_score = calculate_text_relevance(comment.lower(), words) * COMMENTS_WEIGHT
            if comment_score > best_score:
                best_score = comment_score
                best_match = "comments"
                best_text = extract_matched_text(comment, words)

    final = (
        best_score
        + recency_boost(issue.updated_at, now)
        + (OPEN_STATE_BOOST if issue.state == "open" else 0.0)
        + popularity_boost(issue.reactions.total_count)
    )
    return EnhancedRelevance(score=min(final, 1.0), match_type=best_match, matched_text=best_text)
