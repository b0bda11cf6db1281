"""Relevance scoring and ranking for screenshot search.

Everything here is a pure function of its arguments: no I/O, no shared state,
and records passed in are never modified. Safe to call from parallel workers.
"""
import re
from dataclasses import dataclass
from functools import cmp_to_key
from typing import List, NamedTuple, Sequence

from models import HighlightSegment, MatchType, ScreenshotRecord, SearchResult

# Stop words to filter out of search queries
STOP_WORDS = frozenset([
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of',
    'with', 'by', 'is', 'are', 'was', 'were', 'be', 'been', 'being', 'have',
    'has', 'had', 'do', 'does', 'did', 'will', 'would', 'could', 'should'
])

EXACT_PHRASE_BONUS = 2.0
LONG_TOKEN_BOOST = 1.2
MAX_TOKEN_CONTRIBUTION = 0.8
LONG_OCR_TEXT = 1000
LONG_VISUAL_DESCRIPTION = 500
LENGTH_PENALTY = 0.9
BOTH_FIELDS_BONUS = 1.1

_NON_WORD = re.compile(r'[^\w\s]')


class RelevanceScore(NamedTuple):
    score: float
    match_type: MatchType


@dataclass(frozen=True)
class RankingPolicy:
    """Tunable knobs for search_screenshots."""
    min_confidence: float = 0.05
    tie_epsilon: float = 0.01
    # Include records whose filename contains the whole query even when
    # neither text field scores.
    filename_fallback: bool = False
    filename_confidence: float = 0.5


DEFAULT_POLICY = RankingPolicy()


def tokenize_query(query: str) -> List[str]:
    """Tokenize a query string by removing stop words and normalizing."""
    cleaned = _NON_WORD.sub(' ', query.lower())
    return [
        token for token in cleaned.split()
        if len(token) > 1 and token not in STOP_WORDS
    ]


def _token_score(token: str, words: List[str]) -> float:
    count = sum(1 for word in words if token in word)
    if count == 0:
        return 0.0
    tf = count / len(words)
    boost = LONG_TOKEN_BOOST if len(token) > 3 else 1.0
    return min(tf * boost, MAX_TOKEN_CONTRIBUTION)


def calculate_relevance_score(query: str, ocr_text: str, visual_description: str) -> RelevanceScore:
    """Calculate a TF-IDF-like relevance score of one screenshot's text against a query."""
    query_tokens = tokenize_query(query)
    if not query_tokens:
        return RelevanceScore(0.0, MatchType.TEXT)

    if not ocr_text.strip() and not visual_description.strip():
        return RelevanceScore(0.0, MatchType.TEXT)

    normalized_query = query.lower()
    normalized_ocr = ocr_text.lower()
    normalized_visual = visual_description.lower()

    ocr_score = 0.0
    visual_score = 0.0
    has_ocr_match = False
    has_visual_match = False

    # Exact phrase matches carry the most weight
    if normalized_query in normalized_ocr:
        ocr_score += EXACT_PHRASE_BONUS
        has_ocr_match = True
    if normalized_query in normalized_visual:
        visual_score += EXACT_PHRASE_BONUS
        has_visual_match = True

    ocr_words = normalized_ocr.split()
    visual_words = normalized_visual.split()

    for token in query_tokens:
        contribution = _token_score(token, ocr_words) if ocr_words else 0.0
        if contribution > 0:
            ocr_score += contribution
            has_ocr_match = True

        contribution = _token_score(token, visual_words) if visual_words else 0.0
        if contribution > 0:
            visual_score += contribution
            has_visual_match = True

    if len(ocr_text) > LONG_OCR_TEXT:
        ocr_score *= LENGTH_PENALTY
    if len(visual_description) > LONG_VISUAL_DESCRIPTION:
        visual_score *= LENGTH_PENALTY

    final_score = min(max(ocr_score, visual_score), 1.0)

    if has_ocr_match and has_visual_match:
        return RelevanceScore(min(final_score * BOTH_FIELDS_BONUS, 1.0), MatchType.BOTH)
    if has_visual_match and not has_ocr_match:
        return RelevanceScore(final_score, MatchType.VISUAL)
    return RelevanceScore(final_score, MatchType.TEXT)


def _might_match(record: ScreenshotRecord, normalized_query: str, query_tokens: List[str]) -> bool:
    fields = (
        record.ocr_text.lower(),
        record.visual_description.lower(),
        record.filename.lower(),
    )
    if any(normalized_query in field for field in fields):
        return True
    return any(token in field for token in query_tokens for field in fields)


def to_search_result(record: ScreenshotRecord, confidence: float, match_type: MatchType) -> SearchResult:
    return SearchResult(
        id=record.id,
        filename=record.filename,
        image_url=record.image_url,
        ocr_text=record.ocr_text,
        visual_description=record.visual_description,
        uploaded_at=record.uploaded_at,
        file_size=record.file_size,
        confidence=confidence,
        match_type=match_type,
    )


def search_screenshots(
    query: str,
    screenshots: Sequence[ScreenshotRecord],
    limit: int = 5,
    policy: RankingPolicy = DEFAULT_POLICY,
) -> List[SearchResult]:
    """Rank screenshots against a query.

    Only completed screenshots with some text are considered. Scores at or
    below ``policy.min_confidence`` are dropped; the rest are sorted by
    confidence, newest first when two confidences are within
    ``policy.tie_epsilon``, and truncated to ``limit``.
    """
    if not query.strip() or not screenshots:
        return []

    searchable = [s for s in screenshots if s.is_searchable()]
    if not searchable:
        return []

    query_tokens = tokenize_query(query)
    normalized_query = query.lower()
    trimmed_query = normalized_query.strip()

    candidates = [s for s in searchable if _might_match(s, normalized_query, query_tokens)]

    results: List[SearchResult] = []
    for screenshot in candidates:
        score, match_type = calculate_relevance_score(
            query, screenshot.ocr_text, screenshot.visual_description
        )
        if score > policy.min_confidence:
            results.append(to_search_result(screenshot, score, match_type))
        elif policy.filename_fallback and trimmed_query in screenshot.filename.lower():
            results.append(to_search_result(screenshot, policy.filename_confidence, MatchType.TEXT))

    def compare(a: SearchResult, b: SearchResult) -> int:
        if abs(a.confidence - b.confidence) < policy.tie_epsilon:
            return b.uploaded_at - a.uploaded_at
        return -1 if a.confidence > b.confidence else 1

    results.sort(key=cmp_to_key(compare))
    return results[:limit]


def highlight_search_terms(text: str, query: str) -> List[HighlightSegment]:
    """Split text into segments, flagging the parts that match the query.

    The whole query and each query token (on word boundaries) are matched
    case-insensitively. Original casing is preserved.
    """
    if not query.strip():
        return _unhighlighted(text)

    query_tokens = tokenize_query(query)
    if not query_tokens:
        return _unhighlighted(text)

    patterns = [re.escape(query)] + [r'\b' + re.escape(token) + r'\b' for token in query_tokens]
    regex = re.compile('(' + '|'.join(patterns) + ')', re.IGNORECASE)

    segments = []
    # With one capturing group, odd indexes hold the matched text
    for index, part in enumerate(regex.split(text)):
        if not part:
            continue
        segments.append(HighlightSegment(is_match=index % 2 == 1 and bool(part.strip()), text=part))
    return segments


def _unhighlighted(text: str) -> List[HighlightSegment]:
    return [HighlightSegment(is_match=False, text=text)] if text else []
