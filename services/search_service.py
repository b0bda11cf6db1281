import time
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from config import settings
from models import (
    LibraryCard, ResultCard, ScreenshotCard, ScreenshotPreview, ScreenshotRecord,
    SearchResponse,
)
from services.file_manager import format_storage_size
from services.relevance import (
    RankingPolicy, calculate_relevance_score, highlight_search_terms, search_screenshots,
    to_search_result,
)

logger = logging.getLogger(settings.LOGGER_NAME)


class SearchValidationError(ValueError):
    """A search request was rejected before any work was done."""

    def __init__(self, message: str, query: str = ""):
        super().__init__(message)
        self.query = query


def policy_from_settings() -> RankingPolicy:
    return RankingPolicy(
        min_confidence=settings.SEARCH_MIN_CONFIDENCE,
        tie_epsilon=settings.SEARCH_TIE_EPSILON,
        filename_fallback=settings.SEARCH_FILENAME_FALLBACK,
        filename_confidence=settings.SEARCH_FILENAME_CONFIDENCE,
    )


def validate_search_request(query: Optional[str], limit: Optional[str] = None) -> Tuple[str, int]:
    """Validate raw query/limit parameters and return the sanitized pair."""
    if not query:
        raise SearchValidationError('Query parameter "q" is required')

    sanitized_query = query.strip()
    if not sanitized_query:
        raise SearchValidationError("Query cannot be empty", sanitized_query)

    if len(sanitized_query) > settings.MAX_QUERY_LENGTH:
        raise SearchValidationError(
            f"Query too long (maximum {settings.MAX_QUERY_LENGTH} characters)", sanitized_query
        )

    if limit is None or limit == "":
        return sanitized_query, settings.DEFAULT_SEARCH_LIMIT

    try:
        parsed_limit = int(limit)
    except (TypeError, ValueError):
        parsed_limit = None
    if parsed_limit is None or parsed_limit < 1 or parsed_limit > settings.MAX_SEARCH_LIMIT:
        raise SearchValidationError(
            f"Limit must be a number between 1 and {settings.MAX_SEARCH_LIMIT}", sanitized_query
        )

    return sanitized_query, parsed_limit


class SearchService:
    def __init__(self, db_manager, policy: Optional[RankingPolicy] = None):
        self.db_manager = db_manager
        self.policy = policy or policy_from_settings()

    def load_records(self) -> List[ScreenshotRecord]:
        """Fetch completed screenshots from the record store."""
        rows = self.db_manager.get_completed_screenshots()
        if rows is None or not isinstance(rows, list):
            raise RuntimeError("Failed to fetch screenshots from database")
        return [ScreenshotRecord(**row) for row in rows]

    def search(self, query: str, limit: int = 5, start_time: Optional[float] = None) -> SearchResponse:
        """Rank stored screenshots against an already validated query.

        Record store failures propagate; search logging failures never do.
        """
        start_time = start_time if start_time is not None else time.time()

        records = self.load_records()
        results = search_screenshots(query, records, limit, self.policy)

        response_time = int((time.time() - start_time) * 1000)
        self._log_search(query, len(results), response_time)

        return SearchResponse(
            results=results,
            query=query,
            total_found=len(results),
            response_time=response_time,
        )

    def _log_search(self, query: str, results_count: int, response_time: int) -> None:
        try:
            self.db_manager.log_search(query, results_count, response_time)
        except Exception as e:
            # Analytics must not affect the search response
            logger.warning(f"Failed to log search: {e}")

    def build_card(self, record: ScreenshotRecord, query: Optional[str] = None) -> ScreenshotCard:
        """Library card without a query, scored result card with one."""
        if not query or not query.strip():
            return LibraryCard(screenshot=record)

        score, match_type = calculate_relevance_score(
            query, record.ocr_text, record.visual_description
        )
        return ResultCard(
            result=to_search_result(record, score, match_type),
            query=query,
            ocr_highlights=highlight_search_terms(record.ocr_text, query),
            visual_highlights=highlight_search_terms(record.visual_description, query),
        )


def build_preview(card: ScreenshotCard) -> ScreenshotPreview:
    """Presentation data shared by both card kinds."""
    summary = card.summary()
    uploaded = datetime.fromtimestamp(summary.uploaded_at / 1000, tz=timezone.utc)

    badges = []
    if isinstance(card, ResultCard):
        badges.append(f"{card.result.confidence * 100:.0f}% Match")
        badges.append(f"{card.result.match_type.value.capitalize()} Match")

    return ScreenshotPreview(
        kind=card.kind,
        summary=summary,
        uploaded_on=uploaded.strftime("%Y-%m-%d %H:%M:%S UTC"),
        size_display=format_storage_size(summary.file_size),
        badges=badges,
        card=card,
    )
