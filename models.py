from enum import Enum
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class MatchType(str, Enum):
    TEXT = "text"
    VISUAL = "visual"
    BOTH = "both"


class ScreenshotRecord(BaseModel):
    """A stored screenshot's searchable metadata."""
    id: str
    filename: str
    image_url: str
    ocr_text: str = ""
    visual_description: str = ""
    uploaded_at: int  # epoch milliseconds
    file_size: int = Field(ge=0)
    processing_status: ProcessingStatus = ProcessingStatus.PENDING

    def is_searchable(self) -> bool:
        return (
            self.processing_status == ProcessingStatus.COMPLETED
            and bool(self.ocr_text.strip() or self.visual_description.strip())
        )


class SearchResult(BaseModel):
    id: str
    filename: str
    image_url: str
    ocr_text: str
    visual_description: str
    uploaded_at: int
    file_size: int
    confidence: float
    match_type: MatchType


class HighlightSegment(BaseModel):
    is_match: bool
    text: str


class SearchResponse(BaseModel):
    results: List[SearchResult]
    query: str
    total_found: int
    response_time: int


class SearchErrorResponse(SearchResponse):
    error: str


class SearchLogEntry(BaseModel):
    query: str
    results_count: int
    response_time: int
    timestamp: int


class UploadedFile(BaseModel):
    id: str
    filename: str
    file_size: int
    image_url: str
    ocr_text: str
    visual_description: str


class BatchInfo(BaseModel):
    processed: int
    failed: int
    total: int


class UploadResponse(BaseModel):
    success: bool
    uploaded_count: int
    total_files: int
    errors: List[str]
    processed_files: List[UploadedFile] = []
    batch_info: Optional[BatchInfo] = None


class StatusUpdateRequest(BaseModel):
    status: ProcessingStatus
    ocr_text: Optional[str] = None
    visual_description: Optional[str] = None


class DeleteResponse(BaseModel):
    success: bool
    message: str


class StatsResponse(BaseModel):
    total_screenshots: int
    storage_used: int
    storage_used_display: str
    total_searches: int
    average_response_time: float


# Screenshot cards: a stored screenshot shown in the library, or the same
# screenshot shown as a ranked hit for a query. Both reduce to ScreenshotSummary.

class ScreenshotSummary(BaseModel):
    id: str
    filename: str
    image_url: str
    uploaded_at: int
    file_size: int


class LibraryCard(BaseModel):
    kind: Literal["library"] = "library"
    screenshot: ScreenshotRecord

    def summary(self) -> ScreenshotSummary:
        s = self.screenshot
        return ScreenshotSummary(
            id=s.id, filename=s.filename, image_url=s.image_url,
            uploaded_at=s.uploaded_at, file_size=s.file_size,
        )


class ResultCard(BaseModel):
    kind: Literal["result"] = "result"
    result: SearchResult
    query: str
    ocr_highlights: List[HighlightSegment]
    visual_highlights: List[HighlightSegment]

    def summary(self) -> ScreenshotSummary:
        r = self.result
        return ScreenshotSummary(
            id=r.id, filename=r.filename, image_url=r.image_url,
            uploaded_at=r.uploaded_at, file_size=r.file_size,
        )


ScreenshotCard = Annotated[Union[LibraryCard, ResultCard], Field(discriminator="kind")]


class ScreenshotPreview(BaseModel):
    kind: str
    summary: ScreenshotSummary
    uploaded_on: str
    size_display: str
    badges: List[str]
    card: ScreenshotCard
