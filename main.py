import time
import asyncio
import logging
from typing import List, Optional
from fastapi import FastAPI, File, UploadFile, HTTPException, Query
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from database import DatabaseManager, init_db
from models import (
    BatchInfo, DeleteResponse, ScreenshotPreview, ScreenshotRecord, SearchErrorResponse, SearchLogEntry,
    SearchResponse, StatsResponse, StatusUpdateRequest, UploadedFile, UploadResponse,
)
from services.file_manager import FileManager, format_storage_size
from services.image_processor import ImageProcessor, OcrEngine
from services.logger_config import setup_logging
from services.search_service import (
    SearchService, SearchValidationError, build_preview, validate_search_request,
)

setup_logging()
logger = logging.getLogger(settings.LOGGER_NAME)

app = FastAPI(title=settings.APP_TITLE, version=settings.APP_VERSION)

# Enable CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services
db_manager = DatabaseManager()
file_manager = FileManager()
image_processor = ImageProcessor()
search_service = SearchService(db_manager)

app.mount("/uploads", StaticFiles(directory=file_manager.upload_dir), name="uploads")


@app.on_event("startup")
async def startup_event():
    """Initialize database and OCR engine on startup."""
    loop = asyncio.get_event_loop()
    try:
        await loop.run_in_executor(None, init_db, db_manager.db_path)
    except Exception as e:
        logger.error(f"Database initialization error: {e}")
        # Continue running; /ready reports the failure

    try:
        image_processor.ocr_engine = await loop.run_in_executor(None, OcrEngine.create)
    except OSError as e:
        logger.warning(f"Tesseract unavailable, OCR disabled: {e}")

    logger.info(f"{settings.APP_TITLE} API started")


@app.on_event("shutdown")
async def shutdown_event():
    """Release the OCR engine."""
    if image_processor.ocr_engine is not None:
        image_processor.ocr_engine.terminate()
        image_processor.ocr_engine = None


def _service_info() -> dict:
    return {"service": settings.APP_TITLE, "version": settings.APP_VERSION}


@app.get("/")
async def root():
    return JSONResponse(content={"status": "healthy", **_service_info()}, status_code=200)


@app.get("/health")
async def health_check():
    """Health check endpoint for deployment systems."""
    return JSONResponse(content={"status": "healthy", **_service_info()}, status_code=200)


@app.get("/ready")
async def readiness_check():
    """Readiness check endpoint for deployment systems."""
    try:
        db_manager.get_stats()
        return JSONResponse(
            content={"status": "ready", "service": settings.APP_TITLE, "database": "connected",
                     "ocr": image_processor.ocr_engine is not None},
            status_code=200
        )
    except Exception as e:
        return JSONResponse(
            content={"status": "not_ready", "service": settings.APP_TITLE, "error": str(e)},
            status_code=503
        )


def _search_error(message: str, query: str, status_code: int, response_time: int = 0) -> JSONResponse:
    body = SearchErrorResponse(
        error=message, results=[], query=query, total_found=0, response_time=response_time
    )
    return JSONResponse(content=body.model_dump(mode="json"), status_code=status_code)


@app.get("/api/search", response_model=SearchResponse)
async def search_screenshots(q: Optional[str] = None, limit: Optional[str] = None):
    """Search screenshots using natural language query."""
    start_time = time.time()

    try:
        query, parsed_limit = validate_search_request(q, limit)
    except SearchValidationError as e:
        return _search_error(str(e), e.query, 400)

    try:
        return search_service.search(query, parsed_limit, start_time=start_time)
    except Exception:
        logger.exception("Search API error")
        response_time = int((time.time() - start_time) * 1000)
        return _search_error("Internal server error", q or "", 500, response_time)


@app.post("/api/upload", response_model=UploadResponse)
async def upload_screenshots(files: List[UploadFile] = File(default=[])):
    """Upload screenshots, extract their text and description, and store them."""
    if not files:
        return _upload_error("No files provided")

    if len(files) > settings.MAX_UPLOAD_FILES:
        return _upload_error(f"Too many files. Maximum {settings.MAX_UPLOAD_FILES} files per batch.")

    processed: List[UploadedFile] = []
    errors: List[str] = []
    batch_size = settings.UPLOAD_BATCH_SIZE

    # Small concurrent batches keep the vision API from being overwhelmed
    for i in range(0, len(files), batch_size):
        batch = files[i:i + batch_size]
        batch_results = await asyncio.gather(*(process_upload(file) for file in batch))

        for result in batch_results:
            if isinstance(result, UploadedFile):
                processed.append(result)
            else:
                errors.append(result)

        if i + batch_size < len(files):
            await asyncio.sleep(settings.UPLOAD_BATCH_DELAY_SECONDS)

    logger.info(f"Upload finished: {len(processed)} processed, {len(errors)} failed")

    return UploadResponse(
        success=len(processed) > 0,
        uploaded_count=len(processed),
        total_files=len(files),
        errors=errors,
        processed_files=processed,
        batch_info=BatchInfo(processed=len(processed), failed=len(errors), total=len(files)),
    )


def _upload_error(message: str) -> JSONResponse:
    body = UploadResponse(success=False, uploaded_count=0, total_files=0, errors=[message])
    return JSONResponse(content=body.model_dump(mode="json"), status_code=400)


async def process_upload(file: UploadFile):
    """Process one uploaded file. Returns an UploadedFile, or an error message."""
    filename = file.filename or "unnamed"
    file_path = None
    try:
        content = await file.read()
        if not image_processor.is_valid_image_file(file.content_type, len(content)):
            return f"{filename}: Invalid file type or size. Must be PNG/JPG/JPEG/WebP under 10MB."

        loop = asyncio.get_event_loop()
        file_path = await loop.run_in_executor(
            None, file_manager.save_screenshot, filename, content, file.content_type
        )
        ocr_text = await loop.run_in_executor(None, image_processor.extract_text, content)
        visual_description = await loop.run_in_executor(
            None, image_processor.generate_description, content
        )

        image_url = file_manager.get_preview_url(file_path)
        screenshot_id = db_manager.create_screenshot(
            filename=filename,
            image_url=image_url,
            file_size=len(content),
            ocr_text=ocr_text,
            visual_description=visual_description,
        )
        return UploadedFile(
            id=screenshot_id,
            filename=filename,
            file_size=len(content),
            image_url=image_url,
            ocr_text=ocr_text,
            visual_description=visual_description,
        )
    except Exception as e:
        logger.error(f"Error processing file {filename}: {e}")
        if file_path:
            file_manager.delete_file(file_path)
        return f"{filename}: Processing failed - {e}"


@app.get("/api/screenshots")
async def get_all_screenshots():
    """Get all uploaded screenshots, newest first."""
    try:
        screenshots = [ScreenshotRecord(**row) for row in db_manager.list_screenshots()]
    except Exception:
        logger.exception("Screenshots API error")
        return JSONResponse(
            content={"error": "Failed to fetch screenshots", "screenshots": [], "total": 0},
            status_code=500
        )

    return {
        "screenshots": [s.model_dump(mode="json") for s in screenshots],
        "total": len(screenshots)
    }


def _get_record_or_404(screenshot_id: str) -> ScreenshotRecord:
    row = db_manager.get_screenshot_by_id(screenshot_id)
    if not row:
        raise HTTPException(status_code=404, detail="Screenshot not found")
    return ScreenshotRecord(**row)


@app.get("/api/screenshots/{screenshot_id}", response_model=ScreenshotPreview)
async def get_screenshot(screenshot_id: str, q: Optional[str] = Query(default=None, max_length=500)):
    """Preview a screenshot, scored and highlighted against q when given."""
    record = _get_record_or_404(screenshot_id)
    return build_preview(search_service.build_card(record, q))


@app.patch("/api/screenshots/{screenshot_id}/status")
async def update_screenshot_status(screenshot_id: str, update: StatusUpdateRequest):
    """Update processing status and extracted text of a screenshot."""
    updated = db_manager.update_processing_status(
        screenshot_id,
        update.status.value,
        ocr_text=update.ocr_text,
        visual_description=update.visual_description,
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Screenshot not found")
    return _get_record_or_404(screenshot_id)


@app.delete("/api/screenshots/{screenshot_id}", response_model=DeleteResponse)
async def delete_screenshot(screenshot_id: str):
    """Delete a screenshot by ID."""
    if not screenshot_id or screenshot_id.strip() == "":
        raise HTTPException(status_code=400, detail="Invalid screenshot ID")

    try:
        screenshot = db_manager.get_screenshot_by_id(screenshot_id)
        if not screenshot:
            raise HTTPException(status_code=404, detail="Screenshot not found")

        # File removal failures are logged by the file manager; the record still goes
        file_manager.delete_file(file_manager.path_from_url(screenshot["image_url"]))
        db_manager.delete_screenshot(screenshot_id)

        return DeleteResponse(success=True, message="Screenshot deleted successfully")

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting screenshot {screenshot_id}: {e}")
        return JSONResponse(
            content={"success": False, "message": "Failed to delete screenshot"},
            status_code=500
        )


@app.get("/api/stats", response_model=StatsResponse)
async def get_stats():
    """Library size and search analytics."""
    stats = db_manager.get_stats()
    return StatsResponse(
        storage_used_display=format_storage_size(stats["storage_used"]),
        **stats,
    )


@app.get("/api/searches")
async def get_recent_searches(limit: int = Query(default=50, ge=1, le=500)):
    """Most recent search log entries."""
    entries = [SearchLogEntry(**row) for row in db_manager.get_search_logs(limit)]
    return {"searches": entries, "total": len(entries)}
