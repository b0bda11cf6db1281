import os
import tempfile

import pytest

# Settings are read once at import time; point storage at a scratch area first.
_SCRATCH = tempfile.mkdtemp(prefix="screenshot-search-tests-")
os.environ.setdefault("DATABASE_PATH", os.path.join(_SCRATCH, "test.db"))
os.environ.setdefault("UPLOAD_DIR", os.path.join(_SCRATCH, "uploads"))
os.environ.setdefault("ANTHROPIC_API_KEY", "")

from database import DatabaseManager, init_db  # noqa: E402
from models import ProcessingStatus, ScreenshotRecord  # noqa: E402


def make_record(**overrides) -> ScreenshotRecord:
    fields = {
        "id": "shot-1",
        "filename": "screenshot.png",
        "image_url": "/uploads/shot-1.png",
        "ocr_text": "",
        "visual_description": "",
        "uploaded_at": 1000,
        "file_size": 2048,
        "processing_status": ProcessingStatus.COMPLETED,
    }
    fields.update(overrides)
    return ScreenshotRecord(**fields)


@pytest.fixture
def db_manager(tmp_path):
    path = str(tmp_path / "screenshots.db")
    init_db(path)
    return DatabaseManager(path)
