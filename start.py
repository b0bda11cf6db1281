#!/usr/bin/env python3
"""
Production startup script for Screenshot Memory Search API
"""
import uvicorn

from config import settings

if __name__ == "__main__":
    print(f"Starting {settings.APP_TITLE} API on {settings.HOST}:{settings.PORT}")

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        workers=1,  # OCR engine and upload batching are per-process
        access_log=True,
        log_level=settings.LOG_LEVEL.lower()
    )
