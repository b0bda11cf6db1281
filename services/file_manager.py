import os
import uuid
import logging
from typing import Optional

from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

CONTENT_TYPE_EXTENSIONS = {
    "image/png": ".png",
    "image/jpg": ".jpg",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
}


class FileManager:
    def __init__(self, upload_dir: Optional[str] = None):
        self.upload_dir = upload_dir or settings.UPLOAD_DIR
        # Ensure upload directory exists
        os.makedirs(self.upload_dir, exist_ok=True)

    def save_screenshot(self, filename: str, content: bytes,
                        content_type: Optional[str] = None) -> str:
        """Save uploaded screenshot bytes and return the stored file path."""
        file_extension = os.path.splitext(filename)[1].lower()
        if not file_extension:
            file_extension = CONTENT_TYPE_EXTENSIONS.get(content_type or "", "")
        unique_filename = f"{uuid.uuid4()}{file_extension}"
        file_path = os.path.join(self.upload_dir, unique_filename)

        try:
            with open(file_path, "wb") as buffer:
                buffer.write(content)
        except OSError:
            # Clean up partial writes
            if os.path.exists(file_path):
                os.remove(file_path)
            raise

        return file_path

    def get_preview_url(self, file_path: str) -> str:
        """Get preview URL for a file."""
        filename = os.path.basename(file_path)
        return f"/uploads/{filename}"

    def path_from_url(self, image_url: str) -> str:
        """Map a preview URL issued by get_preview_url back to its file path."""
        return os.path.join(self.upload_dir, os.path.basename(image_url))

    def delete_file(self, file_path: str) -> bool:
        """Delete a file."""
        try:
            if os.path.exists(file_path):
                os.remove(file_path)
                return True
            return False
        except OSError as e:
            logger.warning(f"Error deleting file {file_path}: {e}")
            return False


def format_storage_size(size: int) -> str:
    """Render a byte count as B/KB/MB/GB with two decimals."""
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    unit_index = 0
    while value >= 1024 and unit_index < len(units) - 1:
        value /= 1024
        unit_index += 1
    return f"{value:.2f} {units[unit_index]}"
