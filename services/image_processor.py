import base64
import io
import logging
from typing import Optional

import pytesseract
from PIL import Image
from anthropic import Anthropic, APIError

from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

GENERIC_DESCRIPTION = "A screenshot or image that can be searched for its visual content."

DESCRIPTION_PROMPT = (
    "Describe this screenshot in 2-3 sentences focusing on UI elements, colors, "
    "buttons, text, and key visual features that someone might search for."
)


class OcrEngineClosedError(RuntimeError):
    """Raised when text recognition is requested from a terminated engine."""


class OcrEngine:
    """Tesseract OCR handle with an explicit create/terminate lifecycle.

    The owner creates the engine once (application startup), passes it to
    whatever needs OCR, and terminates it on shutdown.
    """

    def __init__(self, language: str = "eng", timeout: float = 30.0):
        self.language = language
        self.timeout = timeout
        self.version = None
        self._closed = True

    @classmethod
    def create(cls, language: Optional[str] = None, timeout: Optional[float] = None) -> "OcrEngine":
        engine = cls(
            language=language or settings.OCR_LANGUAGE,
            timeout=settings.OCR_TIMEOUT_SECONDS if timeout is None else timeout,
        )
        engine.version = pytesseract.get_tesseract_version()
        engine._closed = False
        logger.info(f"OCR engine ready (tesseract {engine.version}, lang={engine.language})")
        return engine

    @property
    def closed(self) -> bool:
        return self._closed

    def terminate(self) -> None:
        if not self._closed:
            self._closed = True
            logger.info("OCR engine terminated")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.terminate()

    def recognize(self, image: Image.Image) -> str:
        """Run OCR over a grayscale copy of the image."""
        if self._closed:
            raise OcrEngineClosedError("OCR engine has been terminated")

        # Luma conversion (0.299 R + 0.587 G + 0.114 B) improves accuracy on colored UI
        grayscale = image.convert("L")
        text = pytesseract.image_to_string(grayscale, lang=self.language, timeout=self.timeout)
        return text.strip()


class VisionDescriber:
    """Generates short visual descriptions through the Anthropic Messages API."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 max_tokens: Optional[int] = None, client=None):
        api_key = api_key if api_key is not None else settings.ANTHROPIC_API_KEY
        if client is not None:
            self.client = client
        elif api_key:
            self.client = Anthropic(api_key=api_key)
        else:
            logger.warning("ANTHROPIC_API_KEY not set. Visual descriptions will be generic.")
            self.client = None

        self.model = model or settings.ANTHROPIC_MODEL
        self.max_tokens = max_tokens or settings.VISION_MAX_TOKENS

    def describe(self, image_data: bytes) -> str:
        """Describe an image. Falls back to a generic description on any API problem."""
        if self.client is None:
            return GENERIC_DESCRIPTION

        try:
            encoded = _to_jpeg_base64(image_data)
            message = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": DESCRIPTION_PROMPT},
                            {
                                "type": "image",
                                "source": {
                                    "type": "base64",
                                    "media_type": "image/jpeg",
                                    "data": encoded,
                                },
                            },
                        ],
                    }
                ],
            )
        except (APIError, OSError) as e:
            logger.error(f"Vision API error: {e}")
            return GENERIC_DESCRIPTION

        if message.content and getattr(message.content[0], "type", None) == "text":
            return message.content[0].text.strip()
        return "A screenshot or image with visual content."


def _to_jpeg_base64(image_data: bytes) -> str:
    # The vision API always receives JPEG regardless of upload format
    with Image.open(io.BytesIO(image_data)) as img:
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=95)
    return base64.b64encode(buffer.getvalue()).decode("utf-8")


class ImageProcessor:
    def __init__(self, ocr_engine: Optional[OcrEngine] = None,
                 describer: Optional[VisionDescriber] = None):
        self.ocr_engine = ocr_engine
        self.describer = describer or VisionDescriber()

    def is_valid_image_file(self, content_type: Optional[str], size: int) -> bool:
        """Check upload type and size limits."""
        return content_type in settings.ALLOWED_IMAGE_TYPES and 0 < size <= settings.MAX_FILE_SIZE

    def extract_text(self, image_data: bytes) -> str:
        """Extract text from image bytes using OCR. Returns an empty string on failure."""
        if self.ocr_engine is None:
            logger.warning("No OCR engine attached, skipping text extraction")
            return ""

        try:
            with Image.open(io.BytesIO(image_data)) as image:
                text = self.ocr_engine.recognize(image)
        except OcrEngineClosedError:
            raise
        except (OSError, RuntimeError) as e:
            logger.error(f"OCR processing error: {e}")
            return ""

        # Collapse OCR line noise into single spaces
        return " ".join(text.split())

    def generate_description(self, image_data: bytes) -> str:
        """Generate a visual description for search."""
        return self.describer.describe(image_data)
