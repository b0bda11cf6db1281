import base64
import io
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image

from services.image_processor import (
    GENERIC_DESCRIPTION,
    ImageProcessor,
    OcrEngine,
    OcrEngineClosedError,
    VisionDescriber,
)


def png_bytes(color=(200, 30, 30), size=(8, 8)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def engine():
    with patch("services.image_processor.pytesseract.get_tesseract_version", return_value="5.3.0"):
        engine = OcrEngine.create(language="eng", timeout=5)
    yield engine
    engine.terminate()


class TestOcrEngine:
    def test_create_and_terminate(self, engine):
        assert not engine.closed
        assert engine.version == "5.3.0"
        engine.terminate()
        assert engine.closed
        engine.terminate()

    def test_recognize_runs_on_grayscale(self, engine):
        with patch("services.image_processor.pytesseract.image_to_string", return_value="  Sign In \n") as ocr:
            text = engine.recognize(Image.new("RGB", (4, 4), (255, 0, 0)))

        assert text == "Sign In"
        image = ocr.call_args.args[0]
        assert image.mode == "L"
        # 0.299 * 255 rounds to 76
        assert image.getpixel((0, 0)) == 76
        assert ocr.call_args.kwargs == {"lang": "eng", "timeout": 5}

    def test_recognize_after_terminate_raises(self, engine):
        engine.terminate()
        with pytest.raises(OcrEngineClosedError):
            engine.recognize(Image.new("RGB", (4, 4)))

    def test_context_manager_terminates(self, engine):
        with engine as owned:
            assert owned is engine
        assert engine.closed


class TestImageProcessor:
    def test_extract_text_collapses_whitespace(self, engine):
        processor = ImageProcessor(ocr_engine=engine, describer=VisionDescriber(api_key=""))
        with patch("services.image_processor.pytesseract.image_to_string", return_value="Sign\n\nIn   now"):
            assert processor.extract_text(png_bytes()) == "Sign In now"

    def test_extract_text_without_engine(self):
        processor = ImageProcessor(describer=VisionDescriber(api_key=""))
        assert processor.extract_text(png_bytes()) == ""

    def test_extract_text_on_unreadable_image(self, engine):
        processor = ImageProcessor(ocr_engine=engine, describer=VisionDescriber(api_key=""))
        assert processor.extract_text(b"not an image") == ""

    def test_extract_text_on_ocr_timeout(self, engine):
        processor = ImageProcessor(ocr_engine=engine, describer=VisionDescriber(api_key=""))
        with patch("services.image_processor.pytesseract.image_to_string",
                   side_effect=RuntimeError("Tesseract process timeout")):
            assert processor.extract_text(png_bytes()) == ""

    @pytest.mark.parametrize("content_type,size,valid", [
        ("image/png", 100, True),
        ("image/webp", 10 * 1024 * 1024, True),
        ("image/png", 10 * 1024 * 1024 + 1, False),
        ("image/gif", 100, False),
        (None, 100, False),
        ("image/jpeg", 0, False),
    ])
    def test_is_valid_image_file(self, content_type, size, valid):
        processor = ImageProcessor(describer=VisionDescriber(api_key=""))
        assert processor.is_valid_image_file(content_type, size) is valid


class TestVisionDescriber:
    def test_without_api_key_returns_generic_description(self):
        assert VisionDescriber(api_key="").describe(png_bytes()) == GENERIC_DESCRIPTION

    def test_sends_jpeg_and_returns_text(self):
        client = MagicMock()
        client.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(type="text", text="  A red login dialog.  ")]
        )
        describer = VisionDescriber(client=client, model="test-model", max_tokens=99)

        assert describer.describe(png_bytes()) == "A red login dialog."

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["max_tokens"] == 99
        image_block = kwargs["messages"][0]["content"][1]
        assert image_block["source"]["media_type"] == "image/jpeg"
        assert base64.b64decode(image_block["source"]["data"])[:2] == b"\xff\xd8"

    def test_non_text_response(self):
        client = MagicMock()
        client.messages.create.return_value = SimpleNamespace(content=[SimpleNamespace(type="tool_use")])
        assert VisionDescriber(client=client).describe(png_bytes()) == "A screenshot or image with visual content."

    def test_unreadable_image_falls_back(self):
        client = MagicMock()
        assert VisionDescriber(client=client).describe(b"garbage") == GENERIC_DESCRIPTION
        client.messages.create.assert_not_called()
