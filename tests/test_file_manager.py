import os

import pytest

from services.file_manager import FileManager, format_storage_size


@pytest.fixture
def file_manager(tmp_path):
    return FileManager(str(tmp_path / "uploads"))


def test_save_and_delete(file_manager):
    path = file_manager.save_screenshot("Login Screen.PNG", b"data")
    assert os.path.dirname(path) == file_manager.upload_dir
    assert path.endswith(".png")
    with open(path, "rb") as stored:
        assert stored.read() == b"data"

    assert file_manager.delete_file(path) is True
    assert file_manager.delete_file(path) is False


def test_extension_from_content_type(file_manager):
    assert file_manager.save_screenshot("clipboard", b"x", "image/webp").endswith(".webp")


def test_preview_url_round_trip(file_manager):
    path = file_manager.save_screenshot("a.jpg", b"x")
    url = file_manager.get_preview_url(path)
    assert url == f"/uploads/{os.path.basename(path)}"
    assert file_manager.path_from_url(url) == path


@pytest.mark.parametrize("size,expected", [
    (0, "0.00 B"),
    (1023, "1023.00 B"),
    (1536, "1.50 KB"),
    (5 * 1024 * 1024, "5.00 MB"),
    (3 * 1024 ** 4, "3072.00 GB"),
])
def test_format_storage_size(size, expected):
    assert format_storage_size(size) == expected
