"""
Tests for artifact locator validation.
"""

import pytest

from delivery_lifecycle.errors import InvalidArtifactLocator
from delivery_lifecycle.lifecycle.artifacts import (
    classify_locator,
    drive_preview_url,
    youtube_id,
)
from delivery_lifecycle.lifecycle.enums import VideoType


class TestClassifyLocator:
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ",
            "https://youtube.com/shorts/dQw4w9WgXcQ",
        ],
    )
    def test_youtube_links(self, url):
        video_type, normalized = classify_locator(url)
        assert video_type == VideoType.YOUTUBE
        assert normalized == url

    def test_drive_file_is_normalized_to_preview(self):
        video_type, normalized = classify_locator(
            "https://drive.google.com/file/d/1AbCdEfGh/view?usp=sharing"
        )
        assert video_type == VideoType.GDRIVE
        assert normalized == "https://drive.google.com/file/d/1AbCdEfGh/preview"

    def test_drive_folder_is_rejected(self):
        with pytest.raises(InvalidArtifactLocator) as exc_info:
            classify_locator("https://drive.google.com/drive/folders/1XyZ")
        assert "folder" in exc_info.value.message

    def test_other_hosts_are_plain_links(self):
        video_type, normalized = classify_locator("  https://vimeo.com/123456  ")
        assert video_type == VideoType.LINK
        assert normalized == "https://vimeo.com/123456"

    @pytest.mark.parametrize(
        "locator",
        [
            "",
            "   ",
            "not a url",
            "ftp://files.example.com/video.mp4",
            "https://",
            "http://localhost/video.mp4",
            "/local/path/video.mp4",
        ],
    )
    def test_malformed_locators(self, locator):
        with pytest.raises(InvalidArtifactLocator):
            classify_locator(locator)

    def test_allowed_schemes_override(self):
        with pytest.raises(InvalidArtifactLocator) as exc_info:
            classify_locator("http://cdn.example.com/v.mp4", allowed_schemes=["https"])
        assert "https://" in exc_info.value.message


class TestHelpers:
    def test_youtube_id(self):
        assert youtube_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=10") == "dQw4w9WgXcQ"
        assert youtube_id("https://vimeo.com/1") is None

    def test_drive_preview_url_leaves_other_urls(self):
        assert drive_preview_url("https://example.com/a") == "https://example.com/a"
