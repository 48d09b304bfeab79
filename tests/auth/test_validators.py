"""Tests for input validators."""

import pytest

from src.auth.validators import (
    MAX_TAGS,
    PASSWORD_MIN_LENGTH,
    TAG_MAX_LENGTH,
    normalize_tags,
    validate_password,
    validate_tags,
    validate_url,
)


class TestValidatePassword:
    """Tests for password validation."""

    def test_min_length_is_six(self) -> None:
        assert PASSWORD_MIN_LENGTH == 6
        assert validate_password("abcdef").valid is True

    def test_too_short(self) -> None:
        result = validate_password("abc")
        assert result.valid is False
        assert result.message == "Password must be at least 6 characters"

    def test_blank_password_rejected(self) -> None:
        assert validate_password("        ").valid is False


class TestValidateURL:
    """Tests for URL validation."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://cdn.example.com/thumb.png",
            "http://localhost:8000/video.mp4",
        ],
    )
    def test_valid_urls(self, url: str) -> None:
        result = validate_url(url)
        assert result.valid is True
        assert result.formatted == url

    @pytest.mark.parametrize(
        "url,message",
        [
            ("javascript:alert(1)", "URL must use http or https"),
            ("ftp://example.com/file", "URL must use http or https"),
            ("https://", "URL must include a host"),
        ],
    )
    def test_invalid_urls(self, url: str, message: str) -> None:
        result = validate_url(url)
        assert result.valid is False
        assert result.message == message

    def test_strips_whitespace(self) -> None:
        assert validate_url("  https://example.com/a  ").formatted == (
            "https://example.com/a"
        )


class TestTags:
    """Tests for tag normalization and validation."""

    def test_normalize_dedupes_case_insensitively(self) -> None:
        assert normalize_tags(["Python", " python ", "", "web  dev"]) == [
            "Python",
            "web dev",
        ]

    def test_too_many_tags(self) -> None:
        tags = [f"tag{i}" for i in range(MAX_TAGS + 1)]
        assert validate_tags(tags).valid is False

    def test_tag_too_long(self) -> None:
        assert validate_tags(["x" * (TAG_MAX_LENGTH + 1)]).valid is False

    def test_valid_tags_are_returned_normalized(self) -> None:
        result = validate_tags([" web ", "Web", "a, b"])
        assert result.valid is True
        assert result.tags == ("web", "a, b")
