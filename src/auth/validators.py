"""Validation utilities for user and course input.

Provides validation for:
- Password length
- Resource URLs (avatars, thumbnails, lesson videos)
- Tag lists
"""

import re
from typing import NamedTuple
from urllib.parse import urlparse


# ==============================================================================
# Constants for validation rules
# ==============================================================================

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128

URL_MAX_LENGTH = 500
ALLOWED_URL_SCHEMES = ("http", "https")

TAG_MAX_LENGTH = 40
MAX_TAGS = 20


class ValidationResult(NamedTuple):
    """Result of a validation check."""

    valid: bool
    message: str | None = None
    formatted: str | None = None


def validate_password(password: str) -> ValidationResult:
    """Validate password length.

    Examples:
        >>> validate_password("secret1")
        ValidationResult(valid=True, message=None, formatted=None)
        >>> validate_password("abc")
        ValidationResult(valid=False, message='Password must be at least 6 characters', formatted=None)
    """
    if len(password) < PASSWORD_MIN_LENGTH:
        return ValidationResult(
            False, f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
        )
    if len(password) > PASSWORD_MAX_LENGTH:
        return ValidationResult(
            False, f"Password must be at most {PASSWORD_MAX_LENGTH} characters"
        )
    if password.strip() == "":
        return ValidationResult(False, "Password cannot be blank")
    return ValidationResult(True)


def validate_url(url: str) -> ValidationResult:
    """Validate an absolute http(s) URL.

    Examples:
        >>> validate_url("https://cdn.example.com/a.png").valid
        True
        >>> validate_url("javascript:alert(1)").message
        'URL must use http or https'
    """
    url = url.strip()
    if len(url) > URL_MAX_LENGTH:
        return ValidationResult(False, f"URL must be at most {URL_MAX_LENGTH} characters")

    parsed = urlparse(url)
    if parsed.scheme not in ALLOWED_URL_SCHEMES:
        return ValidationResult(False, "URL must use http or https")
    if not parsed.netloc:
        return ValidationResult(False, "URL must include a host")
    return ValidationResult(True, formatted=url)


def normalize_tags(tags: list[str]) -> list[str]:
    """Trim tags, drop blanks and duplicates, keep first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for tag in tags:
        cleaned = re.sub(r"\s+", " ", tag).strip()
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            result.append(cleaned)
    return result


class TagValidationResult(NamedTuple):
    """Result of a tag list check, carrying the normalized tags."""

    valid: bool
    message: str | None = None
    tags: tuple[str, ...] = ()


def validate_tags(tags: list[str]) -> TagValidationResult:
    """Validate a tag list after normalization.

    Examples:
        >>> validate_tags(["python", " Python ", "web"]).tags
        ('python', 'web')
    """
    normalized = normalize_tags(tags)
    if len(normalized) > MAX_TAGS:
        return TagValidationResult(False, f"At most {MAX_TAGS} tags are allowed")
    too_long = [t for t in normalized if len(t) > TAG_MAX_LENGTH]
    if too_long:
        return TagValidationResult(
            False, f"Tags must be at most {TAG_MAX_LENGTH} characters"
        )
    return TagValidationResult(True, tags=tuple(normalized))
