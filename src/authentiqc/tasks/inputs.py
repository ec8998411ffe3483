"""Synchronous input checks run before a task is created."""

from __future__ import annotations

from urllib.parse import urlparse

from authentiqc.errors import InputValidationError


def require_credentials(credentials: str) -> str:
    value = (credentials or "").strip()
    if not value:
        raise InputValidationError("An API key is required to run an analysis.")
    return value


def validate_source_url(url: str | None) -> str | None:
    """Return the trimmed URL, ``None`` when empty, or raise on malformed input."""
    if url is None:
        return None
    candidate = url.strip()
    if not candidate:
        return None
    parsed = urlparse(candidate)
    if parsed.scheme not in {"http", "https"}:
        raise InputValidationError(f"Unsupported URL scheme: {parsed.scheme or '(none)'}")
    if not parsed.hostname:
        raise InputValidationError(f"URL has no host: {candidate}")
    return candidate


def require_identification_input(images: list[str], url: str | None) -> None:
    if not images and not url:
        raise InputValidationError("Provide at least one image or a product URL.")


def require_inspection_images(images: list[str]) -> None:
    if not images:
        raise InputValidationError("Provide at least one inspection image.")
