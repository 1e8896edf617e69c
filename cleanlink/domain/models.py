"""Domain models shared by the engine and its callers."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


# ============================================================================
# Engine output
# ============================================================================


class SanitizationOutcome(BaseModel):
    """Result of sanitizing one piece of text.

    The caller owns every file in ``cached_image_paths`` and must delete them
    once delivered; the engine never removes what it hands out.
    """

    text: str = Field(description="Sanitized text, original spacing preserved")
    changed: bool = Field(default=False, description="At least one token was rewritten")
    is_photo_album: bool = Field(default=False, description="A photo post resolved to cached images")
    cached_image_paths: list[str] = Field(default_factory=list, description="Album images, manifest order")
    original_urls: list[str] = Field(default_factory=list, description="URL tokens as they appeared, encounter order")
    issues: list[str] = Field(default_factory=list, description="Recoverable failures, for the caller to log")
    skipped: bool = Field(default=False, description="The skip marker suppressed processing")


# ============================================================================
# Photo manifest API
# ============================================================================


class ManifestData(BaseModel):
    images: list[str] = Field(default_factory=list)


class ManifestResponse(BaseModel):
    """``{code, msg, data: {images: [...]}}``; ``code == 0`` means success."""

    code: int
    msg: str = ""
    data: Optional[ManifestData] = None
