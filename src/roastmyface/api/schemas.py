"""Pydantic request/response schemas for the RoastMyFace API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from roastmyface.client import ImageRoast, RoastStyle
from roastmyface.errors import RejectionReason
from roastmyface.packs import Pack, PromptItem


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    detector: str = Field(description="Detector state: 'uninitialized', 'loading', 'ready' or 'unavailable'")
    detector_model: str
    active_detections: int
    queued_detections: int
    generating: bool


class PacksResponse(BaseModel):
    packs: list[Pack]


class StyleInfo(BaseModel):
    name: RoastStyle
    label: str


class StylesResponse(BaseModel):
    styles: list[StyleInfo]


class ImageInfo(BaseModel):
    index: int
    filename: str
    content_type: str
    size: int = Field(description="Payload size in bytes")


class SessionResponse(BaseModel):
    """Snapshot of the current selection and results."""

    pack_id: str | None
    pack_title: str | None
    prompt: PromptItem | None
    required_images: int
    upload_enabled: bool
    images: list[ImageInfo]
    results: list[str] | list[ImageRoast] | None
    error: str | None
    generating: bool


class SelectPackRequest(BaseModel):
    pack_id: str


class RoastRequest(BaseModel):
    style: RoastStyle = RoastStyle.DEFAULT


class OutcomeInfo(BaseModel):
    filename: str
    accepted: bool
    reason: RejectionReason | None
    message: str | None


class ValidationResponse(BaseModel):
    outcomes: list[OutcomeInfo]
    accepted_count: int
    session: SessionResponse


class ShareResponse(BaseModel):
    method: str
    path: str | None
    notice: str | None


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
