"""Environment-based configuration for RoastMyFace."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from ROASTMYFACE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ROASTMYFACE_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # Roast generation service
    roast_api_url: str = "http://localhost:8000"
    single_roast_path: str = "/api/roast"
    multi_roast_path: str = "/api/roast/multi"
    request_timeout: float = Field(default=60.0, gt=0)

    # Pack catalog (None = embedded default catalog)
    catalog_source: str | None = None

    # Face detection
    device: Literal["cpu", "cuda", "openvino"] = "cpu"
    face_detection_model: str = "ultraface_rfb_320"
    models_dir: str = "models"
    detection_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    nms_iou_threshold: float = Field(default=0.3, ge=0.0, le=1.0)

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=1_073_741_824, ge=0)

    # Concurrency
    max_concurrent_detections: int = Field(default=4, ge=1)

    # Input limits
    max_image_pixels: int = Field(default=40_000_000, ge=1)
    max_file_size: int = Field(default=20_971_520, ge=1)

    # Export
    export_scale: int = Field(default=2, ge=1)
    export_filename: str = "roastmyface.png"
    downloads_dir: str = "downloads"


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
