"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from roastmyface.config import Settings
    from roastmyface.export.share import ShareCapability
    from roastmyface.ml.face_detector import FaceDetector

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roastmyface.api.routes import router
from roastmyface.client import RoastClient
from roastmyface.config import get_settings
from roastmyface.ml.detector import DetectorGateway
from roastmyface.ml.face_detector import UltraFaceDetector
from roastmyface.ml.inference import InferencePool
from roastmyface.ml.model_manager import OnnxModelManager
from roastmyface.ml.preprocessing import ImagePreprocessor
from roastmyface.orchestrator import RoastOrchestrator
from roastmyface.packs import load_catalog
from roastmyface.session import SessionState
from roastmyface.validator import ImageValidator

logger = logging.getLogger(__name__)


def init_app_state(
    app: FastAPI,
    settings: Settings,
    *,
    detector: FaceDetector | None = None,
    roast_client: RoastClient | None = None,
    share_capability: ShareCapability | None = None,
) -> None:
    """Wire the pipeline components onto ``app.state``.

    The detector is not initialized here; callers start
    ``app.state.detector_gateway.initialize()`` themselves.
    """
    app.state.settings = settings

    inference_pool = InferencePool(settings.max_concurrent_detections)
    app.state.inference_pool = inference_pool

    if detector is None:
        model_manager = OnnxModelManager(settings)
        app.state.model_manager = model_manager
        detector = UltraFaceDetector(
            model_manager,
            settings.face_detection_model,
            score_threshold=settings.detection_threshold,
            iou_threshold=settings.nms_iou_threshold,
        )

    gateway = DetectorGateway(detector, inference_pool)
    app.state.detector_gateway = gateway
    app.state.validator = ImageValidator(
        gateway,
        ImagePreprocessor(max_file_size=settings.max_file_size, max_image_pixels=settings.max_image_pixels),
    )

    app.state.roast_client = roast_client or RoastClient.from_settings(settings)
    app.state.orchestrator = RoastOrchestrator(app.state.roast_client)
    app.state.share_capability = share_capability
    app.state.session = SessionState()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting RoastMyFace (device=%s, detection=%s, roast_api=%s)",
        settings.device,
        settings.face_detection_model,
        settings.roast_api_url,
    )

    init_app_state(app, settings)
    app.state.packs = await load_catalog(settings.catalog_source)

    # Detection requests report "loading" until this finishes.
    detector_init = asyncio.create_task(app.state.detector_gateway.initialize())

    logger.info("RoastMyFace ready")
    yield

    logger.info("Shutting down RoastMyFace")
    await detector_init
    await app.state.roast_client.aclose()
    app.state.inference_pool.shutdown()
    model_manager: OnnxModelManager | None = getattr(app.state, "model_manager", None)
    if model_manager is not None:
        model_manager.close()
    logger.info("RoastMyFace shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="RoastMyFace",
        description="Face-gated photo roasting: upload validation, prompt packs, roast generation and card export",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Console entry point."""
    settings = get_settings()
    uvicorn.run("roastmyface.main:app", host=settings.host, port=settings.port)
