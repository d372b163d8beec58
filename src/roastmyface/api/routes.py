"""API route definitions."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException, Request, Response, UploadFile, status

from roastmyface.api.middleware import verify_api_key
from roastmyface.api.schemas import (
    ErrorResponse,
    HealthResponse,
    ImageInfo,
    OutcomeInfo,
    PacksResponse,
    RoastRequest,
    SelectPackRequest,
    SessionResponse,
    ShareResponse,
    StyleInfo,
    StylesResponse,
    ValidationResponse,
)
from roastmyface.client import RoastStyle
from roastmyface.errors import (
    BatchCancelledError,
    DetectorLoadingError,
    DetectorUnavailableError,
    EmptyCompositionError,
    EmptyInputError,
    GenerationInProgressError,
    InsufficientImagesError,
    InvalidResponseError,
    NeedsMoreImagesError,
    NoPromptSelectedError,
    RoastMyFaceError,
    TransportError,
)
from roastmyface.export.composition import build_roast_card
from roastmyface.export.rasterize import export_composition
from roastmyface.export.share import LocalSave, share
from roastmyface.packs import find_pack, reroll_prompt, select_pack
from roastmyface.session import set_images
from roastmyface.validator import UploadedImage, accepted_images

if TYPE_CHECKING:
    from roastmyface.config import Settings
    from roastmyface.export.rasterize import ExportArtifact
    from roastmyface.ml.detector import DetectorGateway
    from roastmyface.ml.inference import InferencePool
    from roastmyface.orchestrator import RoastOrchestrator
    from roastmyface.packs import Pack
    from roastmyface.session import SessionState
    from roastmyface.validator import ImageValidator, ValidationOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

_ERROR_STATUS: dict[type[RoastMyFaceError], int] = {
    GenerationInProgressError: status.HTTP_409_CONFLICT,
    BatchCancelledError: status.HTTP_409_CONFLICT,
    NoPromptSelectedError: status.HTTP_409_CONFLICT,
    EmptyInputError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InsufficientImagesError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NeedsMoreImagesError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    EmptyCompositionError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    TransportError: status.HTTP_502_BAD_GATEWAY,
    InvalidResponseError: status.HTTP_502_BAD_GATEWAY,
    DetectorLoadingError: status.HTTP_503_SERVICE_UNAVAILABLE,
    DetectorUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _http_error(exc: RoastMyFaceError) -> HTTPException:
    status_code = _ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=exc.message)


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_session(request: Request) -> SessionState:
    session: SessionState = request.app.state.session
    return session


def _get_packs(request: Request) -> list[Pack]:
    packs: list[Pack] = request.app.state.packs
    return packs


def _session_response(session: SessionState) -> SessionResponse:
    return SessionResponse(
        pack_id=session.pack.id if session.pack else None,
        pack_title=session.pack.title if session.pack else None,
        prompt=session.prompt,
        required_images=session.required_images,
        upload_enabled=session.upload_enabled,
        images=[
            ImageInfo(index=i, filename=image.filename, content_type=image.content_type, size=len(image.data))
            for i, image in enumerate(session.images)
        ],
        results=session.results,
        error=session.error,
        generating=session.generating,
    )


def _outcome_info(outcome: ValidationOutcome) -> OutcomeInfo:
    return OutcomeInfo(
        filename=outcome.image.filename,
        accepted=outcome.accepted,
        reason=outcome.reason,
        message=outcome.message,
    )


async def _export_current(request: Request) -> ExportArtifact:
    settings = _get_settings(request)
    session = _get_session(request)
    card = build_roast_card(
        session.images,
        session.results,
        prompt=session.prompt.text if session.prompt else None,
    )
    try:
        return await asyncio.to_thread(
            export_composition, card, scale=settings.export_scale, filename=settings.export_filename
        )
    except EmptyCompositionError as exc:
        raise _http_error(exc) from exc


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(request: Request) -> HealthResponse:
    """Return service health and the face detector's loading state."""
    gateway: DetectorGateway = request.app.state.detector_gateway
    pool: InferencePool = request.app.state.inference_pool
    return HealthResponse(
        status="ok",
        detector=gateway.status,
        detector_model=gateway.model_name,
        active_detections=pool.active_count,
        queued_detections=pool.queue_depth,
        generating=_get_session(request).generating,
    )


@router.get("/packs", response_model=PacksResponse, summary="List prompt packs")
async def list_packs(request: Request) -> PacksResponse:
    return PacksResponse(packs=_get_packs(request))


@router.get("/styles", response_model=StylesResponse, summary="List roast styles")
async def list_styles() -> StylesResponse:
    return StylesResponse(styles=[StyleInfo(name=style, label=style.label) for style in RoastStyle])


@router.get("/session", response_model=SessionResponse, summary="Current session")
async def get_session(request: Request) -> SessionResponse:
    return _session_response(_get_session(request))


@router.post(
    "/session/pack",
    response_model=SessionResponse,
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}, status.HTTP_409_CONFLICT: {"model": ErrorResponse}},
    summary="Select a pack",
)
async def choose_pack(body: SelectPackRequest, request: Request) -> SessionResponse:
    """Select a pack; cancels pending uploads, clears images and results and draws a random question."""
    session = _get_session(request)
    if session.generating:
        raise _http_error(GenerationInProgressError())
    pack = find_pack(_get_packs(request), body.pack_id)
    if pack is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown pack: {body.pack_id}")
    # An upload still validating against the previous pack must not land in the new one.
    validator: ImageValidator = request.app.state.validator
    validator.cancel_pending()
    select_pack(session, pack)
    return _session_response(session)


@router.post(
    "/session/reroll",
    response_model=SessionResponse,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorResponse}},
    summary="Draw a different question",
)
async def reroll(request: Request) -> SessionResponse:
    session = _get_session(request)
    if session.generating:
        raise _http_error(GenerationInProgressError())
    if session.pack is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Select a pack first.")
    reroll_prompt(session)
    return _session_response(session)


@router.post(
    "/session/images",
    response_model=ValidationResponse,
    responses={
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Upload and validate images",
)
async def upload_images(files: list[UploadFile], request: Request) -> ValidationResponse:
    """Check each upload for a face; accepted images replace the session's image set."""
    session = _get_session(request)
    validator: ImageValidator = request.app.state.validator
    if not session.upload_enabled:
        raise _http_error(NoPromptSelectedError())
    # select_pack swaps both; either changing means this upload belongs to an older selection.
    pack, images = session.pack, session.images

    uploads = [
        UploadedImage(
            data=await file.read(),
            filename=file.filename or f"image{index}",
            content_type=file.content_type or "application/octet-stream",
        )
        for index, file in enumerate(files)
    ]
    try:
        outcomes = await validator.validate_batch(uploads, require_multiple=session.multi_image)
    except (DetectorLoadingError, BatchCancelledError, NeedsMoreImagesError) as exc:
        raise _http_error(exc) from exc
    if session.pack is not pack or session.images is not images:
        logger.info("Selection changed during upload, discarding %d outcome(s)", len(outcomes))
        raise _http_error(BatchCancelledError())

    accepted = accepted_images(outcomes)
    if accepted:
        set_images(session, accepted)
    return ValidationResponse(
        outcomes=[_outcome_info(outcome) for outcome in outcomes],
        accepted_count=len(accepted),
        session=_session_response(session),
    )


@router.post(
    "/session/roast",
    response_model=SessionResponse,
    responses={
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_502_BAD_GATEWAY: {"model": ErrorResponse},
    },
    summary="Generate roasts",
)
async def roast(body: RoastRequest, request: Request) -> SessionResponse:
    session = _get_session(request)
    orchestrator: RoastOrchestrator = request.app.state.orchestrator
    try:
        await orchestrator.generate(session, body.style)
    except RoastMyFaceError as exc:
        raise _http_error(exc) from exc
    return _session_response(session)


@router.get(
    "/session/export",
    response_class=Response,
    responses={
        status.HTTP_200_OK: {"content": {"image/png": {}}},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
    },
    summary="Download the roast card",
)
async def export_card(request: Request) -> Response:
    artifact = await _export_current(request)
    return Response(
        content=artifact.data,
        media_type=artifact.content_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )


@router.post(
    "/session/share",
    response_model=ShareResponse,
    responses={status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse}},
    summary="Share the roast card",
)
async def share_card(request: Request) -> ShareResponse:
    """Share the card; a server host has no share sheet, so this saves to the downloads directory."""
    settings = _get_settings(request)
    artifact = await _export_current(request)
    outcome = await share(artifact, local=LocalSave(settings.downloads_dir), native=request.app.state.share_capability)
    return ShareResponse(
        method=outcome.method,
        path=str(outcome.path) if outcome.path else None,
        notice=outcome.notice,
    )
