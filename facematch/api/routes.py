"""Face verification API routes.

This module provides the endpoints behind the two image panels and the
verify control: selecting images, running a verification and reporting
model status. The detector registry and the session live on app.state.
"""

import logging
from fastapi import APIRouter, HTTPException, Request, status
from typing import Dict, Optional
from ..core.pipeline import (
    SessionState,
    VerificationBusyError,
    SLOTS,
)
from ..models.types import ImagePreview, SelectImageRequest, VerificationReport, VerifyRequest
from ..settings import DEFAULT_THRESHOLD, IMG_MAX_MB, THRESHOLD_MAX, THRESHOLD_MIN
from ..utils.image import ImageProcessingError, ImageTooLargeError, decode_base64_image

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter()

REPORT_STATUS_CODES = {
    SessionState.DONE.value: status.HTTP_200_OK,
    SessionState.FAILED.value: status.HTTP_422_UNPROCESSABLE_ENTITY,
    SessionState.ERROR.value: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

def _status_payload(request: Request) -> Dict:
    session = request.app.state.session
    return {
        'models': request.app.state.registry.status(),
        'session': {
            'state': session.state.value,
            'busy': session.busy,
            'reference': session.images['reference'].name if session.images['reference'] else None,
            'probe': session.images['probe'].name if session.images['probe'] else None
        },
        'defaultThreshold': DEFAULT_THRESHOLD
    }

@router.get("/status")
async def get_status(request: Request) -> Dict:
    """Report model availability and the current session state."""
    return _status_payload(request)

@router.post("/models/reload")
async def reload_models(request: Request) -> Dict:
    """Retry model source resolution.

    Raises:
        HTTPException: 503 if no source could be loaded.
    """
    registry = request.app.state.registry
    if not await registry.load():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=registry.status()
        )
    return _status_payload(request)

@router.put("/images/{slot}")
async def select_image(slot: str, request_data: SelectImageRequest, request: Request) -> ImagePreview:
    """Select the reference or probe image.

    Args:
        slot: "reference" or "probe".
        request_data: Dictionary containing the image.
            - image: Base64 string or data URL of the photo
            - filename: Original file name (optional, used for HEIC detection)

    Returns:
        Name and scaled preview of the selected image.

    Raises:
        HTTPException: If the slot is unknown or the image cannot be decoded.
    """
    if slot not in SLOTS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown image slot '{slot}', expected one of {', '.join(SLOTS)}"
        )

    filename = request_data.get('filename') or f"{slot}-image"
    try:
        logger.info(f"Decoding {slot} image...")
        image = decode_base64_image(
            request_data['image'],
            filename=filename,
            max_bytes=IMG_MAX_MB * 1024 * 1024
        )
        return request.app.state.session.select(slot, image, filename)

    except ImageTooLargeError as e:
        logger.warning(f"Rejected {slot} image: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=str(e)
        )
    except ImageProcessingError as e:
        logger.warning(f"Could not read the {slot} image: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Could not read the image file: {str(e)}"
        )

@router.post("/verify")
async def verify(request: Request, request_data: Optional[VerifyRequest] = None) -> VerificationReport:
    """Compare the faces in the two selected images.

    Args:
        request_data: Optional settings.
            - threshold: Similarity cutoff in [0, 1] (default 0.6)
            - permissive: Use permissive detection (default False)

    Returns:
        Verification report with distance, similarity, verdict and previews.

    Raises:
        HTTPException: 503 without models, 400 for a bad threshold or a missing
            image, 409 while busy, 422 when no face is found, 500 on errors.
    """
    registry = request.app.state.registry
    if not registry.loaded:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=registry.status()
        )

    request_data = request_data or {}
    threshold = float(request_data.get('threshold', DEFAULT_THRESHOLD))
    if not THRESHOLD_MIN <= threshold <= THRESHOLD_MAX:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"threshold must be between {THRESHOLD_MIN} and {THRESHOLD_MAX}"
        )
    permissive = bool(request_data.get('permissive', False))

    try:
        report = await request.app.state.session.verify(
            registry.detector,
            threshold=threshold,
            permissive=permissive
        )
    except VerificationBusyError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )

    status_code = REPORT_STATUS_CODES.get(report['state'], status.HTTP_400_BAD_REQUEST)
    if status_code != status.HTTP_200_OK:
        raise HTTPException(status_code=status_code, detail=report)
    return report
