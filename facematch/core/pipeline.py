"""Verification orchestration.

Runs the detection fallback for both image slots concurrently, hands the two
descriptors to the verification engine and turns every outcome, including
failures, into a report the UI can show directly.
"""

import asyncio
import logging
import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional
from typing_extensions import Protocol
from .fallback import first_successful
from .options import (
    CNN_STRATEGY,
    DNN_STRATEGY,
    SECONDARY_CNN,
    DnnDetectorOptions,
    dnn_options,
)
from .verification import (
    DEFAULT_THRESHOLD,
    DimensionMismatchError,
    describe_outcome,
    verify as verify_descriptors,
)
from ..models.types import Detection, ImagePreview, VerificationOutcome, VerificationReport
from ..utils.draw import encode_data_url, render_preview

# Configure logging
logger = logging.getLogger(__name__)

REFERENCE = "reference"
PROBE = "probe"
SLOTS = (REFERENCE, PROBE)

SLOT_LABELS = {
    REFERENCE: "reference (ID) image",
    PROBE: "probe (selfie) image",
}

class SessionState(str, Enum):
    IDLE = "IDLE"
    READY = "READY"
    DETECTING_BOTH = "DETECTING_BOTH"
    COMPUTING = "COMPUTING"
    DONE = "DONE"
    FAILED = "FAILED"
    ERROR = "ERROR"

class NoFaceDetectedError(Exception):
    """Exception raised when every detection strategy came back empty."""

    def __init__(self, image: str):
        self.image = image
        super().__init__(f"No face detected in {SLOT_LABELS.get(image, image)}.")

class VerificationBusyError(Exception):
    """Exception raised when a verification is already in flight."""
    pass

class UnknownSlotError(ValueError):
    """Exception raised for an image slot other than reference/probe."""
    pass

class FaceExtractor(Protocol):
    async def extract(self, image: np.ndarray, strategy: str, options) -> Optional[Detection]:
        ...

@dataclass
class SelectedImage:
    name: str
    image: np.ndarray

async def detect_with_fallback(
    extractor: FaceExtractor,
    image: np.ndarray,
    options: DnnDetectorOptions,
    prefix: str = ""
) -> Optional[Detection]:
    """Detect a face, falling back from the SSD detector to the CNN detector.

    Args:
        extractor: Face extractor.
        image: Input image in BGR format.
        options: SSD options (standard or permissive).
        prefix: Prefix for logging messages.

    Returns:
        Detection tagged with the strategy that produced it, or None.
    """
    found = await first_successful([
        (DNN_STRATEGY, lambda: extractor.extract(image, DNN_STRATEGY, options)),
        (CNN_STRATEGY, lambda: extractor.extract(image, CNN_STRATEGY, SECONDARY_CNN)),
    ])
    if found is None:
        logger.info(f"{prefix}No face found by any strategy")
        return None
    strategy, detection = found
    logger.info(f"{prefix}Face found by '{strategy}' (score {detection['score']:.3f})")
    return {**detection, 'strategy': strategy}

def _detection_summary(detection: Optional[Detection]) -> Optional[dict]:
    if detection is None:
        return None
    return {
        'score': round(float(detection['score']), 3),
        'box': detection['box'],
        'strategy': detection['strategy']
    }

class VerificationSession:
    """Two image slots plus the state of the current verification."""

    def __init__(self, preview_max_side: int = 420):
        self.preview_max_side = preview_max_side
        self.images: Dict[str, Optional[SelectedImage]] = {slot: None for slot in SLOTS}
        self.state = SessionState.IDLE
        self.last_report: Optional[VerificationReport] = None
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    def select(self, slot: str, image: np.ndarray, name: str) -> ImagePreview:
        """Put an image into a slot, replacing the previous one."""
        if slot not in SLOTS:
            raise UnknownSlotError(f"Unknown image slot: {slot}")
        self.images[slot] = SelectedImage(name=name, image=image)
        if not self._busy:
            self.state = SessionState.READY if self.missing_slot() is None else SessionState.IDLE
        logger.info(f"Selected {slot} image '{name}' ({image.shape[1]}x{image.shape[0]})")
        return self.preview(slot)

    def missing_slot(self) -> Optional[str]:
        for slot in SLOTS:
            if self.images[slot] is None:
                return slot
        return None

    def preview(self, slot: str, detection: Optional[Detection] = None) -> ImagePreview:
        selected = self.images.get(slot)
        if selected is None:
            return {'name': None, 'preview': None, 'detection': None}
        canvas = render_preview(selected.image, detection, max_side=self.preview_max_side)
        return {
            'name': selected.name,
            'preview': encode_data_url(canvas),
            'detection': _detection_summary(detection)
        }

    def _report(
        self,
        status: str,
        message: str,
        outcome: Optional[VerificationOutcome] = None,
        failed_image: Optional[str] = None,
        error: Optional[str] = None,
        detections: Optional[Dict[str, Optional[Detection]]] = None
    ) -> VerificationReport:
        detections = detections or {}
        report: VerificationReport = {
            'state': self.state.value,
            'status': status,
            'message': message,
            'outcome': outcome,
            'failedImage': failed_image,
            'error': error,
            'reference': self.preview(REFERENCE, detections.get(REFERENCE)),
            'probe': self.preview(PROBE, detections.get(PROBE))
        }
        self.last_report = report
        return report

    async def verify(
        self,
        extractor: FaceExtractor,
        threshold: float = DEFAULT_THRESHOLD,
        permissive: bool = False
    ) -> VerificationReport:
        """Run detection on both slots and compare the faces.

        Every failure is converted into a report; only a re-entrant call raises.

        Args:
            extractor: Face extractor.
            threshold: Similarity cutoff.
            permissive: Use the larger SSD input and lower score threshold.

        Returns:
            Verification report.

        Raises:
            VerificationBusyError: If a verification is already running.
        """
        if self._busy:
            raise VerificationBusyError("A verification is already in progress")

        missing = self.missing_slot()
        if missing is not None:
            return self._report('neutral', f"Please select a {missing} image.")

        self._busy = True
        detections: Dict[str, Optional[Detection]] = {}
        try:
            self.state = SessionState.DETECTING_BOTH
            options = dnn_options(permissive)
            reference = self.images[REFERENCE]
            probe = self.images[PROBE]
            logger.info(
                f"Verifying (threshold {threshold:.3f}, "
                f"{'permissive' if permissive else 'standard'} detection)"
            )

            reference_detection, probe_detection = await asyncio.gather(
                detect_with_fallback(extractor, reference.image, options, "Reference: "),
                detect_with_fallback(extractor, probe.image, options, "Probe: "),
            )
            detections = {REFERENCE: reference_detection, PROBE: probe_detection}

            if reference_detection is None:
                raise NoFaceDetectedError(REFERENCE)
            if probe_detection is None:
                raise NoFaceDetectedError(PROBE)

            self.state = SessionState.COMPUTING
            outcome = verify_descriptors(
                reference_detection['descriptor'],
                probe_detection['descriptor'],
                threshold
            )
            self.state = SessionState.DONE
            logger.info(
                f"Distance {outcome['distance']:.4f}, similarity {outcome['similarity']:.3f}, "
                f"matched={outcome['matched']}"
            )
            return self._report(
                'success' if outcome['matched'] else 'danger',
                describe_outcome(outcome),
                outcome=outcome,
                detections=detections
            )

        except NoFaceDetectedError as e:
            logger.warning(f"Face detection error: {str(e)}")
            self.state = SessionState.FAILED
            return self._report('danger', str(e), failed_image=e.image, detections=detections)
        except DimensionMismatchError as e:
            logger.error(f"Descriptor mismatch, models are inconsistent: {str(e)}")
            self.state = SessionState.ERROR
            return self._report(
                'danger',
                f"Face descriptors are incompatible: {str(e)}",
                error='dimension_mismatch',
                detections=detections
            )
        except Exception:
            logger.exception("Unexpected error during verification")
            self.state = SessionState.ERROR
            return self._report(
                'danger',
                "Error during verification. See the application log for details.",
                error='unexpected',
                detections=detections
            )
        finally:
            self._busy = False
