"""Face detection and descriptor extraction.

This module wraps the two detection backends used by the verifier: OpenCV's
res10 SSD network (fast, tunable input size and score threshold) and dlib's
MMOD CNN detector exposed by face_recognition (slower, used as a fallback).
Whichever backend finds the face, the 128-d descriptor is computed by
face_recognition on the chosen box.
"""

import asyncio
import logging
import threading
import cv2
import numpy as np
import face_recognition
from face_recognition import api as face_api
from typing import Optional, Tuple, Union
from .options import (
    CNN_STRATEGY,
    DNN_STRATEGY,
    CnnDetectorOptions,
    DnnDetectorOptions,
)
from ..models.types import Box, Detection
from ..utils.draw import fit_within

# Configure logging
logger = logging.getLogger(__name__)

DetectorOptions = Union[DnnDetectorOptions, CnnDetectorOptions]

class FaceDetectionError(Exception):
    """Base exception for face detection errors."""
    pass

class UnknownStrategyError(FaceDetectionError):
    """Exception raised when an unsupported detection strategy is requested."""
    pass

def _clip_box(left: float, top: float, right: float, bottom: float, width: int, height: int) -> Optional[Box]:
    x1 = int(max(0, min(width, round(left))))
    y1 = int(max(0, min(height, round(top))))
    x2 = int(max(0, min(width, round(right))))
    y2 = int(max(0, min(height, round(bottom))))
    if x2 <= x1 or y2 <= y1:
        return None
    return {'x': x1, 'y': y1, 'width': x2 - x1, 'height': y2 - y1}

class FaceDetector:
    """Single-face detector and descriptor extractor."""

    # Mean subtracted by the res10 SSD training pipeline (BGR)
    DNN_MEAN = (104.0, 177.0, 123.0)

    def __init__(self, net: "cv2.dnn.Net"):
        """Initialize with a loaded res10 SSD network.

        Args:
            net: Network created by cv2.dnn.readNetFromCaffe.
        """
        self.net = net
        # cv2.dnn.Net and the dlib models are shared state; inference runs one call at a time
        self._lock = threading.Lock()

    def detect_dnn(self, image: np.ndarray, options: DnnDetectorOptions) -> Optional[Tuple[Box, float]]:
        """Find the highest-scoring face with the SSD detector.

        Args:
            image: Input image in BGR format.
            options: Blob resolution and minimum score.

        Returns:
            (box, score) in source-image coordinates, or None.
        """
        height, width = image.shape[:2]
        size = int(options.input_size)
        blob = cv2.dnn.blobFromImage(
            cv2.resize(image, (size, size)), 1.0, (size, size), self.DNN_MEAN
        )
        self.net.setInput(blob)
        detections = self.net.forward()

        best: Optional[Tuple[Box, float]] = None
        for i in range(detections.shape[2]):
            score = float(detections[0, 0, i, 2])
            if score < options.score_threshold:
                continue
            if best is not None and score <= best[1]:
                continue
            x1, y1, x2, y2 = detections[0, 0, i, 3:7] * np.array([width, height, width, height])
            box = _clip_box(x1, y1, x2, y2, width, height)
            if box is None:
                continue
            best = (box, score)
        return best

    def detect_cnn(self, rgb_image: np.ndarray, options: CnnDetectorOptions) -> Optional[Tuple[Box, float]]:
        """Find the most confident face with dlib's CNN detector.

        Args:
            rgb_image: Input image in RGB format.
            options: Minimum confidence, upsampling count and input size cap.

        Returns:
            (box, confidence) in source-image coordinates, or None.
        """
        height, width = rgb_image.shape[:2]
        w, h, ratio = fit_within(width, height, options.max_side)
        if ratio < 1.0:
            detector_input = cv2.resize(rgb_image, (w, h), interpolation=cv2.INTER_AREA)
            upsample = 0
        else:
            detector_input = rgb_image
            upsample = options.upsample

        candidates = [
            face for face in face_api.cnn_face_detector(detector_input, upsample)
            if face.confidence >= options.min_confidence
        ]
        if not candidates:
            return None
        face = max(candidates, key=lambda f: f.confidence)
        rect = face.rect
        box = _clip_box(
            rect.left() / ratio, rect.top() / ratio, rect.right() / ratio, rect.bottom() / ratio,
            width, height
        )
        if box is None:
            return None
        # MMOD confidences are unbounded margins
        return box, float(min(1.0, max(0.0, face.confidence)))

    def compute_descriptor(self, rgb_image: np.ndarray, box: Box) -> Optional[list]:
        """Compute the face descriptor for a box.

        Args:
            rgb_image: Input image in RGB format.
            box: Face bounding box.

        Returns:
            Descriptor as a list of floats, or None if no encoding could be computed.
        """
        location = (box['y'], box['x'] + box['width'], box['y'] + box['height'], box['x'])
        encodings = face_recognition.face_encodings(rgb_image, known_face_locations=[location])
        if not encodings:
            return None
        return encodings[0].tolist()

    def extract_sync(self, image: np.ndarray, strategy: str, options: DetectorOptions) -> Optional[Detection]:
        """Detect the single best face and compute its descriptor.

        Args:
            image: Input image in BGR format.
            strategy: Detection backend, "dnn" or "cnn".
            options: Options matching the strategy.

        Returns:
            Detection, or None when no face is found.

        Raises:
            UnknownStrategyError: If the strategy is not supported.
            ValueError: If the input image is invalid.
        """
        if image is None or image.ndim != 3:
            raise ValueError("Input image must be a decoded BGR bitmap")

        with self._lock:
            rgb_image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
            if strategy == DNN_STRATEGY:
                found = self.detect_dnn(image, options)
            elif strategy == CNN_STRATEGY:
                found = self.detect_cnn(rgb_image, options)
            else:
                raise UnknownStrategyError(f"Unknown detection strategy: {strategy}")

            if found is None:
                logger.info(f"{strategy}: no face above threshold")
                return None

            box, score = found
            descriptor = self.compute_descriptor(rgb_image, box)
            if descriptor is None:
                logger.info(f"{strategy}: face found but no descriptor could be computed")
                return None

        logger.info(f"{strategy}: face at {box} (score {score:.3f})")
        return {
            'score': score,
            'box': box,
            'descriptor': descriptor,
            'strategy': strategy
        }

    async def extract(self, image: np.ndarray, strategy: str, options: DetectorOptions) -> Optional[Detection]:
        """Async wrapper running extraction in a worker thread."""
        return await asyncio.to_thread(self.extract_sync, image, strategy, options)
