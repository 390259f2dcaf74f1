"""Preview rendering for the two image panels."""

import base64
import math
import cv2
import numpy as np
from typing import Optional, Tuple
from ..models.types import Detection

BOX_COLOR = (212, 182, 6)  # BGR for #06b6d4
LABEL_COLOR = (0, 0, 0)

def fit_within(width: int, height: int, max_side: int = 420) -> Tuple[int, int, float]:
    """Aspect-preserving size that fits in a max_side square.

    Images are only ever scaled down. Sizes round half up.

    Returns:
        (width, height, ratio)
    """
    ratio = min(1.0, max_side / max(width, height))
    return int(math.floor(width * ratio + 0.5)), int(math.floor(height * ratio + 0.5)), ratio

def render_preview(image: np.ndarray, detection: Optional[Detection] = None, max_side: int = 420) -> np.ndarray:
    """Scaled copy of the image with the detected face outlined.

    Args:
        image: Input image in BGR format.
        detection: Detection to draw, if any.
        max_side: Bounding square for the preview.

    Returns:
        Preview image in BGR format.
    """
    height, width = image.shape[:2]
    w, h, ratio = fit_within(width, height, max_side)
    canvas = cv2.resize(image, (w, h), interpolation=cv2.INTER_AREA) if ratio < 1.0 else image.copy()

    if detection is not None:
        box = detection['box']
        x = int(round(box['x'] * ratio))
        y = int(round(box['y'] * ratio))
        x2 = int(round((box['x'] + box['width']) * ratio))
        y2 = int(round((box['y'] + box['height']) * ratio))
        cv2.rectangle(canvas, (x, y), (x2, y2), BOX_COLOR, 2)
        label = f"{detection['strategy']} conf: {detection['score']:.3f}"
        cv2.putText(
            canvas, label, (x, max(12, y - 4)),
            cv2.FONT_HERSHEY_SIMPLEX, 0.4, LABEL_COLOR, 1, cv2.LINE_AA
        )
    return canvas

def encode_data_url(image: np.ndarray, quality: int = 90) -> str:
    """Encode a BGR image as a JPEG data URL."""
    ok, buf = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise ValueError("Failed to encode preview image")
    return "data:image/jpeg;base64," + base64.b64encode(buf.tobytes()).decode("ascii")
