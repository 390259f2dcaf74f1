"""Image processing utilities.

This module turns uploaded image payloads into OpenCV bitmaps, including
base64/data URL decoding and HEIC/HEIF conversion.
"""

import io
import logging
import cv2
import numpy as np
import base64
import binascii
import pillow_heif
from PIL import Image
from typing import Optional, Tuple

# Configure logging
logger = logging.getLogger(__name__)

HEIC_MIME_TYPES = {"image/heic", "image/heif"}
HEIC_EXTENSIONS = (".heic", ".heif")
HEIC_JPEG_QUALITY = 92

pillow_heif.register_heif_opener()

class ImageProcessingError(Exception):
    """Base exception for image processing errors."""
    pass

class ImageDecodingError(ImageProcessingError):
    """Exception raised when image decoding fails."""
    pass

class ImageFormatError(ImageProcessingError):
    """Exception raised when image format is invalid."""
    pass

class ImageTooLargeError(ImageProcessingError):
    """Exception raised when the payload exceeds the size limit."""
    pass

def split_data_url(payload: str) -> Tuple[Optional[str], str]:
    """Split a data URL into its MIME type and base64 body.

    Args:
        payload: "data:image/jpeg;base64,/9j/..." or a bare base64 string.

    Returns:
        (mime type or None, base64 body)
    """
    if ';base64,' in payload:
        header, body = payload.split(';base64,', 1)
        mime = header[5:] if header.startswith('data:') else None
        return (mime.lower() if mime else None), body
    if payload.startswith('data:') and ',' in payload:
        # Fallback: split by comma if the specific delimiter isn't found
        return None, payload.split(',', 1)[1]
    return None, payload

def is_heic(mime: Optional[str], filename: Optional[str]) -> bool:
    if mime and mime.lower() in HEIC_MIME_TYPES:
        return True
    return bool(filename) and filename.lower().endswith(HEIC_EXTENSIONS)

def convert_heic_to_jpeg(data: bytes, quality: int = HEIC_JPEG_QUALITY) -> bytes:
    """Convert HEIC/HEIF bytes to JPEG bytes.

    Raises:
        ImageFormatError: If the data cannot be read as HEIC/HEIF.
    """
    try:
        with Image.open(io.BytesIO(data)) as im:
            if im.mode not in ("RGB", "L"):
                im = im.convert("RGB")
            buf = io.BytesIO()
            im.save(buf, format="JPEG", quality=quality)
            return buf.getvalue()
    except Exception as e:
        raise ImageFormatError(f"HEIC conversion failed: {str(e)}")

def decode_image_bytes(
    data: bytes,
    mime: Optional[str] = None,
    filename: Optional[str] = None,
    max_bytes: Optional[int] = None
) -> np.ndarray:
    """Decode raw image bytes to an OpenCV image.

    HEIC/HEIF input is converted to JPEG first. If the conversion fails the
    original bytes are still handed to OpenCV, which then reports the error.

    Args:
        data: Encoded image bytes.
        mime: MIME type, if known.
        filename: Original file name, if known.
        max_bytes: Optional payload size limit.

    Returns:
        Decoded image as numpy array in BGR format.

    Raises:
        ImageTooLargeError: If the payload exceeds max_bytes.
        ImageFormatError: If decoded data cannot be read as an image.
    """
    if not data:
        raise ImageFormatError("Image payload is empty")
    if max_bytes is not None and len(data) > max_bytes:
        raise ImageTooLargeError(f"Image exceeds {max_bytes // (1024 * 1024)}MB")

    heic = is_heic(mime, filename)
    conversion_error = None
    if heic:
        try:
            data = convert_heic_to_jpeg(data)
        except ImageFormatError as e:
            logger.warning(f"{str(e)}; trying to decode the original bytes")
            conversion_error = str(e)

    # Convert bytes to numpy array
    nparr = np.frombuffer(data, np.uint8)

    # Decode image
    image = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if image is None:
        if conversion_error:
            raise ImageFormatError(f"Failed to decode image data ({conversion_error})")
        raise ImageFormatError("Failed to decode image data: unsupported or corrupt file")

    return image

def decode_base64_image(
    base64_string: str,
    filename: Optional[str] = None,
    max_bytes: Optional[int] = None
) -> np.ndarray:
    """Decode base64 string to OpenCV image.

    Args:
        base64_string: Base64 encoded image string, optionally with data URL prefix.
            Example formats:
            - "data:image/jpeg;base64,/9j/4AAQSkZ..."
            - "/9j/4AAQSkZ..." (without prefix)
        filename: Original file name, used to recognise HEIC/HEIF uploads.
        max_bytes: Optional payload size limit.

    Returns:
        Decoded image as numpy array in BGR format.

    Raises:
        ImageDecodingError: If base64 decoding fails.
        ImageFormatError: If decoded data cannot be read as an image.
    """
    try:
        mime, body = split_data_url(base64_string)

        # Decode base64 to bytes
        try:
            image_bytes = base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ImageDecodingError(f"Failed to decode base64 string: {str(e)}")

        return decode_image_bytes(image_bytes, mime=mime, filename=filename, max_bytes=max_bytes)

    except ImageProcessingError:
        raise
    except Exception as e:
        raise ImageProcessingError(f"Unexpected error processing image: {str(e)}")
