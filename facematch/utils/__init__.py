"""Utility functions for image processing"""
from .image import (
    decode_base64_image,
    decode_image_bytes,
    ImageProcessingError
)
from .draw import (
    fit_within,
    render_preview,
    encode_data_url
)

__all__ = [
    'decode_base64_image',
    'decode_image_bytes',
    'ImageProcessingError',
    'fit_within',
    'render_preview',
    'encode_data_url'
]
