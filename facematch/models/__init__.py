"""Data models and type definitions"""
from .types import (
    Box,
    Detection,
    VerificationOutcome,
    ImagePreview,
    VerificationReport,
    SelectImageRequest,
    VerifyRequest,
    ModelStatus,
)

__all__ = [
    'Box',
    'Detection',
    'VerificationOutcome',
    'ImagePreview',
    'VerificationReport',
    'SelectImageRequest',
    'VerifyRequest',
    'ModelStatus'
]
