"""Core face verification functionality"""
from .verification import (
    euclidean_distance,
    distance_to_similarity,
    verify,
    DimensionMismatchError
)
from .fallback import first_successful
from .pipeline import (
    detect_with_fallback,
    VerificationSession,
    SessionState
)

__all__ = [
    'euclidean_distance',
    'distance_to_similarity',
    'verify',
    'DimensionMismatchError',
    'first_successful',
    'detect_with_fallback',
    'VerificationSession',
    'SessionState'
]
