"""Descriptor verification engine.

Compares two face descriptors produced by the same extractor family and
turns their Euclidean distance into a bounded similarity score and a
match decision.
"""

import math
import numpy as np
from typing import Sequence
from ..models.types import VerificationOutcome

# Distance at which similarity reaches 0. Calibrated against the dlib
# descriptor family, whose usual same-person cutoff is ~0.6 distance.
SIMILARITY_SCALE = 1.6
DEFAULT_THRESHOLD = 0.6

class VerificationError(Exception):
    """Base exception for verification errors."""
    pass

class DimensionMismatchError(VerificationError):
    """Exception raised when descriptors cannot be compared component-wise."""
    pass

def _as_vector(descriptor: Sequence[float], label: str) -> np.ndarray:
    vector = np.asarray(descriptor, dtype=np.float64)
    if vector.ndim != 1:
        raise DimensionMismatchError(f"{label} descriptor must be one-dimensional, got shape {vector.shape}")
    if vector.size == 0:
        raise DimensionMismatchError(f"{label} descriptor is empty")
    return vector

def euclidean_distance(descriptor_a: Sequence[float], descriptor_b: Sequence[float]) -> float:
    """Euclidean distance between two descriptors of equal length.

    Args:
        descriptor_a: First descriptor.
        descriptor_b: Second descriptor.

    Returns:
        Non-negative distance.

    Raises:
        DimensionMismatchError: If the descriptors differ in length or are empty.
    """
    a = _as_vector(descriptor_a, "First")
    b = _as_vector(descriptor_b, "Second")
    if a.shape != b.shape:
        raise DimensionMismatchError(
            f"Descriptor length mismatch: {a.shape[0]} vs {b.shape[0]}"
        )
    return float(np.sqrt(np.sum((a - b) ** 2)))

def distance_to_similarity(distance: float) -> float:
    """Map a distance to a similarity in [0, 1].

    Linear and clamped: 0 maps to 1, SIMILARITY_SCALE and beyond map to 0.
    """
    if math.isnan(distance) or distance < 0:
        raise ValueError(f"Distance must be a non-negative number, got {distance}")
    return max(0.0, (SIMILARITY_SCALE - distance) / SIMILARITY_SCALE)

def verify(
    descriptor_a: Sequence[float],
    descriptor_b: Sequence[float],
    threshold: float = DEFAULT_THRESHOLD
) -> VerificationOutcome:
    """Decide whether two descriptors belong to the same face.

    Args:
        descriptor_a: Reference descriptor.
        descriptor_b: Probe descriptor.
        threshold: Similarity cutoff; the match requires strictly more.

    Returns:
        Distance, similarity, threshold and decision.

    Raises:
        DimensionMismatchError: If the descriptors differ in length or are empty.
    """
    distance = euclidean_distance(descriptor_a, descriptor_b)
    similarity = distance_to_similarity(distance)
    threshold = float(threshold)
    return {
        'distance': distance,
        'similarity': similarity,
        'threshold': threshold,
        'matched': bool(similarity > threshold)
    }

def describe_outcome(outcome: VerificationOutcome) -> str:
    """Result panel text for a computed outcome."""
    lines = [
        f"Distance: {outcome['distance']:.4f} | Similarity: {outcome['similarity']:.3f}"
    ]
    verdict = "Face Matched" if outcome['matched'] else "Face Not Matched"
    lines.append(f"{verdict} (threshold {outcome['threshold']:.3f})")
    return "\n".join(lines)
