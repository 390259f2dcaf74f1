"""Data models and type definitions"""
from typing import List, Optional
from typing_extensions import NotRequired, TypedDict

class Box(TypedDict):
    x: int
    y: int
    width: int
    height: int

class Detection(TypedDict):
    score: float
    box: Box
    descriptor: List[float]
    strategy: str

class VerificationOutcome(TypedDict):
    distance: float
    similarity: float
    threshold: float
    matched: bool

class ImagePreview(TypedDict):
    name: Optional[str]
    preview: Optional[str]
    detection: Optional[dict]

class VerificationReport(TypedDict):
    state: str
    status: str
    message: str
    outcome: Optional[VerificationOutcome]
    failedImage: Optional[str]
    error: Optional[str]
    reference: ImagePreview
    probe: ImagePreview

class SelectImageRequest(TypedDict):
    image: str
    filename: NotRequired[str]

class VerifyRequest(TypedDict, total=False):
    threshold: float
    permissive: bool

class ModelStatus(TypedDict):
    loaded: bool
    source: Optional[str]
    error: Optional[str]
