"""Detector tuning options."""
from dataclasses import dataclass

DNN_STRATEGY = "dnn"
CNN_STRATEGY = "cnn"


@dataclass(frozen=True)
class DnnDetectorOptions:
    # Square blob resolution fed to the SSD (larger = slower, finds smaller faces)
    input_size: int = 416
    score_threshold: float = 0.5


@dataclass(frozen=True)
class CnnDetectorOptions:
    min_confidence: float = 0.3
    upsample: int = 1
    # Longer sides are downscaled to this and run without upsampling
    max_side: int = 800


STANDARD_DNN = DnnDetectorOptions()
PERMISSIVE_DNN = DnnDetectorOptions(input_size=608, score_threshold=0.3)
SECONDARY_CNN = CnnDetectorOptions()


def dnn_options(permissive: bool = False) -> DnnDetectorOptions:
    return PERMISSIVE_DNN if permissive else STANDARD_DNN
