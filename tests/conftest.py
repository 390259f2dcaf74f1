from __future__ import annotations

from pathlib import Path

import sys
import numpy as np
import pytest

# Ensure repo root is on sys.path so tests run without installing the package.
repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

REFERENCE_MARK = 10
PROBE_MARK = 20


def make_image(mark: int, width: int = 80, height: int = 60) -> np.ndarray:
    """Flat BGR image; the fill value identifies it to FakeExtractor."""
    return np.full((height, width, 3), mark, dtype=np.uint8)


def make_detection(descriptor, score: float = 0.9, strategy: str = "dnn") -> dict:
    return {
        "score": score,
        "box": {"x": 10, "y": 8, "width": 30, "height": 30},
        "descriptor": list(descriptor),
        "strategy": strategy,
    }


class FakeExtractor:
    """Canned extractor keyed by image mark and strategy.

    A plan value may be a detection dict, None (no face) or an exception
    instance (raised when called).
    """

    def __init__(self, plan: dict):
        self.plan = plan
        self.calls = []

    async def extract(self, image, strategy, options):
        mark = int(image[0, 0, 0])
        self.calls.append((mark, strategy, options))
        outcome = self.plan.get(mark, {}).get(strategy)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def strategies_for(self, mark: int) -> list:
        return [strategy for m, strategy, _ in self.calls if m == mark]


@pytest.fixture
def reference_image() -> np.ndarray:
    return make_image(REFERENCE_MARK)


@pytest.fixture
def probe_image() -> np.ndarray:
    return make_image(PROBE_MARK)
