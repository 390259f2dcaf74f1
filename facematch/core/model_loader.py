"""Detector weight resolution and loading.

Model weights are looked up in an ordered list of sources: the local model
folder first, then two remote mirrors. The first source from which every
required file loads is used; remote files are cached in the local folder.
"""

import asyncio
import logging
import os
import urllib.request
import cv2
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
from .fallback import first_successful
from ..models.types import ModelStatus

if TYPE_CHECKING:
    from .face_detection import FaceDetector

# Configure logging
logger = logging.getLogger(__name__)

PROTOTXT = 'deploy.prototxt'
CAFFEMODEL = 'res10_300x300_ssd_iter_140000.caffemodel'
MODEL_FILES = (PROTOTXT, CAFFEMODEL)

REMOTE_MIRRORS = {
    'github-raw': {
        PROTOTXT: 'https://raw.githubusercontent.com/opencv/opencv/master/samples/dnn/face_detector/deploy.prototxt',
        CAFFEMODEL: 'https://raw.githubusercontent.com/opencv/opencv_3rdparty/dnn_samples_face_detector_20170830/res10_300x300_ssd_iter_140000.caffemodel'
    },
    'github': {
        PROTOTXT: 'https://github.com/opencv/opencv/raw/master/samples/dnn/face_detector/deploy.prototxt',
        CAFFEMODEL: 'https://github.com/opencv/opencv_3rdparty/raw/dnn_samples_face_detector_20170830/res10_300x300_ssd_iter_140000.caffemodel'
    },
}

class ModelLoadFailure(Exception):
    """Exception raised when no model source could be loaded."""
    pass

@dataclass(frozen=True)
class ModelSource:
    name: str
    # file name -> local path or URL
    files: Dict[str, str] = field(default_factory=dict)
    remote: bool = False

def default_sources(model_dir: str) -> List[ModelSource]:
    """Local folder first, then the remote mirrors."""
    sources = [
        ModelSource(
            name=f'local:{model_dir}',
            files={name: os.path.join(model_dir, name) for name in MODEL_FILES}
        )
    ]
    for mirror, files in REMOTE_MIRRORS.items():
        sources.append(ModelSource(name=mirror, files=dict(files), remote=True))
    return sources

def download_file(url: str, filename: str) -> None:
    """Download url to filename, replacing it only once the download completes."""
    logger.info(f"Downloading {os.path.basename(filename)} from {url}...")
    partial = filename + '.part'
    try:
        urllib.request.urlretrieve(url, partial)
        os.replace(partial, filename)
    finally:
        if os.path.exists(partial):
            os.remove(partial)
    logger.info(f"Downloaded {filename}")

def fetch_source(source: ModelSource, model_dir: str) -> Dict[str, str]:
    """Make every file of a source available locally.

    Returns:
        Mapping of file name to local path.

    Raises:
        FileNotFoundError: If a local file is missing.
        OSError: If a download fails.
    """
    missing = [name for name in MODEL_FILES if name not in source.files]
    if missing:
        raise FileNotFoundError(f"Source '{source.name}' does not provide {', '.join(missing)}")

    if not source.remote:
        for name in MODEL_FILES:
            if not os.path.isfile(source.files[name]):
                raise FileNotFoundError(f"Model file not found: {source.files[name]}")
        return {name: source.files[name] for name in MODEL_FILES}

    os.makedirs(model_dir, exist_ok=True)
    paths = {}
    for name in MODEL_FILES:
        filepath = os.path.join(model_dir, name)
        download_file(source.files[name], filepath)
        paths[name] = filepath
    return paths

def load_detector(paths: Dict[str, str]) -> "FaceDetector":
    """Create the face detector from local weight files.

    Raises:
        ModelLoadFailure: If OpenCV cannot build the network.
    """
    from .face_detection import FaceDetector

    net = cv2.dnn.readNetFromCaffe(paths[PROTOTXT], paths[CAFFEMODEL])
    if net.empty():
        raise ModelLoadFailure(f"OpenCV could not load network from {paths[CAFFEMODEL]}")
    return FaceDetector(net)

def load_from_source(source: ModelSource, model_dir: str) -> "FaceDetector":
    return load_detector(fetch_source(source, model_dir))

SourceLoader = Callable[[ModelSource, str], "FaceDetector"]

async def load_models(
    sources: Sequence[ModelSource],
    model_dir: str,
    loader: SourceLoader = load_from_source
) -> Tuple[str, "FaceDetector"]:
    """Load the detector from the first source that works.

    Returns:
        (source name, detector)

    Raises:
        ModelLoadFailure: If every source failed.
    """
    def attempt(source: ModelSource) -> Callable[[], Awaitable[Optional["FaceDetector"]]]:
        async def run():
            logger.info(f"Trying models from {source.name} ...")
            return await asyncio.to_thread(loader, source, model_dir)
        return run

    found = await first_successful([(source.name, attempt(source)) for source in sources])
    if found is None:
        raise ModelLoadFailure(
            "Error loading models from every source. Check your network or place "
            f"{' and '.join(MODEL_FILES)} in '{model_dir}'."
        )
    logger.info(f"Models loaded from {found[0]}")
    return found

class ModelRegistry:
    """Holds the loaded detector, or the reason it is unavailable."""

    def __init__(
        self,
        model_dir: str,
        sources: Optional[Sequence[ModelSource]] = None,
        loader: SourceLoader = load_from_source
    ):
        self.model_dir = model_dir
        self.sources = list(sources) if sources is not None else default_sources(model_dir)
        self.loader = loader
        self.detector: Optional["FaceDetector"] = None
        self.source: Optional[str] = None
        self.error: Optional[str] = None

    @property
    def loaded(self) -> bool:
        return self.detector is not None

    async def load(self) -> bool:
        """(Re)load models; failures are recorded rather than raised."""
        try:
            self.source, self.detector = await load_models(self.sources, self.model_dir, self.loader)
            self.error = None
        except ModelLoadFailure as e:
            logger.error(str(e))
            self.detector = None
            self.source = None
            self.error = str(e)
        return self.loaded

    def status(self) -> ModelStatus:
        return {'loaded': self.loaded, 'source': self.source, 'error': self.error}
