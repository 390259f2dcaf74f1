import asyncio
import logging
import sys
from .core.model_loader import MODEL_FILES, ModelRegistry
from .settings import MODEL_DIR

logger = logging.getLogger(__name__)

def main() -> bool:
    """Fetch the detector weights into the model folder ahead of time."""
    logging.basicConfig(level=logging.INFO)
    registry = ModelRegistry(MODEL_DIR)
    if asyncio.run(registry.load()):
        logger.info(f"Models ready in '{MODEL_DIR}' (source: {registry.source})")
        return True

    logger.error("Please download the model files manually and place them in the "
                 f"'{MODEL_DIR}' directory:")
    for i, name in enumerate(MODEL_FILES, start=1):
        logger.error(f"{i}. {name}")
    return False

if __name__ == "__main__":
    sys.exit(0 if main() else 1)
