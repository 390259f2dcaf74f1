import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .api.routes import router
from .core.model_loader import ModelRegistry
from .core.pipeline import VerificationSession
from .settings import API_PREFIX, CORS_ALLOW_ORIGINS, HOST, LOG_LEVEL, MODEL_DIR, PORT, PREVIEW_MAX_SIDE

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # A failed load keeps the app up with verification disabled until /models/reload
    if not await app.state.registry.load():
        logger.error("Verification disabled: no model source could be loaded")
    yield

# Initialize FastAPI app
app = FastAPI(title="facematch", lifespan=lifespan)
app.state.registry = ModelRegistry(MODEL_DIR)
app.state.session = VerificationSession(preview_max_side=PREVIEW_MAX_SIDE)

# Enable CORS
if CORS_ALLOW_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Mount routes
app.include_router(router, prefix=API_PREFIX)

def run():
    import uvicorn
    uvicorn.run(app, host=HOST, port=PORT)

if __name__ == "__main__":
    run()
