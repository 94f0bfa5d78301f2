import logging
import os
from contextlib import asynccontextmanager

from audio import LibrosaFeatureExtractor
from encoder import VideoEncoder
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from jobs import JobRegistry
from orchestrator import RenderOrchestrator
from overlays import BRAND_NAME, OverlayCompositor
from progress import ProgressTracker
from results import ResultStore
from routers import download, status, submit
from styles import StyleRegistry
from worker import RenderPool

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def build_services(app: FastAPI) -> None:
    """Construct the render stack once and hang it off app.state."""
    styles = StyleRegistry()
    registry = JobRegistry()
    tracker = ProgressTracker()
    results = ResultStore()
    orchestrator = RenderOrchestrator(
        registry=registry,
        styles=styles,
        extractor=LibrosaFeatureExtractor(),
        encoder=VideoEncoder(),
        compositor=OverlayCompositor(),
        tracker=tracker,
        results=results,
    )
    app.state.styles = styles
    app.state.registry = registry
    app.state.tracker = tracker
    app.state.results = results
    app.state.orchestrator = orchestrator
    app.state.pool = RenderPool(orchestrator)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up %s API", BRAND_NAME)
    if not hasattr(app.state, "pool"):
        build_services(app)
    app.state.pool.start()
    yield
    logger.info("Shutting down %s API", BRAND_NAME)
    app.state.pool.stop()


app = FastAPI(title=BRAND_NAME + " API", lifespan=lifespan)

_hostname = os.environ.get("SERVER_HOSTNAME", "")
_origins = [f"https://{_hostname}"] if _hostname else ["http://localhost", "http://localhost:8000"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)

app.include_router(submit.router)
app.include_router(status.router)
app.include_router(download.router)


@app.get("/health")
def health():
    return {"ok": True}
