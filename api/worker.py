import logging
import os
import queue
import threading

from errors import QueueFullError, ValidationError
from jobs import JobRegistry
from models import EpisodeMetadata, Job
from orchestrator import RenderOrchestrator
from styles import StyleRegistry

logger = logging.getLogger(__name__)

RENDER_WORKERS = int(os.environ.get("RENDER_WORKERS", "2"))
RENDER_QUEUE_SIZE = int(os.environ.get("RENDER_QUEUE_SIZE", "8"))


class RenderPool:
    """Fixed set of worker threads draining a bounded job queue.

    submit() never blocks: once the queue is full new jobs are rejected with
    QueueFullError so callers can push back on uploads.
    """

    def __init__(
        self,
        orchestrator: RenderOrchestrator,
        workers: int = RENDER_WORKERS,
        queue_size: int = RENDER_QUEUE_SIZE,
    ):
        self.orchestrator = orchestrator
        self.workers = max(1, workers)
        self._queue: queue.Queue[Job] = queue.Queue(maxsize=max(1, queue_size))
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    def submit(self, job: Job) -> None:
        try:
            self._queue.put_nowait(job)
        except queue.Full:
            raise QueueFullError(
                f"Render queue is full ({self._queue.maxsize} jobs waiting). Please try again later."
            ) from None
        logger.info(f"Queued job {job.id} ({self._queue.qsize()} waiting)")

    def pending(self) -> int:
        return self._queue.qsize()

    def _worker_loop(self):
        logger.info("Render worker started")
        while not self._stop_event.is_set():
            try:
                job = self._queue.get(timeout=1.0)
            except queue.Empty:
                continue

            try:
                self.orchestrator.run(job)
            except Exception as e:
                logger.error(f"Worker loop error on job {job.id}: {e}", exc_info=True)
            finally:
                self._queue.task_done()

        logger.info("Render worker stopped")

    def start(self):
        self._stop_event.clear()
        self._threads = [
            threading.Thread(target=self._worker_loop, daemon=True, name=f"render-worker-{i}")
            for i in range(self.workers)
        ]
        for t in self._threads:
            t.start()
        logger.info(f"Started {self.workers} render worker(s), queue size {self._queue.maxsize}")

    def stop(self, timeout: float = 30.0):
        self._stop_event.set()
        for t in self._threads:
            t.join(timeout=timeout)
        self._threads = []

    def join(self):
        """Block until every queued job has been processed."""
        self._queue.join()


def submit_render(
    pool: RenderPool,
    registry: JobRegistry,
    styles: StyleRegistry,
    audio_path: str,
    style_name: str,
    metadata: EpisodeMetadata | None = None,
    seed: int | None = None,
) -> Job:
    """Validate a render request, register the job and queue it.

    Raises ValidationError (or StyleNotFoundError) for bad input and
    QueueFullError when the pool is saturated; in both cases no job exists
    afterwards.
    """
    if not audio_path or not os.path.isfile(audio_path):
        raise ValidationError(f"Audio file not found: {audio_path}")
    styles.get(style_name)

    job = registry.create(audio_path, style_name, metadata, seed)
    try:
        pool.submit(job)
    except QueueFullError:
        registry.discard(job.id)
        raise
    return job
