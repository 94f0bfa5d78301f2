import logging
import os
import threading
import uuid
from collections import deque
from datetime import datetime, timezone

from models import EpisodeMetadata, Job, JobState

logger = logging.getLogger(__name__)

JOB_HISTORY_LIMIT = int(os.environ.get("JOB_HISTORY_LIMIT", "500"))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def seed_from_id(job_id: str) -> int:
    return uuid.UUID(job_id).int & 0x7FFFFFFF


class JobRegistry:
    """In-process job table. Every mutation bumps the job's version and wakes waiters.

    Only the most recent `history_limit` finished jobs are kept; older ones
    are answered from the result files alone.
    """

    def __init__(self, history_limit: int = JOB_HISTORY_LIMIT):
        self._jobs: dict[str, Job] = {}
        self._finished: deque[str] = deque()
        self.history_limit = max(1, history_limit)
        self._cond = threading.Condition()

    def create(
        self,
        audio_path: str,
        style_name: str,
        metadata: EpisodeMetadata | None = None,
        seed: int | None = None,
    ) -> Job:
        job_id = str(uuid.uuid4())
        job = Job(
            id=job_id,
            audio_path=audio_path,
            style_name=style_name,
            seed=seed if seed is not None else seed_from_id(job_id),
            metadata=metadata or EpisodeMetadata(),
            created_at=_now(),
        )
        with self._cond:
            self._jobs[job_id] = job
            self._cond.notify_all()
        return job

    def discard(self, job_id: str) -> None:
        """Forget a job that was never queued."""
        with self._cond:
            job = self._jobs.get(job_id)
            if job and job.state is JobState.CREATED:
                del self._jobs[job_id]

    def get(self, job_id: str) -> Job | None:
        with self._cond:
            return self._jobs.get(job_id)

    def snapshot(self, job_id: str) -> dict | None:
        with self._cond:
            job = self._jobs.get(job_id)
            return job.snapshot() if job else None

    def _mutate(self, job_id: str, **changes) -> None:
        with self._cond:
            job = self._jobs[job_id]
            if job.state.terminal:
                raise RuntimeError(f"Job {job_id} is already {job.state.value}")
            for key, value in changes.items():
                setattr(job, key, value)
            job.version += 1
            self._cond.notify_all()

    def set_state(self, job_id: str, state: JobState) -> None:
        self._mutate(job_id, state=state)
        logger.info(f"Job {job_id} -> {state.value}")

    def set_frames(self, job_id: str, done: int, total: int) -> None:
        self._mutate(job_id, frames_done=done, frames_total=total)

    def finish(self, job_id: str, result: dict) -> None:
        state = JobState.DONE if result.get("success") else JobState.FAILED
        with self._cond:
            self._mutate(job_id, state=state, result=result)
            self._finished.append(job_id)
            while len(self._finished) > self.history_limit:
                evicted = self._finished.popleft()
                self._jobs.pop(evicted, None)
                logger.debug(f"Evicted finished job {evicted}")
        logger.info(f"Job {job_id} -> {state.value}")

    def wait(self, job_id: str, since_version: int = -1, timeout: float = 5.0) -> dict | None:
        """Block until the job's version passes `since_version`.

        Returns the new snapshot, or None on timeout or an unknown job.
        """
        with self._cond:
            ready = self._cond.wait_for(
                lambda: job_id in self._jobs
                and (self._jobs[job_id].version > since_version or self._jobs[job_id].state.terminal),
                timeout=timeout,
            )
            if not ready:
                return None
            return self._jobs[job_id].snapshot()

    def active_count(self) -> int:
        with self._cond:
            return sum(1 for j in self._jobs.values() if not j.state.terminal)
