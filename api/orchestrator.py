import logging
import os
import shutil
import traceback

from audio import FeatureExtractor, segment_audio
from encoder import VideoEncoder, frame_filename
from errors import RenderError
from jobs import JobRegistry
from models import AudioAnalysis, Job, JobState, StylePreset
from overlays import BRAND_NAME, OverlayCompositor, build_timeline, thumbnail_time
from progress import ProgressTracker
from rasterizer import write_frame
from results import ResultStore
from styles import StyleRegistry
from synthesizer import frame_times, synthesize, total_frames

logger = logging.getLogger(__name__)

MEDIA_DIR = os.environ.get("MEDIA_DIR", "/media")
VIDEO_WIDTH = int(os.environ.get("VIDEO_WIDTH", "1920"))
VIDEO_HEIGHT = int(os.environ.get("VIDEO_HEIGHT", "1080"))
VIDEO_FPS = int(os.environ.get("VIDEO_FPS", "30"))
KEEP_FRAMES = os.environ.get("KEEP_FRAMES", "false").lower() in ("1", "true", "yes")

LOG_EVERY_N_FRAMES = 30


def _discard(path: str | None) -> None:
    if path and os.path.exists(path):
        os.unlink(path)
        logger.info(f"Discarded partial output {path}")


class RenderOrchestrator:
    """Runs one job through analysis, frames, encode, overlays and thumbnail.

    The orchestrator is the only writer of a job's terminal record and writes
    it exactly once, whether the job succeeds or fails.
    """

    def __init__(
        self,
        registry: JobRegistry,
        styles: StyleRegistry,
        extractor: FeatureExtractor,
        encoder: VideoEncoder,
        compositor: OverlayCompositor,
        tracker: ProgressTracker,
        results: ResultStore,
        media_dir: str = MEDIA_DIR,
        width: int = VIDEO_WIDTH,
        height: int = VIDEO_HEIGHT,
        fps: int = VIDEO_FPS,
        keep_frames: bool = KEEP_FRAMES,
        brand: str = BRAND_NAME,
    ):
        self.registry = registry
        self.styles = styles
        self.extractor = extractor
        self.encoder = encoder
        self.compositor = compositor
        self.tracker = tracker
        self.results = results
        self.media_dir = media_dir
        self.width = width
        self.height = height
        self.fps = fps
        self.keep_frames = keep_frames
        self.brand = brand

    @property
    def output_dir(self) -> str:
        return os.path.join(self.media_dir, "output")

    def work_dir(self, job_id: str) -> str:
        return os.path.join(self.media_dir, "work", job_id)

    def frames_dir(self, job_id: str) -> str:
        return os.path.join(self.work_dir(job_id), "frames")

    def render_frames(self, job: Job, analysis: AudioAnalysis, style: StylePreset) -> str:
        frames_dir = self.frames_dir(job.id)
        os.makedirs(frames_dir, exist_ok=True)

        total = total_frames(analysis.duration, self.fps)
        self.tracker.write(job.id, 0, total)
        self.registry.set_frames(job.id, 0, total)
        logger.info(f"Job {job.id}: generating {total} frames for {analysis.duration:.2f}s of audio")

        placeholders = 0
        for i, t in enumerate(frame_times(analysis.duration, self.fps)):
            descriptor = synthesize(t, analysis, style, job.seed, self.fps)
            if write_frame(descriptor, os.path.join(frames_dir, frame_filename(i)), self.width, self.height):
                placeholders += 1
            self.tracker.write(job.id, i + 1, total)
            self.registry.set_frames(job.id, i + 1, total)
            if (i + 1) % LOG_EVERY_N_FRAMES == 0:
                logger.info(f"Job {job.id}: frame {i + 1}/{total}")

        if placeholders:
            logger.warning(f"Job {job.id}: {placeholders}/{total} frames used the placeholder image")
        self.tracker.write(job.id, total, total)
        return frames_dir

    def run(self, job: Job) -> dict:
        logger.info(f"Processing job {job.id} (style={job.style_name!r}, audio={job.audio_path})")
        stage = JobState.CREATED
        work_dir = self.work_dir(job.id)
        video_path = os.path.join(work_dir, "video.mp4")
        final_path = os.path.join(self.output_dir, f"{job.id}.mp4")
        thumbnail_path = os.path.join(self.output_dir, f"{job.id}.jpg")

        try:
            os.makedirs(work_dir, exist_ok=True)
            os.makedirs(self.output_dir, exist_ok=True)

            style = self.styles.get(job.style_name)

            stage = JobState.ANALYZING
            self.registry.set_state(job.id, stage)
            analysis = self.extractor.analyze(job.audio_path)

            stage = JobState.SYNTHESIZING
            self.registry.set_state(job.id, stage)
            frames_dir = self.render_frames(job, analysis, style)

            stage = JobState.ENCODING
            self.registry.set_state(job.id, stage)
            try:
                self.encoder.encode(frames_dir, job.audio_path, self.fps, video_path)
            except Exception:
                _discard(video_path)
                raise

            stage = JobState.OVERLAYING
            self.registry.set_state(job.id, stage)
            elements = build_timeline(analysis.duration, job.metadata, self.width, self.height, self.brand)
            try:
                self.compositor.composite(video_path, elements, final_path)
            except Exception:
                _discard(final_path)
                raise
            finally:
                # the un-overlaid video is never delivered
                _discard(video_path)

            stage = JobState.THUMBNAILING
            self.registry.set_state(job.id, stage)
            self.compositor.extract_thumbnail(final_path, thumbnail_time(analysis.duration), thumbnail_path)

            analysis_preview = analysis.preview()
            analysis_preview["segments"] = [
                {"start": s.start, "end": s.end, "energy": s.energy, "isSilence": s.is_silence}
                for s in segment_audio(analysis)
            ]
            record = {
                "success": True,
                "jobId": job.id,
                "videoPath": final_path,
                "thumbnailPath": thumbnail_path,
                "duration": analysis.duration,
                "analysis": analysis_preview,
            }
        except Exception as e:
            logger.error(f"Job {job.id} failed during {stage.value}: {e}", exc_info=True)
            if stage in (JobState.OVERLAYING, JobState.THUMBNAILING):
                _discard(final_path)
                _discard(thumbnail_path)
            record = self._failure_record(job, stage, e)

        try:
            self.results.write(job.id, record)
        except OSError as e:
            logger.error(f"Job {job.id}: could not persist result: {e}", exc_info=True)
            if record["success"]:
                _discard(final_path)
                _discard(thumbnail_path)
            record = {
                "success": False,
                "jobId": job.id,
                "stage": stage.value,
                "error": "Could not persist result",
                "details": str(e),
            }
        self.registry.finish(job.id, record)

        if record["success"] and not self.keep_frames:
            shutil.rmtree(work_dir, ignore_errors=True)
        return record

    @staticmethod
    def _failure_record(job: Job, stage: JobState, error: Exception) -> dict:
        message = error.message if isinstance(error, RenderError) else str(error) or type(error).__name__
        details = traceback.format_exception(type(error), error, error.__traceback__)
        if isinstance(error, RenderError) and error.detail:
            details.insert(0, error.detail + "\n")
        return {
            "success": False,
            "jobId": job.id,
            "stage": stage.value,
            "error": message,
            "details": "".join(details),
        }
