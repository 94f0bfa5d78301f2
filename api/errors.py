class RenderError(Exception):
    """Base class for every error the render pipeline raises on purpose."""

    def __init__(self, message: str, detail: str | None = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class ValidationError(RenderError):
    """Bad input, reported to the caller before a job is accepted."""


class StyleNotFoundError(ValidationError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f'Style preset "{name}" not found')


class QueueFullError(RenderError):
    """The worker pool has no room for another job."""


class AnalysisError(RenderError):
    """Audio duration or features could not be extracted."""


class _ProcessError(RenderError):
    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message, detail=stderr or None)


class EncodeError(_ProcessError):
    """ffmpeg failed while muxing frames with the audio track."""


class OverlayError(_ProcessError):
    """ffmpeg failed while burning overlays or grabbing the thumbnail."""


class ProgressReadError(RenderError):
    """A progress file held something other than '<current>/<total>'."""


class ResultAlreadyWrittenError(RenderError):
    """A terminal result exists for this job and cannot be replaced."""
