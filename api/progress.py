import logging
import os
import re
import tempfile

from errors import ProgressReadError
from models import ProgressRecord

logger = logging.getLogger(__name__)

PROGRESS_DIR = os.environ.get("PROGRESS_DIR", tempfile.gettempdir())

_RECORD_RE = re.compile(r"^(\d+)/(\d+)$")


def write_atomic(path: str, content: str) -> None:
    """Write via a sibling temp file and rename so readers never see half a file."""
    directory = os.path.dirname(path) or "."
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=directory)
    try:
        with os.fdopen(fd, "w") as f:
            f.write(content)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def parse_progress(content: str) -> ProgressRecord:
    match = _RECORD_RE.match(content.strip())
    if not match:
        raise ProgressReadError(f"Malformed progress record: {content!r}")
    current, total = int(match.group(1)), int(match.group(2))
    return ProgressRecord(current=min(current, total), total=total)


class ProgressTracker:
    """File-backed '<current>/<total>' frame counters, one file per job."""

    def __init__(self, base_dir: str = PROGRESS_DIR):
        self.base_dir = base_dir
        os.makedirs(base_dir, exist_ok=True)

    def path(self, job_id: str) -> str:
        return os.path.join(self.base_dir, f"vw_progress_{job_id}.txt")

    def write(self, job_id: str, current: int, total: int) -> None:
        if current < 0 or total < 0:
            raise ValueError(f"Progress counts must be non-negative, got {current}/{total}")
        write_atomic(self.path(job_id), f"{min(current, total)}/{total}\n")

    def read(self, job_id: str) -> ProgressRecord | None:
        path = self.path(job_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path) as f:
                return parse_progress(f.read())
        except (OSError, UnicodeDecodeError, ProgressReadError) as e:
            logger.debug(f"No usable progress for job {job_id}: {e}")
            return None
