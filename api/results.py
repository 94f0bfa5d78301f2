import json
import logging
import os
import tempfile

from errors import ResultAlreadyWrittenError

logger = logging.getLogger(__name__)

RESULT_DIR = os.environ.get("RESULT_DIR", tempfile.gettempdir())


class ResultStore:
    """Terminal job records as JSON files, each written exactly once."""

    def __init__(self, base_dir: str = RESULT_DIR):
        self.base_dir = base_dir
        os.makedirs(base_dir, exist_ok=True)

    def path(self, job_id: str) -> str:
        return os.path.join(self.base_dir, f"vw_result_{job_id}.json")

    def exists(self, job_id: str) -> bool:
        return os.path.exists(self.path(job_id))

    def write(self, job_id: str, record: dict) -> None:
        path = self.path(job_id)
        payload = json.dumps(record, sort_keys=True)

        fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=self.base_dir)
        try:
            with os.fdopen(fd, "w") as f:
                f.write(payload)
            # link() refuses to replace an existing file, so the first record wins
            os.link(tmp_path, path)
        except FileExistsError as e:
            raise ResultAlreadyWrittenError(f"Result for job {job_id} already written") from e
        finally:
            os.unlink(tmp_path)
        logger.info(f"Result written for job {job_id}: success={record.get('success')}")

    def read_raw(self, job_id: str) -> str | None:
        try:
            with open(self.path(job_id)) as f:
                return f.read()
        except FileNotFoundError:
            return None

    def read(self, job_id: str) -> dict | None:
        raw = self.read_raw(job_id)
        if raw is None:
            return None
        return json.loads(raw)
